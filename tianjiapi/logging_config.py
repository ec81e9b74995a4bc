import logging.config
import sys


def setup_logging(log_level: str = "INFO", sql_echo: bool = False):
    """dictConfig 기반 로깅 설정

    - stdout: 모든 레벨 (한 줄 포맷)
    - stderr: WARNING 이상 (발생 위치 포함)
    - sqlalchemy.engine: sql_echo 가 아니면 WARNING 이상만
    """
    level = log_level.upper()
    app_handlers = ["console", "error_console"]

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "line": {
                    "format": "%(asctime)s | %(levelname)-8s | %(name)-32s | %(message)s",
                },
                "located": {
                    "format": "%(asctime)s | %(levelname)-8s | %(name)s (%(filename)s:%(lineno)d)\n%(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "line",
                    "stream": sys.stdout,
                },
                "error_console": {
                    "class": "logging.StreamHandler",
                    "formatter": "located",
                    "stream": sys.stderr,
                    "level": "WARNING",
                },
            },
            "root": {"handlers": app_handlers, "level": level},
            "loggers": {
                "tianjiapi": {"handlers": app_handlers, "level": level, "propagate": False},
                "uvicorn.error": {"handlers": app_handlers, "level": level, "propagate": False},
                "uvicorn.access": {"handlers": ["console"], "level": level, "propagate": False},
                "sqlalchemy.engine": {
                    "handlers": ["console"],
                    "level": "INFO" if sql_echo else "WARNING",
                    "propagate": False,
                },
            },
        }
    )
