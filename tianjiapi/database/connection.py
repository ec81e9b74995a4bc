import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from tianjiapi.config import Settings

logger = logging.getLogger(__name__)


class Database:
    """엔진과 세션 팩토리를 소유하는 DB 핸들

    컨테이너가 프로세스 시작 시 한 번 생성하고, 앱 종료(lifespan) 시 dispose 한다.
    모듈 전역 엔진은 두지 않는다.
    """

    def __init__(self, settings: Settings, engine: Engine = None):
        self.settings = settings
        self.engine = engine or self._create_engine(settings)
        # Use expire_on_commit=False to avoid DetachedInstanceError when accessing
        # attributes after commit within the same request scope (common FastAPI pattern).
        self.session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
            expire_on_commit=False,
        )

    @staticmethod
    def _create_engine(settings: Settings) -> Engine:
        url = settings.database_url
        if url.startswith("sqlite"):
            return create_engine(url, echo=settings.DEBUG)

        # 행 잠금 대기가 무한정 길어지지 않도록 세션 단위 타임아웃 지정
        options = (
            f"-c lock_timeout={settings.DB_LOCK_TIMEOUT_MS} "
            f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"
        )
        return create_engine(
            url,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_pre_ping=True,  # 연결 유효성 검사
            pool_recycle=3600,  # 1시간마다 연결 재생성
            echo=settings.DEBUG,  # 디버그 모드에서 SQL 로깅
            connect_args={"options": options},
        )

    def session(self) -> Session:
        return self.session_factory()

    def dispose(self) -> None:
        logger.info("Disposing database engine")
        self.engine.dispose()
