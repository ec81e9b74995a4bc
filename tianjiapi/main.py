import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from mangum import Mangum
from starlette.middleware.cors import CORSMiddleware

from tianjiapi import containers
from tianjiapi.core.exception_handlers import (
    handle_base_api_exception,
    handle_http_exception,
    handle_unexpected_error,
    handle_validation_error,
)
from tianjiapi.core.exceptions import BaseAPIException
from tianjiapi.core.logging_middleware import LoggingMiddleware
from tianjiapi.logging_config import setup_logging
from tianjiapi.routers import (
    admin_router,
    checkin_router,
    coin_router,
    health_router,
    payment_router,
    profile_router,
    subscription_router,
)

load_dotenv("tianjiapi/.env")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # 세션 리소스 정리 후 엔진 종료
    app.container.shutdown_resources()  # type: ignore
    app.container.repositories.database().dispose()  # type: ignore


def create_app() -> FastAPI:
    container = containers.Container()
    settings = container.config.config()
    setup_logging(settings.LOG_LEVEL, sql_echo=settings.DEBUG)

    app = FastAPI(
        title=settings.APP_NAME,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.container = container  # type: ignore

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)

    app.add_exception_handler(BaseAPIException, handle_base_api_exception)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.include_router(health_router.router)
    for module in (
        coin_router,
        payment_router,
        checkin_router,
        profile_router,
        subscription_router,
        admin_router,
    ):
        app.include_router(module.router, prefix=settings.API_V1_STR)

    logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")
    return app


app = create_app()

handler = Mangum(app)
