import os
from datetime import datetime

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

# 앱 모듈 import 전에 지정 - 테스트는 실제 PostgreSQL 에 연결하지 않는다
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from tianjiapi.config import Settings
from tianjiapi.core.security import create_access_token
from tianjiapi.database.connection import Database
from tianjiapi.main import create_app
from tianjiapi.models import checkin, completeness, subscription, transaction  # noqa: F401
from tianjiapi.models.base import Base
from tianjiapi.models.profile import Profile, UserRole
from tianjiapi.utils.timezone_utils import FixedClock


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite://",
        SECRET_KEY="test-secret-key",
        ENABLE_MOCK_PAYMENTS=True,
        FRONTEND_URL="https://tianji.test",
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite 의 자체 트랜잭션 처리를 끄고 SAVEPOINT 가 동작하도록 BEGIN 을 직접 발행
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def database(settings, engine):
    return Database(settings, engine=engine)


@pytest.fixture
def db(database):
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def clock():
    """2024-03-10 10:00 (Asia/Shanghai)"""
    return FixedClock(datetime(2024, 3, 10, 10, 0, 0))


@pytest.fixture
def make_profile(db):
    def _make(balance: int = 0, tier: str = "explorer", role: str = UserRole.USER.value, **kwargs):
        profile = Profile(
            tianji_coins_balance=balance,
            tier=tier,
            role=role,
            **kwargs,
        )
        db.add(profile)
        db.commit()
        return profile

    return _make


@pytest.fixture
def admin_profile(make_profile):
    return make_profile(role=UserRole.ADMIN.value, email="admin@tianji.test")


@pytest.fixture
def app(settings, db, clock):
    """테스트 DB 세션/설정/시계를 주입한 앱"""
    app = create_app()
    app.container.config.config.override(providers.Object(settings))
    app.container.config.clock.override(providers.Object(clock))
    app.container.repositories.get_db.override(providers.Object(db))
    yield app
    app.container.unwire()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers(settings):
    """프로필로 Bearer 토큰 헤더 생성"""
    def _headers(profile):
        token = create_access_token(profile.id, email=profile.email, settings=settings)
        return {"Authorization": f"Bearer {token}"}

    return _headers
