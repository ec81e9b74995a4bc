import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

Base = declarative_base()


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """생성/수정 시각 (UTC, 마이크로초 단위)

    최신순 정렬에 쓰이므로 DB 기본값 대신 애플리케이션에서 채운다.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


class BaseModel(Base, TimestampMixin):
    """모든 테이블 모델의 베이스 클래스"""

    __abstract__ = True
