"""
체크인 기록 모델

CheckInLog: 사용자별 달력 날짜당 한 행 (불변)
CheckinUpgradeBonusLog: 등급 업그레이드 소급 지급 기록 - 날짜당 최대 1회 지급 보장
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import BigInteger, Date, DateTime, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import UniqueConstraint

from tianjiapi.models.base import BaseModel, generate_uuid


class CheckInLog(BaseModel):
    __tablename__ = "check_in_logs"
    __table_args__ = (
        # 동시 체크인 경쟁의 최종 방어선
        UniqueConstraint("user_id", "check_in_date", name="uq_check_in_user_date"),
        Index("idx_check_in_logs_user_date", "user_id", "check_in_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id"), nullable=False
    )
    check_in_date: Mapped[date] = mapped_column(Date, nullable=False)
    coins_earned: Mapped[int] = mapped_column(BigInteger, nullable=False)
    consecutive_days: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # 체크인 당시 등급
    tier: Mapped[str] = mapped_column(String(20), nullable=False)


class CheckinUpgradeBonusLog(BaseModel):
    __tablename__ = "checkin_upgrade_bonus_logs"
    __table_args__ = (
        # 소급 지급 재실행 방지
        UniqueConstraint("user_id", "check_in_date", name="uq_upgrade_bonus_user_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id"), nullable=False
    )
    check_in_date: Mapped[date] = mapped_column(Date, nullable=False)
    old_tier: Mapped[str] = mapped_column(String(20), nullable=False)
    new_tier: Mapped[str] = mapped_column(String(20), nullable=False)
    base_coins: Mapped[int] = mapped_column(BigInteger, nullable=False)
    bonus_coins: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_coins: Mapped[int] = mapped_column(BigInteger, nullable=False)
    upgrade_date: Mapped[date] = mapped_column(Date, nullable=False)
    granted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
