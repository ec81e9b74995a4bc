"""
사용자 프로필 / 잔액 모델

코인 잔액은 프로필 행에 내장되어 있다 (Balance Store).
모든 잔액 변경은 이 행에 대한 SELECT ... FOR UPDATE 잠금을 먼저 획득한 뒤
잠금 상태에서 읽은 최신 값으로 계산해야 한다.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from sqlalchemy import JSON, BigInteger, Boolean, Date, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from tianjiapi.models.base import BaseModel, generate_uuid


class UserRole(str, Enum):
    """사용자 역할 정의"""

    USER = "user"  # 일반 사용자
    ADMIN = "admin"  # 관리자
    SUPER_ADMIN = "super_admin"  # 최고 관리자

    @classmethod
    def is_admin(cls, role: Union[str, "UserRole", None]) -> bool:
        """관리자 권한 확인"""
        if isinstance(role, cls):
            role = role.value
        return role in [cls.ADMIN.value, cls.SUPER_ADMIN.value]


class Tier(str, Enum):
    """구독 등급 (guest < explorer < basic < premium < vip)"""

    GUEST = "guest"
    EXPLORER = "explorer"
    BASIC = "basic"
    PREMIUM = "premium"
    VIP = "vip"

    @classmethod
    def normalize(cls, tier: Union[str, "Tier", None]) -> "Tier":
        """입력 등급 정규화 - 'free' 및 미지정은 explorer 로 취급"""
        if isinstance(tier, cls):
            return tier
        if not tier:
            return cls.EXPLORER
        value = str(tier).strip().lower()
        if value == "free":
            return cls.EXPLORER
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown tier: {tier}")

    @classmethod
    def rank(cls, tier: Union[str, "Tier", None]) -> int:
        """등급 순위 (숫자가 높을수록 상위 등급)"""
        order = {
            cls.GUEST: 0,
            cls.EXPLORER: 1,
            cls.BASIC: 2,
            cls.PREMIUM: 3,
            cls.VIP: 4,
        }
        return order[cls.normalize(tier)]


class CoinBucket(str, Enum):
    """잔액 버킷 - 일반 잔액과 기간 한정 지급 버킷"""

    GENERAL = "general"
    DAILY_GRANT = "daily_grant"
    ACTIVITY_GRANT = "activity_grant"

    @property
    def balance_column(self) -> str:
        return {
            "general": "tianji_coins_balance",
            "daily_grant": "daily_coins_grant",
            "activity_grant": "activity_coins_grant",
        }[self.value]

    @property
    def expires_column(self) -> Optional[str]:
        return {
            "general": None,
            "daily_grant": "daily_coins_grant_expires_at",
            "activity_grant": "activity_coins_grant_expires_at",
        }[self.value]


class Profile(BaseModel):
    __tablename__ = "profiles"
    __table_args__ = (Index("idx_profiles_email", "email"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    username: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    role: Mapped[str] = mapped_column(
        String(20), default=UserRole.USER.value, nullable=False
    )

    # 잔액 버킷
    tianji_coins_balance: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    daily_coins_grant: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    daily_coins_grant_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    activity_coins_grant: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    activity_coins_grant_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    registration_bonus_granted: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    # 등급 캐시 - subscriptions 테이블에서 파생되며 SubscriptionService 만 기록한다
    tier: Mapped[str] = mapped_column(String(20), default=Tier.EXPLORER.value, nullable=False)
    subscription_status: Mapped[str] = mapped_column(
        String(20), default="inactive", nullable=False
    )
    subscription_end_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # 체크인 스트릭 캐시 (원본은 check_in_logs)
    last_check_in_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    consecutive_check_in_days: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    # 자료 완성도 입력
    birthday: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    preferences: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    @property
    def is_admin(self) -> bool:
        return UserRole.is_admin(self.role)

    def get_bucket_balance(self, bucket: CoinBucket) -> int:
        return getattr(self, bucket.balance_column) or 0

    def set_bucket_balance(self, bucket: CoinBucket, value: int) -> None:
        setattr(self, bucket.balance_column, value)
