"""
코인 거래 원장 모델

모든 잔액 변동은 이 테이블에 정확히 한 행으로 기록되어 감사 추적을 제공한다.
결제 주문도 type='purchase' 인 거래 행으로 저장되며, 주문 완료 시 별도 행을
추가하지 않고 주문 행 자체가 코인 지급 기록이 된다.

정합성 규칙:
    사용자/버킷별 잔액 == SUM(coins_amount) WHERE status='completed' AND coin_type=버킷
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tianjiapi.models.base import BaseModel, generate_uuid


class TransactionType(str, Enum):
    DEDUCT = "deduct"
    GRANT = "grant"
    ADMIN_ADJUST = "admin_adjust"
    ADMIN_SET = "admin_set"
    CHECKIN_REWARD = "checkin_reward"
    REGISTRATION_BONUS = "registration_bonus"
    PURCHASE = "purchase"
    REFUND = "refund"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in (cls.COMPLETED.value, cls.FAILED.value)


class Transaction(BaseModel):
    """
    코인 거래 테이블 - 추가 전용(append-only)

    - coins_amount: 부호 있는 코인 변동량 (양수=지급, 음수=차감)
    - amount: 결제 금액(법정화폐), 코인 전용 거래는 0
    - coin_type: 변동이 적용된 잔액 버킷
    - operator_id: 관리자 조정 거래에만 기록
    - balance_after: 적용 후 해당 버킷 잔액 (대기/실패 주문은 NULL)
    """

    __tablename__ = "transactions"
    __table_args__ = (
        Index("idx_transactions_user_created", "user_id", "created_at"),
        Index("idx_transactions_user_type", "user_id", "type"),
        Index("idx_transactions_status", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    coins_amount: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    coin_type: Mapped[str] = mapped_column(String(20), default="general", nullable=False)
    item_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    pack_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    operator_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=TransactionStatus.COMPLETED.value, nullable=False
    )
    payment_provider: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_first_purchase: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    balance_after: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
