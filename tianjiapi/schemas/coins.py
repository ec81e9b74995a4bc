from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from tianjiapi.models.profile import CoinBucket
from tianjiapi.models.transaction import TransactionType
from tianjiapi.schemas.base import WireModel


class DeductRequest(WireModel):
    """기능 사용 코인 차감 요청"""

    feature_type: str = Field(..., min_length=1, max_length=50, description="기능 종류")
    price: int = Field(..., gt=0, description="차감할 코인")


class DeductResult(BaseModel):
    """코인 차감 결과"""

    remaining_balance: int = Field(..., description="차감 후 일반 잔액")
    transaction_id: str = Field(..., description="거래 ID")


class LedgerMeta(BaseModel):
    """원장 기록 메타데이터"""

    type: TransactionType
    item_type: Optional[str] = None
    description: Optional[str] = None
    operator_id: Optional[str] = None
    pack_type: Optional[str] = None
    amount: float = 0
    # 관리자 조정만 음수 잔액 허용
    allow_negative: bool = False
    # 지급 버킷(daily/activity) 만료 시각
    expires_at: Optional[datetime] = None


class LedgerResult(BaseModel):
    """원장 기록 결과"""

    new_balance: int = Field(..., description="적용 후 버킷 잔액")
    transaction_id: str = Field(..., description="거래 ID")
    bucket: CoinBucket = Field(CoinBucket.GENERAL, description="적용 버킷")


class BalanceDetails(BaseModel):
    tianji_coins_balance: int
    daily_coins_grant: int
    activity_coins_grant: int
    daily_coins_grant_expires_at: Optional[datetime] = None
    activity_coins_grant_expires_at: Optional[datetime] = None


class CoinBalanceResponse(BaseModel):
    """코인 잔액 응답"""

    user_id: str
    tianji_coins_balance: int = Field(..., description="일반 잔액")
    daily_coins_grant: int = Field(..., description="일일 지급 버킷")
    activity_coins_grant: int = Field(..., description="활동 지급 버킷")
    daily_coins_grant_expires_at: Optional[datetime] = None
    activity_coins_grant_expires_at: Optional[datetime] = None
    total_balance: int = Field(..., description="표시용 총 잔액")
    permanent_balance: int = Field(..., description="만료되지 않는 잔액 (일반 + 활동)")
    expiring_balance: int = Field(..., description="만료 예정 잔액 (일일)")
    next_expiration_date: Optional[datetime] = None
    deduction_priority: str = "general"
    details: BalanceDetails

    class Config:
        from_attributes = True


class CoinTransactionEntry(BaseModel):
    """코인 거래 항목"""

    id: str
    user_id: str
    type: str
    amount: float = 0
    coins_amount: Optional[int] = None
    coin_type: str = "general"
    item_type: Optional[str] = None
    pack_type: Optional[str] = None
    description: Optional[str] = None
    operator_id: Optional[str] = None
    status: str
    payment_provider: Optional[str] = None
    paid_at: Optional[datetime] = None
    is_first_purchase: bool = False
    balance_after: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CoinTransactionListResponse(BaseModel):
    transactions: List[CoinTransactionEntry]
    total_count: int
    limit: int
    offset: int
    has_next: bool


class GrantRequest(WireModel):
    """시스템 코인 지급 요청"""

    user_id: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=255)
    bucket: CoinBucket = CoinBucket.GENERAL
    expires_at: Optional[datetime] = None


class RefundRequest(WireModel):
    """환불 요청"""

    user_id: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=255)
    original_transaction_id: Optional[str] = None


class RegistrationBonusStatus(BaseModel):
    user_id: str
    granted: bool
    coins: int
    granted_at: Optional[datetime] = None


class BucketIntegrity(BaseModel):
    bucket: str
    recorded_balance: int
    calculated_balance: int
    matches: bool


class CoinIntegrityCheckResponse(BaseModel):
    """잔액 정합성 검증 결과"""

    status: str = Field(..., description="OK | MISMATCH")
    user_id: str
    buckets: List[BucketIntegrity]
    entry_count: int
    checked_at: datetime
