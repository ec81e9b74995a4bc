from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from tianjiapi.models.profile import CoinBucket
from tianjiapi.schemas.base import WireModel
from tianjiapi.schemas.coins import CoinTransactionEntry


class AdminAdjustRequest(WireModel):
    """관리자 코인 조정 요청 (증감)"""

    target_user_id: str = Field(..., min_length=1)
    amount: int = Field(..., description="조정량 (음수 가능, 0 불가)")
    reason: str = Field("管理员调整", min_length=1, max_length=255)
    coin_type: CoinBucket = CoinBucket.GENERAL

    @field_validator("amount")
    @classmethod
    def _non_zero(cls, value: int) -> int:
        if value == 0:
            raise ValueError("amount must not be zero")
        return value


class AdminSetBalanceRequest(WireModel):
    """관리자 잔액 직접 설정 요청"""

    target_user_id: str = Field(..., min_length=1)
    tianji_coins_balance: int = Field(..., ge=0)
    daily_coins_grant: Optional[int] = Field(None, ge=0)
    activity_coins_grant: Optional[int] = Field(None, ge=0)
    clear_grants: bool = False
    reason: str = Field("管理员设置余额", min_length=1, max_length=255)
    daily_coins_grant_expires_at: Optional[datetime] = None
    activity_coins_grant_expires_at: Optional[datetime] = None


class AdminAdjustResult(BaseModel):
    target_user_id: str
    old_balance: int
    new_balance: int
    delta: int
    coin_type: str
    transaction_id: str
    operator_id: str


class AdminSetBalanceResult(BaseModel):
    target_user_id: str
    tianji_coins_balance: int
    daily_coins_grant: int
    activity_coins_grant: int
    daily_coins_grant_expires_at: Optional[datetime] = None
    activity_coins_grant_expires_at: Optional[datetime] = None
    transaction_ids: List[str]
    operator_id: str


class AdminTransactionFilter(BaseModel):
    user_id: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class AdminTransactionListResponse(BaseModel):
    transactions: List[CoinTransactionEntry]
    total_count: int
    page: int
    page_size: int
    total_pages: int


class AdminUpgradeBonusRequest(WireModel):
    """관리자 소급 지급 실행 요청"""

    target_user_id: str = Field(..., min_length=1)
    new_tier: str = Field(..., min_length=1, max_length=20)
    upgrade_date: Optional[date] = None


class AdminActivateSubscriptionRequest(WireModel):
    """결제 완료된 구독 주문 재활성화 요청"""

    target_user_id: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)
