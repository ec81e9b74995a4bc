from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from tianjiapi.schemas.base import WireModel


class CreateSubscriptionRequest(WireModel):
    """구독 주문 생성 요청"""

    tier: str = Field(..., pattern="^(basic|premium|vip)$")
    is_yearly: bool = False


class SubscriptionResponse(BaseModel):
    id: str
    user_id: str
    tier: str
    status: str
    is_yearly: bool = False
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    auto_renew: bool = True
    order_id: Optional[str] = None

    class Config:
        from_attributes = True


class SubscriptionStatusResponse(BaseModel):
    """현재 구독 상태 - 등급은 subscriptions 에서 파생"""

    user_id: str
    tier: str
    status: str
    expires_at: Optional[datetime] = None
    auto_renew: bool = False
    subscription: Optional[SubscriptionResponse] = None


class CreateSubscriptionResponse(BaseModel):
    subscription: SubscriptionResponse
    order_id: str
    amount: float
    payment_url: str
