from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from tianjiapi.schemas.base import WireModel


class OrderItemType(str, Enum):
    COIN_PACK = "coin_pack"
    SUBSCRIPTION = "subscription"


class CallbackStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class CreateOrderRequest(WireModel):
    """결제 주문 생성 요청"""

    amount: float = Field(..., gt=0, description="결제 금액")
    coins_amount: Optional[int] = Field(None, gt=0, description="지급할 코인 수")
    item_type: OrderItemType = Field(OrderItemType.COIN_PACK, description="상품 종류")
    pack_type: Optional[str] = Field(None, max_length=50, description="코인 팩 종류")
    payment_provider: Optional[str] = Field(None, max_length=50, description="결제 수단")
    description: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def _coin_pack_requires_coins(self):
        if self.item_type == OrderItemType.COIN_PACK and not self.coins_amount:
            raise ValueError("coins_amount is required for coin_pack orders")
        return self


class CreateOrderResponse(BaseModel):
    """결제 주문 생성 결과"""

    order_id: str
    amount: float
    coins_amount: Optional[int] = None
    item_type: str
    pack_type: Optional[str] = None
    status: str
    is_first_purchase: bool
    payment_url: str


class PaymentCallbackRequest(WireModel):
    """결제 콜백 요청"""

    order_id: str = Field(..., min_length=1)
    status: CallbackStatus
    payment_provider: Optional[str] = Field(None, max_length=50)
    paid_at: Optional[datetime] = None


class SettlementResult(BaseModel):
    """결제 정산 결과"""

    order_id: str
    status: str
    coins_granted: int = Field(0, description="이번 호출로 지급된 코인")
    new_balance: Optional[int] = Field(None, description="정산 후 일반 잔액")
    transaction_id: Optional[str] = None
    already_processed: bool = Field(False, description="이미 처리된 콜백 재수신 여부")


class OrderResponse(BaseModel):
    """결제 주문 상세"""

    id: str
    user_id: str
    amount: float
    coins_amount: Optional[int] = None
    item_type: Optional[str] = None
    pack_type: Optional[str] = None
    description: Optional[str] = None
    status: str
    payment_provider: Optional[str] = None
    paid_at: Optional[datetime] = None
    is_first_purchase: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
    total_count: int
    limit: int
    offset: int
