"""
결제 API 라우터

- POST /payment/orders: 결제 주문 생성
- GET /payment/orders: 내 주문 목록
- GET /payment/orders/{order_id}: 주문 상세
- POST /payment/callback: 결제 결과 콜백 (토큰이 있으면 본인 주문만 처리)
- POST /payment/mock/success, /payment/mock/fail: 개발용 모의 결제 (ENABLE_MOCK_PAYMENTS)
"""

from typing import Optional

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Path, Query
from pydantic import Field

from tianjiapi.containers import Container
from tianjiapi.core.auth_middleware import (
    CurrentUser,
    get_current_user,
    get_current_user_optional,
)
from tianjiapi.schemas.base import WireModel
from tianjiapi.schemas.payment import (
    CreateOrderRequest,
    CreateOrderResponse,
    OrderListResponse,
    OrderResponse,
    PaymentCallbackRequest,
    SettlementResult,
)
from tianjiapi.services.payment_service import PaymentService

router = APIRouter(prefix="/payment", tags=["payment"])


class MockPaymentRequest(WireModel):
    order_id: str = Field(..., min_length=1)


@router.post("/orders", response_model=CreateOrderResponse)
@inject
async def create_order(
    request: CreateOrderRequest,
    current_user: CurrentUser = Depends(get_current_user),
    payment_service: PaymentService = Depends(Provide[Container.services.payment_service]),
) -> CreateOrderResponse:
    return payment_service.create_order(
        current_user.id,
        amount=request.amount,
        coins_amount=request.coins_amount,
        item_type=request.item_type,
        pack_type=request.pack_type,
        payment_provider=request.payment_provider,
        description=request.description,
    )


@router.get("/orders", response_model=OrderListResponse)
@inject
async def get_orders(
    status: Optional[str] = Query(None, pattern="^(pending|completed|failed)$"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
    payment_service: PaymentService = Depends(Provide[Container.services.payment_service]),
) -> OrderListResponse:
    return payment_service.get_orders(current_user.id, status=status, limit=limit, offset=offset)


@router.get("/orders/{order_id}", response_model=OrderResponse)
@inject
async def get_order(
    order_id: str = Path(..., description="주문 ID"),
    current_user: CurrentUser = Depends(get_current_user),
    payment_service: PaymentService = Depends(Provide[Container.services.payment_service]),
) -> OrderResponse:
    return payment_service.get_order(order_id, user_id=current_user.id)


@router.post("/callback", response_model=SettlementResult)
@inject
async def payment_callback(
    request: PaymentCallbackRequest,
    current_user: Optional[CurrentUser] = Depends(get_current_user_optional),
    payment_service: PaymentService = Depends(Provide[Container.services.payment_service]),
) -> SettlementResult:
    """
    결제 결과 콜백

    같은 completed 콜백을 다시 받으면 코인을 다시 지급하지 않고
    already_processed=True 로 응답한다.

    HTTP Status:
        200: 처리 완료 (재수신 포함)
        404: 주문 없음 (ORDER_001)
        409: 이미 종결된 주문 (ORDER_002) 또는 동시 처리 충돌 (CONCURRENCY_001)
    """
    return payment_service.handle_payment_callback(
        request.order_id,
        request.status,
        provider=request.payment_provider,
        paid_at=request.paid_at,
        user_id=current_user.id if current_user else None,
    )


@router.post("/mock/success", response_model=SettlementResult)
@inject
async def mock_payment_success(
    request: MockPaymentRequest,
    current_user: CurrentUser = Depends(get_current_user),
    payment_service: PaymentService = Depends(Provide[Container.services.payment_service]),
) -> SettlementResult:
    return payment_service.mock_pay_success(request.order_id, user_id=current_user.id)


@router.post("/mock/fail", response_model=SettlementResult)
@inject
async def mock_payment_fail(
    request: MockPaymentRequest,
    current_user: CurrentUser = Depends(get_current_user),
    payment_service: PaymentService = Depends(Provide[Container.services.payment_service]),
) -> SettlementResult:
    return payment_service.mock_pay_fail(request.order_id, user_id=current_user.id)
