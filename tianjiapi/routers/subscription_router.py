"""
구독 API 라우터

- GET /subscription/status: 현재 구독 상태와 등급
- POST /subscription/create: 구독 주문 생성 (결제 완료 시 활성화)
- POST /subscription/cancel: 구독 취소 (만료일까지 등급 유지)
"""

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends

from tianjiapi.containers import Container
from tianjiapi.core.auth_middleware import CurrentUser, get_current_user
from tianjiapi.schemas.subscription import (
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    SubscriptionStatusResponse,
)
from tianjiapi.services.subscription_service import SubscriptionService

router = APIRouter(prefix="/subscription", tags=["subscription"])


@router.get("/status", response_model=SubscriptionStatusResponse)
@inject
async def get_subscription_status(
    current_user: CurrentUser = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(
        Provide[Container.services.subscription_service]
    ),
) -> SubscriptionStatusResponse:
    return subscription_service.get_subscription_status(current_user.id)


@router.post("/create", response_model=CreateSubscriptionResponse)
@inject
async def create_subscription(
    request: CreateSubscriptionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(
        Provide[Container.services.subscription_service]
    ),
) -> CreateSubscriptionResponse:
    return subscription_service.create_subscription(
        current_user.id, request.tier, is_yearly=request.is_yearly
    )


@router.post("/cancel", response_model=SubscriptionStatusResponse)
@inject
async def cancel_subscription(
    current_user: CurrentUser = Depends(get_current_user),
    subscription_service: SubscriptionService = Depends(
        Provide[Container.services.subscription_service]
    ),
) -> SubscriptionStatusResponse:
    return subscription_service.cancel_subscription(current_user.id)
