"""
관리자 API 라우터

- POST /admin/coins/adjust: 코인 증감 (음수 잔액 허용)
- POST /admin/coins/set-balance: 버킷 잔액 직접 설정
- GET /admin/coins/transactions: 전체 거래 검색
- POST /admin/coins/grant: 시스템 코인 지급
- POST /admin/coins/refund: 차감 환불
- GET /admin/coins/integrity/{user_id}: 사용자 잔액 정합성 검증
- POST /admin/checkin/upgrade-bonus/grant: 등급 업그레이드 체크인 소급 지급
- POST /admin/subscriptions/activate: 결제 완료된 구독 주문 재활성화 (멱등)

인증 및 권한:
- 모든 엔드포인트는 DB 역할 기준 관리자 권한 필요 (매 요청 재확인)
"""

from datetime import datetime
from typing import Optional

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Path, Query

from tianjiapi.containers import Container
from tianjiapi.core.auth_middleware import CurrentUser, require_admin
from tianjiapi.schemas.admin import (
    AdminActivateSubscriptionRequest,
    AdminAdjustRequest,
    AdminAdjustResult,
    AdminSetBalanceRequest,
    AdminSetBalanceResult,
    AdminTransactionFilter,
    AdminTransactionListResponse,
    AdminUpgradeBonusRequest,
)
from tianjiapi.schemas.checkin import UpgradeBonusGrantResult
from tianjiapi.schemas.coins import (
    CoinIntegrityCheckResponse,
    GrantRequest,
    LedgerResult,
    RefundRequest,
)
from tianjiapi.services.admin_service import AdminService
from tianjiapi.services.coin_service import CoinService
from tianjiapi.services.subscription_service import SubscriptionService
from tianjiapi.services.upgrade_bonus_service import UpgradeBonusService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/coins/adjust", response_model=AdminAdjustResult)
@inject
async def admin_adjust_coins(
    request: AdminAdjustRequest,
    current_user: CurrentUser = Depends(require_admin),
    admin_service: AdminService = Depends(Provide[Container.services.admin_service]),
) -> AdminAdjustResult:
    """
    관리자 코인 조정

    HTTP Status:
        200: 조정 성공
        403: 관리자 권한 없음 (AUTH_002)
        404: 대상 사용자 없음 (USER_001)
    """
    return admin_service.admin_adjust(
        current_user.id,
        request.target_user_id,
        request.amount,
        reason=request.reason,
        bucket=request.coin_type,
    )


@router.post("/coins/set-balance", response_model=AdminSetBalanceResult)
@inject
async def admin_set_balance(
    request: AdminSetBalanceRequest,
    current_user: CurrentUser = Depends(require_admin),
    admin_service: AdminService = Depends(Provide[Container.services.admin_service]),
) -> AdminSetBalanceResult:
    return admin_service.admin_set_balance(
        current_user.id,
        request.target_user_id,
        request.tianji_coins_balance,
        daily_coins_grant=request.daily_coins_grant,
        activity_coins_grant=request.activity_coins_grant,
        clear_grants=request.clear_grants,
        reason=request.reason,
        daily_coins_grant_expires_at=request.daily_coins_grant_expires_at,
        activity_coins_grant_expires_at=request.activity_coins_grant_expires_at,
    )


@router.get("/coins/transactions", response_model=AdminTransactionListResponse)
@inject
async def list_coin_transactions(
    user_id: Optional[str] = Query(None),
    type: Optional[str] = Query(None, description="거래 유형"),
    status: Optional[str] = Query(None, description="거래 상태"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: CurrentUser = Depends(require_admin),
    admin_service: AdminService = Depends(Provide[Container.services.admin_service]),
) -> AdminTransactionListResponse:
    filters = AdminTransactionFilter(
        user_id=user_id,
        type=type,
        status=status,
        start_date=start_date,
        end_date=end_date,
    )
    return admin_service.list_coin_transactions(
        current_user.id, filters, page=page, page_size=page_size
    )


@router.post("/coins/grant", response_model=LedgerResult)
@inject
async def admin_grant_coins(
    request: GrantRequest,
    current_user: CurrentUser = Depends(require_admin),
    coin_service: CoinService = Depends(Provide[Container.services.coin_service]),
) -> LedgerResult:
    return coin_service.grant(
        request.user_id,
        request.amount,
        request.reason,
        bucket=request.bucket,
        expires_at=request.expires_at,
    )


@router.post("/coins/refund", response_model=LedgerResult)
@inject
async def admin_refund_coins(
    request: RefundRequest,
    current_user: CurrentUser = Depends(require_admin),
    coin_service: CoinService = Depends(Provide[Container.services.coin_service]),
) -> LedgerResult:
    return coin_service.refund(
        request.user_id,
        request.amount,
        request.reason,
        original_transaction_id=request.original_transaction_id,
    )


@router.get("/coins/integrity/{user_id}", response_model=CoinIntegrityCheckResponse)
@inject
async def verify_user_integrity(
    user_id: str = Path(..., description="사용자 ID"),
    current_user: CurrentUser = Depends(require_admin),
    coin_service: CoinService = Depends(Provide[Container.services.coin_service]),
) -> CoinIntegrityCheckResponse:
    return coin_service.verify_user_integrity(user_id)


@router.post("/checkin/upgrade-bonus/grant", response_model=UpgradeBonusGrantResult)
@inject
async def grant_upgrade_bonus(
    request: AdminUpgradeBonusRequest,
    current_user: CurrentUser = Depends(require_admin),
    upgrade_bonus_service: UpgradeBonusService = Depends(
        Provide[Container.services.upgrade_bonus_service]
    ),
) -> UpgradeBonusGrantResult:
    """같은 업그레이드로 다시 호출하면 새로 지급된 날짜 0 건"""
    return upgrade_bonus_service.grant_upgrade_bonus(
        request.target_user_id, request.new_tier, upgrade_date=request.upgrade_date
    )


@router.post("/subscriptions/activate", response_model=UpgradeBonusGrantResult)
@inject
async def activate_subscription(
    request: AdminActivateSubscriptionRequest,
    current_user: CurrentUser = Depends(require_admin),
    subscription_service: SubscriptionService = Depends(
        Provide[Container.services.subscription_service]
    ),
) -> UpgradeBonusGrantResult:
    """
    결제 완료된 구독 주문 재활성화

    정산 시 활성화되지 않은 주문을 복구할 때 사용한다. 이미 활성화된 주문은 변화 없음.

    HTTP Status:
        200: 활성화 (또는 이미 활성화됨)
        404: 주문 없음 또는 대상 사용자의 주문이 아님 (ORDER_001)
        422: 결제 완료되지 않은 주문 (VALIDATION_001)
    """
    return subscription_service.activate_subscription(
        request.target_user_id, request.order_id
    )
