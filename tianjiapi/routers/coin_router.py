"""
천기 코인 API 라우터

사용자용 엔드포인트:
- POST /coins/deduct: 기능 사용료 차감
- GET /coins/balance: 내 코인 잔액 조회
- GET /coins/transactions: 내 거래 내역
- POST /coins/registration-bonus: 가입 보너스 수령
- GET /coins/registration-bonus/status: 가입 보너스 수령 여부
- GET /coins/integrity/my: 내 잔액 정합성 검증

인증 및 권한:
- 모든 엔드포인트는 Bearer 토큰 인증 필요
"""

import logging

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Query

from tianjiapi.containers import Container
from tianjiapi.core.auth_middleware import CurrentUser, get_current_user
from tianjiapi.schemas.coins import (
    CoinBalanceResponse,
    CoinIntegrityCheckResponse,
    CoinTransactionListResponse,
    DeductRequest,
    DeductResult,
    LedgerResult,
    RegistrationBonusStatus,
)
from tianjiapi.services.coin_service import CoinService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/coins", tags=["coins"])


@router.post("/deduct", response_model=DeductResult)
@inject
async def deduct_coins(
    request: DeductRequest,
    current_user: CurrentUser = Depends(get_current_user),
    coin_service: CoinService = Depends(Provide[Container.services.coin_service]),
) -> DeductResult:
    """
    기능 사용료 차감

    HTTP Status:
        200: 차감 성공
        400: 잔액 부족 (BALANCE_001)
        409: 동시 요청 충돌, 재시도 가능 (CONCURRENCY_001)
    """
    return coin_service.deduct(current_user.id, request.feature_type, request.price)


@router.get("/balance", response_model=CoinBalanceResponse)
@inject
async def get_my_balance(
    current_user: CurrentUser = Depends(get_current_user),
    coin_service: CoinService = Depends(Provide[Container.services.coin_service]),
) -> CoinBalanceResponse:
    """내 코인 잔액 조회 - 버킷별 잔액과 표시용 합계"""
    return coin_service.get_balance(current_user.id)


@router.get("/transactions", response_model=CoinTransactionListResponse)
@inject
async def get_my_transactions(
    limit: int = Query(50, ge=1, le=100, description="페이지 크기"),
    offset: int = Query(0, ge=0, description="오프셋"),
    current_user: CurrentUser = Depends(get_current_user),
    coin_service: CoinService = Depends(Provide[Container.services.coin_service]),
) -> CoinTransactionListResponse:
    """
    내 거래 내역 조회 (최신순)

    사용 예시:
        GET /coins/transactions?limit=20&offset=0
    """
    return coin_service.get_transactions(current_user.id, limit=limit, offset=offset)


@router.post("/registration-bonus", response_model=LedgerResult)
@inject
async def claim_registration_bonus(
    current_user: CurrentUser = Depends(get_current_user),
    coin_service: CoinService = Depends(Provide[Container.services.coin_service]),
) -> LedgerResult:
    return coin_service.grant_registration_bonus(current_user.id)


@router.get("/registration-bonus/status", response_model=RegistrationBonusStatus)
@inject
async def get_registration_bonus_status(
    current_user: CurrentUser = Depends(get_current_user),
    coin_service: CoinService = Depends(Provide[Container.services.coin_service]),
) -> RegistrationBonusStatus:
    return coin_service.get_registration_bonus_status(current_user.id)


@router.get("/integrity/my", response_model=CoinIntegrityCheckResponse)
@inject
async def verify_my_integrity(
    current_user: CurrentUser = Depends(get_current_user),
    coin_service: CoinService = Depends(Provide[Container.services.coin_service]),
) -> CoinIntegrityCheckResponse:
    """내 잔액 정합성 검증 - 버킷 잔액과 완료 거래 합계 비교"""
    return coin_service.verify_user_integrity(current_user.id)
