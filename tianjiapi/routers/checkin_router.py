"""
체크인 API 라우터

- POST /checkin/daily: 오늘 체크인
- GET /checkin/status: 체크인 상태 (오늘 가능 여부, 연속 일수, 예상 보상)
- GET /checkin/logs: 체크인 기록
- GET /checkin/upgrade-bonus/calculate: 등급 업그레이드 소급 지급 예상액

소급 지급 실행은 관리자 라우터에서만 가능하다.
"""

from datetime import date
from typing import Optional

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Query

from tianjiapi.containers import Container
from tianjiapi.core.auth_middleware import CurrentUser, get_current_user
from tianjiapi.schemas.checkin import (
    CheckInLogListResponse,
    CheckInResult,
    CheckInStatusResponse,
    UpgradeBonusCalculation,
)
from tianjiapi.services.checkin_service import CheckInService
from tianjiapi.services.upgrade_bonus_service import UpgradeBonusService

router = APIRouter(prefix="/checkin", tags=["checkin"])


@router.post("/daily", response_model=CheckInResult)
@inject
async def daily_check_in(
    current_user: CurrentUser = Depends(get_current_user),
    checkin_service: CheckInService = Depends(Provide[Container.services.checkin_service]),
) -> CheckInResult:
    """
    오늘 체크인

    보상 = 등급 기본 보상 + 10 * (연속 일수 // 7)

    HTTP Status:
        200: 체크인 성공
        409: 오늘 이미 체크인함 (CHECKIN_001)
    """
    return checkin_service.check_in(current_user.id)


@router.get("/status", response_model=CheckInStatusResponse)
@inject
async def get_check_in_status(
    current_user: CurrentUser = Depends(get_current_user),
    checkin_service: CheckInService = Depends(Provide[Container.services.checkin_service]),
) -> CheckInStatusResponse:
    return checkin_service.get_check_in_status(current_user.id)


@router.get("/logs", response_model=CheckInLogListResponse)
@inject
async def get_check_in_logs(
    limit: int = Query(30, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
    checkin_service: CheckInService = Depends(Provide[Container.services.checkin_service]),
) -> CheckInLogListResponse:
    return checkin_service.get_check_in_logs(current_user.id, limit=limit, offset=offset)


@router.get("/upgrade-bonus/calculate", response_model=UpgradeBonusCalculation)
@inject
async def calculate_upgrade_bonus(
    new_tier: str = Query(..., description="업그레이드 대상 등급"),
    upgrade_date: Optional[date] = Query(None, description="업그레이드 날짜 (기본: 오늘)"),
    current_user: CurrentUser = Depends(get_current_user),
    upgrade_bonus_service: UpgradeBonusService = Depends(
        Provide[Container.services.upgrade_bonus_service]
    ),
) -> UpgradeBonusCalculation:
    """소급 지급 예상액 계산 - 잔액은 바뀌지 않는다"""
    return upgrade_bonus_service.calculate_upgrade_bonus(
        current_user.id, new_tier, upgrade_date=upgrade_date
    )
