"""
프로필 자료 완성도 API 라우터

- GET /profile/completeness: 완성도 점수와 필드별 점수
- PUT /profile/completeness: 완성도 필드 갱신 (새로 채운 필드/임계값 보상 지급)
- PUT /profile/birth-date: 생년월일 동기화 (임계값 보상 지급)
"""

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends

from tianjiapi.containers import Container
from tianjiapi.core.auth_middleware import CurrentUser, get_current_user
from tianjiapi.schemas.completeness import (
    BirthDateSyncRequest,
    CompletenessFieldsUpdate,
    CompletenessResponse,
    CompletenessUpdateResult,
)
from tianjiapi.services.completeness_service import CompletenessService

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("/completeness", response_model=CompletenessResponse)
@inject
async def get_completeness(
    current_user: CurrentUser = Depends(get_current_user),
    completeness_service: CompletenessService = Depends(
        Provide[Container.services.completeness_service]
    ),
) -> CompletenessResponse:
    return completeness_service.get_completeness(current_user.id)


@router.put("/completeness", response_model=CompletenessUpdateResult)
@inject
async def update_completeness_fields(
    request: CompletenessFieldsUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    completeness_service: CompletenessService = Depends(
        Provide[Container.services.completeness_service]
    ),
) -> CompletenessUpdateResult:
    """보낸 필드만 반영 (exclude_unset)"""
    fields = request.model_dump(exclude_unset=True)
    return completeness_service.update_completeness_fields(current_user.id, fields)


@router.put("/birth-date", response_model=CompletenessUpdateResult)
@inject
async def sync_birth_date(
    request: BirthDateSyncRequest,
    current_user: CurrentUser = Depends(get_current_user),
    completeness_service: CompletenessService = Depends(
        Provide[Container.services.completeness_service]
    ),
) -> CompletenessUpdateResult:
    return completeness_service.sync_birth_date(
        current_user.id, request.birth_date, gender=request.gender
    )
