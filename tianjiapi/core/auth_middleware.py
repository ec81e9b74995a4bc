from typing import Optional

from dependency_injector.wiring import Provide, inject
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy.orm import Session

from tianjiapi.config import Settings
from tianjiapi.containers import Container
from tianjiapi.core.exceptions import AuthenticationError, PermissionDeniedError
from tianjiapi.core.security import decode_access_token
from tianjiapi.repositories.profile_repository import ProfileRepository

# JWT Bearer 토큰 스킴
security = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    """토큰에서 확인된 호출자 - 권한은 담지 않는다"""

    id: str
    email: Optional[str] = None


@inject
def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(Provide[Container.config.config]),
) -> CurrentUser:
    """필수 사용자 인증 - 유효한 토큰이 필요함"""
    if not credentials:
        raise AuthenticationError("Authentication required")
    payload = decode_access_token(credentials.credentials, settings=settings)
    return CurrentUser(id=payload.sub, email=payload.email)


@inject
def require_admin(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(Provide[Container.repositories.get_db]),
) -> CurrentUser:
    """관리자 권한이 필요한 엔드포인트용 의존성 (DB 역할 기준)"""
    if not ProfileRepository(db).is_admin(current_user.id):
        raise PermissionDeniedError()
    return current_user


@inject
def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(Provide[Container.config.config]),
) -> Optional[CurrentUser]:
    """선택적 사용자 인증 - 토큰이 없으면 None, 토큰이 있는데 유효하지 않으면 401"""
    if not credentials:
        return None
    payload = decode_access_token(credentials.credentials, settings=settings)
    return CurrentUser(id=payload.sub, email=payload.email)
