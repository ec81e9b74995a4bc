"""
프로필 리포지토리 - Balance Store

잔액이 저장된 프로필 행의 조회와 행 잠금을 담당한다.
잔액 변경 경로는 반드시 lock_for_update 로 얻은 인스턴스를 LedgerWriter 에 넘긴다.
"""

from typing import Optional

from pydantic import BaseModel as SchemaBase, ConfigDict
from sqlalchemy.orm import Session

from tianjiapi.core.exceptions import UserNotFoundError
from tianjiapi.models.profile import Profile
from tianjiapi.repositories.base import BaseRepository


class ProfileSnapshot(SchemaBase):
    """잠금 없이 읽은 프로필 스냅샷"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str] = None
    role: str
    tier: str
    tianji_coins_balance: int
    daily_coins_grant: int
    activity_coins_grant: int
    registration_bonus_granted: bool = False


class ProfileRepository(BaseRepository[Profile, ProfileSnapshot]):
    def __init__(self, db: Session):
        super().__init__(Profile, ProfileSnapshot, db)

    def lock_for_update(self, user_id: str) -> Profile:
        """
        프로필 행을 배타 잠금하고 반환

        Args:
            user_id: 사용자 ID

        Returns:
            Profile: 현재 트랜잭션이 잠근 최신 프로필

        Raises:
            UserNotFoundError: 프로필이 존재하지 않음
        """
        profile = self.lock_by_id(user_id)
        if profile is None:
            raise UserNotFoundError(user_id)
        return profile

    def get_or_raise(self, user_id: str) -> Profile:
        profile = self.get_model(user_id)
        if profile is None:
            raise UserNotFoundError(user_id)
        return profile

    def user_exists(self, user_id: str) -> bool:
        return self.exists({"id": user_id})

    def is_admin(self, user_id: str) -> bool:
        """DB 기준 관리자 여부 - 호출마다 다시 확인한다"""
        profile = self.get_model(user_id)
        return bool(profile is not None and profile.is_admin)
