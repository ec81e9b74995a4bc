from typing import Optional

from pydantic import BaseModel as SchemaBase, ConfigDict
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tianjiapi.models.completeness import CompletenessReward
from tianjiapi.repositories.base import BaseRepository


class CompletenessRewardEntry(SchemaBase):
    model_config = ConfigDict(from_attributes=True)

    reward_type: str
    reward_key: str
    reward_field: Optional[str] = None
    reward_threshold: Optional[int] = None
    coins: int
    reason: Optional[str] = None


class CompletenessRewardRepository(BaseRepository[CompletenessReward, CompletenessRewardEntry]):
    """자료 완성도 보상 지급 기록 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(CompletenessReward, CompletenessRewardEntry, db)

    def is_granted(self, user_id: str, reward_type: str, reward_key: str) -> bool:
        return self.exists(
            {"user_id": user_id, "reward_type": reward_type, "reward_key": reward_key}
        )

    def try_record(
        self,
        user_id: str,
        reward_type: str,
        reward_key: str,
        coins: int,
        reason: str,
        reward_field: Optional[str] = None,
        reward_threshold: Optional[int] = None,
    ) -> bool:
        """
        보상 지급 기록을 세이브포인트 안에서 추가

        Returns:
            bool: 새로 기록했으면 True, 유니크 제약에 걸려 이미 지급된 경우 False

        Note:
            세이브포인트만 롤백하므로 바깥 트랜잭션(잔액 잠금 등)은 유지된다.
        """
        try:
            with self.db.begin_nested():
                self.db.add(
                    CompletenessReward(
                        user_id=user_id,
                        reward_type=reward_type,
                        reward_key=reward_key,
                        reward_field=reward_field,
                        reward_threshold=reward_threshold,
                        coins=coins,
                        reason=reason,
                    )
                )
                self.db.flush()
        except IntegrityError:
            return False
        return True
