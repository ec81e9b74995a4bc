from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import UniqueConstraint

from tianjiapi.models.base import BaseModel, generate_uuid


class CompletenessReward(BaseModel):
    """자료 완성도 보상 지급 기록

    reward_key 는 필드명 또는 임계값 문자열이다. NULL 이 섞이면 유니크 제약이
    무력화되므로 (user_id, reward_type, reward_key) 로 중복 지급을 막는다.
    """

    __tablename__ = "completeness_rewards"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "reward_type", "reward_key", name="uq_completeness_reward"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id"), nullable=False
    )
    reward_type: Mapped[str] = mapped_column(String(30), nullable=False)
    reward_key: Mapped[str] = mapped_column(String(50), nullable=False)
    reward_field: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    reward_threshold: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    coins: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
