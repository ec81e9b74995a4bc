from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from tianjiapi.schemas.base import WireModel


class CompletenessFieldsUpdate(WireModel):
    """자료 완성도 필드 갱신 요청 - 보낸 필드만 반영"""

    mbti: Optional[str] = Field(None, max_length=10)
    profession: Optional[str] = Field(None, max_length=100)
    current_status: Optional[str] = Field(None, max_length=255)
    identity: Optional[str] = Field(None, max_length=100)
    wishes: Optional[List[str]] = None
    energy_level: Optional[str] = Field(None, max_length=20)


class BirthDateSyncRequest(WireModel):
    birth_date: date
    gender: Optional[str] = Field(None, pattern="^(male|female)$")


class FieldScore(BaseModel):
    filled: bool
    score: int
    max_score: int


class RewardEvent(BaseModel):
    """보상 이벤트 (COIN_GRANTED | THRESHOLD_REACHED | COMPLETENESS_INCREASED)"""

    type: str
    coins: int = 0
    reason: str
    field: Optional[str] = None
    threshold: Optional[int] = None


class CompletenessUpdateResult(BaseModel):
    user_id: str
    old_completeness: int
    completeness: int
    user_context: Dict[str, object]
    reward_events: List[RewardEvent]
    coins_granted: int
    new_balance: int


class CompletenessResponse(BaseModel):
    user_id: str
    completeness: int
    breakdown: Dict[str, FieldScore]
    next_reward_threshold: Optional[int] = None
