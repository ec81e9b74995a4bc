from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from tianjiapi.schemas.base import WireModel


class CheckInResult(BaseModel):
    """체크인 결과"""

    coins_earned: int = Field(..., description="이번 체크인 보상")
    consecutive_days: int = Field(..., description="연속 체크인 일수")
    check_in_date: date
    tier: str
    new_balance: int
    transaction_id: str


class CheckInStatusResponse(BaseModel):
    """체크인 상태"""

    last_check_in_date: Optional[date] = None
    consecutive_days: int = 0
    can_check_in_today: bool
    today_date: date
    tier: str
    today_coins: int = Field(..., description="오늘 체크인 시(또는 이미 받은) 보상")


class CheckInLogEntry(BaseModel):
    id: str
    check_in_date: date
    coins_earned: int
    consecutive_days: int
    tier: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CheckInLogListResponse(BaseModel):
    logs: List[CheckInLogEntry]
    total_count: int


class UpgradeBonusRequest(WireModel):
    """등급 업그레이드 소급 지급 요청"""

    new_tier: str = Field(..., min_length=1, max_length=20)
    upgrade_date: Optional[date] = None


class UpgradeBonusDetail(BaseModel):
    check_in_date: date
    old_tier: str
    base_coins: int
    expected_coins: int
    bonus_coins: int


class UpgradeBonusCalculation(BaseModel):
    """소급 지급 계산 결과 (미지급 날짜 기준)"""

    user_id: str
    new_tier: str
    upgrade_date: date
    eligible_dates: List[UpgradeBonusDetail]
    total_bonus_coins: int


class UpgradeBonusGrantResult(BaseModel):
    """소급 지급 결과"""

    total_bonus_coins: int
    granted_count: int
    granted_dates: List[date]
    new_balance: Optional[int] = None
    transaction_id: Optional[str] = None


class UpgradeBonusLogEntry(BaseModel):
    check_in_date: date
    old_tier: str
    new_tier: str
    base_coins: int
    bonus_coins: int
    total_coins: int
    upgrade_date: date

    class Config:
        from_attributes = True
