"""
체크인 보상 서비스

- "오늘"은 서버 시계(settings.TIMEZONE) 기준
- 보상 = 등급 기본 보상 + 10 * floor(연속일수 / 7)
- 중복 체크인은 (user_id, check_in_date) 유니크 제약이 최종 방어선
"""

from datetime import date, timedelta
from typing import Union
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tianjiapi.core.exceptions import AlreadyCheckedInError, BaseAPIException, ValidationError
from tianjiapi.database.session import transaction_scope
from tianjiapi.models.checkin import CheckInLog
from tianjiapi.models.profile import CoinBucket, Profile, Tier
from tianjiapi.models.transaction import TransactionType
from tianjiapi.repositories.checkin_repository import CheckInRepository
from tianjiapi.repositories.profile_repository import ProfileRepository
from tianjiapi.repositories.subscription_repository import SubscriptionRepository
from tianjiapi.schemas.checkin import (
    CheckInLogListResponse,
    CheckInResult,
    CheckInStatusResponse,
)
from tianjiapi.schemas.coins import LedgerMeta
from tianjiapi.services.ledger_service import LedgerWriter
from tianjiapi.utils.timezone_utils import ServerClock

logger = logging.getLogger(__name__)

# 등급별 기본 보상 - 상위 등급일수록 단조 증가
TIER_BASE_REWARDS = {
    Tier.GUEST: 10,
    Tier.EXPLORER: 10,
    Tier.BASIC: 15,
    Tier.PREMIUM: 20,
    Tier.VIP: 30,
}

STREAK_BONUS_DAYS = 7
STREAK_BONUS_COINS = 10


def tier_base_reward(tier: Union[str, Tier, None]) -> int:
    return TIER_BASE_REWARDS[Tier.normalize(tier)]


def calculate_checkin_reward(tier: Union[str, Tier, None], consecutive_days: int) -> int:
    """체크인 보상 = 기본 보상 + 7일마다 10"""
    if consecutive_days < 1:
        raise ValueError("consecutive_days must be >= 1")
    return tier_base_reward(tier) + STREAK_BONUS_COINS * (consecutive_days // STREAK_BONUS_DAYS)


class CheckInService:
    """일일 체크인 서비스"""

    def __init__(self, db: Session, clock: ServerClock):
        self.db = db
        self.clock = clock
        self.profile_repo = ProfileRepository(db)
        self.checkin_repo = CheckInRepository(db)
        self.subscription_repo = SubscriptionRepository(db)
        self.ledger = LedgerWriter(db)

    def _next_streak(self, user_id: str, today: date) -> int:
        previous = self.checkin_repo.get_latest_before(user_id, today)
        if previous is not None and previous.check_in_date == today - timedelta(days=1):
            return previous.consecutive_days + 1
        return 1

    def _current_tier(self, profile: Profile) -> Tier:
        """프로필 등급 캐시 - 구독 만료 시각이 지났으면 다시 계산"""
        now = self.clock.now()
        if self.subscription_repo.cached_tier_lapsed(profile, now):
            return self.subscription_repo.refresh_profile_tier(profile, now)
        return Tier.normalize(profile.tier)

    def check_in(self, user_id: str) -> CheckInResult:
        """오늘 체크인

        Args:
            user_id: 사용자 ID

        Returns:
            CheckInResult: 보상 코인, 연속 일수, 체크인 날짜

        Raises:
            AlreadyCheckedInError: 오늘 이미 체크인함
            UserNotFoundError: 프로필 없음
        """
        today = self.clock.today()

        try:
            with transaction_scope(self.db):
                profile = self.profile_repo.lock_for_update(user_id)

                # 빠른 경로 - 최종 보장은 유니크 제약
                if self.checkin_repo.get_for_date(user_id, today) is not None:
                    raise AlreadyCheckedInError(today.isoformat())

                tier = self._current_tier(profile)
                consecutive_days = self._next_streak(user_id, today)
                coins = calculate_checkin_reward(tier, consecutive_days)

                try:
                    self.checkin_repo.add(
                        CheckInLog(
                            user_id=user_id,
                            check_in_date=today,
                            coins_earned=coins,
                            consecutive_days=consecutive_days,
                            tier=tier.value,
                        )
                    )
                except IntegrityError:
                    raise AlreadyCheckedInError(today.isoformat())

                result = self.ledger.apply_delta(
                    profile,
                    CoinBucket.GENERAL,
                    coins,
                    LedgerMeta(
                        type=TransactionType.CHECKIN_REWARD,
                        item_type="daily_checkin",
                        description=f"每日签到奖励 (连续{consecutive_days}天)",
                    ),
                )

                profile.last_check_in_date = today
                profile.consecutive_check_in_days = consecutive_days
        except BaseAPIException as e:
            logger.warning(f"Check-in rejected for user {user_id}: {e}")
            raise

        logger.info(
            f"User {user_id} checked in on {today}: +{coins} coins, streak {consecutive_days}"
        )
        return CheckInResult(
            coins_earned=coins,
            consecutive_days=consecutive_days,
            check_in_date=today,
            tier=tier.value,
            new_balance=result.new_balance,
            transaction_id=result.transaction_id,
        )

    def get_check_in_status(self, user_id: str) -> CheckInStatusResponse:
        """체크인 상태 조회 - 연속이 끊겼으면 streak 0"""
        today = self.clock.today()
        with transaction_scope(self.db):
            profile = self.profile_repo.get_or_raise(user_id)
            today_log = self.checkin_repo.get_for_date(user_id, today)
            last_log = today_log or self.checkin_repo.get_latest_before(user_id, today)
            tier = Tier.normalize(profile.tier)
            now = self.clock.now()
            if self.subscription_repo.cached_tier_lapsed(profile, now):
                # 잠금 없이 읽으므로 캐시는 갱신하지 않고 예상 등급만 계산
                entitling = self.subscription_repo.get_entitling(user_id, now)
                tier = Tier.normalize(entitling.tier) if entitling else Tier.EXPLORER

        if today_log is not None:
            return CheckInStatusResponse(
                last_check_in_date=today_log.check_in_date,
                consecutive_days=today_log.consecutive_days,
                can_check_in_today=False,
                today_date=today,
                tier=tier.value,
                today_coins=today_log.coins_earned,
            )

        streak = 0
        next_days = 1
        if last_log is not None and last_log.check_in_date == today - timedelta(days=1):
            streak = last_log.consecutive_days
            next_days = streak + 1

        return CheckInStatusResponse(
            last_check_in_date=last_log.check_in_date if last_log else None,
            consecutive_days=streak,
            can_check_in_today=True,
            today_date=today,
            tier=tier.value,
            today_coins=calculate_checkin_reward(tier, next_days),
        )

    def get_check_in_logs(
        self, user_id: str, limit: int = 30, offset: int = 0
    ) -> CheckInLogListResponse:
        if limit < 1 or limit > 100:
            raise ValidationError("limit must be between 1 and 100", {"limit": limit})
        if offset < 0:
            raise ValidationError("offset must be >= 0", {"offset": offset})
        with transaction_scope(self.db):
            rows, total = self.checkin_repo.list_logs(user_id, limit=limit, offset=offset)
            logs = [self.checkin_repo.to_schema(row) for row in rows]
        return CheckInLogListResponse(logs=logs, total_count=total)
