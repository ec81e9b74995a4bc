"""
등급 업그레이드 체크인 소급 지급 서비스

업그레이드 날짜 이전 30일(설정값) 동안의 체크인 각각에 대해
새 등급이었다면 받았을 보상과 실제 보상의 차이를 계산해 한 번에 지급한다.
체크인 당시 등급보다 새 등급이 높은 날짜만 대상이며,
이미 소급 지급된 날짜는 checkin_upgrade_bonus_logs 로 걸러낸다.
"""

from datetime import date, timedelta
from typing import List, Optional, Union
import logging

from sqlalchemy.orm import Session

from tianjiapi.config import Settings
from tianjiapi.core.exceptions import ValidationError
from tianjiapi.database.session import transaction_scope
from tianjiapi.models.checkin import CheckinUpgradeBonusLog
from tianjiapi.models.profile import CoinBucket, Profile, Tier
from tianjiapi.models.transaction import TransactionType
from tianjiapi.repositories.checkin_repository import CheckInRepository, UpgradeBonusRepository
from tianjiapi.repositories.profile_repository import ProfileRepository
from tianjiapi.schemas.checkin import (
    UpgradeBonusCalculation,
    UpgradeBonusDetail,
    UpgradeBonusGrantResult,
)
from tianjiapi.schemas.coins import LedgerMeta
from tianjiapi.services.checkin_service import calculate_checkin_reward
from tianjiapi.services.ledger_service import LedgerWriter
from tianjiapi.utils.timezone_utils import ServerClock

logger = logging.getLogger(__name__)


class UpgradeBonusService:
    def __init__(self, db: Session, settings: Settings, clock: ServerClock):
        self.db = db
        self.settings = settings
        self.clock = clock
        self.profile_repo = ProfileRepository(db)
        self.checkin_repo = CheckInRepository(db)
        self.bonus_repo = UpgradeBonusRepository(db)
        self.ledger = LedgerWriter(db)

    @staticmethod
    def _parse_tier(new_tier: Union[str, Tier]) -> Tier:
        try:
            return Tier.normalize(new_tier)
        except ValueError:
            raise ValidationError(f"Unknown tier: {new_tier}", {"new_tier": str(new_tier)})

    def _eligible(
        self, user_id: str, new_tier: Tier, upgrade_date: date
    ) -> List[UpgradeBonusDetail]:
        """아직 소급 지급되지 않은 대상 날짜 목록"""
        window_start = upgrade_date - timedelta(days=self.settings.UPGRADE_BONUS_LOOKBACK_DAYS)
        logs = self.checkin_repo.list_between(user_id, window_start, upgrade_date)

        details = []
        for log in logs:
            # 하향/동급 변경은 대상 아님
            if Tier.rank(new_tier) <= Tier.rank(log.tier):
                continue
            expected = calculate_checkin_reward(new_tier, log.consecutive_days)
            bonus = max(0, expected - log.coins_earned)
            if bonus <= 0:
                continue
            details.append(
                UpgradeBonusDetail(
                    check_in_date=log.check_in_date,
                    old_tier=Tier.normalize(log.tier).value,
                    base_coins=log.coins_earned,
                    expected_coins=expected,
                    bonus_coins=bonus,
                )
            )

        granted = self.bonus_repo.granted_dates(user_id, [d.check_in_date for d in details])
        return [d for d in details if d.check_in_date not in granted]

    def calculate_upgrade_bonus(
        self,
        user_id: str,
        new_tier: Union[str, Tier],
        upgrade_date: Optional[date] = None,
    ) -> UpgradeBonusCalculation:
        """소급 지급 예상액 계산 (잔액 변경 없음)"""
        tier = self._parse_tier(new_tier)
        upgrade_date = upgrade_date or self.clock.today()

        with transaction_scope(self.db):
            self.profile_repo.get_or_raise(user_id)
            details = self._eligible(user_id, tier, upgrade_date)

        return UpgradeBonusCalculation(
            user_id=user_id,
            new_tier=tier.value,
            upgrade_date=upgrade_date,
            eligible_dates=details,
            total_bonus_coins=sum(d.bonus_coins for d in details),
        )

    def grant_upgrade_bonus(
        self,
        user_id: str,
        new_tier: Union[str, Tier],
        upgrade_date: Optional[date] = None,
    ) -> UpgradeBonusGrantResult:
        """소급 지급 실행 - 같은 업그레이드로 두 번 호출해도 한 번만 지급"""
        tier = self._parse_tier(new_tier)
        upgrade_date = upgrade_date or self.clock.today()

        with transaction_scope(self.db):
            profile = self.profile_repo.lock_for_update(user_id)
            result = self.grant_locked(profile, tier, upgrade_date)
        return result

    def grant_locked(
        self, profile: Profile, new_tier: Tier, upgrade_date: date
    ) -> UpgradeBonusGrantResult:
        """
        잠긴 프로필에 대해 소급 지급 (호출자의 트랜잭션 안에서 실행)

        구독 활성화처럼 다른 연산과 같은 트랜잭션으로 묶어야 할 때 사용한다.
        UpgradeBonusLog 유니크 제약 충돌은 transaction_scope 에서 롤백된다.
        """
        details = self._eligible(profile.id, new_tier, upgrade_date)
        if not details:
            logger.info(
                f"No upgrade bonus for user {profile.id} ({new_tier.value}, {upgrade_date})"
            )
            return UpgradeBonusGrantResult(
                total_bonus_coins=0,
                granted_count=0,
                granted_dates=[],
                new_balance=profile.tianji_coins_balance,
            )

        for detail in details:
            self.bonus_repo.add(
                CheckinUpgradeBonusLog(
                    user_id=profile.id,
                    check_in_date=detail.check_in_date,
                    old_tier=detail.old_tier,
                    new_tier=new_tier.value,
                    base_coins=detail.base_coins,
                    bonus_coins=detail.bonus_coins,
                    total_coins=detail.expected_coins,
                    upgrade_date=upgrade_date,
                )
            )

        total = sum(d.bonus_coins for d in details)
        result = self.ledger.apply_delta(
            profile,
            CoinBucket.GENERAL,
            total,
            LedgerMeta(
                type=TransactionType.GRANT,
                item_type="checkin_upgrade_bonus",
                description=f"升级{new_tier.value}签到补发 ({len(details)}天)",
            ),
        )
        granted_dates = [d.check_in_date for d in details]
        logger.info(
            f"Granted upgrade bonus to user {profile.id}: {total} coins for {len(granted_dates)} days"
        )
        return UpgradeBonusGrantResult(
            total_bonus_coins=total,
            granted_count=len(granted_dates),
            granted_dates=granted_dates,
            new_balance=result.new_balance,
            transaction_id=result.transaction_id,
        )
