"""
자료 완성도 보상 서비스

완성도 점수(0-100): 생년월일 40, mbti 10, 직업 10, 현재 상황 20, 소원 20.
필드가 비어 있다가 채워지면 필드 보상, 임계값(30/50/70/100)을 새로 넘으면
임계값 보상을 각각 한 번씩 지급한다. 중복 지급은 completeness_rewards 의
유니크 제약으로 막는다.
"""

from datetime import date
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from tianjiapi.core.exceptions import ValidationError
from tianjiapi.database.session import transaction_scope
from tianjiapi.models.profile import CoinBucket, Profile
from tianjiapi.models.transaction import TransactionType
from tianjiapi.repositories.completeness_repository import CompletenessRewardRepository
from tianjiapi.repositories.profile_repository import ProfileRepository
from tianjiapi.schemas.coins import LedgerMeta
from tianjiapi.schemas.completeness import (
    CompletenessResponse,
    CompletenessUpdateResult,
    FieldScore,
    RewardEvent,
)
from tianjiapi.services.ledger_service import LedgerWriter

logger = logging.getLogger(__name__)

FIELD_WEIGHTS = {
    "birth_data": 40,
    "mbti": 10,
    "profession": 10,
    "current_status": 20,
    "wishes": 20,
}

# 필드 보상 (필드명 -> (코인, 사유))
REWARD_RULES = {
    "mbti": (5, "完善MBTI信息"),
    "profession": (5, "完善职业信息"),
    "current_status": (5, "完善现状描述"),
    "wishes": (5, "完善愿景目标"),
}

# 임계값 보상 (완성도 -> (코인, 사유))
THRESHOLD_REWARDS = {
    30: (10, "资料完整度达到30%"),
    50: (20, "资料完整度达到50%"),
    70: (30, "资料完整度达到70%"),
    100: (50, "资料完整度达到100%"),
}

FIELD_REWARD = "field_reward"
THRESHOLD_REWARD = "threshold_reward"

USER_CONTEXT_FIELDS = ("mbti", "profession", "current_status", "identity", "wishes", "energy_level")


def _is_filled(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return True


def calculate_breakdown(user_context: Dict[str, Any], birthday: Optional[date]) -> Dict[str, FieldScore]:
    filled = {
        "birth_data": birthday is not None,
        "mbti": _is_filled(user_context.get("mbti")),
        "profession": _is_filled(user_context.get("profession")),
        "current_status": _is_filled(user_context.get("current_status")),
        "wishes": _is_filled(user_context.get("wishes")),
    }
    return {
        name: FieldScore(
            filled=filled[name],
            score=weight if filled[name] else 0,
            max_score=weight,
        )
        for name, weight in FIELD_WEIGHTS.items()
    }


def calculate_completeness(user_context: Dict[str, Any], birthday: Optional[date]) -> int:
    breakdown = calculate_breakdown(user_context, birthday)
    return min(100, sum(item.score for item in breakdown.values()))


def next_reward_threshold(completeness: int) -> Optional[int]:
    for threshold in sorted(THRESHOLD_REWARDS):
        if completeness < threshold:
            return threshold
    return None


def detect_new_fields(old_context: Dict[str, Any], new_context: Dict[str, Any]) -> List[str]:
    """비어 있던 보상 대상 필드 중 새로 채워진 필드"""
    return [
        field
        for field in REWARD_RULES
        if not _is_filled(old_context.get(field)) and _is_filled(new_context.get(field))
    ]


class CompletenessService:
    def __init__(self, db: Session):
        self.db = db
        self.profile_repo = ProfileRepository(db)
        self.reward_repo = CompletenessRewardRepository(db)
        self.ledger = LedgerWriter(db)

    @staticmethod
    def _user_context(profile: Profile) -> Dict[str, Any]:
        preferences = profile.preferences or {}
        return dict(preferences.get("user_context") or {})

    @staticmethod
    def _store_user_context(profile: Profile, user_context: Dict[str, Any]) -> None:
        # JSON 컬럼은 내부 변경을 추적하지 않으므로 새 dict 로 교체
        preferences = dict(profile.preferences or {})
        preferences["user_context"] = user_context
        profile.preferences = preferences

    def _grant(
        self,
        profile: Profile,
        reward_type: str,
        reward_key: str,
        coins: int,
        reason: str,
        field: Optional[str] = None,
        threshold: Optional[int] = None,
    ) -> bool:
        """보상 기록 선점 후 지급. 이미 지급된 보상이면 False"""
        if self.reward_repo.is_granted(profile.id, reward_type, reward_key):
            return False
        recorded = self.reward_repo.try_record(
            profile.id,
            reward_type,
            reward_key,
            coins,
            reason,
            reward_field=field,
            reward_threshold=threshold,
        )
        if not recorded:
            logger.info(f"Completeness reward {reward_type}:{reward_key} already granted to {profile.id}")
            return False
        self.ledger.apply_delta(
            profile,
            CoinBucket.GENERAL,
            coins,
            LedgerMeta(
                type=TransactionType.GRANT,
                item_type="completeness_reward",
                description=reason,
            ),
        )
        return True

    def _apply_rewards(
        self,
        profile: Profile,
        old_completeness: int,
        new_completeness: int,
        new_fields: List[str],
    ) -> List[RewardEvent]:
        events = []
        for field in new_fields:
            coins, reason = REWARD_RULES[field]
            if self._grant(profile, FIELD_REWARD, field, coins, reason, field=field):
                events.append(
                    RewardEvent(type="COIN_GRANTED", coins=coins, reason=reason, field=field)
                )

        for threshold in sorted(THRESHOLD_REWARDS):
            if old_completeness < threshold <= new_completeness:
                coins, reason = THRESHOLD_REWARDS[threshold]
                if self._grant(
                    profile, THRESHOLD_REWARD, str(threshold), coins, reason, threshold=threshold
                ):
                    events.append(
                        RewardEvent(
                            type="THRESHOLD_REACHED",
                            coins=coins,
                            reason=reason,
                            threshold=threshold,
                        )
                    )

        if new_completeness > old_completeness:
            events.append(
                RewardEvent(
                    type="COMPLETENESS_INCREASED",
                    reason=f"资料完整度从{old_completeness}%提升到{new_completeness}%",
                )
            )
        return events

    def update_completeness_fields(
        self, user_id: str, fields: Dict[str, Any]
    ) -> CompletenessUpdateResult:
        """프로필 필드 갱신 및 완성도 보상 지급

        Args:
            user_id: 사용자 ID
            fields: 갱신할 user_context 필드 (보낸 필드만 반영)

        Returns:
            CompletenessUpdateResult: 갱신된 완성도와 보상 이벤트
        """
        unknown = set(fields) - set(USER_CONTEXT_FIELDS)
        if unknown:
            raise ValidationError(
                "Unknown profile fields", {"fields": sorted(unknown)}
            )

        with transaction_scope(self.db):
            profile = self.profile_repo.lock_for_update(user_id)
            old_context = self._user_context(profile)
            new_context = {**old_context, **fields}

            old_completeness = calculate_completeness(old_context, profile.birthday)
            new_completeness = calculate_completeness(new_context, profile.birthday)
            new_fields = detect_new_fields(old_context, new_context)

            self._store_user_context(profile, new_context)
            events = self._apply_rewards(profile, old_completeness, new_completeness, new_fields)
            self.db.flush()

        coins_granted = sum(e.coins for e in events)
        logger.info(
            f"Completeness for user {user_id}: {old_completeness}% -> {new_completeness}%, "
            f"+{coins_granted} coins"
        )
        return CompletenessUpdateResult(
            user_id=user_id,
            old_completeness=old_completeness,
            completeness=new_completeness,
            user_context=new_context,
            reward_events=events,
            coins_granted=coins_granted,
            new_balance=profile.tianji_coins_balance,
        )

    def sync_birth_date(
        self, user_id: str, birth_date: date, gender: Optional[str] = None
    ) -> CompletenessUpdateResult:
        """생년월일 동기화 - 완성도 임계값을 넘으면 보상 지급"""
        with transaction_scope(self.db):
            profile = self.profile_repo.lock_for_update(user_id)
            context = self._user_context(profile)
            old_completeness = calculate_completeness(context, profile.birthday)

            profile.birthday = birth_date
            if gender is not None:
                profile.gender = gender
            context["birth_date"] = birth_date.isoformat()
            self._store_user_context(profile, context)

            new_completeness = calculate_completeness(context, birth_date)
            events = self._apply_rewards(profile, old_completeness, new_completeness, [])
            self.db.flush()

        return CompletenessUpdateResult(
            user_id=user_id,
            old_completeness=old_completeness,
            completeness=new_completeness,
            user_context=context,
            reward_events=events,
            coins_granted=sum(e.coins for e in events),
            new_balance=profile.tianji_coins_balance,
        )

    def get_completeness(self, user_id: str) -> CompletenessResponse:
        with transaction_scope(self.db):
            profile = self.profile_repo.get_or_raise(user_id)
        context = self._user_context(profile)
        completeness = calculate_completeness(context, profile.birthday)
        return CompletenessResponse(
            user_id=user_id,
            completeness=completeness,
            breakdown=calculate_breakdown(context, profile.birthday),
            next_reward_threshold=next_reward_threshold(completeness),
        )
