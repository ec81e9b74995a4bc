from datetime import datetime
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from tianjiapi.models.profile import Profile, Tier
from tianjiapi.models.subscription import Subscription, SubscriptionStatus
from tianjiapi.repositories.base import BaseRepository
from tianjiapi.schemas.subscription import SubscriptionResponse
from tianjiapi.utils.timezone_utils import to_utc

# 만료 전까지 등급을 부여하는 상태 (취소해도 만료일까지는 유지)
ENTITLING_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.CANCELLED.value)


class SubscriptionRepository(BaseRepository[Subscription, SubscriptionResponse]):
    """구독 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(Subscription, SubscriptionResponse, db)

    def _latest_first(self, query):
        return query.order_by(desc(Subscription.created_at), desc(Subscription.started_at))

    def get_current(self, user_id: str) -> Optional[Subscription]:
        """
        표시용 현재 구독 (active 우선, 없으면 pending)

        과거 데이터에 active/pending 이 여러 개 남아 있을 수 있으므로
        가장 최근 행을 사용한다.
        """
        for status in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PENDING.value):
            row = self._latest_first(
                self.db.query(Subscription).filter(
                    Subscription.user_id == user_id, Subscription.status == status
                )
            ).first()
            if row is not None:
                return row
        return None

    def get_entitling(self, user_id: str, now: datetime) -> Optional[Subscription]:
        """현재 시각 기준 등급을 부여하는 가장 최근 구독"""
        rows = self._latest_first(
            self.db.query(Subscription).filter(
                Subscription.user_id == user_id,
                Subscription.status.in_(ENTITLING_STATUSES),
                Subscription.started_at.isnot(None),
            )
        ).all()
        for row in rows:
            if row.expires_at is None or to_utc(row.expires_at) > to_utc(now):
                return row
        return None

    def lock_open(self, user_id: str) -> List[Subscription]:
        """active/pending 구독 전체 (잠금)"""
        return (
            self.db.query(Subscription)
            .filter(
                Subscription.user_id == user_id,
                Subscription.status.in_(
                    [SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PENDING.value]
                ),
            )
            .with_for_update()
            .populate_existing()
            .all()
        )

    def lock_by_order(self, order_id: str) -> Optional[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.order_id == order_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def expire_lapsed(self, user_id: str, now: datetime) -> int:
        """만료 시각이 지난 active/cancelled 구독을 expired 로 전환"""
        rows = (
            self.db.query(Subscription)
            .filter(
                Subscription.user_id == user_id,
                Subscription.status.in_(ENTITLING_STATUSES),
                Subscription.expires_at.isnot(None),
            )
            .with_for_update()
            .populate_existing()
            .all()
        )
        lapsed = [row for row in rows if to_utc(row.expires_at) <= to_utc(now)]
        for row in lapsed:
            row.status = SubscriptionStatus.EXPIRED.value
        if lapsed:
            self.db.flush()
        return len(lapsed)

    def refresh_profile_tier(self, profile: Profile, now: datetime) -> Tier:
        """
        구독 기준으로 프로필 등급 캐시를 다시 계산 (프로필 잠금 상태에서 호출)

        만료된 구독은 expired 로 전환되고, 등급을 부여하는 구독이 없으면 explorer.
        """
        self.expire_lapsed(profile.id, now)
        entitling = self.get_entitling(profile.id, now)
        if entitling is None:
            tier = Tier.EXPLORER
            profile.subscription_status = "inactive"
            profile.subscription_end_at = None
        else:
            tier = Tier.normalize(entitling.tier)
            profile.subscription_status = entitling.status
            profile.subscription_end_at = entitling.expires_at
        profile.tier = tier.value
        self.db.flush()
        return tier

    def cached_tier_lapsed(self, profile: Profile, now: datetime) -> bool:
        """프로필 캐시의 구독 만료 시각이 지났는지"""
        return profile.subscription_end_at is not None and to_utc(
            profile.subscription_end_at
        ) <= to_utc(now)
