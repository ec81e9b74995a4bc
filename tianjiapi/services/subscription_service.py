"""
구독 서비스

subscriptions 테이블이 사용자 등급의 단일 원천이다.
profiles.tier / subscription_status / subscription_end_at 은 이 서비스만 갱신하는
파생 캐시이며, 구독 활성화로 등급이 올라가면 같은 트랜잭션에서 체크인 소급 지급을 실행한다.
"""

from datetime import timedelta
from decimal import Decimal
import logging

from sqlalchemy.orm import Session

from tianjiapi.config import Settings
from tianjiapi.core.exceptions import (
    BaseAPIException,
    ConflictError,
    OrderNotFoundError,
    ValidationError,
)
from tianjiapi.database.session import transaction_scope
from tianjiapi.models.profile import Profile, Tier
from tianjiapi.models.subscription import Subscription, SubscriptionStatus
from tianjiapi.models.transaction import Transaction, TransactionStatus
from tianjiapi.repositories.profile_repository import ProfileRepository
from tianjiapi.repositories.subscription_repository import SubscriptionRepository
from tianjiapi.repositories.transaction_repository import TransactionRepository
from tianjiapi.schemas.checkin import UpgradeBonusGrantResult
from tianjiapi.schemas.subscription import (
    CreateSubscriptionResponse,
    SubscriptionStatusResponse,
)
from tianjiapi.services.upgrade_bonus_service import UpgradeBonusService
from tianjiapi.utils.timezone_utils import ServerClock, to_utc

logger = logging.getLogger(__name__)

# 등급별 가격 (월간, 연간)
SUBSCRIPTION_PRICES = {
    Tier.BASIC: (Decimal("29"), Decimal("290")),
    Tier.PREMIUM: (Decimal("99"), Decimal("990")),
    Tier.VIP: (Decimal("199"), Decimal("1990")),
}


class SubscriptionService:
    def __init__(self, db: Session, settings: Settings, clock: ServerClock):
        self.db = db
        self.settings = settings
        self.clock = clock
        self.profile_repo = ProfileRepository(db)
        self.subscription_repo = SubscriptionRepository(db)
        self.tx_repo = TransactionRepository(db)
        self.upgrade_bonus = UpgradeBonusService(db, settings, clock)

    def sync_profile_tier(self, profile: Profile) -> Tier:
        """subscriptions 기준으로 프로필 등급 캐시 갱신 (프로필 잠금 상태에서 호출)"""
        return self.subscription_repo.refresh_profile_tier(profile, self.clock.now())

    def get_subscription_status(self, user_id: str) -> SubscriptionStatusResponse:
        """현재 구독 상태 - 만료된 구독은 여기서 expired 로 전환된다"""
        with transaction_scope(self.db):
            profile = self.profile_repo.lock_for_update(user_id)
            tier = self.sync_profile_tier(profile)
            entitling = self.subscription_repo.get_entitling(user_id, self.clock.now())
            current = entitling or self.subscription_repo.get_current(user_id)

        return SubscriptionStatusResponse(
            user_id=user_id,
            tier=tier.value,
            status=current.status if current else "inactive",
            expires_at=current.expires_at if current else None,
            auto_renew=bool(current.auto_renew) if current else False,
            subscription=self.subscription_repo.to_schema(current),
        )

    def create_subscription(
        self, user_id: str, tier: str, is_yearly: bool = False
    ) -> CreateSubscriptionResponse:
        """구독 주문 생성 - 결제 완료 전까지 pending"""
        try:
            target = Tier.normalize(tier)
        except ValueError:
            raise ValidationError(f"Unknown tier: {tier}", {"tier": tier})
        if target not in SUBSCRIPTION_PRICES:
            raise ValidationError("Tier is not subscribable", {"tier": target.value})

        monthly, yearly = SUBSCRIPTION_PRICES[target]
        price = yearly if is_yearly else monthly
        period = "yearly" if is_yearly else "monthly"

        with transaction_scope(self.db):
            profile = self.profile_repo.lock_for_update(user_id)
            order = self.tx_repo.create_order(
                user_id=profile.id,
                amount=price,
                coins_amount=None,
                item_type="subscription",
                pack_type=f"{target.value}_{period}",
                description=f"{target.value} 会员 ({period})",
                is_first_purchase=not self.tx_repo.has_completed_purchase(profile.id),
            )
            subscription = self.subscription_repo.add(
                Subscription(
                    user_id=profile.id,
                    tier=target.value,
                    status=SubscriptionStatus.PENDING.value,
                    is_yearly=is_yearly,
                    auto_renew=True,
                    order_id=order.id,
                )
            )

        logger.info(
            f"Created pending {target.value} subscription for user {user_id}, order {order.id}"
        )
        return CreateSubscriptionResponse(
            subscription=self.subscription_repo.to_schema(subscription),
            order_id=order.id,
            amount=float(price),
            payment_url=self.settings.cashier_url(order.id),
        )

    def activate_for_order(self, profile: Profile, order: Transaction) -> UpgradeBonusGrantResult:
        """
        결제 완료된 구독 주문 활성화 (정산 트랜잭션 안에서 호출)

        1. 주문에 연결된 pending 구독을 active 로 전환
        2. 기존 active 구독은 expired 로 전환
        3. 프로필 등급 캐시 갱신
        4. 등급이 올라갔으면 체크인 소급 지급
        """
        subscription = self.subscription_repo.lock_by_order(order.id)
        if subscription is None or subscription.user_id != profile.id:
            raise ValidationError(
                "No subscription attached to order", {"order_id": order.id}
            )
        if subscription.status != SubscriptionStatus.PENDING.value:
            logger.info(
                f"Subscription {subscription.id} already {subscription.status}, skipping activation"
            )
            return UpgradeBonusGrantResult(
                total_bonus_coins=0, granted_count=0, granted_dates=[]
            )

        # 캐시가 아닌 subscriptions 기준의 현재 등급
        old_tier = self.sync_profile_tier(profile)
        # DB 에는 UTC 로 저장
        now = to_utc(self.clock.now())
        for other in self.subscription_repo.lock_open(profile.id):
            if other.id != subscription.id and other.status == SubscriptionStatus.ACTIVE.value:
                other.status = SubscriptionStatus.EXPIRED.value

        days = (
            self.settings.SUBSCRIPTION_YEAR_DAYS
            if subscription.is_yearly
            else self.settings.SUBSCRIPTION_MONTH_DAYS
        )
        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.started_at = now
        subscription.expires_at = now + timedelta(days=days)
        self.db.flush()

        new_tier = self.sync_profile_tier(profile)
        logger.info(
            f"Activated {new_tier.value} subscription {subscription.id} for user {profile.id}"
        )

        if Tier.rank(new_tier) > Tier.rank(old_tier):
            return self.upgrade_bonus.grant_locked(profile, new_tier, self.clock.today())
        return UpgradeBonusGrantResult(
            total_bonus_coins=0, granted_count=0, granted_dates=[]
        )

    def activate_subscription(self, user_id: str, order_id: str) -> UpgradeBonusGrantResult:
        """결제 완료된 구독 주문을 단독 트랜잭션으로 활성화 (이미 활성화됐으면 변화 없음)"""
        with transaction_scope(self.db):
            order = self.tx_repo.lock_order(order_id)
            if order is None or order.user_id != user_id:
                raise OrderNotFoundError(order_id)
            if order.status != TransactionStatus.COMPLETED.value:
                raise ValidationError(
                    "Order is not paid", {"order_id": order_id, "status": order.status}
                )
            profile = self.profile_repo.lock_for_update(user_id)
            return self.activate_for_order(profile, order)

    def cancel_subscription(self, user_id: str) -> SubscriptionStatusResponse:
        """구독 취소 - 자동 갱신만 끄고 만료일까지 등급 유지"""
        try:
            with transaction_scope(self.db):
                profile = self.profile_repo.lock_for_update(user_id)
                open_subs = self.subscription_repo.lock_open(user_id)
                if not open_subs:
                    raise ConflictError("No active subscription", {"user_id": user_id})
                for subscription in open_subs:
                    subscription.status = SubscriptionStatus.CANCELLED.value
                    subscription.auto_renew = False
                self.db.flush()
                self.sync_profile_tier(profile)
        except BaseAPIException as e:
            logger.warning(f"Cancel subscription failed for user {user_id}: {e}")
            raise

        return self.get_subscription_status(user_id)
