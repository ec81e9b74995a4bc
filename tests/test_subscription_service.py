import pytest

from tianjiapi.core.exceptions import ConflictError, OrderNotFoundError, ValidationError
from tianjiapi.models.profile import Profile
from tianjiapi.models.subscription import Subscription
from tianjiapi.models.transaction import Transaction
from tianjiapi.services.checkin_service import CheckInService
from tianjiapi.services.coin_service import CoinService
from tianjiapi.services.payment_service import PaymentService
from tianjiapi.services.subscription_service import SubscriptionService


@pytest.fixture
def subscription_service(db, settings, clock):
    return SubscriptionService(db, settings, clock)


@pytest.fixture
def payment_service(db, settings, clock):
    return PaymentService(db, settings, clock)


@pytest.fixture
def checkin_service(db, clock):
    return CheckInService(db, clock)


@pytest.fixture
def explorer_with_history(make_profile, checkin_service, clock):
    """explorer 로 3/10, 3/11 체크인 후 3/12 시점의 사용자"""
    profile = make_profile()
    for _ in range(2):
        checkin_service.check_in(profile.id)
        clock.advance(days=1)
    return profile


class TestCreateSubscription:
    """구독 주문 생성 테스트"""

    def test_create_pending(self, db, subscription_service, make_profile):
        # Arrange
        profile = make_profile()

        # Act
        response = subscription_service.create_subscription(profile.id, "premium", is_yearly=True)

        # Assert
        assert response.subscription.status == "pending"
        assert response.amount == 990.0
        order = db.get(Transaction, response.order_id)
        assert order.item_type == "subscription"
        assert order.coins_amount is None
        assert order.status == "pending"
        assert db.get(Profile, profile.id).tier == "explorer"

    @pytest.mark.parametrize("tier", ["explorer", "diamond"])
    def test_not_subscribable(self, subscription_service, make_profile, tier):
        with pytest.raises(ValidationError):
            subscription_service.create_subscription(make_profile().id, tier)


class TestActivation:
    """결제 완료 후 구독 활성화 테스트"""

    def test_paid_subscription_upgrades_tier_and_back_pays(
        self, db, subscription_service, payment_service, explorer_with_history, settings, clock
    ):
        """basic 구독 결제 → 등급 캐시 갱신, 업그레이드 전 체크인 2일분 소급 지급"""
        # Arrange
        user_id = explorer_with_history.id
        created = subscription_service.create_subscription(user_id, "basic")

        # Act
        result = payment_service.handle_payment_callback(created.order_id, "completed", provider="wechat")

        # Assert
        assert result.status == "completed"
        assert result.coins_granted == 10
        profile = db.get(Profile, user_id)
        assert profile.tier == "basic"
        assert profile.subscription_status == "active"
        assert profile.tianji_coins_balance == 20 + 10

        subscription = db.get(Subscription, created.subscription.id)
        assert subscription.status == "active"
        assert subscription.expires_at is not None
        assert CoinService(db, settings, clock).verify_user_integrity(user_id).status == "OK"

    def test_stale_tier_cache_does_not_block_back_pay(
        self, db, subscription_service, payment_service, explorer_with_history
    ):
        """구독 없이 캐시만 vip 로 남아 있어도 실제 등급(explorer) 기준으로 업그레이드 판정"""
        # Arrange
        user_id = explorer_with_history.id
        profile = db.get(Profile, user_id)
        profile.tier = "vip"
        db.commit()
        created = subscription_service.create_subscription(user_id, "basic")

        # Act
        result = payment_service.handle_payment_callback(created.order_id, "completed")

        # Assert
        assert result.coins_granted == 10
        profile = db.get(Profile, user_id)
        assert profile.tier == "basic"
        assert profile.tianji_coins_balance == 20 + 10

    def test_activation_is_idempotent(self, db, subscription_service, payment_service, explorer_with_history):
        """이미 활성화된 주문을 다시 활성화해도 변화 없음"""
        # Arrange
        user_id = explorer_with_history.id
        created = subscription_service.create_subscription(user_id, "vip")
        payment_service.handle_payment_callback(created.order_id, "completed")
        balance = db.get(Profile, user_id).tianji_coins_balance

        # Act
        again = subscription_service.activate_subscription(user_id, created.order_id)

        # Assert
        assert again.granted_count == 0
        assert db.get(Profile, user_id).tianji_coins_balance == balance

    def test_activate_requires_paid_order(self, subscription_service, make_profile):
        profile = make_profile()
        created = subscription_service.create_subscription(profile.id, "basic")
        with pytest.raises(ValidationError):
            subscription_service.activate_subscription(profile.id, created.order_id)

    def test_activate_other_users_order(self, subscription_service, make_profile):
        created = subscription_service.create_subscription(make_profile().id, "basic")
        with pytest.raises(OrderNotFoundError):
            subscription_service.activate_subscription(make_profile().id, created.order_id)

    def test_new_subscription_expires_previous(self, db, subscription_service, payment_service, make_profile):
        """새 구독이 활성화되면 이전 active 구독은 expired"""
        # Arrange
        profile = make_profile()
        first = subscription_service.create_subscription(profile.id, "basic")
        payment_service.handle_payment_callback(first.order_id, "completed")

        # Act
        second = subscription_service.create_subscription(profile.id, "vip")
        payment_service.handle_payment_callback(second.order_id, "completed")

        # Assert
        assert db.get(Subscription, first.subscription.id).status == "expired"
        assert db.get(Profile, profile.id).tier == "vip"


class TestCancelAndExpiry:
    """구독 취소/만료 테스트"""

    @pytest.fixture
    def basic_member(self, subscription_service, payment_service, make_profile):
        profile = make_profile()
        created = subscription_service.create_subscription(profile.id, "basic")
        payment_service.handle_payment_callback(created.order_id, "completed")
        return profile

    def test_cancel_keeps_tier_until_expiry(self, subscription_service, basic_member, clock):
        # Act
        status = subscription_service.cancel_subscription(basic_member.id)

        # Assert
        assert status.tier == "basic"
        assert status.status == "cancelled"
        assert status.auto_renew is False

        clock.advance(days=31)
        expired = subscription_service.get_subscription_status(basic_member.id)
        assert expired.tier == "explorer"

    def test_cancel_without_subscription(self, subscription_service, make_profile):
        with pytest.raises(ConflictError):
            subscription_service.cancel_subscription(make_profile().id)

    def test_check_in_after_expiry_uses_explorer_reward(
        self, db, checkin_service, basic_member, clock
    ):
        """만료된 구독의 등급 캐시는 체크인 시점에 explorer 로 갱신"""
        # Arrange
        clock.advance(days=31)

        # Act
        result = checkin_service.check_in(basic_member.id)

        # Assert
        assert result.coins_earned == 10
        profile = db.get(Profile, basic_member.id)
        assert profile.tier == "explorer"
        assert profile.subscription_end_at is None

    def test_status_during_subscription(self, subscription_service, basic_member, clock):
        clock.advance(days=10)
        status = subscription_service.get_subscription_status(basic_member.id)
        assert status.tier == "basic"
        assert status.status == "active"
        assert status.expires_at is not None
        assert status.subscription.tier == "basic"


def test_month_length_from_settings(db, settings, clock, make_profile):
    """구독 기간은 설정값(SUBSCRIPTION_MONTH_DAYS)을 따른다"""
    # Arrange
    settings.SUBSCRIPTION_MONTH_DAYS = 7
    subscription_service = SubscriptionService(db, settings, clock)
    payment_service = PaymentService(db, settings, clock)
    profile = make_profile()
    created = subscription_service.create_subscription(profile.id, "basic")
    payment_service.handle_payment_callback(created.order_id, "completed")

    # Act
    clock.advance(days=6)
    still_active = subscription_service.get_subscription_status(profile.id)
    clock.advance(days=1, hours=1)
    lapsed = subscription_service.get_subscription_status(profile.id)

    # Assert
    assert still_active.tier == "basic"
    assert lapsed.tier == "explorer"
