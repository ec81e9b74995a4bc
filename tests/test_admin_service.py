from datetime import datetime, timedelta

import pytest

from tianjiapi.core.exceptions import PermissionDeniedError, UserNotFoundError, ValidationError
from tianjiapi.models.profile import CoinBucket, Profile
from tianjiapi.models.transaction import Transaction
from tianjiapi.schemas.admin import AdminTransactionFilter
from tianjiapi.services.admin_service import AdminService
from tianjiapi.services.coin_service import CoinService


@pytest.fixture
def admin_service(db, clock):
    return AdminService(db, clock)


@pytest.fixture
def coin_service(db, settings, clock):
    return CoinService(db, settings, clock)


class TestAdminAdjust:
    """관리자 코인 증감 테스트"""

    def test_adjust_below_zero_allowed(self, db, admin_service, admin_profile, make_profile, coin_service):
        """관리자 조정은 음수 잔액을 허용하고 정합성은 유지"""
        # Arrange
        target = make_profile()
        coin_service.grant(target.id, 5, "테스트 충전")

        # Act
        result = admin_service.admin_adjust(admin_profile.id, target.id, -8, "오지급 회수")

        # Assert
        assert result.old_balance == 5
        assert result.new_balance == -3
        assert result.delta == -8
        row = db.get(Transaction, result.transaction_id)
        assert row.type == "admin_adjust"
        assert row.item_type == "admin_adjustment"
        assert row.operator_id == admin_profile.id
        assert row.description.startswith("5 → -3 (-8)")
        assert coin_service.verify_user_integrity(target.id).status == "OK"

    def test_non_admin_rejected(self, db, admin_service, make_profile):
        """역할이 user 인 호출자는 거부되고 잔액은 그대로"""
        # Arrange
        caller = make_profile()
        target = make_profile(balance=0)

        # Act / Assert
        with pytest.raises(PermissionDeniedError) as exc_info:
            admin_service.admin_adjust(caller.id, target.id, 100)
        assert exc_info.value.status_code == 403
        assert db.get(Profile, target.id).tianji_coins_balance == 0
        assert db.query(Transaction).filter_by(user_id=target.id).count() == 0

    def test_zero_amount_rejected(self, admin_service, admin_profile, make_profile):
        with pytest.raises(ValidationError):
            admin_service.admin_adjust(admin_profile.id, make_profile().id, 0)

    def test_unknown_target(self, admin_service, admin_profile):
        with pytest.raises(UserNotFoundError):
            admin_service.admin_adjust(admin_profile.id, "missing-user", 10)


class TestAdminSetBalance:
    """관리자 잔액 직접 설정 테스트"""

    def test_one_row_per_changed_bucket(self, db, admin_service, admin_profile, make_profile, coin_service):
        """바뀐 버킷마다 거래 한 건, 바뀌지 않은 버킷은 기록 없음"""
        # Arrange
        target = make_profile()
        coin_service.grant(target.id, 40, "테스트 충전")

        # Act
        result = admin_service.admin_set_balance(
            admin_profile.id,
            target.id,
            tianji_coins_balance=40,
            daily_coins_grant=15,
            activity_coins_grant=0,
            daily_coins_grant_expires_at=datetime(2024, 3, 11, 16, 0),
        )

        # Assert
        assert len(result.transaction_ids) == 1
        assert result.tianji_coins_balance == 40
        assert result.daily_coins_grant == 15
        assert result.daily_coins_grant_expires_at is not None
        rows = db.query(Transaction).filter_by(user_id=target.id, type="admin_set").all()
        assert len(rows) == 1
        assert rows[0].coin_type == CoinBucket.DAILY_GRANT.value
        assert rows[0].coins_amount == 15
        assert coin_service.verify_user_integrity(target.id).status == "OK"

    def test_lower_general_balance(self, db, admin_service, admin_profile, make_profile, coin_service):
        # Arrange
        target = make_profile()
        coin_service.grant(target.id, 100, "테스트 충전")

        # Act
        result = admin_service.admin_set_balance(admin_profile.id, target.id, tianji_coins_balance=30)

        # Assert
        row = db.get(Transaction, result.transaction_ids[0])
        assert row.coins_amount == -70
        assert row.item_type == "admin_set_balance"
        assert db.get(Profile, target.id).tianji_coins_balance == 30
        assert coin_service.verify_user_integrity(target.id).status == "OK"

    def test_positive_grant_requires_expiry(self, db, admin_service, admin_profile, make_profile):
        """만료 시각 없는 지급 버킷 설정은 거부되고 아무것도 기록되지 않음"""
        # Arrange
        target = make_profile()

        # Act / Assert
        with pytest.raises(ValidationError):
            admin_service.admin_set_balance(
                admin_profile.id, target.id, tianji_coins_balance=10, activity_coins_grant=20
            )
        profile = db.get(Profile, target.id)
        assert profile.tianji_coins_balance == 0
        assert profile.activity_coins_grant == 0
        assert profile.activity_coins_grant_expires_at is None
        assert db.query(Transaction).filter_by(user_id=target.id).count() == 0

    def test_existing_expiry_is_kept(self, db, admin_service, admin_profile, make_profile, coin_service, clock):
        """이미 만료 시각이 있는 버킷은 잔액만 바꿔도 된다"""
        # Arrange
        target = make_profile()
        expires_at = clock.now() + timedelta(days=7)
        coin_service.grant(target.id, 10, "活动奖励", bucket=CoinBucket.ACTIVITY_GRANT, expires_at=expires_at)

        # Act
        result = admin_service.admin_set_balance(
            admin_profile.id, target.id, tianji_coins_balance=0, activity_coins_grant=25
        )

        # Assert
        assert result.activity_coins_grant == 25
        assert result.activity_coins_grant_expires_at is not None
        assert coin_service.verify_user_integrity(target.id).status == "OK"

    def test_negative_target_rejected(self, admin_service, admin_profile, make_profile):
        with pytest.raises(ValidationError):
            admin_service.admin_set_balance(admin_profile.id, make_profile().id, tianji_coins_balance=-1)


class TestAdminTransactionList:
    """관리자 거래 검색 테스트"""

    def test_paging_and_filter(self, admin_service, admin_profile, make_profile, coin_service):
        # Arrange
        target = make_profile()
        for _ in range(3):
            coin_service.grant(target.id, 10, "테스트 충전")
        coin_service.deduct(target.id, "star_chart", 5)

        # Act
        page = admin_service.list_coin_transactions(
            admin_profile.id, AdminTransactionFilter(user_id=target.id), page=2, page_size=3
        )
        deducts = admin_service.list_coin_transactions(
            admin_profile.id, AdminTransactionFilter(user_id=target.id, type="deduct")
        )

        # Assert
        assert page.total_count == 4
        assert page.total_pages == 2
        assert len(page.transactions) == 1
        assert deducts.total_count == 1

    def test_non_admin_cannot_list(self, admin_service, make_profile):
        with pytest.raises(PermissionDeniedError):
            admin_service.list_coin_transactions(make_profile().id)
