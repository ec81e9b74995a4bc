from datetime import datetime, timedelta, timezone

import pytest

from tianjiapi.core.exceptions import (
    ConflictError,
    InsufficientFundsError,
    UserNotFoundError,
    ValidationError,
)
from tianjiapi.models.profile import CoinBucket, Profile
from tianjiapi.models.transaction import Transaction, TransactionStatus, TransactionType
from tianjiapi.schemas.coins import LedgerMeta
from tianjiapi.services.coin_service import CoinService
from tianjiapi.services.ledger_service import LedgerWriter


@pytest.fixture
def coin_service(db, settings, clock):
    return CoinService(db, settings, clock)


@pytest.fixture
def funded_user(make_profile, coin_service):
    """원장 기록과 함께 일반 잔액 10 을 가진 사용자"""
    profile = make_profile()
    coin_service.grant(profile.id, 10, "테스트 충전")
    return profile


class TestDeduct:
    """기능 사용료 차감 테스트"""

    def test_deduct_exact_balance_then_reject(self, db, coin_service, funded_user):
        """잔액 10 에서 10 차감 후 다음 차감은 실패하고 잔액은 0 유지"""
        # Act
        result = coin_service.deduct(funded_user.id, "star_chart", 10)

        # Assert
        assert result.remaining_balance == 0
        assert result.transaction_id

        with pytest.raises(InsufficientFundsError) as exc_info:
            coin_service.deduct(funded_user.id, "star_chart", 10)
        assert exc_info.value.error_code == "BALANCE_001"
        assert exc_info.value.details == {"required": 10, "available": 0, "bucket": "general"}
        assert db.get(Profile, funded_user.id).tianji_coins_balance == 0

    def test_over_deduct_leaves_balance_and_ledger_unchanged(self, db, coin_service, funded_user):
        """잔액 초과 차감은 잔액과 거래 행을 바꾸지 않음"""
        # Arrange
        rows_before = db.query(Transaction).filter_by(user_id=funded_user.id).count()

        # Act
        with pytest.raises(InsufficientFundsError):
            coin_service.deduct(funded_user.id, "bazi_report", 11)

        # Assert
        assert db.get(Profile, funded_user.id).tianji_coins_balance == 10
        assert db.query(Transaction).filter_by(user_id=funded_user.id).count() == rows_before

    def test_deduct_writes_negative_ledger_row(self, db, coin_service, funded_user):
        """차감은 coins_amount 가 음수인 deduct 행 한 건을 남김"""
        # Act
        result = coin_service.deduct(funded_user.id, "star_chart", 4)

        # Assert
        row = db.get(Transaction, result.transaction_id)
        assert row.type == "deduct"
        assert row.coins_amount == -4
        assert row.item_type == "star_chart"
        assert row.status == TransactionStatus.COMPLETED.value
        assert row.balance_after == 6

    @pytest.mark.parametrize("price", [0, -5])
    def test_non_positive_price_rejected(self, coin_service, funded_user, price):
        """0 이하 가격은 잠금 전에 거부"""
        with pytest.raises(ValidationError):
            coin_service.deduct(funded_user.id, "star_chart", price)

    def test_empty_feature_type_rejected(self, coin_service, funded_user):
        with pytest.raises(ValidationError):
            coin_service.deduct(funded_user.id, "  ", 1)

    def test_unknown_user(self, coin_service):
        with pytest.raises(UserNotFoundError):
            coin_service.deduct("missing-user", "star_chart", 1)


class TestBalanceAndHistory:
    """잔액/거래 내역 조회 테스트"""

    def test_get_balance_display_fields(self, db, coin_service, make_profile):
        """표시용 합계는 버킷에서 계산"""
        # Arrange
        profile = make_profile()
        expires_at = datetime(2024, 3, 11, 0, 0, tzinfo=timezone.utc)
        coin_service.grant(profile.id, 30, "이벤트")
        coin_service.grant(profile.id, 5, "일일 지급", bucket=CoinBucket.DAILY_GRANT, expires_at=expires_at)
        coin_service.grant(profile.id, 7, "활동 지급", bucket=CoinBucket.ACTIVITY_GRANT, expires_at=expires_at + timedelta(days=3))

        # Act
        balance = coin_service.get_balance(profile.id)

        # Assert
        assert balance.tianji_coins_balance == 30
        assert balance.total_balance == 42
        assert balance.permanent_balance == 37
        assert balance.expiring_balance == 5
        assert balance.next_expiration_date is not None
        assert balance.details.daily_coins_grant == 5

    def test_grant_bucket_requires_expiry(self, coin_service, make_profile):
        profile = make_profile()
        with pytest.raises(ValidationError):
            coin_service.grant(profile.id, 5, "일일 지급", bucket=CoinBucket.DAILY_GRANT)

    def test_get_transactions_paging(self, coin_service, funded_user):
        """최신순 페이지 조회"""
        # Arrange
        coin_service.deduct(funded_user.id, "star_chart", 1)
        coin_service.deduct(funded_user.id, "star_chart", 2)

        # Act
        page = coin_service.get_transactions(funded_user.id, limit=2, offset=0)

        # Assert
        assert page.total_count == 3
        assert len(page.transactions) == 2
        assert page.has_next is True
        assert page.transactions[0].coins_amount == -2

    @pytest.mark.parametrize("limit", [0, 101])
    def test_get_transactions_limit_bounds(self, coin_service, funded_user, limit):
        with pytest.raises(ValidationError):
            coin_service.get_transactions(funded_user.id, limit=limit)


class TestRegistrationBonusAndRefund:
    """가입 보너스/환불 테스트"""

    def test_registration_bonus_once(self, db, coin_service, make_profile):
        """가입 보너스는 프로필당 1회"""
        # Arrange
        profile = make_profile()

        # Act
        result = coin_service.grant_registration_bonus(profile.id)

        # Assert
        assert result.new_balance == 20
        with pytest.raises(ConflictError):
            coin_service.grant_registration_bonus(profile.id)
        status = coin_service.get_registration_bonus_status(profile.id)
        assert status.granted is True
        assert status.granted_at is not None
        assert db.get(Profile, profile.id).tianji_coins_balance == 20

    def test_refund_credits_general(self, db, coin_service, funded_user):
        # Arrange
        deduct = coin_service.deduct(funded_user.id, "star_chart", 8)

        # Act
        result = coin_service.refund(funded_user.id, 8, "생성 실패", original_transaction_id=deduct.transaction_id)

        # Assert
        assert result.new_balance == 10
        row = db.get(Transaction, result.transaction_id)
        assert row.type == "refund"
        assert row.item_type == "refund"
        assert deduct.transaction_id in row.description


class TestIntegrity:
    """잔액 정합성 검증 테스트"""

    def test_reconciliation_holds_after_mixed_operations(self, coin_service, funded_user):
        """지급/차감/환불 후에도 버킷 잔액 == 완료 거래 합계"""
        # Arrange
        coin_service.deduct(funded_user.id, "star_chart", 3)
        coin_service.refund(funded_user.id, 3, "환불")
        coin_service.grant_registration_bonus(funded_user.id)

        # Act
        report = coin_service.verify_user_integrity(funded_user.id)

        # Assert
        assert report.status == "OK"
        assert all(bucket.matches for bucket in report.buckets)
        assert report.entry_count == 4

    def test_mismatch_detected(self, db, coin_service, funded_user):
        """원장을 거치지 않은 잔액 변경은 MISMATCH"""
        # Arrange
        profile = db.get(Profile, funded_user.id)
        profile.tianji_coins_balance = 999
        db.commit()

        # Act
        report = coin_service.verify_user_integrity(funded_user.id)

        # Assert
        assert report.status == "MISMATCH"
        general = next(b for b in report.buckets if b.bucket == "general")
        assert general.recorded_balance == 999
        assert general.calculated_balance == 10


class TestLedgerWriter:
    """원장 기록기 단위 테스트"""

    def test_zero_delta_rejected(self, db, make_profile):
        profile = make_profile()
        with pytest.raises(ValidationError):
            LedgerWriter(db).apply_delta(
                profile, CoinBucket.GENERAL, 0, LedgerMeta(type=TransactionType.GRANT)
            )
        db.rollback()

    def test_allow_negative_only_when_flagged(self, db, make_profile):
        """allow_negative 없이는 음수 잔액 불가"""
        # Arrange
        profile = make_profile()
        writer = LedgerWriter(db)

        # Act / Assert
        with pytest.raises(InsufficientFundsError):
            writer.apply_delta(profile, CoinBucket.GENERAL, -1, LedgerMeta(type=TransactionType.DEDUCT))

        result = writer.apply_delta(
            profile,
            CoinBucket.GENERAL,
            -1,
            LedgerMeta(type=TransactionType.ADMIN_ADJUST, allow_negative=True),
        )
        assert result.new_balance == -1
        db.rollback()
