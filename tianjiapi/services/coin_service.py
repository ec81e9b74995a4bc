from datetime import datetime
from typing import Optional
import logging

from sqlalchemy.orm import Session

from tianjiapi.config import Settings
from tianjiapi.core.exceptions import (
    BaseAPIException,
    ConflictError,
    InsufficientFundsError,
    ValidationError,
)
from tianjiapi.database.session import transaction_scope
from tianjiapi.models.profile import CoinBucket
from tianjiapi.models.transaction import TransactionType
from tianjiapi.repositories.profile_repository import ProfileRepository
from tianjiapi.repositories.transaction_repository import TransactionRepository
from tianjiapi.schemas.coins import (
    BalanceDetails,
    BucketIntegrity,
    CoinBalanceResponse,
    CoinIntegrityCheckResponse,
    CoinTransactionListResponse,
    DeductResult,
    LedgerMeta,
    LedgerResult,
    RegistrationBonusStatus,
)
from tianjiapi.services.ledger_service import LedgerWriter
from tianjiapi.utils.timezone_utils import ServerClock

logger = logging.getLogger(__name__)


class CoinService:
    """코인 차감/지급/조회를 담당하는 서비스"""

    def __init__(self, db: Session, settings: Settings, clock: ServerClock):
        self.db = db
        self.settings = settings
        self.clock = clock
        self.profile_repo = ProfileRepository(db)
        self.tx_repo = TransactionRepository(db)
        self.ledger = LedgerWriter(db)

    def deduct(self, user_id: str, feature_type: str, price: int) -> DeductResult:
        """기능 사용료 차감 - 모든 유료 기능은 이 연산을 거친다

        Args:
            user_id: 사용자 ID
            feature_type: 기능 종류 (예: star_chart)
            price: 차감할 코인 (양수)

        Returns:
            DeductResult: 차감 후 일반 잔액과 거래 ID
        """
        if not feature_type or not str(feature_type).strip():
            raise ValidationError("feature_type is required")
        if isinstance(price, bool) or not isinstance(price, int) or price <= 0:
            raise ValidationError("price must be a positive integer", {"price": price})

        try:
            with transaction_scope(self.db):
                profile = self.profile_repo.lock_for_update(user_id)
                available = profile.tianji_coins_balance or 0
                if price > available:
                    raise InsufficientFundsError(required=price, available=available)

                result = self.ledger.apply_delta(
                    profile,
                    CoinBucket.GENERAL,
                    -price,
                    LedgerMeta(
                        type=TransactionType.DEDUCT,
                        item_type=feature_type,
                        description=f"使用功能: {feature_type}",
                    ),
                )
        except InsufficientFundsError:
            logger.warning(
                f"Insufficient balance for user {user_id}: feature={feature_type} price={price}"
            )
            raise

        return DeductResult(
            remaining_balance=result.new_balance, transaction_id=result.transaction_id
        )

    def get_balance(self, user_id: str) -> CoinBalanceResponse:
        """코인 잔액 조회 (원시 버킷 + 표시용 합계)"""
        with transaction_scope(self.db):
            profile = self.profile_repo.get_or_raise(user_id)

        general = profile.tianji_coins_balance or 0
        daily = profile.daily_coins_grant or 0
        activity = profile.activity_coins_grant or 0
        expirations = [
            dt
            for dt in (
                profile.daily_coins_grant_expires_at,
                profile.activity_coins_grant_expires_at,
            )
            if dt is not None
        ]

        return CoinBalanceResponse(
            user_id=profile.id,
            tianji_coins_balance=general,
            daily_coins_grant=daily,
            activity_coins_grant=activity,
            daily_coins_grant_expires_at=profile.daily_coins_grant_expires_at,
            activity_coins_grant_expires_at=profile.activity_coins_grant_expires_at,
            total_balance=general + daily + activity,
            permanent_balance=general + activity,
            expiring_balance=daily,
            next_expiration_date=min(expirations) if expirations else None,
            deduction_priority=CoinBucket.GENERAL.value,
            details=BalanceDetails(
                tianji_coins_balance=general,
                daily_coins_grant=daily,
                activity_coins_grant=activity,
                daily_coins_grant_expires_at=profile.daily_coins_grant_expires_at,
                activity_coins_grant_expires_at=profile.activity_coins_grant_expires_at,
            ),
        )

    def get_transactions(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> CoinTransactionListResponse:
        """사용자 거래 내역 조회

        Args:
            limit: 1-100
            offset: 0 이상
        """
        if limit < 1 or limit > 100:
            raise ValidationError("limit must be between 1 and 100", {"limit": limit})
        if offset < 0:
            raise ValidationError("offset must be >= 0", {"offset": offset})

        with transaction_scope(self.db):
            rows, total = self.tx_repo.list_for_user(user_id, limit=limit, offset=offset)
            entries = [self.tx_repo.to_schema(row) for row in rows]

        logger.info(f"Retrieved {len(entries)} transactions for user {user_id}")
        return CoinTransactionListResponse(
            transactions=entries,
            total_count=total,
            limit=limit,
            offset=offset,
            has_next=offset + limit < total,
        )

    def grant(
        self,
        user_id: str,
        amount: int,
        reason: str,
        bucket: CoinBucket = CoinBucket.GENERAL,
        expires_at: Optional[datetime] = None,
    ) -> LedgerResult:
        """시스템 코인 지급 (이벤트/보상 등)"""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("amount must be a positive integer", {"amount": amount})
        if not reason:
            raise ValidationError("reason is required")
        bucket = CoinBucket(bucket)
        if bucket != CoinBucket.GENERAL and expires_at is None:
            raise ValidationError(
                "expires_at is required for grant buckets", {"bucket": bucket.value}
            )

        with transaction_scope(self.db):
            profile = self.profile_repo.lock_for_update(user_id)
            return self.ledger.apply_delta(
                profile,
                bucket,
                amount,
                LedgerMeta(
                    type=TransactionType.GRANT,
                    item_type="grant",
                    description=reason,
                    expires_at=expires_at,
                ),
            )

    def refund(
        self,
        user_id: str,
        amount: int,
        reason: str,
        original_transaction_id: Optional[str] = None,
    ) -> LedgerResult:
        """차감 환불 (일반 잔액으로 되돌림)"""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("amount must be a positive integer", {"amount": amount})
        if not reason:
            raise ValidationError("reason is required")

        description = reason
        if original_transaction_id:
            description = f"{reason} (原交易: {original_transaction_id})"

        with transaction_scope(self.db):
            profile = self.profile_repo.lock_for_update(user_id)
            result = self.ledger.apply_delta(
                profile,
                CoinBucket.GENERAL,
                amount,
                LedgerMeta(
                    type=TransactionType.REFUND,
                    item_type="refund",
                    description=description,
                ),
            )
        logger.info(f"Refunded {amount} coins to user {user_id}")
        return result

    def grant_registration_bonus(self, user_id: str) -> LedgerResult:
        """가입 보너스 지급 - 프로필당 1회 (잠금 상태에서 플래그 확인)"""
        coins = self.settings.REGISTRATION_BONUS_COINS
        try:
            with transaction_scope(self.db):
                profile = self.profile_repo.lock_for_update(user_id)
                if profile.registration_bonus_granted:
                    raise ConflictError(
                        "Registration bonus already granted", {"user_id": user_id}
                    )
                result = self.ledger.apply_delta(
                    profile,
                    CoinBucket.GENERAL,
                    coins,
                    LedgerMeta(
                        type=TransactionType.REGISTRATION_BONUS,
                        item_type="registration_bonus",
                        description="注册奖励",
                    ),
                )
                profile.registration_bonus_granted = True
        except BaseAPIException as e:
            logger.warning(f"Registration bonus not granted for user {user_id}: {e}")
            raise
        return result

    def get_registration_bonus_status(self, user_id: str) -> RegistrationBonusStatus:
        with transaction_scope(self.db):
            profile = self.profile_repo.get_or_raise(user_id)
            rows, _ = self.tx_repo.search(
                user_id=user_id, type=TransactionType.REGISTRATION_BONUS.value, limit=1
            )
        return RegistrationBonusStatus(
            user_id=user_id,
            granted=bool(profile.registration_bonus_granted),
            coins=self.settings.REGISTRATION_BONUS_COINS,
            granted_at=rows[0].created_at if rows else None,
        )

    def verify_user_integrity(self, user_id: str) -> CoinIntegrityCheckResponse:
        """
        사용자 잔액 정합성 검증

        검증 방식:
        1. 버킷별 완료 거래의 coins_amount 합계 계산
        2. 프로필에 기록된 버킷 잔액과 비교
        3. 하나라도 다르면 MISMATCH
        """
        with transaction_scope(self.db):
            profile = self.profile_repo.get_or_raise(user_id)
            sums = self.tx_repo.sum_completed_by_bucket(user_id)
            entry_count = self.tx_repo.count_completed(user_id)

        buckets = []
        for bucket in CoinBucket:
            recorded = profile.get_bucket_balance(bucket)
            calculated = sums.get(bucket.value, 0)
            buckets.append(
                BucketIntegrity(
                    bucket=bucket.value,
                    recorded_balance=recorded,
                    calculated_balance=calculated,
                    matches=recorded == calculated,
                )
            )

        status = "OK" if all(b.matches for b in buckets) else "MISMATCH"
        if status != "OK":
            logger.error(f"Ledger mismatch for user {user_id}: {buckets}")
        return CoinIntegrityCheckResponse(
            status=status,
            user_id=user_id,
            buckets=buckets,
            entry_count=entry_count,
            checked_at=self.clock.now(),
        )
