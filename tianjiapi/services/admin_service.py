"""
관리자 코인 조정 서비스

관리자 권한은 요청 토큰이 아닌 DB 의 역할(role)로 매 호출마다 다시 확인한다.
조정은 음수 잔액을 허용하며, 모든 조정은 operator_id 와 함께 원장에 기록된다.
"""

from datetime import datetime
from typing import Optional
import logging
import math

from sqlalchemy.orm import Session

from tianjiapi.core.exceptions import BaseAPIException, PermissionDeniedError, ValidationError
from tianjiapi.database.session import transaction_scope
from tianjiapi.models.profile import CoinBucket, Profile
from tianjiapi.models.transaction import TransactionType
from tianjiapi.repositories.profile_repository import ProfileRepository
from tianjiapi.repositories.transaction_repository import TransactionRepository
from tianjiapi.schemas.admin import (
    AdminAdjustResult,
    AdminSetBalanceResult,
    AdminTransactionFilter,
    AdminTransactionListResponse,
)
from tianjiapi.schemas.coins import LedgerMeta
from tianjiapi.services.ledger_service import LedgerWriter
from tianjiapi.utils.timezone_utils import ServerClock, to_utc

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(self, db: Session, clock: ServerClock):
        self.db = db
        self.clock = clock
        self.profile_repo = ProfileRepository(db)
        self.tx_repo = TransactionRepository(db)
        self.ledger = LedgerWriter(db)

    def _ensure_admin(self, operator_id: str) -> None:
        if not self.profile_repo.is_admin(operator_id):
            logger.warning(f"Non-admin user {operator_id} attempted an admin operation")
            raise PermissionDeniedError(details={"operator_id": operator_id})

    def admin_adjust(
        self,
        operator_id: str,
        target_user_id: str,
        amount: int,
        reason: str = "管理员调整",
        bucket: CoinBucket = CoinBucket.GENERAL,
    ) -> AdminAdjustResult:
        """관리자 코인 증감

        Args:
            operator_id: 요청한 관리자 ID
            target_user_id: 대상 사용자 ID
            amount: 0 이 아닌 정수 (음수면 차감, 결과 잔액이 음수여도 허용)
            reason: 조정 사유
            bucket: 조정할 잔액 버킷

        Returns:
            AdminAdjustResult: 조정 전/후 잔액과 거래 ID
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
            raise ValidationError("amount must be a non-zero integer", {"amount": amount})
        bucket = CoinBucket(bucket)
        reason = reason or "管理员调整"

        try:
            with transaction_scope(self.db):
                self._ensure_admin(operator_id)
                profile = self.profile_repo.lock_for_update(target_user_id)
                old_balance = profile.get_bucket_balance(bucket)
                result = self.ledger.apply_delta(
                    profile,
                    bucket,
                    amount,
                    LedgerMeta(
                        type=TransactionType.ADMIN_ADJUST,
                        item_type="admin_adjustment",
                        operator_id=operator_id,
                        description=f"{old_balance} → {old_balance + amount} ({amount:+d}) {reason}",
                        allow_negative=True,
                    ),
                )
        except BaseAPIException as e:
            logger.warning(
                f"Admin adjust by {operator_id} on {target_user_id} rejected: {e}"
            )
            raise

        logger.info(
            f"Admin {operator_id} adjusted {bucket.value} of {target_user_id}: "
            f"{old_balance} -> {result.new_balance}"
        )
        return AdminAdjustResult(
            target_user_id=target_user_id,
            old_balance=old_balance,
            new_balance=result.new_balance,
            delta=amount,
            coin_type=bucket.value,
            transaction_id=result.transaction_id,
            operator_id=operator_id,
        )

    def _set_bucket(
        self,
        profile: Profile,
        bucket: CoinBucket,
        target: int,
        operator_id: str,
        reason: str,
        expires_at: Optional[datetime] = None,
    ) -> Optional[str]:
        """버킷을 목표 잔액으로 맞추는 차액을 원장에 기록. 변화가 없으면 None

        지급 버킷은 잔액이 남는 한 만료 시각이 있어야 한다.
        """
        if bucket.expires_column and expires_at is not None:
            setattr(profile, bucket.expires_column, to_utc(expires_at))
        if (
            bucket.expires_column
            and target > 0
            and getattr(profile, bucket.expires_column) is None
        ):
            raise ValidationError(
                "expires_at is required for grant buckets", {"bucket": bucket.value}
            )

        current = profile.get_bucket_balance(bucket)
        delta = target - current
        if delta == 0:
            return None
        result = self.ledger.apply_delta(
            profile,
            bucket,
            delta,
            LedgerMeta(
                type=TransactionType.ADMIN_SET,
                item_type="admin_set_balance",
                operator_id=operator_id,
                description=f"{current} → {target} ({delta:+d}) {reason}",
                allow_negative=True,
            ),
        )
        if target == 0 and bucket.expires_column:
            setattr(profile, bucket.expires_column, None)
        return result.transaction_id

    def admin_set_balance(
        self,
        operator_id: str,
        target_user_id: str,
        tianji_coins_balance: int,
        daily_coins_grant: Optional[int] = None,
        activity_coins_grant: Optional[int] = None,
        clear_grants: bool = False,
        reason: str = "管理员设置余额",
        daily_coins_grant_expires_at: Optional[datetime] = None,
        activity_coins_grant_expires_at: Optional[datetime] = None,
    ) -> AdminSetBalanceResult:
        """관리자 잔액 직접 설정 - 바뀐 버킷마다 차액 거래 한 건씩 기록

        clear_grants 가 True 이면 지정하지 않은 지급 버킷을 0 으로 맞춘다.
        지급 버킷을 양수로 설정할 때 기존 만료 시각이 없으면 *_expires_at 이 필요하다.
        """
        expiries = {
            CoinBucket.DAILY_GRANT: daily_coins_grant_expires_at,
            CoinBucket.ACTIVITY_GRANT: activity_coins_grant_expires_at,
        }
        targets = {CoinBucket.GENERAL: tianji_coins_balance}
        if daily_coins_grant is not None:
            targets[CoinBucket.DAILY_GRANT] = daily_coins_grant
        elif clear_grants:
            targets[CoinBucket.DAILY_GRANT] = 0
        if activity_coins_grant is not None:
            targets[CoinBucket.ACTIVITY_GRANT] = activity_coins_grant
        elif clear_grants:
            targets[CoinBucket.ACTIVITY_GRANT] = 0

        for bucket, value in targets.items():
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(
                    "Balance must be a non-negative integer", {bucket.value: value}
                )

        try:
            with transaction_scope(self.db):
                self._ensure_admin(operator_id)
                profile = self.profile_repo.lock_for_update(target_user_id)
                transaction_ids = []
                for bucket, value in targets.items():
                    tx_id = self._set_bucket(
                        profile, bucket, value, operator_id, reason, expiries.get(bucket)
                    )
                    if tx_id:
                        transaction_ids.append(tx_id)
                self.db.flush()
        except BaseAPIException as e:
            logger.warning(
                f"Admin set balance by {operator_id} on {target_user_id} rejected: {e}"
            )
            raise

        logger.info(
            f"Admin {operator_id} set balances of {target_user_id}: "
            f"{len(transaction_ids)} bucket(s) changed"
        )
        return AdminSetBalanceResult(
            target_user_id=target_user_id,
            tianji_coins_balance=profile.tianji_coins_balance,
            daily_coins_grant=profile.daily_coins_grant,
            activity_coins_grant=profile.activity_coins_grant,
            daily_coins_grant_expires_at=profile.daily_coins_grant_expires_at,
            activity_coins_grant_expires_at=profile.activity_coins_grant_expires_at,
            transaction_ids=transaction_ids,
            operator_id=operator_id,
        )

    def list_coin_transactions(
        self,
        operator_id: str,
        filters: Optional[AdminTransactionFilter] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> AdminTransactionListResponse:
        """관리자 콘솔 거래 검색 (페이지 단위)"""
        if page < 1:
            raise ValidationError("page must be >= 1", {"page": page})
        if page_size < 1 or page_size > 100:
            raise ValidationError(
                "page_size must be between 1 and 100", {"page_size": page_size}
            )
        filters = filters or AdminTransactionFilter()

        with transaction_scope(self.db):
            self._ensure_admin(operator_id)
            rows, total = self.tx_repo.search(
                user_id=filters.user_id,
                type=filters.type,
                status=filters.status,
                start_date=filters.start_date,
                end_date=filters.end_date,
                limit=page_size,
                offset=(page - 1) * page_size,
            )
            entries = [self.tx_repo.to_schema(row) for row in rows]

        return AdminTransactionListResponse(
            transactions=entries,
            total_count=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if total else 0,
        )
