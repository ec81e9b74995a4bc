"""
원장 기록기 (Ledger Writer)

모든 코인 잔액 변경의 유일한 경로.
잔액 변경과 거래 행 기록을 같은 DB 트랜잭션 안에서 수행하고, 호출마다 정확히
한 개의 완료(completed) 거래 행을 남긴다.

전제 조건:
- 호출자는 ProfileRepository.lock_for_update 로 대상 프로필 행을 이미 잠갔다
- 커밋은 호출한 서비스의 transaction_scope 가 담당한다 (여기서는 flush 만)
"""

import logging
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy.orm import Session

from tianjiapi.core.exceptions import InsufficientFundsError, ValidationError
from tianjiapi.models.profile import CoinBucket, Profile
from tianjiapi.models.transaction import Transaction, TransactionStatus, TransactionType
from tianjiapi.schemas.coins import LedgerMeta, LedgerResult

logger = logging.getLogger(__name__)


class LedgerWriter:
    def __init__(self, db: Session):
        self.db = db

    def apply_delta(
        self,
        profile: Profile,
        bucket: Union[CoinBucket, str],
        delta: int,
        meta: LedgerMeta,
        record: Optional[Transaction] = None,
    ) -> LedgerResult:
        """
        잠긴 프로필의 버킷 잔액에 delta 를 적용하고 거래 행을 기록

        Args:
            profile: 현재 트랜잭션에서 FOR UPDATE 로 잠근 프로필
            bucket: general | daily_grant | activity_grant
            delta: 0 이 아닌 정수 (양수=지급, 음수=차감)
            meta: 거래 유형/설명 등 원장 메타데이터
            record: 대기(pending) 상태 결제 주문 행. 주어지면 새 행을 추가하지 않고
                    이 행을 완료 처리하여 지급 기록으로 사용한다.

        Returns:
            LedgerResult: 적용 후 버킷 잔액과 거래 ID

        Raises:
            ValidationError: delta 가 0 이거나 주문 행이 이 지급과 맞지 않음
            InsufficientFundsError: 차감 후 잔액이 음수 (allow_negative 가 아니면)
        """
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise ValidationError("Ledger delta must be a non-zero integer", {"delta": delta})

        bucket = CoinBucket(bucket)
        current = profile.get_bucket_balance(bucket)
        new_balance = current + delta

        if delta < 0 and new_balance < 0 and not meta.allow_negative:
            raise InsufficientFundsError(
                required=-delta, available=current, bucket=bucket.value
            )

        profile.set_bucket_balance(bucket, new_balance)
        if meta.expires_at is not None and bucket.expires_column and delta > 0:
            setattr(profile, bucket.expires_column, meta.expires_at)

        if record is None:
            record = Transaction(
                user_id=profile.id,
                type=meta.type.value,
                amount=Decimal(str(meta.amount or 0)),
                coins_amount=delta,
                coin_type=bucket.value,
                item_type=meta.item_type,
                pack_type=meta.pack_type,
                description=meta.description,
                operator_id=meta.operator_id,
                status=TransactionStatus.COMPLETED.value,
                balance_after=new_balance,
            )
            self.db.add(record)
        else:
            self._stamp_order(record, profile, bucket, delta, new_balance)

        self.db.flush()

        logger.info(
            f"Ledger {meta.type.value}: user={profile.id} bucket={bucket.value} "
            f"delta={delta:+d} balance={current}->{new_balance} tx={record.id}"
        )
        return LedgerResult(
            new_balance=new_balance, transaction_id=record.id, bucket=bucket
        )

    @staticmethod
    def _stamp_order(
        record: Transaction,
        profile: Profile,
        bucket: CoinBucket,
        delta: int,
        new_balance: int,
    ) -> None:
        """대기 주문 행을 지급 완료 기록으로 전환"""
        if (
            record.user_id != profile.id
            or record.type != TransactionType.PURCHASE.value
            or record.status != TransactionStatus.PENDING.value
            or record.coins_amount != delta
        ):
            raise ValidationError(
                "Order record does not match ledger credit",
                {"order_id": record.id, "status": record.status},
            )
        record.status = TransactionStatus.COMPLETED.value
        record.coin_type = bucket.value
        record.balance_after = new_balance
