"""
코인 거래 리포지토리

원장(transactions) 테이블 접근을 담당한다:
1. 원장 행 추가 (LedgerWriter 전용)
2. 결제 주문 행 잠금 조회
3. 사용자/관리자 거래 내역 조회
4. 정합성 검증용 버킷별 합계
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from tianjiapi.models.transaction import Transaction, TransactionStatus, TransactionType
from tianjiapi.repositories.base import BaseRepository
from tianjiapi.schemas.coins import CoinTransactionEntry


class TransactionRepository(BaseRepository[Transaction, CoinTransactionEntry]):
    def __init__(self, db: Session):
        super().__init__(Transaction, CoinTransactionEntry, db)

    def create_order(
        self,
        user_id: str,
        amount: Decimal,
        coins_amount: Optional[int],
        item_type: str,
        pack_type: Optional[str] = None,
        payment_provider: Optional[str] = None,
        description: Optional[str] = None,
        is_first_purchase: bool = False,
    ) -> Transaction:
        """대기 상태 결제 주문 행 생성 - 완료 전까지 잔액과 정합성 계산에서 제외"""
        return self.create(
            user_id=user_id,
            type=TransactionType.PURCHASE.value,
            amount=amount,
            coins_amount=coins_amount,
            item_type=item_type,
            pack_type=pack_type,
            payment_provider=payment_provider,
            description=description,
            status=TransactionStatus.PENDING.value,
            is_first_purchase=is_first_purchase,
        )

    def lock_order(self, order_id: str) -> Optional[Transaction]:
        """결제 주문 행 잠금 - 잠금 순서는 항상 주문 행 → 잔액 행"""
        return (
            self.db.query(Transaction)
            .filter(
                Transaction.id == order_id,
                Transaction.type == TransactionType.PURCHASE.value,
            )
            .with_for_update()
            .populate_existing()
            .first()
        )

    def get_order(self, order_id: str, user_id: Optional[str] = None) -> Optional[Transaction]:
        query = self.db.query(Transaction).filter(
            Transaction.id == order_id,
            Transaction.type == TransactionType.PURCHASE.value,
        )
        if user_id is not None:
            query = query.filter(Transaction.user_id == user_id)
        return query.first()

    def list_orders(
        self,
        user_id: str,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Transaction], int]:
        query = self.db.query(Transaction).filter(
            Transaction.user_id == user_id,
            Transaction.type == TransactionType.PURCHASE.value,
        )
        if status:
            query = query.filter(Transaction.status == status)
        total = query.count()
        rows = (
            query.order_by(desc(Transaction.created_at), desc(Transaction.id))
            .limit(limit)
            .offset(offset)
            .all()
        )
        return rows, total

    def has_completed_purchase(self, user_id: str) -> bool:
        return (
            self.db.query(Transaction.id)
            .filter(
                Transaction.user_id == user_id,
                Transaction.type == TransactionType.PURCHASE.value,
                Transaction.status == TransactionStatus.COMPLETED.value,
            )
            .first()
            is not None
        )

    def has_pack_order(self, user_id: str, pack_types: Iterable[str]) -> bool:
        """신규 전용 팩을 이미 주문(대기/완료)했는지 확인"""
        return (
            self.db.query(Transaction.id)
            .filter(
                Transaction.user_id == user_id,
                Transaction.type == TransactionType.PURCHASE.value,
                Transaction.pack_type.in_(list(pack_types)),
                Transaction.status.in_(
                    [TransactionStatus.PENDING.value, TransactionStatus.COMPLETED.value]
                ),
            )
            .first()
            is not None
        )

    def list_for_user(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> Tuple[List[Transaction], int]:
        """사용자 거래 내역 (최신순)"""
        query = self.db.query(Transaction).filter(Transaction.user_id == user_id)
        total = query.count()
        rows = (
            query.order_by(desc(Transaction.created_at), desc(Transaction.id))
            .limit(limit)
            .offset(offset)
            .all()
        )
        return rows, total

    def search(
        self,
        user_id: Optional[str] = None,
        type: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Transaction], int]:
        """관리자 콘솔 거래 검색"""
        query = self.db.query(Transaction)
        if user_id:
            query = query.filter(Transaction.user_id == user_id)
        if type:
            query = query.filter(Transaction.type == type)
        if status:
            query = query.filter(Transaction.status == status)
        if start_date:
            query = query.filter(Transaction.created_at >= start_date)
        if end_date:
            query = query.filter(Transaction.created_at <= end_date)
        total = query.count()
        rows = (
            query.order_by(desc(Transaction.created_at), desc(Transaction.id))
            .limit(limit)
            .offset(offset)
            .all()
        )
        return rows, total

    def sum_completed_by_bucket(self, user_id: str) -> Dict[str, int]:
        """
        완료된 거래의 버킷별 coins_amount 합계

        대기/실패 주문은 status 가 completed 가 아니므로 제외된다.
        """
        rows = (
            self.db.query(Transaction.coin_type, func.coalesce(func.sum(Transaction.coins_amount), 0))
            .filter(
                Transaction.user_id == user_id,
                Transaction.status == TransactionStatus.COMPLETED.value,
            )
            .group_by(Transaction.coin_type)
            .all()
        )
        return {bucket: int(total) for bucket, total in rows}

    def count_completed(self, user_id: str) -> int:
        return (
            self.db.query(Transaction)
            .filter(
                Transaction.user_id == user_id,
                Transaction.status == TransactionStatus.COMPLETED.value,
            )
            .count()
        )
