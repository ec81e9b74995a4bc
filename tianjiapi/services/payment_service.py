"""
결제 정산 서비스

주문 상태 전이: pending → completed | failed (둘 다 종결 상태)

- pending → completed: 코인 지급(또는 구독 활성화)과 주문 완료 처리를 한 트랜잭션에서 수행
- pending → failed: 상태만 변경
- completed 주문에 completed 콜백 재수신: 아무것도 하지 않고 성공 응답
- 그 외 종결 상태 재정산: OrderAlreadyTerminalError

잠금 순서는 항상 주문 행 → 프로필 행.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Union
import logging

from sqlalchemy.orm import Session

from tianjiapi.config import Settings
from tianjiapi.core.exceptions import (
    BaseAPIException,
    OrderAlreadyTerminalError,
    OrderNotFoundError,
    PermissionDeniedError,
    UserNotFoundError,
    ValidationError,
)
from tianjiapi.database.session import transaction_scope
from tianjiapi.models.profile import CoinBucket
from tianjiapi.models.transaction import Transaction, TransactionStatus, TransactionType
from tianjiapi.repositories.profile_repository import ProfileRepository
from tianjiapi.repositories.transaction_repository import TransactionRepository
from tianjiapi.schemas.coins import LedgerMeta
from tianjiapi.schemas.payment import (
    CallbackStatus,
    CreateOrderResponse,
    OrderItemType,
    OrderListResponse,
    OrderResponse,
    SettlementResult,
)
from tianjiapi.services.ledger_service import LedgerWriter
from tianjiapi.services.subscription_service import SubscriptionService
from tianjiapi.utils.timezone_utils import ServerClock, to_utc

logger = logging.getLogger(__name__)

# 첫 결제 사용자 전용 팩
NEWCOMER_PACK_TYPES = ("newcomer", "new_user_gift", "newuser_gift", "first_purchase_gift")

MOCK_PROVIDER = "mock"


class PaymentService:
    def __init__(self, db: Session, settings: Settings, clock: ServerClock):
        self.db = db
        self.settings = settings
        self.clock = clock
        self.profile_repo = ProfileRepository(db)
        self.tx_repo = TransactionRepository(db)
        self.ledger = LedgerWriter(db)
        self.subscription_service = SubscriptionService(db, settings, clock)

    def create_order(
        self,
        user_id: str,
        amount: Union[float, Decimal],
        coins_amount: Optional[int] = None,
        item_type: Union[OrderItemType, str] = OrderItemType.COIN_PACK,
        pack_type: Optional[str] = None,
        payment_provider: Optional[str] = None,
        description: Optional[str] = None,
    ) -> CreateOrderResponse:
        """결제 주문 생성

        Args:
            user_id: 사용자 ID
            amount: 결제 금액 (0 초과)
            coins_amount: 지급 코인 (코인 팩이면 필수)
            item_type: coin_pack | subscription
            pack_type: 코인 팩 종류 (신규 전용 팩 여부 판단)

        Returns:
            CreateOrderResponse: 주문 ID 와 결제 페이지 URL
        """
        try:
            item_type = OrderItemType(item_type)
        except ValueError:
            raise ValidationError("Unknown item_type", {"item_type": item_type})

        amount = Decimal(str(amount))
        if amount <= 0:
            raise ValidationError("amount must be positive", {"amount": float(amount)})
        if item_type == OrderItemType.COIN_PACK:
            if isinstance(coins_amount, bool) or not isinstance(coins_amount, int) or coins_amount <= 0:
                raise ValidationError(
                    "coins_amount is required for coin_pack orders",
                    {"coins_amount": coins_amount},
                )
        else:
            coins_amount = None

        with transaction_scope(self.db):
            if not self.profile_repo.user_exists(user_id):
                raise UserNotFoundError(user_id)

            is_first_purchase = not self.tx_repo.has_completed_purchase(user_id)
            if pack_type in NEWCOMER_PACK_TYPES:
                if not is_first_purchase:
                    raise ValidationError(
                        "Newcomer packs are only available for the first purchase",
                        {"pack_type": pack_type},
                    )
                if self.tx_repo.has_pack_order(user_id, NEWCOMER_PACK_TYPES):
                    raise ValidationError(
                        "Newcomer pack already ordered", {"pack_type": pack_type}
                    )

            order = self.tx_repo.create_order(
                user_id=user_id,
                amount=amount,
                coins_amount=coins_amount,
                item_type=item_type.value,
                pack_type=pack_type,
                payment_provider=payment_provider,
                description=description or f"购买{coins_amount or 0}天机币",
                is_first_purchase=is_first_purchase,
            )

        logger.info(
            f"Created order {order.id} for user {user_id}: amount={amount} coins={coins_amount}"
        )
        return CreateOrderResponse(
            order_id=order.id,
            amount=float(amount),
            coins_amount=coins_amount,
            item_type=item_type.value,
            pack_type=pack_type,
            status=order.status,
            is_first_purchase=is_first_purchase,
            payment_url=self.settings.cashier_url(order.id),
        )

    def handle_payment_callback(
        self,
        order_id: str,
        status: Union[CallbackStatus, str],
        provider: Optional[str] = None,
        paid_at: Optional[datetime] = None,
        user_id: Optional[str] = None,
    ) -> SettlementResult:
        """결제 콜백 처리

        Args:
            order_id: 주문 ID
            status: completed | failed
            provider: 결제 수단 (주어지면 주문에 기록)
            paid_at: 결제 시각 (없으면 서버 시각)
            user_id: 주어지면 해당 사용자의 주문인지 확인

        Returns:
            SettlementResult: 정산 결과 (재수신이면 already_processed=True)

        Raises:
            OrderNotFoundError: 주문이 없음
            OrderAlreadyTerminalError: 종결 상태 주문의 재정산
        """
        try:
            status = CallbackStatus(status)
        except ValueError:
            raise ValidationError("status must be completed or failed", {"status": status})

        try:
            with transaction_scope(self.db):
                order = self.tx_repo.lock_order(order_id)
                if order is None or (user_id is not None and order.user_id != user_id):
                    raise OrderNotFoundError(order_id)

                if order.status == TransactionStatus.COMPLETED.value:
                    if status == CallbackStatus.COMPLETED:
                        return self._replayed(order)
                    raise OrderAlreadyTerminalError(order_id, order.status, status.value)
                if order.status == TransactionStatus.FAILED.value:
                    raise OrderAlreadyTerminalError(order_id, order.status, status.value)

                if status == CallbackStatus.FAILED:
                    return self._fail(order, provider)
                return self._complete(order, provider, paid_at)
        except BaseAPIException as e:
            logger.warning(f"Payment callback rejected for order {order_id}: {e}")
            raise

    def _replayed(self, order: Transaction) -> SettlementResult:
        profile = self.profile_repo.get_or_raise(order.user_id)
        logger.info(f"Order {order.id} already completed, ignoring replayed callback")
        return SettlementResult(
            order_id=order.id,
            status=order.status,
            coins_granted=0,
            new_balance=profile.tianji_coins_balance,
            transaction_id=order.id,
            already_processed=True,
        )

    def _fail(self, order: Transaction, provider: Optional[str]) -> SettlementResult:
        order.status = TransactionStatus.FAILED.value
        if provider:
            order.payment_provider = provider
        self.db.flush()
        logger.info(f"Order {order.id} marked as failed")
        return SettlementResult(order_id=order.id, status=order.status)

    def _complete(
        self, order: Transaction, provider: Optional[str], paid_at: Optional[datetime]
    ) -> SettlementResult:
        # 주문 행 다음에 프로필 행을 잠근다
        profile = self.profile_repo.lock_for_update(order.user_id)

        order.paid_at = to_utc(paid_at) if paid_at else to_utc(self.clock.now())
        if provider:
            order.payment_provider = provider

        if order.item_type == OrderItemType.SUBSCRIPTION.value:
            order.status = TransactionStatus.COMPLETED.value
            self.db.flush()
            bonus = self.subscription_service.activate_for_order(profile, order)
            return SettlementResult(
                order_id=order.id,
                status=order.status,
                coins_granted=bonus.total_bonus_coins,
                new_balance=profile.tianji_coins_balance,
                transaction_id=order.id,
            )

        result = self.ledger.apply_delta(
            profile,
            CoinBucket.GENERAL,
            order.coins_amount,
            LedgerMeta(
                type=TransactionType.PURCHASE,
                item_type=order.item_type,
                pack_type=order.pack_type,
                amount=float(order.amount or 0),
            ),
            record=order,
        )
        logger.info(
            f"Order {order.id} completed: +{order.coins_amount} coins to user {profile.id}"
        )
        return SettlementResult(
            order_id=order.id,
            status=order.status,
            coins_granted=order.coins_amount,
            new_balance=result.new_balance,
            transaction_id=result.transaction_id,
        )

    def _ensure_mock_enabled(self) -> None:
        if not self.settings.ENABLE_MOCK_PAYMENTS:
            raise PermissionDeniedError("Mock payments are disabled")

    def mock_pay_success(self, order_id: str, user_id: Optional[str] = None) -> SettlementResult:
        """개발/테스트용 결제 성공 처리"""
        self._ensure_mock_enabled()
        return self.handle_payment_callback(
            order_id, CallbackStatus.COMPLETED, provider=MOCK_PROVIDER, user_id=user_id
        )

    def mock_pay_fail(self, order_id: str, user_id: Optional[str] = None) -> SettlementResult:
        """개발/테스트용 결제 실패 처리"""
        self._ensure_mock_enabled()
        return self.handle_payment_callback(
            order_id, CallbackStatus.FAILED, provider=MOCK_PROVIDER, user_id=user_id
        )

    def get_orders(
        self,
        user_id: str,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> OrderListResponse:
        if limit < 1 or limit > 100:
            raise ValidationError("limit must be between 1 and 100", {"limit": limit})
        if offset < 0:
            raise ValidationError("offset must be >= 0", {"offset": offset})

        with transaction_scope(self.db):
            rows, total = self.tx_repo.list_orders(
                user_id, status=status, limit=limit, offset=offset
            )
            orders = [OrderResponse.model_validate(row) for row in rows]
        return OrderListResponse(orders=orders, total_count=total, limit=limit, offset=offset)

    def get_order(self, order_id: str, user_id: Optional[str] = None) -> OrderResponse:
        with transaction_scope(self.db):
            order = self.tx_repo.get_order(order_id, user_id=user_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            return OrderResponse.model_validate(order)
