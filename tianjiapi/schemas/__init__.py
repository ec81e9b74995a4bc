from .base import WireModel
from .coins import DeductRequest, DeductResult, LedgerResult, CoinBalanceResponse
from .payment import CreateOrderRequest, PaymentCallbackRequest, SettlementResult
from .checkin import CheckInResult, CheckInStatusResponse
from .admin import AdminAdjustRequest, AdminAdjustResult
