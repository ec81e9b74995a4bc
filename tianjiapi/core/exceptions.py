from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class BaseAPIException(HTTPException):
    """Base exception for API errors"""
    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}

        super().__init__(
            status_code=status_code,
            detail={
                "success": False,
                "error": {
                    "code": error_code,
                    "message": message,
                    "details": self.details
                }
            },
            headers=headers,
        )

    def __str__(self) -> str:  # Ensure str(e) returns the human message
        return self.message


class AuthenticationError(BaseAPIException):
    """Authentication related errors"""
    def __init__(self, message: str = "Authentication failed", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="AUTH_001",
            message=message,
            details=details,
            headers={"WWW-Authenticate": "Bearer"},
        )


class PermissionDeniedError(BaseAPIException):
    """Caller lacks the capability required for the operation"""
    def __init__(self, message: str = "Admin access required", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="AUTH_002",
            message=message,
            details=details
        )


class ValidationError(BaseAPIException):
    """Validation errors"""
    def __init__(self, message: str = "Validation failed", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_001",
            message=message,
            details=details
        )


class UserNotFoundError(BaseAPIException):
    """Target profile does not exist"""
    def __init__(self, user_id: str, message: str = "User not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="USER_001",
            message=message,
            details={"user_id": user_id}
        )


class InsufficientFundsError(BaseAPIException):
    """Debit exceeds the available bucket balance"""
    def __init__(self, required: int, available: int, bucket: str = "general"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="BALANCE_001",
            message="Insufficient balance",
            details={"required": required, "available": available, "bucket": bucket}
        )


class AlreadyCheckedInError(BaseAPIException):
    """Duplicate check-in for the same calendar date"""
    def __init__(self, check_in_date: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error_code="CHECKIN_001",
            message="Already checked in today",
            details={"check_in_date": check_in_date}
        )


class OrderNotFoundError(BaseAPIException):
    """Payment order does not exist (or is not visible to the caller)"""
    def __init__(self, order_id: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="ORDER_001",
            message="Order not found",
            details={"order_id": order_id}
        )


class OrderAlreadyTerminalError(BaseAPIException):
    """Attempt to re-settle an order that already reached a terminal state"""
    def __init__(self, order_id: str, current_status: str, requested_status: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error_code="ORDER_002",
            message=f"Order already {current_status}",
            details={
                "order_id": order_id,
                "current_status": current_status,
                "requested_status": requested_status,
            }
        )


class ConflictError(BaseAPIException):
    """Resource conflict errors"""
    def __init__(self, message: str = "Resource conflict", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error_code="CONFLICT_001",
            message=message,
            details=details
        )


class ConcurrencyConflictError(BaseAPIException):
    """Lock wait timeout, deadlock or serialization failure; safe to retry"""
    def __init__(self, message: str = "Concurrent update in progress, please retry", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error_code="CONCURRENCY_001",
            message=message,
            details=details
        )


class LedgerIntegrityError(BaseAPIException):
    """Unexpected constraint violation while writing the ledger"""
    def __init__(self, message: str = "Ledger write rejected by database", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="LEDGER_001",
            message=message,
            details=details
        )


class InternalServerError(BaseAPIException):
    """Internal server errors"""
    def __init__(self, message: str = "Internal server error", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="INTERNAL_001",
            message=message,
            details=details
        )
