import logging
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from tianjiapi.core.exceptions import (
    BaseAPIException,
    ConcurrencyConflictError,
    LedgerIntegrityError,
)
from tianjiapi.database.connection import Database

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, lock_not_available (lock_timeout)
CONCURRENCY_PGCODES = {"40001", "40P01", "55P03"}


def get_db(database: Database):
    db = database.session()
    try:
        yield db
    except Exception:
        if db.in_transaction():
            db.rollback()
        raise
    finally:
        db.close()


def is_concurrency_failure(exc: DBAPIError) -> bool:
    pgcode = getattr(getattr(exc, "orig", None), "pgcode", None)
    return pgcode in CONCURRENCY_PGCODES


@contextmanager
def transaction_scope(db: Session):
    """서비스 연산 하나를 하나의 DB 트랜잭션으로 묶는다

    - 정상 종료 시 commit, 예외 시 rollback 후 재발생
    - 타입이 있는 비즈니스 예외는 그대로 전달
    - 예상하지 못한 제약 위반은 LedgerIntegrityError 로 감싸서 전달
    - 잠금 대기 초과/교착/직렬화 실패는 ConcurrencyConflictError 로 변환
    """
    # 이전 연산에서 적재된 인스턴스를 버리고 DB 에서 다시 읽도록 한다
    db.expire_all()
    try:
        yield db
        db.commit()
    except BaseAPIException:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Unexpected integrity violation, rolled back: {e.orig}")
        raise LedgerIntegrityError(details={"error": str(e.orig)}) from e
    except DBAPIError as e:
        db.rollback()
        if is_concurrency_failure(e):
            logger.warning(f"Concurrency conflict, rolled back: {e.orig}")
            raise ConcurrencyConflictError(
                details={"pgcode": getattr(e.orig, "pgcode", None)}
            ) from e
        raise
    except Exception:
        db.rollback()
        raise
