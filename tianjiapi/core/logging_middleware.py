import logging
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

logger = logging.getLogger("tianjiapi")

REQUEST_ID_HEADER = "X-Request-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """요청/응답 로그 - 요청 ID 와 처리 시간을 함께 남긴다"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        started = time.perf_counter()
        prefix = f"[{request_id}] {request.method} {request.url.path}"

        logger.info(f"{prefix} from {request.client.host if request.client else '-'}")
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"{prefix} failed with unhandled error")
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        message = f"{prefix} -> {response.status_code} in {elapsed_ms:.1f}ms"
        if response.status_code >= 500:
            logger.error(message)
        elif response.status_code >= 400:
            logger.warning(message)
        else:
            logger.info(message)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
