import time

from starlette.middleware.base import BaseHTTPMiddleware

from cvbuilder.core.logging import get_logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every API request and its response (ENABLE_REQUEST_LOGGING)."""

    def __init__(self, app, enabled: bool = False):
        super().__init__(app)
        self.enabled = enabled
        self.logger = get_logger("RequestLogger")

    async def dispatch(self, request, call_next):
        if not self.enabled:
            return await call_next(request)

        start = time.perf_counter()
        self.logger.info(
            "API Request",
            extra={"meta": {
                "method": request.method,
                "path": request.url.path,
                "user_agent": request.headers.get("user-agent"),
            }},
        )

        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start) * 1000)

        log = self.logger.warning if response.status_code >= 400 else self.logger.info
        log(
            "API Response",
            extra={"meta": {
                "method": request.method,
                "path": request.url.path,
                "user_id": getattr(request.state, "user_id", None),
                "status": response.status_code,
                "duration_ms": duration_ms,
            }},
        )
        return response
