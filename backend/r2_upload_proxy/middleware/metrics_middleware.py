"""
ASGI middleware for tracking HTTP request metrics.
Records request count, duration, and errors.

Written as plain ASGI rather than BaseHTTPMiddleware so the upload handler
sees the server's own receive channel (body errors and client disconnects
reach it unchanged).
"""
import time
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from r2_upload_proxy.utils.metrics import http_requests_total, http_request_duration_seconds, errors_total

KNOWN_PATHS = {"/upload"}


class MetricsMiddleware:
    """Middleware to track HTTP metrics for Prometheus."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        method = scope["method"]
        # Unknown paths are collapsed to avoid high cardinality
        path = scope["path"] if scope["path"] in KNOWN_PATHS else "other"
        status_code = 500

        async def send_wrapper(message: Message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            errors_total.labels(error_type="exception").inc()
            raise
        finally:
            http_requests_total.labels(
                method=method,
                path=path,
                status=status_code
            ).inc()
            http_request_duration_seconds.labels(
                method=method,
                path=path
            ).observe(time.time() - start_time)

        # Track errors (4xx and 5xx)
        if status_code >= 400:
            errors_total.labels(error_type=f"{status_code // 100}xx").inc()
