"""Debug logging of API requests and their responses."""

import io
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src import log

__all__ = ["RequestLoggingMiddleware"]

BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
TEXT_CONTENT_TYPES = ("application/json", "application/x-www-form-urlencoded", "text/")
MAX_BODY_LENGTH = 1000


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, target, status, duration and a preview of the request body."""

    async def _describe_body(self, request: Request) -> str | None:
        if request.method not in BODY_METHODS:
            return None
        try:
            raw = await request.body()
        except Exception as e:
            return f"<error reading body: {e}>"
        if not raw:
            return None

        # Keep the raw payload reachable for handlers reading the scope
        request.scope["body"] = io.BytesIO(raw)

        content_type = request.headers.get("content-type", "")
        if not content_type.startswith(TEXT_CONTENT_TYPES):
            return f"<{content_type or 'unknown'}, {len(raw)} bytes>"
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            return f"<binary data, {len(raw)} bytes>"
        if len(text) > MAX_BODY_LENGTH:
            text = text[:MAX_BODY_LENGTH] + "..."
        return text

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Log the request once its response is known."""
        target = request.url.path
        if request.url.query:
            target += f"?{request.url.query}"
        body = await self._describe_body(request)
        suffix = f" | Body: {body}" if body is not None else ""

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = (time.perf_counter() - start) * 1000
            log.debug(
                f"Web: {request.method} {target} - Failed after {elapsed:.1f}ms: "
                f"{e}{suffix}"
            )
            raise

        elapsed = (time.perf_counter() - start) * 1000
        log.debug(
            f"Web: {request.method} {target} - Response: {response.status_code} "
            f"({elapsed:.1f}ms){suffix}"
        )
        return response
