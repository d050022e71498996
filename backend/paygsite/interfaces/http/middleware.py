from time import perf_counter
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from paygsite.infrastructure.logging.context import reset_request_id, set_request_id
from paygsite.infrastructure.observability.metrics import record_request

REQUEST_ID_HEADER = "X-Request-ID"


def _route_label(request: Request) -> str:
    # Job and tenant ids stay out of metric labels.
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a request id for logs and error envelopes and records request metrics."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
        token = set_request_id(request_id)
        started_at = perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            record_request(
                method=request.method,
                path=_route_label(request),
                status_code=status_code,
                duration_seconds=perf_counter() - started_at,
            )
            reset_request_id(token)
