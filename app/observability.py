import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.metrics import REQUEST_COUNT, REQUEST_ERRORS, REQUEST_LATENCY

logger = logging.getLogger(__name__)

ADMIN_ID_HEADER = "x-admin-id"


def _request_path(request: Request) -> str:
    route = request.scope.get("route")
    if route and hasattr(route, "path"):
        return route.path
    return request.url.path


def _record(request: Request, status_code: int, start: float) -> tuple[str, float]:
    duration_ms = (time.monotonic() - start) * 1000.0
    path = _request_path(request)
    REQUEST_COUNT.labels(request.method, path, str(status_code)).inc()
    REQUEST_LATENCY.labels(request.method, path, str(status_code)).observe(
        duration_ms / 1000.0
    )
    if status_code >= 500:
        REQUEST_ERRORS.labels(request.method, path, str(status_code)).inc()
    return path, duration_ms


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        admin_id = request.headers.get(ADMIN_ID_HEADER)
        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            path, duration_ms = _record(request, 500, start)
            logger.exception(
                "request_failed",
                extra={
                    "request_id": request_id,
                    "admin_id": admin_id,
                    "path": path,
                    "method": request.method,
                    "status": 500,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            raise
        path, duration_ms = _record(request, response.status_code, start)
        logger.info(
            "request_completed",
            extra={
                "request_id": request_id,
                "admin_id": admin_id,
                "path": path,
                "method": request.method,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        response.headers["x-request-id"] = request_id
        return response
