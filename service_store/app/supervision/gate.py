"""
Availability gate middleware.
"""

from typing import Callable, Iterable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from shared.errors import ServiceUnavailableError
from shared.logging import get_logger


UNAVAILABLE_MESSAGE = "Database is not connected yet. Please retry shortly."


class AvailabilityGate(BaseHTTPMiddleware):
    """Reject requests under the data API with 503 while the store is not ready.

    Requests are never queued or retried here; retrying belongs to the client.
    """

    def __init__(self, app, readiness: Callable[[], bool], protected_prefixes: Iterable[str]):
        super().__init__(app)
        self.readiness = readiness
        self.protected_prefixes = tuple(protected_prefixes)
        self.logger = get_logger("store.availability_gate")

    def is_protected(self, path: str) -> bool:
        return any(
            path == prefix or path.startswith(prefix + "/")
            for prefix in self.protected_prefixes
        )

    async def dispatch(self, request: Request, call_next):
        if request.method != "OPTIONS" and self.is_protected(request.url.path) and not self.readiness():
            self.logger.warning(
                "Rejecting request, store unavailable",
                method=request.method,
                path=request.url.path
            )
            error = ServiceUnavailableError(UNAVAILABLE_MESSAGE)
            return JSONResponse(
                status_code=error.status_code,
                content=error.to_response().model_dump(),
                headers={"Retry-After": "2"}
            )
        return await call_next(request)
