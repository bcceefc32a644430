import hmac
import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from signup_guard.api.common.schema import ErrorResponse

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"

_EXEMPT_PATHS = frozenset({"/health", "/openapi.json", "/docs", "/redoc"})


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """Shared-secret guard for the evaluation and review endpoints."""

    def __init__(self, app, api_key: str) -> None:  # noqa: ANN001
        super().__init__(app)
        self._api_key = api_key.encode()

    async def dispatch(self, request: Request, call_next) -> Response:  # noqa: ANN001
        if request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        provided = request.headers.get(API_KEY_HEADER, "").encode()
        if hmac.compare_digest(provided, self._api_key):
            return await call_next(request)

        logger.warning(
            "Rejected request without a valid API key",
            extra={"path": request.url.path, "method": request.method},
        )
        return JSONResponse(
            ErrorResponse(detail="Invalid or missing API key", code="UNAUTHORIZED").model_dump(),
            status_code=401,
        )
