import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from alertboard.errors import ExternalServiceError

logger = structlog.get_logger()


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except ExternalServiceError as exc:
            logger.error("upstream_error", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
            return JSONResponse(
                status_code=502,
                content={"detail": "Upstream service error"},
            )
        except Exception as exc:
            logger.error("unhandled_error", path=request.url.path, error=str(exc))
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error"},
            )
