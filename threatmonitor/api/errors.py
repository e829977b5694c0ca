import logging
import math
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from threatmonitor.api.cors import cors_headers
from threatmonitor.core.errors import ConfigurationError, RateLimitError, ThreatMonitorError

logger = logging.getLogger(__name__)


def error_response(message: str, status_code: int, headers: dict = None, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra}, headers=headers)


async def threat_monitor_error_handler(request: Request, exc: ThreatMonitorError) -> JSONResponse:
    if isinstance(exc, ConfigurationError):
        logger.error(f"❌ Provider configuration error on {request.url.path}: {exc.message}")
        return error_response(ConfigurationError.public_message, exc.status_code)
    
    if isinstance(exc, RateLimitError) and exc.reset_time is not None:
        now = datetime.now(exc.reset_time.tzinfo)
        retry_after = max(0, math.ceil((exc.reset_time - now).total_seconds()))
        return error_response(
            exc.message,
            exc.status_code,
            headers={"Retry-After": str(retry_after)},
            resetTime=exc.reset_time.isoformat()
        )
    
    return error_response(exc.message, exc.status_code)


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = errors[0].get("msg") if errors else "Invalid request body"
    return error_response(f"Invalid request body: {detail}", 400)


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"❌ Unhandled error on {request.url.path}")
    # Outside the CORS middleware here, so add the headers directly
    headers = cors_headers(request.headers.get("origin"), request.app.state.settings.CORS_ALLOWED_ORIGINS)
    return error_response("Internal server error", 500, headers=headers)


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(ThreatMonitorError, threat_monitor_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
