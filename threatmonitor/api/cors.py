"""
CORS with a fixed allow-list.

The caller's Origin is echoed back when allowed; any other origin gets the
primary (first) allowed origin. Preflight requests are answered here.
"""
from typing import List, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

ALLOW_METHODS = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization, x-clerk-auth-token"
PREFLIGHT_MAX_AGE = "86400"


def get_cors_origin(origin: Optional[str], allowed_origins: List[str]) -> str:
    if origin and origin in allowed_origins:
        return origin
    return allowed_origins[0]


def cors_headers(origin: Optional[str], allowed_origins: List[str]) -> dict:
    return {
        'Access-Control-Allow-Origin': get_cors_origin(origin, allowed_origins),
        'Access-Control-Allow-Credentials': 'true',
        'Access-Control-Allow-Methods': ALLOW_METHODS,
        'Access-Control-Allow-Headers': ALLOW_HEADERS,
        'Vary': 'Origin',
    }


class AllowListCORSMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, allowed_origins: List[str]):
        super().__init__(app)
        if not allowed_origins:
            raise ValueError("At least one allowed CORS origin is required")
        self.allowed_origins = list(allowed_origins)

    async def dispatch(self, request: Request, call_next) -> Response:
        origin = request.headers.get('origin')
        
        if request.method == 'OPTIONS':
            headers = cors_headers(origin, self.allowed_origins)
            headers['Access-Control-Max-Age'] = PREFLIGHT_MAX_AGE
            return Response(status_code=204, headers=headers)
        
        response = await call_next(request)
        response.headers.update(cors_headers(origin, self.allowed_origins))
        return response
