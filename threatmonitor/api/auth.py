"""
Caller identity.

Identity is owned by the external auth provider; this module only reads
what it hands us: a session user id set by upstream middleware, or the
`sub` claim of a bearer JWT. The token signature is not verified here.
"""
import base64
import binascii
import json
import logging
from typing import Optional

from fastapi import Request

from threatmonitor.core.errors import AuthenticationError

logger = logging.getLogger(__name__)

DEV_USER_ID = "dev-user-123"
LOCAL_HOSTNAMES = {"localhost", "127.0.0.1", "::1", "[::1]"}


def _is_local_request(request: Request) -> bool:
    origin = request.headers.get('origin') or ''
    return 'localhost' in origin or (request.url.hostname or '') in LOCAL_HOSTNAMES


def decode_bearer_subject(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith('Bearer '):
        return None
    token = authorization[len('Bearer '):].strip()
    parts = token.split('.')
    if len(parts) < 2:
        logger.warning("Invalid token format: expected a JWT")
        return None
    
    payload = parts[1] + '=' * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except (binascii.Error, ValueError) as e:
        logger.warning(f"Invalid token format: {e}")
        return None
    
    subject = claims.get('sub') if isinstance(claims, dict) else None
    return str(subject) if subject else None


def resolve_user_id(request: Request, development: bool = False) -> Optional[str]:
    # Non-production convenience: local requests act as a fixed user
    if development and _is_local_request(request):
        logger.debug("Allowing development request as %s", DEV_USER_ID)
        return DEV_USER_ID
    
    session_user = getattr(request.state, 'user_id', None)
    if session_user:
        return str(session_user)
    
    return decode_bearer_subject(request.headers.get('authorization'))


def get_current_user_id(request: Request) -> str:
    """FastAPI dependency: the caller's user id or 401"""
    settings = request.app.state.settings
    user_id = resolve_user_id(request, development=settings.is_development)
    if not user_id:
        raise AuthenticationError()
    return user_id
