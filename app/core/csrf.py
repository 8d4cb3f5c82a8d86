"""
CSRF double-submit protection.

1. On login the server generates a random token.
2. Its SHA-256 hash goes into an HttpOnly cookie; the raw token goes
   back in the response body.
3. The client echoes the raw token in the ``x-csrf-token`` header.
4. State-changing admin requests are accepted only if
   ``sha256(header) == cookie``.

The raw token is never stored server-side.
"""

import hmac
import secrets

from starlette.requests import Request
from starlette.responses import Response

from app.core.security import hash_token

CSRF_COOKIE_NAME = "csrf_token"
CSRF_HEADER_NAME = "x-csrf-token"
CSRF_COOKIE_MAX_AGE = 24 * 60 * 60

PROTECTED_METHODS = frozenset({"POST", "PUT", "DELETE", "PATCH"})
EXEMPT_PATHS = frozenset({"/api/auth/login", "/api/v1/auth/login"})


def generate_csrf_token() -> str:
    return secrets.token_hex(32)


def set_csrf_cookie(response: Response, token: str) -> str:
    """Store the hash of ``token`` in the cookie and return the raw token."""
    response.set_cookie(
        CSRF_COOKIE_NAME,
        hash_token(token),
        max_age=CSRF_COOKIE_MAX_AGE,
        path="/",
        secure=True,
        httponly=True,
        samesite="none",
    )
    return token


def issue_csrf_token(response: Response) -> dict[str, str]:
    """Generate a token, set its cookie, and return the body fields for the client."""
    token = set_csrf_cookie(response, generate_csrf_token())
    return {"csrfToken": token, "csrfHeader": CSRF_HEADER_NAME}


def requires_csrf(method: str, path: str) -> bool:
    return method.upper() in PROTECTED_METHODS and path not in EXEMPT_PATHS


def validate_csrf(request: Request) -> bool:
    client_token = request.headers.get(CSRF_HEADER_NAME)
    if not client_token:
        return False
    cookie_token = request.cookies.get(CSRF_COOKIE_NAME)
    if not cookie_token:
        return False
    return hmac.compare_digest(
        hash_token(client_token).encode("utf-8"),
        cookie_token.encode("utf-8"),
    )
