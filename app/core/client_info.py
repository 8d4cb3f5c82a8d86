"""Caller metadata helpers (IP address and user agent)."""

from starlette.requests import Request


def get_client_ip(request: Request) -> str:
    """Best guess at the caller's IP, preferring the edge proxy's header."""
    headers = request.headers
    ip = headers.get("cf-connecting-ip") or headers.get("x-real-ip")
    if ip:
        return ip.strip()
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def get_user_agent(request: Request) -> str:
    return request.headers.get("user-agent") or "unknown"
