# src/duelsolitaire/web/security.py
"""Request identity and admin access checks for the match API."""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import HTTPException, Request

LOCAL_ADDRESSES = ("127.0.0.1", "::1", "localhost")


def get_real_ip(request: Request) -> str:
    """Client address for rate limiting, honouring a reverse proxy.

    The forwarded chain is client-supplied, so this is only fit for keying
    rate limits. Never use it for access decisions.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For: client, proxy1, proxy2
        return forwarded.split(",")[0].strip()
    return peer_address(request)


def peer_address(request: Request) -> str:
    """Address of the socket peer, ignoring any forwarding headers."""
    if request.client is None:
        return "0.0.0.0"
    return request.client.host


def is_local_request(request: Request) -> bool:
    """True only for a direct, unproxied connection from this host."""
    if request.headers.get("X-Forwarded-For"):
        return False
    return peer_address(request) in LOCAL_ADDRESSES


async def verify_admin(
    request: Request,
    api_key: Optional[str],
    expected_key: Optional[str],
) -> bool:
    """Allow admin routes for a matching X-Admin-Key or a direct local caller.

    Raises:
        HTTPException: 403 if neither holds
    """
    if expected_key and api_key and hmac.compare_digest(api_key, expected_key):
        return True

    if is_local_request(request):
        return True

    raise HTTPException(status_code=403, detail="Admin access denied")
