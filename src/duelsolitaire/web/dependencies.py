"""FastAPI dependency injection."""

from __future__ import annotations

import os

from fastapi import Header, Request

from duelsolitaire.config import ENV_PREFIX, EngineConfig
from duelsolitaire.matches.store import MatchStore
from duelsolitaire.web.security import verify_admin as _verify_admin


# Singleton store instance
_store: MatchStore | None = None


def get_store() -> MatchStore:
    """Get the process-wide match store."""
    global _store
    if _store is None:
        _store = MatchStore(EngineConfig.from_env())
    return _store


def reset_store(store: MatchStore | None = None) -> None:
    """Replace the singleton (tests, or a config reload)."""
    global _store
    _store = store


async def verify_admin_dependency(
    request: Request,
    x_admin_key: str | None = Header(None),
) -> bool:
    """Dependency for admin-only routes."""
    expected_key = get_store().config.admin_key or os.environ.get(ENV_PREFIX + "ADMIN_KEY")
    return await _verify_admin(request, x_admin_key, expected_key)
