"""HTTP adapter over the match store."""

from duelsolitaire.web.app import create_app
from duelsolitaire.web.dependencies import get_store, reset_store

__all__ = [
    "create_app",
    "get_store",
    "reset_store",
]
