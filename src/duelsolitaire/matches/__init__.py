"""Match directory, revisions and the authoritative move gate."""

from duelsolitaire.matches.models import (
    GateResult,
    Match,
    MatchError,
    MatchStatus,
    Player,
    Snapshot,
    ValidationResult,
)
from duelsolitaire.matches.store import MatchStore

__all__ = [
    "GateResult",
    "Match",
    "MatchError",
    "MatchStatus",
    "MatchStore",
    "Player",
    "Snapshot",
    "ValidationResult",
]
