"""Move validation, application and state checks over raw match states."""

from duelsolitaire.engine.reasons import Reason, ReasonCategory, MoveRejected
from duelsolitaire.engine.moves import Move, MoveKind, Side, Zone, parse_move
from duelsolitaire.engine.schema import SchemaKind, detect_schema, open_board
from duelsolitaire.engine.validator import Verdict, validate_move
from duelsolitaire.engine.applier import ApplyResult, apply_move
from duelsolitaire.engine.invariant import (
    InvariantReport,
    assert_card_conservation,
    snapshot_hash,
    validate_invariant,
)
from duelsolitaire.engine.perspective import project_for_player

__all__ = [
    "Reason",
    "ReasonCategory",
    "MoveRejected",
    "Move",
    "MoveKind",
    "Side",
    "Zone",
    "parse_move",
    "SchemaKind",
    "detect_schema",
    "open_board",
    "Verdict",
    "validate_move",
    "ApplyResult",
    "apply_move",
    "InvariantReport",
    "assert_card_conservation",
    "snapshot_hash",
    "validate_invariant",
    "project_for_player",
]
