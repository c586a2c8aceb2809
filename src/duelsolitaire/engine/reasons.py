"""Closed set of move outcome codes.

The string value of each member is the code clients see on the wire.
"""

from __future__ import annotations

from enum import Enum


class ReasonCategory(Enum):
    """Coarse grouping of reason codes for logging and UI."""

    STRUCTURAL = "structural"
    RULE = "rule"
    IDENTITY = "identity"
    EMPTY_PILE = "empty_pile"
    CORRUPTION = "corruption"
    LIFECYCLE = "lifecycle"


class Reason(str, Enum):
    """Why a move was rejected or a state was flagged."""

    # Structural
    STATE_MISSING = "state_missing"
    UNSUPPORTED_STATE_SCHEMA = "unsupported_state_schema"
    BAD_MOVE = "bad_move"
    BAD_FROM = "bad_from"
    BAD_TO = "bad_to"
    BAD_PILES = "bad_piles"
    BAD_FOUNDATION = "bad_foundation"
    BAD_COUNT = "bad_count"

    # Rule violations
    FOUNDATION_REQUIRES_ACE = "foundation_requires_ace"
    FOUNDATION_SUIT_MISMATCH = "foundation_suit_mismatch"
    FOUNDATION_RANK_NOT_NEXT = "foundation_rank_not_next"
    TABLEAU_EMPTY_REQUIRES_KING = "tableau_empty_requires_king"
    TABLEAU_COLOR_SAME = "tableau_color_same"
    TABLEAU_RANK_NOT_DESC = "tableau_rank_not_desc"
    CARD_FACE_DOWN = "card_face_down"

    # Identity drift
    CARD_NOT_ON_TOP = "card_not_on_top"
    FROM_EMPTY = "from_empty"

    # Empty pile
    STOCK_EMPTY = "stock_empty"
    STOCK_NOT_EMPTY = "stock_not_empty"
    WASTE_EMPTY = "waste_empty"
    FLIP_NO_CARDS = "flip_no_cards"
    FLIP_NOT_NEEDED = "flip_not_needed"

    # Corruption (advisory, never blocks a move)
    UNKNOWN_CARD_IDS_PRESENT = "unknown_card_ids_present"
    DUPLICATE_CARD_IDS = "duplicate_card_ids"
    MISSING_CARDS = "missing_cards"
    INVARIANT_CHECK_FAILED = "invariant_check_failed"

    # Match lifecycle
    MATCH_NOT_FOUND = "match_not_found"
    MATCH_FULL = "match_full"
    MATCH_FINISHED = "match_finished"

    @property
    def category(self) -> ReasonCategory:
        return _CATEGORIES[self]

    def __str__(self) -> str:
        return self.value


_CATEGORIES = {
    Reason.STATE_MISSING: ReasonCategory.STRUCTURAL,
    Reason.UNSUPPORTED_STATE_SCHEMA: ReasonCategory.STRUCTURAL,
    Reason.BAD_MOVE: ReasonCategory.STRUCTURAL,
    Reason.BAD_FROM: ReasonCategory.STRUCTURAL,
    Reason.BAD_TO: ReasonCategory.STRUCTURAL,
    Reason.BAD_PILES: ReasonCategory.STRUCTURAL,
    Reason.BAD_FOUNDATION: ReasonCategory.STRUCTURAL,
    Reason.BAD_COUNT: ReasonCategory.STRUCTURAL,
    Reason.FOUNDATION_REQUIRES_ACE: ReasonCategory.RULE,
    Reason.FOUNDATION_SUIT_MISMATCH: ReasonCategory.RULE,
    Reason.FOUNDATION_RANK_NOT_NEXT: ReasonCategory.RULE,
    Reason.TABLEAU_EMPTY_REQUIRES_KING: ReasonCategory.RULE,
    Reason.TABLEAU_COLOR_SAME: ReasonCategory.RULE,
    Reason.TABLEAU_RANK_NOT_DESC: ReasonCategory.RULE,
    Reason.CARD_FACE_DOWN: ReasonCategory.RULE,
    Reason.CARD_NOT_ON_TOP: ReasonCategory.IDENTITY,
    Reason.FROM_EMPTY: ReasonCategory.IDENTITY,
    Reason.STOCK_EMPTY: ReasonCategory.EMPTY_PILE,
    Reason.STOCK_NOT_EMPTY: ReasonCategory.EMPTY_PILE,
    Reason.WASTE_EMPTY: ReasonCategory.EMPTY_PILE,
    Reason.FLIP_NO_CARDS: ReasonCategory.EMPTY_PILE,
    Reason.FLIP_NOT_NEEDED: ReasonCategory.EMPTY_PILE,
    Reason.UNKNOWN_CARD_IDS_PRESENT: ReasonCategory.CORRUPTION,
    Reason.DUPLICATE_CARD_IDS: ReasonCategory.CORRUPTION,
    Reason.MISSING_CARDS: ReasonCategory.CORRUPTION,
    Reason.INVARIANT_CHECK_FAILED: ReasonCategory.CORRUPTION,
    Reason.MATCH_NOT_FOUND: ReasonCategory.LIFECYCLE,
    Reason.MATCH_FULL: ReasonCategory.LIFECYCLE,
    Reason.MATCH_FINISHED: ReasonCategory.LIFECYCLE,
}


class MoveRejected(Exception):
    """Raised while resolving a move; converted to a result at the API edge."""

    def __init__(self, reason: Reason, detail: str = ""):
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)
        self.reason = reason
        self.detail = detail
