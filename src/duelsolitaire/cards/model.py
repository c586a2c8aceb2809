"""Card identity, suits and the wire representation of a card."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class Suit(Enum):
    """Playing card suits (glyph form is canonical on the wire)."""

    SPADES = "♠"
    HEARTS = "♥"
    DIAMONDS = "♦"
    CLUBS = "♣"

    @property
    def is_red(self) -> bool:
        return self in (Suit.HEARTS, Suit.DIAMONDS)

    @property
    def letter(self) -> str:
        return _LETTERS[self]


_LETTERS = {
    Suit.SPADES: "S",
    Suit.HEARTS: "H",
    Suit.DIAMONDS: "D",
    Suit.CLUBS: "C",
}

_SUIT_ALIASES = {
    "S": Suit.SPADES,
    "H": Suit.HEARTS,
    "D": Suit.DIAMONDS,
    "C": Suit.CLUBS,
    "SPADES": Suit.SPADES,
    "HEARTS": Suit.HEARTS,
    "DIAMONDS": Suit.DIAMONDS,
    "CLUBS": Suit.CLUBS,
}

# Lane/suit order used by every dealt board: ♠ ♥ ♦ ♣
SUIT_ORDER: tuple[Suit, ...] = (Suit.SPADES, Suit.HEARTS, Suit.DIAMONDS, Suit.CLUBS)

ACE = 0
KING = 12
RANK_LABELS = ("A", "2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K")

CARD_ID_PATTERN = re.compile(r"^[A-Za-z]-\d+-(?:[♠♥♦♣]\ufe0f?|[SHDC])-\d{1,2}$")


def normalize_suit(value: Any) -> Optional[Suit]:
    """Map a legacy letter code, a glyph (with or without VS16) or a Suit to Suit."""
    if isinstance(value, Suit):
        return value
    if not isinstance(value, str) or not value:
        return None
    token = value.replace("\ufe0f", "").strip()
    for suit in Suit:
        if token == suit.value:
            return suit
    return _SUIT_ALIASES.get(token.upper())


def looks_like_card_id(value: Any) -> bool:
    return isinstance(value, str) and bool(CARD_ID_PATTERN.match(value))


def owner_of_card_id(card_id: Any) -> Optional[str]:
    """Return the owner tag ("Y" or "O") encoded in a card id, if any."""
    if not isinstance(card_id, str):
        return None
    if card_id.startswith("Y-"):
        return "Y"
    if card_id.startswith("O-"):
        return "O"
    return None


@dataclass(frozen=True)
class Card:
    """Immutable playing card as dealt."""

    id: str
    suit: Suit
    rank: int
    face_up: bool = False

    def __str__(self) -> str:
        return f"{RANK_LABELS[self.rank]}{self.suit.value}"

    def to_dict(self) -> dict[str, Any]:
        """Wire form consumed by clients and by the engine."""
        return {
            "id": self.id,
            "suit": self.suit.value,
            "rank": self.rank,
            "faceUp": self.face_up,
        }


# Helpers over wire (dict) cards. The engine mutates these in place.


def card_id(card: Any) -> Optional[str]:
    if isinstance(card, dict):
        for key in ("id", "cardId", "cid", "code"):
            value = card.get(key)
            if isinstance(value, str):
                return value
        return None
    if isinstance(card, str):
        return card
    return None


def card_suit(card: Any) -> Optional[Suit]:
    if isinstance(card, dict):
        return normalize_suit(card.get("suit"))
    return None


def card_rank(card: Any) -> Optional[int]:
    if not isinstance(card, dict):
        return None
    rank = card.get("rank")
    if isinstance(rank, bool) or not isinstance(rank, int):
        return None
    if ACE <= rank <= KING:
        return rank
    return None


def is_face_up(card: Any) -> bool:
    if not isinstance(card, dict):
        return False
    if "faceUp" in card:
        return bool(card["faceUp"])
    return bool(card.get("up", False))


def set_face_up(card: dict[str, Any], face_up: bool) -> None:
    card["faceUp"] = face_up
    # Older clients read `up`
    if "up" in card:
        card["up"] = face_up


def is_red(card: Any) -> bool:
    suit = card_suit(card)
    return suit is not None and suit.is_red


def describe_card(card: Any) -> str:
    rank = card_rank(card)
    suit = card_suit(card)
    if rank is None or suit is None:
        return f"?{card_id(card) or ''}"
    return f"{RANK_LABELS[rank]}{suit.value}"
