"""Card identity, seeded shuffling and Klondike dealing."""

from duelsolitaire.cards.model import (
    Card,
    Suit,
    SUIT_ORDER,
    ACE,
    KING,
    normalize_suit,
    looks_like_card_id,
)
from duelsolitaire.cards.deal import (
    ShuffleMode,
    BoardLayout,
    build_initial_state,
    seeded_random,
    shuffle,
)

__all__ = [
    "Card",
    "Suit",
    "SUIT_ORDER",
    "ACE",
    "KING",
    "normalize_suit",
    "looks_like_card_id",
    "ShuffleMode",
    "BoardLayout",
    "build_initial_state",
    "seeded_random",
    "shuffle",
]
