"""Deterministic seeded shuffle and Klondike dealing.

The generator reproduces the browser client's deal bit for bit: the seed
string is hashed with xmur3 and the 32-bit result drives a mulberry32
stream, consumed by a descending Fisher-Yates shuffle. Two servers (or a
server and a client) given the same seed and mode produce identical boards.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Optional

from duelsolitaire.cards.model import Card, SUIT_ORDER, KING, ACE

MASK32 = 0xFFFFFFFF
TABLEAU_COLUMNS = 7
DECK_SIZE = 52


class ShuffleMode(Enum):
    """How the two boards of a duel derive their decks."""

    SHARED = "shared"  # one base sequence, dealt alternately to both sides
    SPLIT = "split"  # each side salted by owner, independent boards


class BoardLayout(Enum):
    """Which wire schema a fresh deal is emitted in."""

    LEGACY_ROOT = "legacy_root"
    V1_SIDED = "v1_sided"


def _imul(a: int, b: int) -> int:
    return (a * b) & MASK32


def _utf16_units(text: str) -> list[int]:
    raw = text.encode("utf-16-le")
    return [int.from_bytes(raw[i:i + 2], "little") for i in range(0, len(raw), 2)]


def xmur3(text: str) -> Callable[[], int]:
    """String hash producing a stream of 32-bit seeds."""
    units = _utf16_units(text)
    h = (1779033703 ^ len(units)) & MASK32
    for unit in units:
        h = _imul(h ^ unit, 3432918353)
        h = ((h << 13) | (h >> 19)) & MASK32

    def next_seed() -> int:
        nonlocal h
        h = _imul(h ^ (h >> 16), 2246822507)
        h = _imul(h ^ (h >> 13), 3266489909)
        return (h ^ (h >> 16)) & MASK32

    return next_seed


def mulberry32(seed: int) -> Callable[[], float]:
    """Uniform floats in [0, 1) from a 32-bit state."""
    state = seed & MASK32

    def next_float() -> float:
        nonlocal state
        state = (state + 0x6D2B79F5) & MASK32
        t = _imul(state ^ (state >> 15), state | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & MASK32
        return ((t ^ (t >> 14)) & MASK32) / 4294967296

    return next_float


def seeded_random(seed: str) -> Callable[[], float]:
    return mulberry32(xmur3(seed or "")())


def shuffle(items: list[Any], rnd: Callable[[], float]) -> list[Any]:
    """Return a shuffled copy (descending Fisher-Yates)."""
    out = list(items)
    for i in range(len(out) - 1, 0, -1):
        j = int(rnd() * (i + 1))
        out[i], out[j] = out[j], out[i]
    return out


def fresh_deck(tag: str, copies: int = 1) -> list[Card]:
    """Unshuffled deck(s) in suit order, ranks Ace..King."""
    cards = []
    for d in range(copies):
        for suit in SUIT_ORDER:
            for rank in range(ACE, KING + 1):
                cards.append(Card(id=f"{tag}-{d}-{suit.value}-{rank}", suit=suit, rank=rank))
    return cards


def _retag(cards: list[Card], owner: str) -> list[Card]:
    return [
        Card(id=f"{owner}-{i}-{c.suit.value}-{c.rank}", suit=c.suit, rank=c.rank)
        for i, c in enumerate(cards)
    ]


def deal_klondike(deck: list[Card]) -> dict[str, Any]:
    """Deal the triangular layout: column p gets p+1 cards, last one face-up."""
    tableau: list[list[dict[str, Any]]] = [[] for _ in range(TABLEAU_COLUMNS)]
    i = 0
    for p in range(TABLEAU_COLUMNS):
        for k in range(p + 1):
            card = deck[i].to_dict()
            card["faceUp"] = k == p
            tableau[p].append(card)
            i += 1
    stock = [c.to_dict() for c in deck[i:]]
    return {"stock": stock, "waste": [], "tableau": tableau}


def empty_foundations(lanes: int) -> list[dict[str, Any]]:
    return [{"suit": SUIT_ORDER[i % 4].value, "cards": []} for i in range(lanes)]


def side_decks(seed: str, mode: ShuffleMode) -> tuple[list[Card], list[Card]]:
    """Build the `you` (Y) and `opp` (O) decks for a dual-board match."""
    if mode is ShuffleMode.SHARED:
        base = shuffle(fresh_deck("B", copies=2), seeded_random(seed))
        you: list[Card] = []
        opp: list[Card] = []
        for i, c in enumerate(base):
            if i % 2 == 0:
                you.append(Card(id=f"Y-{i}-{c.suit.value}-{c.rank}", suit=c.suit, rank=c.rank))
            else:
                opp.append(Card(id=f"O-{i}-{c.suit.value}-{c.rank}", suit=c.suit, rank=c.rank))
        return you, opp

    you = shuffle(_retag(fresh_deck("Y"), "Y"), seeded_random(f"{seed}|Y"))
    opp = shuffle(_retag(fresh_deck("O"), "O"), seeded_random(f"{seed}|O"))
    return you, opp


def build_initial_state(
    seed: str,
    layout: BoardLayout = BoardLayout.V1_SIDED,
    mode: ShuffleMode = ShuffleMode.SHARED,
) -> dict[str, Any]:
    """Deal a brand new authoritative state for a match."""
    if layout is BoardLayout.LEGACY_ROOT:
        deck = shuffle(_retag(fresh_deck("Y"), "Y"), seeded_random(seed))
        board = deal_klondike(deck)
        return {
            "seed": seed,
            "shuffleMode": mode.value,
            "foundations": empty_foundations(4),
            "tableau": board["tableau"],
            "stock": board["stock"],
            "waste": [],
            "moves": 0,
            "expectedTotalCards": DECK_SIZE,
        }

    you_deck, opp_deck = side_decks(seed, mode)
    return {
        "seed": seed,
        "shuffleMode": mode.value,
        "you": deal_klondike(you_deck),
        "opp": deal_klondike(opp_deck),
        "foundations": empty_foundations(8),
        "moves": 0,
        "over": False,
        "expectedTotalCards": 2 * DECK_SIZE,
    }


def parse_shuffle_mode(value: Optional[str], default: ShuffleMode = ShuffleMode.SHARED) -> ShuffleMode:
    if value is None:
        return default
    try:
        return ShuffleMode(value)
    except ValueError:
        raise ValueError(f"Unknown shuffle mode: {value!r}") from None
