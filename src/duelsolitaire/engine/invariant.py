"""Card conservation checks and snapshot fingerprints.

Both checks are advisory: they flag and log, they never block or repair.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional

from duelsolitaire.cards.model import card_id, looks_like_card_id
from duelsolitaire.engine.reasons import MoveRejected, Reason
from duelsolitaire.engine.schema import SchemaKind, detect_schema, open_board

logger = logging.getLogger(__name__)

ID_KEYS = ("cardId", "id", "cid", "code")
CARD_KEYS = ("rank", "suit")
SINGLE_DECK = 52
DUAL_DECK = 104

FNV_OFFSET = 2166136261
FNV_PRIME = 16777619
UNHASHABLE = "--------"


def snapshot_hash(state: Any) -> str:
    """Cheap order-dependent FNV-1a fingerprint of a state (not for security)."""
    payload = json.dumps(state, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    h = FNV_OFFSET
    for byte in payload.encode("utf-8"):
        h ^= byte
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return f"{h:08x}"


def expected_total_for(state: Any) -> int:
    if isinstance(state, dict):
        explicit = state.get("expectedTotalCards")
        if isinstance(explicit, int) and not isinstance(explicit, bool) and explicit > 0:
            return explicit
        kind = detect_schema(state)
        if kind is SchemaKind.LEGACY_ROOT:
            return SINGLE_DECK
        if kind is SchemaKind.V1_SIDED or "you" in state:
            return DUAL_DECK
    return SINGLE_DECK


def _is_placeholder(value: str) -> bool:
    return "UNK" in value.upper() or not looks_like_card_id(value)


@dataclass
class CardIdScan:
    ids: list[str] = field(default_factory=list)
    unknown: list[str] = field(default_factory=list)
    nodes: int = 0
    truncated: bool = False


def collect_card_ids(root: Any, max_depth: int = 12, node_cap: int = 20000) -> CardIdScan:
    """Walk an arbitrary state graph and capture every card id once.

    An object's id field is captured when the object is visited and is not
    visited again as a string leaf; bare id strings in lists are captured as
    leaves. Cycles and runaway graphs are cut off by identity tracking and
    the node cap.
    """
    scan = CardIdScan()
    seen: set[int] = set()
    stack: list[tuple[Any, int]] = [(root, 0)]

    while stack:
        node, depth = stack.pop()
        if depth > max_depth:
            continue
        if isinstance(node, str):
            if looks_like_card_id(node):
                scan.ids.append(node)
            continue
        if not isinstance(node, (dict, list)):
            continue
        if id(node) in seen:
            continue
        seen.add(id(node))
        scan.nodes += 1
        if scan.nodes > node_cap:
            scan.truncated = True
            break

        if isinstance(node, list):
            stack.extend((item, depth + 1) for item in node)
            continue

        card_like = any(k in node for k in CARD_KEYS)
        for key in ID_KEYS:
            value = node.get(key)
            if isinstance(value, str) and (card_like or looks_like_card_id(value)):
                scan.ids.append(value)
                if _is_placeholder(value):
                    scan.unknown.append(value)
                break
        for key, value in node.items():
            if key in ID_KEYS and isinstance(value, str):
                continue
            stack.append((value, depth + 1))

    return scan


def _duplicates(ids: list[str]) -> tuple[tuple[str, int], ...]:
    counts = Counter(ids)
    dups = [(cid, n) for cid, n in counts.items() if n > 1]
    dups.sort(key=lambda item: (-item[1], item[0]))
    return tuple(dups)


@dataclass(frozen=True)
class InvariantReport:
    """Result of the deep card-id scan over a snapshot."""

    ok: bool
    reason: Optional[Reason]
    expected_total_cards: int
    found_total_cards: int
    unique_card_ids: int
    missing_count: int
    dupes: tuple[tuple[str, int], ...]
    unknown_ids: tuple[str, ...]
    snapshot_hash: str
    truncated: bool = False

    @property
    def is_corrupt(self) -> bool:
        return not self.ok

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "reason": self.reason.value if self.reason else None,
            "expectedTotalCards": self.expected_total_cards,
            "foundTotalCards": self.found_total_cards,
            "uniqueCardIds": self.unique_card_ids,
            "missingCount": self.missing_count,
            "dupes": [{"id": cid, "n": n} for cid, n in self.dupes],
            "unknownIds": list(self.unknown_ids),
            "snapshotHash": self.snapshot_hash,
            "truncated": self.truncated,
        }


def validate_invariant(
    state: Any,
    expected_total: Optional[int] = None,
    max_depth: int = 12,
    node_cap: int = 20000,
) -> InvariantReport:
    """Deep scan: duplicates, placeholders and missing cards against the deck size."""
    expected = expected_total if expected_total is not None else expected_total_for(state)
    try:
        digest = snapshot_hash(state)
    except ValueError:
        # Self-referencing graphs cannot be serialized; the scan still runs
        digest = UNHASHABLE
    if state is None:
        return InvariantReport(
            ok=False,
            reason=Reason.INVARIANT_CHECK_FAILED,
            expected_total_cards=expected,
            found_total_cards=0,
            unique_card_ids=0,
            missing_count=expected,
            dupes=(),
            unknown_ids=(),
            snapshot_hash=digest,
        )

    scan = collect_card_ids(state, max_depth=max_depth, node_cap=node_cap)
    dupes = _duplicates(scan.ids)
    unique = len(set(scan.ids))
    unknown = tuple(sorted(set(scan.unknown)))
    known_unique = len(set(scan.ids) - set(unknown))
    missing = max(0, expected - known_unique)

    reason = None
    if unknown:
        reason = Reason.UNKNOWN_CARD_IDS_PRESENT
    elif dupes:
        reason = Reason.DUPLICATE_CARD_IDS
    elif missing:
        reason = Reason.MISSING_CARDS
    elif scan.truncated or known_unique != expected:
        reason = Reason.INVARIANT_CHECK_FAILED

    return InvariantReport(
        ok=reason is None,
        reason=reason,
        expected_total_cards=expected,
        found_total_cards=len(scan.ids),
        unique_card_ids=unique,
        missing_count=missing,
        dupes=dupes,
        unknown_ids=unknown,
        snapshot_hash=digest,
        truncated=scan.truncated,
    )


@dataclass(frozen=True)
class ConservationReport:
    """Shallow post-apply check restricted to known zone fields."""

    ok: bool
    reason: Optional[Reason]
    expected_total_cards: int
    found_total_cards: int
    missing_count: int
    dupes: tuple[tuple[str, int], ...]
    zone_counts: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "reason": self.reason.value if self.reason else None,
            "expectedTotalCards": self.expected_total_cards,
            "foundTotalCards": self.found_total_cards,
            "missingCount": self.missing_count,
            "dupes": [{"id": cid, "n": n} for cid, n in self.dupes],
            "zoneCounts": dict(self.zone_counts),
        }


def format_zone_table(zone_counts: dict[str, int]) -> str:
    width = max((len(label) for label in zone_counts), default=0)
    return "\n".join(f"  {label.ljust(width)}  {n:>3}" for label, n in zone_counts.items())


def assert_card_conservation(
    state: Any,
    expected_total: Optional[int] = None,
    match_id: Optional[str] = None,
    match_rev: Optional[int] = None,
    move_signature: str = "-",
) -> ConservationReport:
    """Count card ids zone by zone; log a warning with the breakdown on drift."""
    expected = expected_total if expected_total is not None else expected_total_for(state)
    try:
        board = open_board(state)
    except MoveRejected as e:
        logger.warning(
            f"[CONSERVATION] matchId={match_id} rev={match_rev} move={move_signature} "
            f"check skipped reason={e.reason.value}"
        )
        return ConservationReport(
            ok=False,
            reason=Reason.INVARIANT_CHECK_FAILED,
            expected_total_cards=expected,
            found_total_cards=0,
            missing_count=expected,
            dupes=(),
            zone_counts={},
        )

    zone_counts: dict[str, int] = {}
    ids: list[str] = []
    placeholders = 0
    for label, pile in board.zones():
        zone_counts[label] = len(pile)
        for card in pile:
            cid = card_id(card)
            if cid is None or _is_placeholder(cid):
                placeholders += 1
            if cid is not None:
                ids.append(cid)

    dupes = _duplicates(ids)
    missing = max(0, expected - len(set(ids)))
    reason = None
    if placeholders:
        reason = Reason.UNKNOWN_CARD_IDS_PRESENT
    elif dupes:
        reason = Reason.DUPLICATE_CARD_IDS
    elif missing:
        reason = Reason.MISSING_CARDS
    elif len(ids) != expected:
        reason = Reason.INVARIANT_CHECK_FAILED

    report = ConservationReport(
        ok=reason is None,
        reason=reason,
        expected_total_cards=expected,
        found_total_cards=len(ids),
        missing_count=missing,
        dupes=dupes,
        zone_counts=zone_counts,
    )
    if not report.ok:
        logger.warning(
            f"[CONSERVATION] matchId={match_id} rev={match_rev} move={move_signature} "
            f"reason={reason.value} expected={expected} found={len(ids)} missing={missing} "
            f"dupes={list(dupes[:12])}\n{format_zone_table(zone_counts)}"
        )
    return report
