"""CLI command for replaying a move log against a fresh deal."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click

from duelsolitaire.cards.deal import BoardLayout, ShuffleMode
from duelsolitaire.engine.invariant import assert_card_conservation
from duelsolitaire.matches.store import MatchStore, move_signature

logger = logging.getLogger(__name__)


def read_move_log(path: Path) -> list[dict]:
    """Parse a JSON-lines move log.

    A line is either a bare move or an envelope `{"move": ..., "meta": ...,
    "actor": ...}`. Blank lines and `#` comments are skipped.
    """
    entries = []
    with open(path) as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError as e:
                raise click.ClickException(f"{path}:{lineno}: invalid JSON: {e}")
            if isinstance(data, dict) and isinstance(data.get("move"), dict):
                entries.append(data)
            else:
                entries.append({"move": data})
    return entries


@click.command()
@click.argument("seed")
@click.argument("moves_path", type=click.Path(exists=True, dir_okay=False), required=False)
@click.option(
    "--schema",
    type=click.Choice([layout.value for layout in BoardLayout]),
    default=BoardLayout.V1_SIDED.value,
    help="Wire schema of the deal",
)
@click.option(
    "--shuffle-mode",
    type=click.Choice([mode.value for mode in ShuffleMode]),
    default=ShuffleMode.SHARED.value,
    help="How the two boards derive their decks",
)
@click.option("--dump", type=click.Path(dir_okay=False), default=None, help="Write the final snapshot as JSON")
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(
    seed: str,
    moves_path: str | None,
    schema: str,
    shuffle_mode: str,
    dump: str | None,
    verbose: bool,
):
    """Deal SEED and replay MOVES_PATH (JSON lines) through the move gate.

    Exits with status 1 when the final state fails the card invariant.
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)

    store = MatchStore()
    match = store.create_match(nick="replay")
    snap = store.ensure_initial_snapshot(match.match_id, seed=seed, shuffle_mode=shuffle_mode, schema=schema)
    click.echo(f"Dealt seed={seed} schema={schema} mode={shuffle_mode} hash={snap.snapshot_hash}")

    entries = read_move_log(Path(moves_path)) if moves_path else []
    accepted = rejected = duplicates = 0
    for n, entry in enumerate(entries, start=1):
        move = entry["move"]
        gate = store.validate_and_apply_move(match.match_id, move, actor=entry.get("actor"), meta=entry.get("meta"))
        sig = move_signature(move)
        if gate.duplicate:
            duplicates += 1
            click.echo(f"#{n:<4} dup     rev={gate.match_rev} {sig}")
        elif gate.ok:
            accepted += 1
            lane = "" if gate.resolved_foundation_index is None else f" lane={gate.resolved_foundation_index}"
            click.echo(f"#{n:<4} ok      rev={gate.match_rev}{lane} {sig}")
        else:
            rejected += 1
            click.echo(f"#{n:<4} reject  {gate.reason.value} {sig}")

    final = store.get_snapshot(match.match_id)
    report = store.get_last_invariant(match.match_id)
    conservation = assert_card_conservation(final.state)

    click.echo("")
    click.echo(f"Moves: {accepted} accepted, {rejected} rejected, {duplicates} duplicate")
    click.echo(f"Final rev={final.match_rev} hash={final.snapshot_hash} status={match.status.value}")
    click.echo(
        f"Invariant: {'ok' if report.ok else report.reason.value} "
        f"expected={report.expected_total_cards} found={report.found_total_cards} "
        f"missing={report.missing_count} dupes={len(report.dupes)} unknown={len(report.unknown_ids)}"
    )
    for label, count in conservation.zone_counts.items():
        click.echo(f"  {label:<16} {count:>3}")

    if dump:
        with open(dump, "w") as f:
            json.dump(final.to_dict(), f, ensure_ascii=False, indent=2)
        click.echo(f"\nSnapshot written to {dump}")

    if not report.ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
