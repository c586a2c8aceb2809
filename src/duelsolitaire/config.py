"""Engine configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from duelsolitaire.cards.deal import ShuffleMode, parse_shuffle_mode

ENV_PREFIX = "DUELSOLITAIRE_"


def _env_int(env: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{ENV_PREFIX}{name} must be >= {minimum}, got {value}")
    return value


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{ENV_PREFIX}{name} must be >= 0, got {value}")
    return value


@dataclass
class EngineConfig:
    """Configuration for the match store and its checks."""

    match_ttl_seconds: int = 3600  # Inactivity before a match is swept
    recent_move_ids_limit: int = 500  # Move ids remembered for replay detection
    invariant_node_cap: int = 20000  # Deep scan gives up past this many nodes
    invariant_max_depth: int = 12
    airbag_throttle_seconds: float = 2.0  # Min gap between resync requests per match
    default_shuffle_mode: ShuffleMode = ShuffleMode.SHARED
    admin_key: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Build a config from DUELSOLITAIRE_* variables.

        Raises:
            ValueError: if a variable is set but malformed
        """
        env = os.environ if env is None else env
        defaults = cls()
        mode_raw = env.get(ENV_PREFIX + "SHUFFLE_MODE")
        return cls(
            match_ttl_seconds=_env_int(env, "MATCH_TTL_SECONDS", defaults.match_ttl_seconds),
            recent_move_ids_limit=_env_int(env, "RECENT_MOVE_IDS", defaults.recent_move_ids_limit),
            invariant_node_cap=_env_int(env, "INVARIANT_NODE_CAP", defaults.invariant_node_cap),
            invariant_max_depth=_env_int(env, "INVARIANT_MAX_DEPTH", defaults.invariant_max_depth),
            airbag_throttle_seconds=_env_float(env, "AIRBAG_THROTTLE_SECONDS", defaults.airbag_throttle_seconds),
            default_shuffle_mode=parse_shuffle_mode(mode_raw) if mode_raw else defaults.default_shuffle_mode,
            admin_key=env.get(ENV_PREFIX + "ADMIN_KEY") or None,
        )
