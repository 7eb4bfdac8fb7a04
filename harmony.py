"""
Chromatic Valley — Harmony Unlock & Selection Policy
Static harmony table, lifetime-score unlocks, weighted selection of the
next challenge type and the block-rotation cadence between types.
"""

import logging
import random
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

HARMONY_TYPES = (
    'color-match',
    'triadic',
    'complementary',
    'split-complementary',
    'analogous',
    'tetradic',
    'double-complementary',
    'monochromatic',
)

ZEN_FILTER_ALL = 'all'

# A new type may be drawn after 3, 4 or 5 rounds of the current one
SWITCH_THRESHOLDS = (3, 4, 5)


class HarmonyConfigError(ValueError):
    """The harmony table cannot produce a selection."""


@dataclass(frozen=True)
class HarmonyConfig:
    """One harmony challenge type and its unlock/selection parameters."""
    type: str
    name: str
    description: str
    unlock_threshold: int   # lifetime score required
    difficulty: int         # 1 (easy) .. 5 (hard)
    weight: int             # relative selection weight

    def to_dict(self) -> dict:
        return asdict(self)


HARMONY_CONFIG: Tuple[HarmonyConfig, ...] = (
    HarmonyConfig('color-match', 'Color Match', 'Match the color you see', 0, 1, 35),
    HarmonyConfig('triadic', 'Triadic Harmony', 'Three colors equally spaced on the wheel', 0, 2, 25),
    HarmonyConfig('complementary', 'Complementary', 'Colors opposite on the wheel', 500, 2, 15),
    HarmonyConfig('split-complementary', 'Split Complementary', 'One color plus two flanking its opposite', 2000, 3, 10),
    HarmonyConfig('analogous', 'Analogous', 'Neighboring colors on the wheel', 5000, 4, 8),
    HarmonyConfig('tetradic', 'Tetradic Square', 'Four colors forming a square', 8000, 3, 8),
    HarmonyConfig('double-complementary', 'Double Complementary', 'Two pairs of opposite colors', 12000, 4, 5),
    HarmonyConfig('monochromatic', 'Monochromatic', 'Shades and tints of one hue', 20000, 5, 4),
)

_BY_TYPE: Dict[str, HarmonyConfig] = {h.type: h for h in HARMONY_CONFIG}


def validate_harmony_table(table=HARMONY_CONFIG) -> None:
    """
    Check the table once at import time so selection never relies on
    its silent fallback.
    """
    types = [h.type for h in table]
    if sorted(types) != sorted(HARMONY_TYPES):
        raise HarmonyConfigError(f"Harmony table must list each type once, got {types}")
    if any(h.weight < 0 for h in table):
        raise HarmonyConfigError("Harmony weights must be non-negative")

    thresholds = [h.unlock_threshold for h in table]
    if thresholds != sorted(thresholds):
        raise HarmonyConfigError("Unlock thresholds must be non-decreasing")

    starter_weight = sum(h.weight for h in table if h.unlock_threshold <= 0)
    if starter_weight <= 0:
        raise HarmonyConfigError("Harmonies unlocked at score 0 need a positive total weight")


validate_harmony_table()


def is_harmony_type(value) -> bool:
    return value in _BY_TYPE


def get_harmony_config(harmony_type: str) -> HarmonyConfig:
    try:
        return _BY_TYPE[harmony_type]
    except KeyError:
        raise ValueError(f"Unknown harmony type: {harmony_type!r}")


def get_unlocked_harmonies(lifetime_score: int) -> List[HarmonyConfig]:
    return [h for h in HARMONY_CONFIG if h.unlock_threshold <= lifetime_score]


def get_locked_harmonies(lifetime_score: int) -> List[HarmonyConfig]:
    return [h for h in HARMONY_CONFIG if h.unlock_threshold > lifetime_score]


def get_next_unlock(lifetime_score: int) -> Optional[Tuple[HarmonyConfig, int]]:
    """The next harmony to unlock and the points still needed, or None."""
    locked = get_locked_harmonies(lifetime_score)
    if not locked:
        return None
    upcoming = locked[0]
    return upcoming, upcoming.unlock_threshold - lifetime_score


def select_next_harmony(lifetime_score: int, rng=None) -> str:
    """
    Roulette-wheel draw over the harmonies unlocked at `lifetime_score`,
    proportional to each harmony's weight.
    """
    rng = rng or random
    unlocked = get_unlocked_harmonies(lifetime_score)
    total_weight = sum(h.weight for h in unlocked)
    if total_weight <= 0:
        raise HarmonyConfigError(
            f"No selectable harmonies at lifetime score {lifetime_score}"
        )

    remaining = rng.random() * total_weight
    for harmony in unlocked:
        remaining -= harmony.weight
        if remaining < 0:
            return harmony.type

    # Only reachable through float round-off on the last subtraction
    return 'color-match'


def get_next_challenge_type(
    current_type: str,
    rounds_since_switch: int,
    lifetime_score: int = 0,
    rng=None,
) -> str:
    """
    Keep the current type for a block of 3-5 rounds, then draw a new one.
    The threshold is re-drawn on every call, and the draw may land on
    the current type again.
    """
    rng = rng or random
    switch_threshold = rng.choice(SWITCH_THRESHOLDS)
    if rounds_since_switch >= switch_threshold:
        next_type = select_next_harmony(lifetime_score, rng)
        logger.debug(
            "Harmony rotation after %d rounds: %s -> %s",
            rounds_since_switch, current_type, next_type,
        )
        return next_type
    return current_type
