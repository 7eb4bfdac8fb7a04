"""
Chromatic Valley — Game Configuration
Tunable timing, scoring and difficulty values for the round engine.
Values can be overridden with CHROMATIC_* environment variables (or a .env file).
"""

import os
from dataclasses import dataclass, fields, replace
from typing import Dict

from dotenv import load_dotenv

load_dotenv()

ENV_PREFIX = "CHROMATIC_"


class ConfigError(ValueError):
    """Raised when an environment override cannot be parsed."""


@dataclass(frozen=True)
class GameConfig:
    # ── Timer ─────────────────────────────────────────────────
    base_time_ms: int = 8000
    min_time_ms: int = 4000
    time_reduction_per_level: int = 100

    # ── Scoring ───────────────────────────────────────────────
    base_points: int = 100
    streak_bonus_multiplier: int = 10
    time_bonus_multiplier: float = 0.5   # color-match only
    level_bonus_multiplier: int = 5

    # ── Lives / choices ───────────────────────────────────────
    max_wrong_answers: int = 3
    choice_count: int = 4

    # ── Transition delays (ms) ────────────────────────────────
    feedback_duration_ms: int = 600
    round_transition_ms: int = 800
    wrong_answer_transition_ms: int = 1000
    game_end_delay_ms: int = 1000
    streak_milestone_display_ms: int = 1500

    # ── Color generation ──────────────────────────────────────
    min_color_distance: float = 10.0
    base_difficulty: int = 60
    min_difficulty: int = 15
    difficulty_reduction_per_level: int = 3
    hue_zones: int = 6
    answer_color_history: int = 20

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


DEFAULT_CONFIG = GameConfig()


def _parse(name: str, raw: str, default):
    try:
        if isinstance(default, int):
            return int(raw)
        return float(raw)
    except ValueError:
        raise ConfigError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}")


def load_config(environ: Dict[str, str] = None) -> GameConfig:
    """Build a GameConfig from defaults plus CHROMATIC_* overrides."""
    environ = os.environ if environ is None else environ
    overrides = {}
    for f in fields(GameConfig):
        raw = environ.get(ENV_PREFIX + f.name.upper())
        if raw is None or raw == "":
            continue
        overrides[f.name] = _parse(f.name, raw, getattr(DEFAULT_CONFIG, f.name))

    config = replace(DEFAULT_CONFIG, **overrides)

    if config.min_time_ms > config.base_time_ms:
        raise ConfigError("min_time_ms must not exceed base_time_ms")
    if config.min_difficulty > config.base_difficulty:
        raise ConfigError("min_difficulty must not exceed base_difficulty")
    if config.max_wrong_answers < 1:
        raise ConfigError("max_wrong_answers must be at least 1")
    if config.choice_count < 2:
        raise ConfigError("choice_count must be at least 2")
    if config.answer_color_history < 1:
        raise ConfigError("answer_color_history must be at least 1")
    if config.hue_zones < 1:
        raise ConfigError("hue_zones must be at least 1")
    return config
