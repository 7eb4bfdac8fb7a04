"""
Chromatic Valley — Round Generator
Builds one fully populated round per harmony type: the visible prompt,
the correct answer and a shuffled set of well-separated choices.
"""

import logging
import random
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Sequence, Tuple, Union

from color_utils import (
    color_distance,
    generate_analogous_distractors,
    generate_color_match_distractors,
    generate_complementary_distractors,
    generate_double_complementary_distractors,
    generate_monochromatic_distractors,
    generate_random_vibrant_color,
    generate_similar_color,
    generate_split_comp_distractors,
    generate_tetradic_distractors,
    generate_triadic_distractors,
    generate_vibrant_color_avoiding_recent,
    get_analogous_colors,
    get_complementary_color,
    get_double_complementary_colors,
    get_monochromatic_colors,
    get_split_complementary,
    get_tetradic_colors,
    get_triadic_colors,
    hex_to_hsl,
)
from game_config import DEFAULT_CONFIG, GameConfig

logger = logging.getLogger(__name__)

# ── Color Palette ─────────────────────────────────────────────
# Color-match targets, grouped by family
PALETTE_FAMILIES: Dict[str, List[Tuple[str, str]]] = {
    'sunset': [
        ('#E8A598', 'Coral Dream'), ('#F4C4B4', 'Peach Whisper'), ('#E8B4A0', 'Sunset Glow'),
        ('#D4918A', 'Rose Dust'), ('#C4756C', 'Terra Blush'),
    ],
    'sage': [
        ('#A8C5B5', 'Sage Mist'), ('#8BB5A0', 'Garden Path'), ('#7AA894', 'Forest Whisper'),
        ('#6B9A88', 'Emerald Fog'), ('#5C8B7C', 'Deep Moss'),
    ],
    'sky': [
        ('#9EC5E8', 'Morning Sky'), ('#87B5DC', 'Serene Blue'), ('#70A5D0', 'Cloud Shadow'),
        ('#5995C4', 'Ocean Drift'), ('#4285B8', 'Deep Azure'),
    ],
    'lavender': [
        ('#C5B5D4', 'Lavender Haze'), ('#B5A0C8', 'Violet Dusk'), ('#A58BBC', 'Purple Dream'),
        ('#9576B0', 'Twilight'), ('#8561A4', 'Deep Plum'),
    ],
    'sand': [
        ('#E8D5B5', 'Sand Dune'), ('#DCC8A5', 'Golden Hour'), ('#D0BB95', 'Wheat Field'),
        ('#C4AE85', 'Amber Light'), ('#B8A175', 'Desert Glow'),
    ],
    'pink': [
        ('#F0D4D8', 'Blush Pink'), ('#E8C4C8', 'Rose Petal'), ('#E0B4B8', 'Dusty Rose'),
        ('#D8A4A8', 'Mauve Mist'), ('#D09498', 'Berry Cream'),
    ],
    'mint': [
        ('#B5E0D5', 'Mint Breeze'), ('#A0D4C8', 'Sea Glass'), ('#8BC8BB', 'Aqua Mist'),
        ('#76BCAE', 'Tidal Pool'), ('#61B0A1', 'Ocean Jade'),
    ],
    'yellow': [
        ('#F5E6B8', 'Butter Cream'), ('#EED9A0', 'Honey Glow'), ('#E7CC88', 'Sunlit'),
        ('#E0BF70', 'Golden Sand'), ('#D9B258', 'Marigold'),
    ],
}


@dataclass(frozen=True)
class ColorOption:
    hex: str
    name: str


COLOR_PALETTE: List[ColorOption] = [
    ColorOption(hex_value, name)
    for family in PALETTE_FAMILIES.values()
    for hex_value, name in family
]


# ── Round shapes ──────────────────────────────────────────────
# One dataclass per harmony type; `challenge_type` is the discriminant.
# Every round exposes `choices`, `correct_choice_index`, `correct_color`
# and a mutable `time_left` (0-100).

@dataclass
class ColorMatchRound:
    target_color: ColorOption
    choices: List[str]
    correct_index: int
    time_left: float = 100.0
    challenge_type: str = field(default='color-match', init=False)

    @property
    def correct_choice_index(self) -> int:
        return self.correct_index

    @property
    def correct_color(self) -> str:
        return self.target_color.hex

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TriadicRound:
    wheel_colors: Tuple[str, str, str]
    missing_index: int
    correct_color: str
    choices: List[str]
    correct_choice_index: int
    time_left: float = 100.0
    challenge_type: str = field(default='triadic', init=False)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ComplementaryRound:
    base_color: str
    correct_color: str
    choices: List[str]
    correct_choice_index: int
    time_left: float = 100.0
    challenge_type: str = field(default='complementary', init=False)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SplitComplementaryRound:
    base_color: str
    visible_split_color: str
    missing_position: str          # 'split1' | 'split2'
    correct_color: str
    choices: List[str]
    correct_choice_index: int
    time_left: float = 100.0
    challenge_type: str = field(default='split-complementary', init=False)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AnalogousRound:
    visible_colors: Tuple[str, str]
    flow_direction: str            # 'clockwise' | 'counter-clockwise'
    correct_color: str
    choices: List[str]
    correct_choice_index: int
    time_left: float = 100.0
    challenge_type: str = field(default='analogous', init=False)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TetradicRound:
    wheel_colors: Tuple[str, str, str, str]
    missing_index: int
    correct_color: str
    choices: List[str]
    correct_choice_index: int
    time_left: float = 100.0
    challenge_type: str = field(default='tetradic', init=False)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DoubleComplementaryRound:
    visible_colors: Tuple[str, str, str]
    missing_position: int          # 0-3 in (base, adjacent, complement, adjacent complement)
    correct_color: str
    choices: List[str]
    correct_choice_index: int
    time_left: float = 100.0
    challenge_type: str = field(default='double-complementary', init=False)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MonochromaticRound:
    base_hue: float
    visible_shades: Tuple[str, str]
    correct_color: str
    choices: List[str]
    correct_choice_index: int
    time_left: float = 100.0
    challenge_type: str = field(default='monochromatic', init=False)

    def to_dict(self) -> dict:
        return asdict(self)


Round = Union[
    ColorMatchRound,
    TriadicRound,
    ComplementaryRound,
    SplitComplementaryRound,
    AnalogousRound,
    TetradicRound,
    DoubleComplementaryRound,
    MonochromaticRound,
]


# ── Difficulty ────────────────────────────────────────────────

def get_difficulty(level: int, config: GameConfig = DEFAULT_CONFIG) -> float:
    """Color-match variance: shrinks linearly with level down to a floor."""
    reduction = min(
        level * config.difficulty_reduction_per_level,
        config.base_difficulty - config.min_difficulty,
    )
    return config.base_difficulty - reduction


# ── Choice assembly ───────────────────────────────────────────

_FALLBACK_VARIANCE = 30
_FALLBACK_STEPS = 6
_ATTEMPTS_PER_STEP = 20
_VIBRANT_ATTEMPTS = 100


def _is_separated(candidate: str, chosen: Sequence[str], min_distance: float) -> bool:
    return all(color_distance(candidate, color) >= min_distance for color in chosen)


def fill_wrong_choices(
    correct_color: str,
    candidates: Sequence[str],
    count: int,
    min_distance: float,
    rng=None,
    base_variance: float = _FALLBACK_VARIANCE,
) -> List[str]:
    """
    Pick `count` wrong choices, keeping every pair of choices (correct
    answer included) at least `min_distance` apart.

    Fallback ladder when the type-specific candidates run short:
      1. candidates that clear the distance check, in order
      2. similar colors around the answer, variance growing 1.5x per step
      3. random vibrant colors
      4. any random vibrant color whose hex is not already present
    """
    rng = rng or random
    chosen = [correct_color.upper()]
    wrong: List[str] = []

    def take(color: str) -> None:
        wrong.append(color)
        chosen.append(color)

    for candidate in candidates:
        if len(wrong) >= count:
            break
        if _is_separated(candidate, chosen, min_distance):
            take(candidate)

    if len(wrong) < count:
        logger.debug(
            "Padding %d missing distractor(s) for %s", count - len(wrong), correct_color
        )

    variance = base_variance
    for _ in range(_FALLBACK_STEPS):
        if len(wrong) >= count:
            break
        for _ in range(_ATTEMPTS_PER_STEP):
            if len(wrong) >= count:
                break
            candidate = generate_similar_color(correct_color, variance, rng)
            if _is_separated(candidate, chosen, min_distance):
                take(candidate)
        variance *= 1.5

    for _ in range(_VIBRANT_ATTEMPTS):
        if len(wrong) >= count:
            break
        candidate = generate_random_vibrant_color(rng)
        if _is_separated(candidate, chosen, min_distance):
            take(candidate)

    while len(wrong) < count:
        candidate = generate_random_vibrant_color(rng)
        if candidate not in chosen:
            logger.warning("Distance constraint relaxed for %s", correct_color)
            take(candidate)

    return wrong


def _insert_correct(correct_color: str, wrong: List[str], rng) -> Tuple[List[str], int]:
    """Insert the answer at a uniformly random position."""
    index = rng.randrange(len(wrong) + 1)
    choices = list(wrong)
    choices.insert(index, correct_color)
    return choices, index


def _base_color(recent: Sequence[str], config: GameConfig, rng) -> str:
    return generate_vibrant_color_avoiding_recent(recent, config.hue_zones, rng)


# ── Per-type generators ───────────────────────────────────────

def generate_color_match_round(level: int, config: GameConfig = DEFAULT_CONFIG, rng=None) -> ColorMatchRound:
    rng = rng or random
    target = rng.choice(COLOR_PALETTE)
    variance = get_difficulty(level, config)
    wrong_count = config.choice_count - 1

    candidates = generate_color_match_distractors(
        target.hex, variance, wrong_count, config.min_color_distance, rng=rng,
    )
    wrong = fill_wrong_choices(
        target.hex, candidates, wrong_count, config.min_color_distance, rng, variance,
    )
    choices, correct_index = _insert_correct(target.hex, wrong, rng)
    return ColorMatchRound(target_color=target, choices=choices, correct_index=correct_index)


def generate_triadic_round(recent: Sequence[str], config: GameConfig = DEFAULT_CONFIG, rng=None) -> TriadicRound:
    rng = rng or random
    base = _base_color(recent, config, rng)
    wheel = (base,) + get_triadic_colors(base)
    missing_index = rng.randrange(3)
    correct = wheel[missing_index]
    visible = [c for i, c in enumerate(wheel) if i != missing_index]

    wrong_count = config.choice_count - 1
    candidates = generate_triadic_distractors(correct, visible, wrong_count, rng)
    wrong = fill_wrong_choices(correct, candidates, wrong_count, config.min_color_distance, rng)
    choices, index = _insert_correct(correct, wrong, rng)
    return TriadicRound(
        wheel_colors=wheel, missing_index=missing_index, correct_color=correct,
        choices=choices, correct_choice_index=index,
    )


def generate_complementary_round(recent: Sequence[str], config: GameConfig = DEFAULT_CONFIG, rng=None) -> ComplementaryRound:
    rng = rng or random
    base = _base_color(recent, config, rng)
    pair = (base, get_complementary_color(base))
    shown_index = rng.randrange(2)
    shown, correct = pair[shown_index], pair[1 - shown_index]

    wrong_count = config.choice_count - 1
    candidates = generate_complementary_distractors(shown, wrong_count, rng)
    wrong = fill_wrong_choices(correct, candidates, wrong_count, config.min_color_distance, rng)
    choices, index = _insert_correct(correct, wrong, rng)
    return ComplementaryRound(
        base_color=shown, correct_color=correct, choices=choices, correct_choice_index=index,
    )


def generate_split_complementary_round(recent: Sequence[str], config: GameConfig = DEFAULT_CONFIG, rng=None) -> SplitComplementaryRound:
    rng = rng or random
    base = _base_color(recent, config, rng)
    split1, split2 = get_split_complementary(base)
    missing_position = rng.choice(('split1', 'split2'))
    if missing_position == 'split1':
        correct, visible_split = split1, split2
    else:
        correct, visible_split = split2, split1

    wrong_count = config.choice_count - 1
    candidates = generate_split_comp_distractors(correct, visible_split, wrong_count, rng)
    wrong = fill_wrong_choices(correct, candidates, wrong_count, config.min_color_distance, rng)
    choices, index = _insert_correct(correct, wrong, rng)
    return SplitComplementaryRound(
        base_color=base, visible_split_color=visible_split, missing_position=missing_position,
        correct_color=correct, choices=choices, correct_choice_index=index,
    )


def generate_analogous_round(recent: Sequence[str], config: GameConfig = DEFAULT_CONFIG, rng=None) -> AnalogousRound:
    """Three neighbors 30 degrees apart; the last one along the flow is missing."""
    rng = rng or random
    base = _base_color(recent, config, rng)
    flow_direction = rng.choice(('clockwise', 'counter-clockwise'))
    forward, backward = get_analogous_colors(base)
    middle = forward if flow_direction == 'clockwise' else backward
    ahead, behind = get_analogous_colors(middle)
    correct = ahead if flow_direction == 'clockwise' else behind
    visible = (base, middle)

    wrong_count = config.choice_count - 1
    candidates = generate_analogous_distractors(correct, flow_direction, visible, wrong_count, rng)
    wrong = fill_wrong_choices(correct, candidates, wrong_count, config.min_color_distance, rng)
    choices, index = _insert_correct(correct, wrong, rng)
    return AnalogousRound(
        visible_colors=visible, flow_direction=flow_direction, correct_color=correct,
        choices=choices, correct_choice_index=index,
    )


def generate_tetradic_round(recent: Sequence[str], config: GameConfig = DEFAULT_CONFIG, rng=None) -> TetradicRound:
    rng = rng or random
    base = _base_color(recent, config, rng)
    wheel = (base,) + get_tetradic_colors(base)
    missing_index = rng.randrange(4)
    correct = wheel[missing_index]
    visible = [c for i, c in enumerate(wheel) if i != missing_index]

    wrong_count = config.choice_count - 1
    candidates = generate_tetradic_distractors(correct, visible, wrong_count, rng)
    wrong = fill_wrong_choices(correct, candidates, wrong_count, config.min_color_distance, rng)
    choices, index = _insert_correct(correct, wrong, rng)
    return TetradicRound(
        wheel_colors=wheel, missing_index=missing_index, correct_color=correct,
        choices=choices, correct_choice_index=index,
    )


def generate_double_complementary_round(recent: Sequence[str], config: GameConfig = DEFAULT_CONFIG, rng=None) -> DoubleComplementaryRound:
    rng = rng or random
    base = _base_color(recent, config, rng)
    adjacent, complement, adjacent_complement = get_double_complementary_colors(base)
    colors = (base, adjacent, complement, adjacent_complement)
    missing_position = rng.randrange(4)
    correct = colors[missing_position]
    visible = tuple(c for i, c in enumerate(colors) if i != missing_position)

    wrong_count = config.choice_count - 1
    candidates = generate_double_complementary_distractors(correct, visible, wrong_count, rng)
    wrong = fill_wrong_choices(correct, candidates, wrong_count, config.min_color_distance, rng)
    choices, index = _insert_correct(correct, wrong, rng)
    return DoubleComplementaryRound(
        visible_colors=visible, missing_position=missing_position, correct_color=correct,
        choices=choices, correct_choice_index=index,
    )


def generate_monochromatic_round(recent: Sequence[str], config: GameConfig = DEFAULT_CONFIG, rng=None) -> MonochromaticRound:
    rng = rng or random
    base = _base_color(recent, config, rng)
    base_hue = hex_to_hsl(base).h
    lighter, darker = get_monochromatic_colors(base)
    shades = (lighter, base, darker)
    missing_index = rng.randrange(3)
    correct = shades[missing_index]
    visible = tuple(c for i, c in enumerate(shades) if i != missing_index)

    wrong_count = config.choice_count - 1
    candidates = generate_monochromatic_distractors(correct, base_hue, wrong_count, rng)
    wrong = fill_wrong_choices(correct, candidates, wrong_count, config.min_color_distance, rng)
    choices, index = _insert_correct(correct, wrong, rng)
    return MonochromaticRound(
        base_hue=base_hue, visible_shades=visible, correct_color=correct,
        choices=choices, correct_choice_index=index,
    )


_GENERATORS = {
    'triadic': generate_triadic_round,
    'complementary': generate_complementary_round,
    'split-complementary': generate_split_complementary_round,
    'analogous': generate_analogous_round,
    'tetradic': generate_tetradic_round,
    'double-complementary': generate_double_complementary_round,
    'monochromatic': generate_monochromatic_round,
}


def generate_round(
    harmony_type: str,
    level: int,
    recent_answer_colors: Sequence[str] = (),
    rng=None,
    config: GameConfig = DEFAULT_CONFIG,
) -> Round:
    """Generate a fresh round of the given harmony type with full time."""
    rng = rng or random
    if harmony_type == 'color-match':
        round_state = generate_color_match_round(level, config, rng)
    else:
        try:
            generator = _GENERATORS[harmony_type]
        except KeyError:
            raise ValueError(f"Unknown harmony type: {harmony_type!r}")
        round_state = generator(recent_answer_colors, config, rng)

    logger.debug(
        "Generated %s round (level %d): correct=%s choices=%s",
        harmony_type, level, round_state.correct_color, round_state.choices,
    )
    return round_state
