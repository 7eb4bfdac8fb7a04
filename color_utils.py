"""
Chromatic Valley — Color Utilities
Hex/HSL conversion, perceptual distance, vibrant color synthesis,
harmony relationship generators and their distractor generators.

Every function that draws random numbers takes an optional `rng`
(anything with the `random.Random` interface). When omitted the
module-level `random` source is used.
"""

import colorsys
import random
import re
from typing import List, NamedTuple, Sequence, Tuple

_HEX_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


class HSL(NamedTuple):
    """Hue in [0, 360), saturation and lightness in [0, 100]."""
    h: float
    s: float
    l: float


# ── Conversion ────────────────────────────────────────────────

def normalize_hex(hex_color: str) -> str:
    """Validate a #RRGGBB string and return its canonical uppercase form."""
    if not isinstance(hex_color, str) or not _HEX_RE.match(hex_color):
        raise ValueError(f"Invalid hex color format: {hex_color!r}")
    return hex_color.upper()


def hex_to_hsl(hex_color: str) -> HSL:
    hex_color = normalize_hex(hex_color)
    r = int(hex_color[1:3], 16) / 255.0
    g = int(hex_color[3:5], 16) / 255.0
    b = int(hex_color[5:7], 16) / 255.0

    h, l, s = colorsys.rgb_to_hls(r, g, b)
    return HSL(h * 360.0 % 360.0, s * 100.0, l * 100.0)


def hsl_to_hex(h: float, s: float, l: float) -> str:
    """Convert HSL to an uppercase #RRGGBB string. Hue wraps, S/L are clamped."""
    h = (h % 360.0) / 360.0
    s = _clamp(s, 0.0, 100.0) / 100.0
    l = _clamp(l, 0.0, 100.0) / 100.0

    r, g, b = colorsys.hls_to_rgb(h, l, s)
    return "#{:02X}{:02X}{:02X}".format(_channel(r), _channel(g), _channel(b))


def _channel(value: float) -> int:
    return int(_clamp(round(value * 255), 0, 255))


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def hue_difference(h1: float, h2: float) -> float:
    """Shorter arc between two hues, in degrees."""
    diff = abs(h1 - h2) % 360.0
    return min(diff, 360.0 - diff)


def color_distance(hex1: str, hex2: str) -> float:
    """
    Perceptual distance between two colors.
    Euclidean over (hue arc, saturation, lightness) differences.
    """
    a = hex_to_hsl(hex1)
    b = hex_to_hsl(hex2)
    h_diff = hue_difference(a.h, b.h)
    s_diff = abs(a.s - b.s)
    l_diff = abs(a.l - b.l)
    return (h_diff * h_diff + s_diff * s_diff + l_diff * l_diff) ** 0.5


def is_light_color(hex_color: str) -> bool:
    return hex_to_hsl(hex_color).l > 55


def get_contrast_color(background_hex: str) -> str:
    """Text color that stays readable on the given background."""
    return "#2D3436" if is_light_color(background_hex) else "#FFFFFF"


# ── Random synthesis ──────────────────────────────────────────

def generate_similar_color(base_hex: str, variance: float, rng=None) -> str:
    """
    Perturb a color's HSL by random offsets scaled by `variance`.
    Hue moves up to +-variance degrees, saturation +-0.25*variance,
    lightness +-0.4*variance.
    """
    rng = rng or random
    hsl = hex_to_hsl(base_hex)

    hue_shift = (rng.random() - 0.5) * variance * 2
    sat_shift = (rng.random() - 0.5) * variance * 0.5
    light_shift = (rng.random() - 0.5) * variance * 0.8

    new_h = (hsl.h + hue_shift + 360) % 360
    new_s = _clamp(hsl.s + sat_shift, 10, 100)
    new_l = _clamp(hsl.l + light_shift, 20, 85)
    return hsl_to_hex(new_h, new_s, new_l)


def generate_random_vibrant_color(rng=None) -> str:
    rng = rng or random
    h = rng.random() * 360
    s = 60 + rng.random() * 30   # 60-90% saturation
    l = 45 + rng.random() * 15   # 45-60% lightness
    return hsl_to_hex(h, s, l)


def generate_color_from_zone(zone: int, num_zones: int = 6, rng=None) -> str:
    """Vibrant color whose hue falls inside the given zone of the wheel."""
    rng = rng or random
    zone_size = 360 / num_zones
    h = zone * zone_size + rng.random() * zone_size
    s = 60 + rng.random() * 30
    l = 45 + rng.random() * 15
    return hsl_to_hex(h, s, l)


def get_hue_zone(hex_color: str, num_zones: int = 6) -> int:
    zone_size = 360 / num_zones
    return int(hex_to_hsl(hex_color).h // zone_size) % num_zones


def find_least_used_zones(recent_colors: Sequence[str], num_zones: int = 6) -> List[int]:
    zone_counts = [0] * num_zones
    for color in recent_colors:
        zone_counts[get_hue_zone(color, num_zones)] += 1

    min_count = min(zone_counts)
    return [zone for zone, count in enumerate(zone_counts) if count == min_count]


def generate_vibrant_color_avoiding_recent(
    recent_colors: Sequence[str],
    num_zones: int = 6,
    rng=None,
) -> str:
    """Sample a vibrant color from one of the least used hue zones."""
    rng = rng or random
    zones = find_least_used_zones(recent_colors, num_zones)
    return generate_color_from_zone(rng.choice(zones), num_zones, rng)


def shuffle_list(items: Sequence, rng=None) -> list:
    """Return a shuffled copy (Fisher-Yates via random.shuffle)."""
    rng = rng or random
    shuffled = list(items)
    rng.shuffle(shuffled)
    return shuffled


# ── Harmony relationships ─────────────────────────────────────

def get_complementary_color(hex_color: str) -> str:
    hsl = hex_to_hsl(hex_color)
    return hsl_to_hex((hsl.h + 180) % 360, hsl.s, hsl.l)


def get_split_complementary(hex_color: str) -> Tuple[str, str]:
    hsl = hex_to_hsl(hex_color)
    return (
        hsl_to_hex((hsl.h + 150) % 360, hsl.s, hsl.l),
        hsl_to_hex((hsl.h + 210) % 360, hsl.s, hsl.l),
    )


def get_triadic_colors(hex_color: str) -> Tuple[str, str]:
    hsl = hex_to_hsl(hex_color)
    return (
        hsl_to_hex((hsl.h + 120) % 360, hsl.s, hsl.l),
        hsl_to_hex((hsl.h + 240) % 360, hsl.s, hsl.l),
    )


def get_analogous_colors(hex_color: str, spacing: float = 30) -> Tuple[str, str]:
    """Neighbors at +spacing and -spacing degrees."""
    hsl = hex_to_hsl(hex_color)
    return (
        hsl_to_hex((hsl.h + spacing + 360) % 360, hsl.s, hsl.l),
        hsl_to_hex((hsl.h - spacing + 360) % 360, hsl.s, hsl.l),
    )


def get_tetradic_colors(hex_color: str) -> Tuple[str, str, str]:
    hsl = hex_to_hsl(hex_color)
    return (
        hsl_to_hex((hsl.h + 90) % 360, hsl.s, hsl.l),
        hsl_to_hex((hsl.h + 180) % 360, hsl.s, hsl.l),
        hsl_to_hex((hsl.h + 270) % 360, hsl.s, hsl.l),
    )


def get_double_complementary_colors(hex_color: str) -> Tuple[str, str, str]:
    """
    Returns (adjacent, complement of base, complement of adjacent).
    The base color itself is implicit.
    """
    hsl = hex_to_hsl(hex_color)
    adjacent_h = (hsl.h + 30) % 360
    return (
        hsl_to_hex(adjacent_h, hsl.s, hsl.l),
        hsl_to_hex((hsl.h + 180) % 360, hsl.s, hsl.l),
        hsl_to_hex((adjacent_h + 180) % 360, hsl.s, hsl.l),
    )


def get_monochromatic_colors(hex_color: str) -> Tuple[str, str]:
    """Returns (lighter, darker) variants of the same hue."""
    hsl = hex_to_hsl(hex_color)
    lighter_l = min(85, hsl.l + 20)
    darker_l = max(25, hsl.l - 20)
    lighter_s = max(30, hsl.s - 15)
    darker_s = min(100, hsl.s + 10)
    return (
        hsl_to_hex(hsl.h, lighter_s, lighter_l),
        hsl_to_hex(hsl.h, darker_s, darker_l),
    )


# ── Distractors ───────────────────────────────────────────────
# Offset menus are sampled without replacement. A candidate is dropped
# when its hue lands within `min_separation` of a hue already in use,
# so a generator can return fewer than `count` colors.

def _offset_distractors(
    anchor: HSL,
    offsets: Sequence[float],
    count: int,
    used_hues: Sequence[float],
    min_separation: float,
    s_jitter: float,
    l_jitter: float,
    s_range: Tuple[float, float],
    l_range: Tuple[float, float],
    rng,
) -> List[str]:
    used = list(used_hues)
    distractors = []

    for offset in shuffle_list(offsets, rng):
        if len(distractors) >= count:
            break

        h = (anchor.h + offset + 360) % 360
        if any(hue_difference(h, used_h) < min_separation for used_h in used):
            continue

        s = _clamp(anchor.s + (rng.random() - 0.5) * s_jitter, *s_range)
        l = _clamp(anchor.l + (rng.random() - 0.5) * l_jitter, *l_range)
        distractors.append(hsl_to_hex(h, s, l))
        used.append(h)

    return distractors


def generate_color_match_distractors(
    target_hex: str,
    variance: float,
    count: int = 3,
    min_distance: float = 10,
    max_attempts: int = 100,
    rng=None,
) -> List[str]:
    """
    Similar-looking colors around the target, each at least `min_distance`
    from the target and from each other. Gives up after `max_attempts`
    consecutive rejections.
    """
    rng = rng or random
    used = [normalize_hex(target_hex)]
    distractors = []
    attempts = 0

    while len(distractors) < count and attempts < max_attempts:
        attempts += 1
        candidate = generate_similar_color(target_hex, variance, rng)
        if all(color_distance(candidate, color) >= min_distance for color in used):
            distractors.append(candidate)
            used.append(candidate)
            attempts = 0

    return distractors


def generate_triadic_distractors(
    correct_hex: str,
    visible_hexes: Sequence[str],
    count: int = 3,
    rng=None,
) -> List[str]:
    rng = rng or random
    correct = hex_to_hsl(correct_hex)
    used_hues = [correct.h] + [hex_to_hsl(c).h for c in visible_hexes]
    return _offset_distractors(
        correct, [30, -30, 45, -45, 90, -90], count, used_hues,
        min_separation=15, s_jitter=12, l_jitter=10,
        s_range=(45, 95), l_range=(35, 65), rng=rng,
    )


def generate_complementary_distractors(base_hex: str, count: int = 3, rng=None) -> List[str]:
    """Colors near, but not at, 180 degrees from the base."""
    rng = rng or random
    base = hex_to_hsl(base_hex)
    complement = HSL((base.h + 180) % 360, base.s, base.l)
    return _offset_distractors(
        complement, [25, -25, 40, -40, 15, -15], count, [complement.h, base.h],
        min_separation=10, s_jitter=10, l_jitter=10,
        s_range=(40, 100), l_range=(30, 70), rng=rng,
    )


def generate_split_comp_distractors(
    correct_hex: str,
    other_visible_hex: str,
    count: int = 3,
    rng=None,
) -> List[str]:
    rng = rng or random
    correct = hex_to_hsl(correct_hex)
    other = hex_to_hsl(other_visible_hex)
    return _offset_distractors(
        correct, [20, -20, 35, -35, 50, -50], count, [correct.h, other.h],
        min_separation=15, s_jitter=15, l_jitter=10,
        s_range=(40, 100), l_range=(30, 70), rng=rng,
    )


def generate_analogous_distractors(
    correct_hex: str,
    flow_direction: str,
    visible_hexes: Sequence[str] = (),
    count: int = 3,
    rng=None,
) -> List[str]:
    """Subtle hue shifts along (or against) the direction of the flow."""
    rng = rng or random
    correct = hex_to_hsl(correct_hex)
    direction = 1 if flow_direction == "clockwise" else -1
    offsets = [o * direction for o in (15, -10, 25, -20, 40, -45)]
    used_hues = [correct.h] + [hex_to_hsl(c).h for c in visible_hexes]
    return _offset_distractors(
        correct, offsets, count, used_hues,
        min_separation=10, s_jitter=8, l_jitter=8,
        s_range=(50, 100), l_range=(35, 65), rng=rng,
    )


def generate_tetradic_distractors(
    correct_hex: str,
    visible_hexes: Sequence[str],
    count: int = 3,
    rng=None,
) -> List[str]:
    rng = rng or random
    correct = hex_to_hsl(correct_hex)
    used_hues = [correct.h] + [hex_to_hsl(c).h for c in visible_hexes]
    return _offset_distractors(
        correct, [15, -15, 30, -30, 45, -45], count, used_hues,
        min_separation=12, s_jitter=12, l_jitter=10,
        s_range=(45, 95), l_range=(35, 65), rng=rng,
    )


def generate_double_complementary_distractors(
    correct_hex: str,
    visible_hexes: Sequence[str],
    count: int = 3,
    rng=None,
) -> List[str]:
    rng = rng or random
    correct = hex_to_hsl(correct_hex)
    used_hues = [correct.h] + [hex_to_hsl(c).h for c in visible_hexes]
    return _offset_distractors(
        correct, [15, -15, 45, -45, 60, -60], count, used_hues,
        min_separation=12, s_jitter=12, l_jitter=10,
        s_range=(45, 95), l_range=(35, 65), rng=rng,
    )


_MONO_VARIATIONS = [
    (15, 10), (-15, 10), (15, -10), (-15, -10), (25, 15), (-25, -15),
]


def generate_monochromatic_distractors(
    correct_hex: str,
    base_hue: float,
    count: int = 3,
    rng=None,
) -> List[str]:
    """Same hue, different saturation/lightness combinations."""
    rng = rng or random
    correct = hex_to_hsl(correct_hex)
    used_sl = [(correct.s, correct.l)]
    distractors = []

    for s_offset, l_offset in shuffle_list(_MONO_VARIATIONS, rng):
        if len(distractors) >= count:
            break

        new_s = _clamp(correct.s + s_offset, 30, 100)
        new_l = _clamp(correct.l + l_offset, 25, 75)
        too_similar = any(
            abs(s - new_s) < 10 and abs(l - new_l) < 8 for s, l in used_sl
        )
        if not too_similar:
            distractors.append(hsl_to_hex(base_hue, new_s, new_l))
            used_sl.append((new_s, new_l))

    return distractors
