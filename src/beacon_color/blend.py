# blend.py – beacon beam colour of a glass stack
#
# The game seeds the beam with the first pane and then averages every further
# pane into the running colour, rounding each step.  That is a left fold, so
# order matters and the intermediate rounding compounds.

from __future__ import annotations

import math
from typing import List, Sequence

import numpy as np

from .palette import RGB

BLACK: RGB = (0, 0, 0)


def round_half_up(x: float) -> int:
    # Math.round semantics; Python's round() is banker's rounding
    return math.floor(x + 0.5)


def _round_rgb(rgb: Sequence[float]) -> RGB:
    r, g, b = rgb
    return (round_half_up(r), round_half_up(g), round_half_up(b))


def blend_step(acc: RGB, rgb: Sequence[float]) -> RGB:
    """One fold step: average ``rgb`` into the running beam colour."""
    nr, ng, nb = _round_rgb(rgb)
    return (
        round_half_up((acc[0] + nr) / 2),
        round_half_up((acc[1] + ng) / 2),
        round_half_up((acc[2] + nb) / 2),
    )


def beacon_color(stack: Sequence[Sequence[float]]) -> RGB:
    if not stack:
        return BLACK
    acc = _round_rgb(stack[0])
    for rgb in stack[1:]:
        acc = blend_step(acc, rgb)
    return acc


def merged_colors(stack: Sequence[Sequence[float]]) -> List[RGB]:
    """Beam colour after each layer, bottom to top."""
    out: List[RGB] = []
    for rgb in stack:
        out.append(blend_step(out[-1], rgb) if out else _round_rgb(rgb))
    return out


def blend_step_array(acc: np.ndarray, rgb: np.ndarray) -> np.ndarray:
    """
    Vectorised ``blend_step`` for integer colour arrays that broadcast.

    For integers, round-half-up of (a + b) / 2 is exactly (a + b + 1) // 2.
    """
    acc = np.asarray(acc, dtype=np.int64)
    rgb = np.asarray(rgb, dtype=np.int64)
    return (acc + rgb + 1) // 2


__all__ = [
    "BLACK",
    "beacon_color",
    "blend_step",
    "blend_step_array",
    "merged_colors",
    "round_half_up",
]
