import itertools

import numpy as np

from beacon_color.blend import (
    beacon_color,
    blend_step,
    blend_step_array,
    merged_colors,
    round_half_up,
)
from beacon_color.palette import GLASS_COLORS

RED = GLASS_COLORS["red_stained_glass"]
WHITE = GLASS_COLORS["white_stained_glass"]
BLACK = GLASS_COLORS["black_stained_glass"]


def test_empty_stack_is_black():
    assert beacon_color([]) == (0, 0, 0)


def test_single_pane_is_its_own_colour():
    for rgb in GLASS_COLORS.values():
        assert beacon_color([rgb]) == rgb
    assert beacon_color([(12.4, 12.5, 200.6)]) == (12, 13, 201)


def test_fold_is_order_sensitive():
    assert beacon_color([RED, WHITE, BLACK]) == (121, 90, 90)
    assert beacon_color([BLACK, WHITE, RED]) == (158, 94, 91)


def test_deterministic():
    stack = [RED, WHITE, BLACK, WHITE, RED]
    assert len({beacon_color(stack) for _ in range(10)}) == 1


def test_rounding_is_half_up_not_bankers():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert beacon_color([(0, 0, 0), (1, 1, 1)]) == (1, 1, 1)
    assert beacon_color([(2, 2, 2), (3, 3, 3)]) == (3, 3, 3)


def test_not_a_plain_mean():
    # the plain mean of the three rounds to (151, 110, 108)
    assert beacon_color([RED, WHITE, BLACK]) != (151, 110, 108)


def test_incremental_step_matches_full_fold():
    pal = list(GLASS_COLORS.values())
    for stack in itertools.product(pal[:4], repeat=3):
        prefix = list(stack[:-1])
        assert blend_step(beacon_color(prefix), stack[-1]) == beacon_color(list(stack))


def test_merged_colors_are_prefix_blends():
    stack = [RED, WHITE, BLACK, GLASS_COLORS["lime_stained_glass"]]
    merged = merged_colors(stack)
    assert len(merged) == len(stack)
    for i, rgb in enumerate(merged):
        assert rgb == beacon_color(stack[: i + 1])
    assert merged_colors([]) == []


def test_array_step_matches_scalar_step():
    pal = np.array(list(GLASS_COLORS.values()))
    out = blend_step_array(pal[:, None, :], pal[None, :, :])
    assert out.shape == (16, 16, 3)
    for i, a in enumerate(pal):
        for j, b in enumerate(pal):
            assert tuple(out[i, j]) == blend_step(tuple(a), tuple(b))
