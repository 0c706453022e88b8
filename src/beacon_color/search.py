# search.py – candidates, beam search and the length/accuracy frontier

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .blend import BLACK, beacon_color, blend_step_array
from .blend import merged_colors as _merged_colors
from .colorimetry import delta_e_lab_rgb, delta_e_rgb_many, hex_to_rgb, rgb_to_hex
from .palette import GLASS_COLORS, MAX_HEIGHT, PRESETS, RGB, find_color_name, resolve_glass

log = logging.getLogger(__name__)

Stack = Tuple[RGB, ...]
DepthHook = Callable[[int, Tuple["Candidate", ...], int], None]


@dataclass(frozen=True)
class Candidate:
    """One evaluated glass stack: layers bottom→top, beam colour, ΔE00 to target."""

    stack: Stack
    color: RGB
    dist: float

    @property
    def length(self) -> int:
        return len(self.stack)

    @property
    def names(self) -> List[str]:
        return [find_color_name(rgb) for rgb in self.stack]

    @property
    def merged_colors(self) -> List[RGB]:
        return _merged_colors(self.stack)

    @property
    def accuracy(self) -> float:
        # percentage shown next to each result
        return max(0.0, 100.0 - self.dist)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stack": [list(rgb) for rgb in self.stack],
            "names": self.names,
            "color": list(self.color),
            "hex": rgb_to_hex(self.color),
            "dist": self.dist,
            "accuracy": self.accuracy,
            "mergedStackColors": [rgb_to_hex(c) for c in self.merged_colors],
        }


@dataclass
class BeamResult:
    best_per_length: Dict[int, Candidate] = field(default_factory=dict)
    checked: int = 0
    max_height: int = MAX_HEIGHT

    def frontier(self) -> List[Candidate]:
        return build_frontier(self.best_per_length, self.max_height)


def build_frontier(
    best_per_length: Mapping[int, Optional[Candidate]], max_height: int = MAX_HEIGHT
) -> List[Candidate]:
    """
    Reduce per-length bests to the lengths worth showing.

    A length is kept only if it is strictly more accurate than every shorter
    kept length, so distances strictly decrease along the returned list.
    """
    out: List[Candidate] = []
    best_so_far = math.inf
    for length in range(1, max_height + 1):
        cand = best_per_length.get(length)
        if cand is not None and cand.dist < best_so_far:
            out.append(cand)
            best_so_far = cand.dist
    return out


def evaluate_stack(stack: Sequence[Union[str, Sequence[int]]], target: RGB) -> Candidate:
    """Score a hand-built stack; layers may be glass names or RGB triples."""
    layers: Stack = tuple(
        resolve_glass(layer) if isinstance(layer, str) else tuple(int(c) for c in layer)
        for layer in stack
    )
    color = beacon_color(layers)
    return Candidate(layers, color, delta_e_lab_rgb(target, color))


# --- beam search -------------------------------------------------------------
def _beam_width(beam_width: Optional[float]) -> Optional[int]:
    if beam_width is None or beam_width == math.inf:
        return None
    width = int(beam_width)
    if width < 1:
        raise ValueError("beam width must be ≥ 1")
    return width


async def run_beam_search(
    target: RGB,
    beam_width: Optional[float],
    *,
    max_height: int = MAX_HEIGHT,
    palette: Mapping[str, RGB] | None = None,
    on_depth: DepthHook | None = None,
    cancelled: Callable[[], bool] | None = None,
) -> BeamResult:
    """
    Layer-by-layer beam search over glass stacks.

    Every beam member is extended by every palette colour, the expansion is
    sorted by ΔE00 (stable, so ties keep enumeration order) and cut to
    ``beam_width``.  Control returns to the event loop after each depth; a
    depth's expansion itself is never interrupted.  ``cancelled`` is polled
    between depths and stops the search with the results gathered so far.
    """
    pal = GLASS_COLORS if palette is None else palette
    pal_rgbs: List[RGB] = list(pal.values())
    colors = np.array(pal_rgbs, dtype=np.int64).reshape(-1, 3)
    n_pal = len(pal_rgbs)
    width = _beam_width(beam_width)
    target = tuple(target)  # type: ignore[assignment]

    result = BeamResult(max_height=max_height)
    beam: List[Candidate] = [Candidate((), BLACK, delta_e_lab_rgb(target, BLACK))]
    log.info("beam search: target=%s width=%s", rgb_to_hex(target), width or "∞")

    for depth in range(1, max_height + 1):
        if cancelled is not None and cancelled():
            log.info("beam search cancelled before depth %d", depth)
            break

        if depth == 1:
            # first pane seeds the beam colour
            merged = colors[None, :, :]
        else:
            acc = np.array([c.color for c in beam], dtype=np.int64).reshape(-1, 3)
            merged = blend_step_array(acc[:, None, :], colors[None, :, :])
        flat = merged.reshape(-1, 3)
        dist = delta_e_rgb_many(target, flat)
        result.checked += len(flat)

        order = np.argsort(dist, kind="stable")
        if width is not None:
            order = order[:width]
        beam = [
            Candidate(
                beam[i // n_pal].stack + (pal_rgbs[i % n_pal],),
                (int(flat[i, 0]), int(flat[i, 1]), int(flat[i, 2])),
                float(dist[i]),
            )
            for i in order
        ]

        for cand in beam:
            held = result.best_per_length.get(cand.length)
            if held is None or cand.dist < held.dist:
                result.best_per_length[cand.length] = cand

        log.debug(
            "depth %d: kept %d, best ΔE %.4f, checked %d",
            depth,
            len(beam),
            beam[0].dist if beam else math.nan,
            result.checked,
        )
        if on_depth is not None:
            on_depth(depth, tuple(beam), result.checked)
        await asyncio.sleep(0)

    log.info("beam search finished: checked %d", result.checked)
    return result


def beam_search(
    target: RGB,
    beam_width: Optional[float],
    *,
    max_height: int = MAX_HEIGHT,
    palette: Mapping[str, RGB] | None = None,
    on_depth: DepthHook | None = None,
    cancelled: Callable[[], bool] | None = None,
) -> BeamResult:
    """Blocking wrapper around :func:`run_beam_search`."""
    return asyncio.run(
        run_beam_search(
            target,
            beam_width,
            max_height=max_height,
            palette=palette,
            on_depth=on_depth,
            cancelled=cancelled,
        )
    )


def find_best(
    target_hex: str,
    preset: str = "Normal",
    *,
    max_height: int = MAX_HEIGHT,
    palette: Mapping[str, RGB] | None = None,
) -> BeamResult:
    """Run the beam search configured by a named preset."""
    if preset not in PRESETS:
        raise ValueError(f"unknown preset '{preset}'")
    width = PRESETS[preset]
    if width is None:
        raise ValueError(f"preset '{preset}' needs the exhaustive worker")
    return beam_search(
        hex_to_rgb(target_hex), width, max_height=max_height, palette=palette
    )


__all__ = [
    "BeamResult",
    "Candidate",
    "beam_search",
    "build_frontier",
    "evaluate_stack",
    "find_best",
    "run_beam_search",
]
