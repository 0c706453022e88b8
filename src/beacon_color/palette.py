# palette.py – stained-glass colours and search presets (static, never mutated)

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional, Tuple

RGB = Tuple[int, int, int]
Lab = Tuple[float, float, float]

MAX_HEIGHT = 6  # beacon beam is tinted by at most six glass layers here
PROGRESS_EVERY = 1000  # exhaustive worker reports every N visited nodes

# Insertion order is the enumeration order of every search.
GLASS_COLORS: Mapping[str, RGB] = MappingProxyType(
    {
        "white_stained_glass": (249, 255, 254),
        "orange_stained_glass": (249, 128, 29),
        "magenta_stained_glass": (199, 78, 189),
        "light_blue_stained_glass": (58, 179, 218),
        "yellow_stained_glass": (254, 216, 61),
        "lime_stained_glass": (128, 199, 31),
        "pink_stained_glass": (243, 139, 170),
        "gray_stained_glass": (71, 79, 82),
        "light_gray_stained_glass": (157, 157, 151),
        "cyan_stained_glass": (22, 156, 156),
        "purple_stained_glass": (137, 50, 184),
        "blue_stained_glass": (60, 68, 170),
        "brown_stained_glass": (131, 84, 50),
        "green_stained_glass": (94, 124, 22),
        "red_stained_glass": (176, 46, 38),
        "black_stained_glass": (29, 29, 33),
    }
)

# name -> beam width; None means "check every combination" (exhaustive worker)
PRESETS: Mapping[str, Optional[int]] = MappingProxyType(
    {
        "Very Low": 60,
        "Low": 180,
        "Normal": 400,
        "High": 800,
        "Very High": 4000,
        "Absolute": None,
    }
)

UNKNOWN = "Unknown"


def find_color_name(rgb: RGB, palette: Mapping[str, RGB] | None = None) -> str:
    """Reverse lookup of a glass layer; exact channel match only."""
    key = tuple(int(c) for c in rgb)
    for name, value in (GLASS_COLORS if palette is None else palette).items():
        if value == key:
            return name
    return UNKNOWN


def display_name(internal: str) -> str:
    # "light_blue_stained_glass" -> "Light Blue Stained Glass"
    return " ".join(w[:1].upper() + w[1:] for w in internal.split("_"))


def internal_name(display: str) -> str:
    return display.strip().replace(" ", "_").lower()


def resolve_glass(name: str, palette: Mapping[str, RGB] | None = None) -> RGB:
    """Accept either the internal or the display name of a glass block."""
    pal = GLASS_COLORS if palette is None else palette
    key = name if name in pal else internal_name(name)
    if key not in pal:
        raise KeyError(f"unknown glass '{name}'")
    return pal[key]


__all__ = [
    "GLASS_COLORS",
    "MAX_HEIGHT",
    "PRESETS",
    "PROGRESS_EVERY",
    "RGB",
    "Lab",
    "display_name",
    "find_color_name",
    "internal_name",
    "resolve_glass",
]
