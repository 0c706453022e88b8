# colorimetry.py – sRGB → linear → XYZ (D65) → CIELab, and CIEDE2000
#   - IEC 61966-2-1 decoding with the 0.04045 threshold
#   - fixed sRGB primaries matrix, white point Xn=95.047 Yn=100 Zn=108.883
#   - full CIEDE2000 (kL = kC = kH = 1), broadcasting over (..., 3) arrays

from __future__ import annotations

import math
import string
from functools import lru_cache
from typing import Sequence, Union

import numpy as np
from coloraide import Color

from .palette import RGB, Lab

ArrayLike = Union[Sequence[float], np.ndarray]


class InvalidColorError(ValueError):
    """Raised for colour strings that cannot be turned into an RGB triple."""


# --- hex helpers -------------------------------------------------------------
def hex_to_rgb(hex_str: str) -> RGB:
    raw = (hex_str or "").strip()
    raw = raw[1:] if raw.startswith("#") else raw
    if len(raw) == 3 and all(c in string.hexdigits for c in raw):
        raw = "".join(ch * 2 for ch in raw)
    if len(raw) != 6 or not all(c in string.hexdigits for c in raw):
        raise InvalidColorError(f"invalid hex colour: {hex_str!r}")
    return (int(raw[0:2], 16), int(raw[2:4], 16), int(raw[4:6], 16))


def rgb_to_hex(rgb: Sequence[float]) -> str:
    """#rrggbb with round-half-up and clamping to 0..255."""
    r, g, b = (min(255, max(0, math.floor(float(c) + 0.5))) for c in rgb)
    return f"#{r:02x}{g:02x}{b:02x}"


def to_hex(value: str) -> str:
    """Normalise any CSS colour (hex, rgb(), hsl(), names, ...) to #rrggbb."""
    text = (value or "").strip().lower()
    if not text:
        raise InvalidColorError("empty colour")
    try:
        return rgb_to_hex(hex_to_rgb(text))
    except InvalidColorError:
        pass
    try:
        col = Color(text)
    except ValueError as exc:
        raise InvalidColorError(f"unrecognised colour: {value!r}") from exc
    return (
        col.convert("srgb")
        .to_string(hex=True, alpha=False, fit={"method": "raytrace"})
        .lower()
    )


# --- sRGB → XYZ → Lab --------------------------------------------------------
_THRESHOLD = 0.04045
_GAMMA = 2.4

_RGB_XYZ = np.array(
    [
        [0.4124564, 0.3575761, 0.1804375],
        [0.2126729, 0.7151522, 0.0721750],
        [0.0193339, 0.1191920, 0.9503041],
    ],
    dtype=np.float64,
)

WHITE_D65 = np.array([95.047, 100.0, 108.883], dtype=np.float64)

_DELTA = 6.0 / 29.0


def srgb_to_linear(v: ArrayLike) -> np.ndarray:
    """8-bit channel value(s) → linear light in [0, 1]."""
    c = np.asarray(v, dtype=np.float64) / 255.0
    return np.where(c <= _THRESHOLD, c / 12.92, ((c + 0.055) / 1.055) ** _GAMMA)


def rgb_to_xyz(rgb: ArrayLike) -> np.ndarray:
    # Y of reference white = 100
    lin = srgb_to_linear(rgb)
    return (lin @ _RGB_XYZ.T) * 100.0


def _f(t: np.ndarray) -> np.ndarray:
    return np.where(t > _DELTA**3, np.cbrt(t), t / (3.0 * _DELTA * _DELTA) + 4.0 / 29.0)


def rgb_to_lab(rgb: ArrayLike) -> np.ndarray:
    """
    sRGB triple(s) in 0..255 → CIELab (D65).

    Accepts a single triple or any ``(..., 3)`` array and returns the same shape,
    L in roughly [0, 100] and a/b in roughly [-128, 127].
    """
    fxyz = _f(rgb_to_xyz(rgb) / WHITE_D65)
    fx, fy, fz = fxyz[..., 0], fxyz[..., 1], fxyz[..., 2]
    return np.stack([116.0 * fy - 16.0, 500.0 * (fx - fy), 200.0 * (fy - fz)], axis=-1)


@lru_cache(maxsize=65536)
def _lab_cached(rgb: RGB) -> Lab:
    L, a, b = rgb_to_lab(rgb)
    return float(L), float(a), float(b)


# --- CIEDE2000 ---------------------------------------------------------------
_POW25_7 = 25.0**7
KL = KC = KH = 1.0


def _hue_deg(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    h = np.degrees(np.arctan2(b, a))
    h = np.where(h >= 0.0, h, h + 360.0)
    return np.where((a == 0.0) & (b == 0.0), 0.0, h)


def delta_e_2000(lab1: ArrayLike, lab2: ArrayLike) -> Union[float, np.ndarray]:
    """
    CIEDE2000 colour difference between Lab colours.

    Both arguments broadcast; a pair of single triples returns a float.
    Validated against the Sharma, Wu & Dalal (2005) test data.
    """
    lab1 = np.asarray(lab1, dtype=np.float64)
    lab2 = np.asarray(lab2, dtype=np.float64)
    L1, a1, b1 = lab1[..., 0], lab1[..., 1], lab1[..., 2]
    L2, a2, b2 = lab2[..., 0], lab2[..., 1], lab2[..., 2]

    # chroma compensation G for near-neutral colours
    c_avg7 = ((np.hypot(a1, b1) + np.hypot(a2, b2)) / 2.0) ** 7
    g = 0.5 * (1.0 - np.sqrt(c_avg7 / (c_avg7 + _POW25_7)))
    a1p = (1.0 + g) * a1
    a2p = (1.0 + g) * a2
    c1p = np.hypot(a1p, b1)
    c2p = np.hypot(a2p, b2)
    h1p = _hue_deg(a1p, b1)
    h2p = _hue_deg(a2p, b2)

    chroma_prod = c1p * c2p
    neutral = chroma_prod == 0.0

    # hue difference wrapped into [-180, 180]
    dh = h2p - h1p
    dhp = np.where(
        neutral,
        0.0,
        np.where(
            np.abs(dh) <= 180.0, dh, np.where(dh > 180.0, dh - 360.0, dh + 360.0)
        ),
    )

    dLp = L2 - L1
    dCp = c2p - c1p
    dHp = 2.0 * np.sqrt(chroma_prod) * np.sin(np.radians(dhp / 2.0))

    L_avg = (L1 + L2) / 2.0
    c_avgp = (c1p + c2p) / 2.0
    h_sum = h1p + h2p
    h_avg = np.where(
        neutral,
        h_sum,
        np.where(
            np.abs(h1p - h2p) <= 180.0,
            h_sum / 2.0,
            np.where(h_sum < 360.0, (h_sum + 360.0) / 2.0, (h_sum - 360.0) / 2.0),
        ),
    )

    t = (
        1.0
        - 0.17 * np.cos(np.radians(h_avg - 30.0))
        + 0.24 * np.cos(np.radians(2.0 * h_avg))
        + 0.32 * np.cos(np.radians(3.0 * h_avg + 6.0))
        - 0.20 * np.cos(np.radians(4.0 * h_avg - 63.0))
    )
    d_ro = 30.0 * np.exp(-(((h_avg - 275.0) / 25.0) ** 2))
    c_avgp7 = c_avgp**7
    rc = 2.0 * np.sqrt(c_avgp7 / (c_avgp7 + _POW25_7))
    l50 = (L_avg - 50.0) ** 2
    sl = 1.0 + (0.015 * l50) / np.sqrt(20.0 + l50)
    sc = 1.0 + 0.045 * c_avgp
    sh = 1.0 + 0.015 * c_avgp * t
    rt = -np.sin(np.radians(2.0 * d_ro)) * rc

    tl = dLp / (KL * sl)
    tc = dCp / (KC * sc)
    th = dHp / (KH * sh)
    de = np.sqrt(tl * tl + tc * tc + th * th + rt * tc * th)
    return float(de) if de.ndim == 0 else de


def delta_e_lab_rgb(c1: RGB, c2: RGB) -> float:
    """The search objective: CIEDE2000 between two sRGB colours (target first)."""
    return float(delta_e_2000(_lab_cached(_key(c1)), _lab_cached(_key(c2))))


def delta_e_rgb_many(target: RGB, colors: ArrayLike) -> np.ndarray:
    """Vectorised objective: distances from ``target`` to each row of ``colors``."""
    lab_t = np.asarray(_lab_cached(_key(target)), dtype=np.float64)
    cols = np.asarray(colors, dtype=np.float64).reshape(-1, 3)
    return np.atleast_1d(delta_e_2000(lab_t, rgb_to_lab(cols)))


def _key(rgb: Sequence[float]) -> RGB:
    r, g, b = (math.floor(float(c) + 0.5) for c in rgb)
    return (r, g, b)


__all__ = [
    "InvalidColorError",
    "WHITE_D65",
    "delta_e_2000",
    "delta_e_lab_rgb",
    "delta_e_rgb_many",
    "hex_to_rgb",
    "rgb_to_hex",
    "rgb_to_lab",
    "rgb_to_xyz",
    "srgb_to_linear",
    "to_hex",
]
