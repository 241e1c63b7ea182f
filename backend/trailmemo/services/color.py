"""
TrailMemo Backend — Deterministic User Colors
===============================================

What:  Derives a stable '#rrggbb' color from a user id.
Who:   AccountService.register() (stored once on the user row).

Derivation:
    digest     = MD5(user_id)
    hue        = uint16(digest[0:2]) % 360
    saturation = 60 + digest[2] % 21     → 60..80 %
    lightness  = 45 + digest[3] % 21     → 45..65 %
    rgb        = standard HSL → RGB, channels rounded half-up

    The saturation/lightness bands keep every color readable as a map pin
    on both light and dark tiles.
"""

import hashlib
import math
from typing import Tuple


def derive_hsl(user_id: str) -> Tuple[int, int, int]:
    """(hue 0-359, saturation 60-80, lightness 45-65) for `user_id`."""
    digest = hashlib.md5(user_id.encode("utf-8")).digest()
    hue = int.from_bytes(digest[0:2], "big") % 360
    saturation = 60 + digest[2] % 21
    lightness = 45 + digest[3] % 21
    return hue, saturation, lightness


def _hue_to_rgb(p: float, q: float, t: float) -> float:
    if t < 0:
        t += 1
    if t > 1:
        t -= 1
    if t < 1 / 6:
        return p + (q - p) * 6 * t
    if t < 1 / 2:
        return q
    if t < 2 / 3:
        return p + (q - p) * (2 / 3 - t) * 6
    return p


def _to_byte(channel: float) -> int:
    # Half-up rounding; round() would bank to even on exact .5 values.
    return int(math.floor(channel * 255 + 0.5))


def hsl_to_rgb(hue: float, saturation: float, lightness: float) -> Tuple[int, int, int]:
    """
    Convert HSL (degrees, percent, percent) to 8-bit RGB.

    >>> hsl_to_rgb(0, 100, 50)
    (255, 0, 0)
    """
    h = hue / 360.0
    s = saturation / 100.0
    lum = lightness / 100.0

    if s == 0:
        gray = _to_byte(lum)
        return gray, gray, gray

    q = lum * (1 + s) if lum < 0.5 else lum + s - lum * s
    p = 2 * lum - q
    r = _hue_to_rgb(p, q, h + 1 / 3)
    g = _hue_to_rgb(p, q, h)
    b = _hue_to_rgb(p, q, h - 1 / 3)
    return _to_byte(r), _to_byte(g), _to_byte(b)


def generate_user_color(user_id: str) -> str:
    """'#rrggbb' for `user_id`; identical input always yields identical output."""
    r, g, b = hsl_to_rgb(*derive_hsl(user_id))
    return f"#{r:02x}{g:02x}{b:02x}"
