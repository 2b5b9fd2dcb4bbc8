# matchengine/core/constants.py
# -*- coding: utf-8 -*-
"""
Match engine: core constants & small helpers

Purpose
-------
Single source of truth for:
- zodiac signs, planets and their elements
- aspect angles, orbs and polarity weights
- planet significance weights used when aggregating aspects
- tiny angle helpers (wrap/separation/longitude)

Design
------
- Pure-Python, no external dependencies.
- Safe to import from any core module.
- Tables are read-only mappings built once at import time.
"""

from __future__ import annotations
from types import MappingProxyType
from typing import Dict, Mapping, Tuple
import math

__all__ = [
    # signs & bodies
    "ZODIAC_SIGNS", "PLANETS", "ELEMENTS", "ELEMENT_OF",
    # aspects
    "ASPECT_ANGLES_DEG", "ASPECT_ORBS_DEG", "ASPECT_WEIGHTS", "PLANET_WEIGHTS",
    # chart defaults
    "DEFAULT_DEGREE", "DEFAULT_HOUSE", "MOON_DEG_PER_DAY", "RISING_DEG_PER_MINUTE",
    # helpers
    "wrap_deg", "abs_sep_deg", "sign_index", "ecliptic_longitude", "round_half_up", "clamp",
]

# ── signs & bodies ────────────────────────────────────────────────────────────
ZODIAC_SIGNS: Tuple[str, ...] = (
    "Aries", "Taurus", "Gemini", "Cancer", "Leo", "Virgo",
    "Libra", "Scorpio", "Sagittarius", "Capricorn", "Aquarius", "Pisces",
)

# Ordering is significant: aspect details are emitted in this order.
PLANETS: Tuple[str, ...] = (
    "Sun", "Moon", "Mercury", "Venus", "Mars", "Jupiter", "Saturn",
)

ELEMENTS: Tuple[str, ...] = ("Fire", "Earth", "Air", "Water")

ELEMENT_OF: Mapping[str, str] = MappingProxyType({
    # signs
    "Aries": "Fire", "Leo": "Fire", "Sagittarius": "Fire",
    "Taurus": "Earth", "Virgo": "Earth", "Capricorn": "Earth",
    "Gemini": "Air", "Libra": "Air", "Aquarius": "Air",
    "Cancer": "Water", "Scorpio": "Water", "Pisces": "Water",
    # planets
    "Sun": "Fire", "Moon": "Water", "Mercury": "Air", "Venus": "Earth",
    "Mars": "Fire", "Jupiter": "Fire", "Saturn": "Earth",
})

# ── aspect geometry ──────────────────────────────────────────────────────────
# Insertion order is the test order: the first aspect whose orb contains the
# separation wins.
ASPECT_ANGLES_DEG: Mapping[str, float] = MappingProxyType({
    "conjunction": 0.0,
    "sextile": 60.0,
    "square": 90.0,
    "trine": 120.0,
    "opposition": 180.0,
})

ASPECT_ORBS_DEG: Mapping[str, float] = MappingProxyType({
    "conjunction": 10.0,
    "sextile": 6.0,
    "square": 8.0,
    "trine": 8.0,
    "opposition": 10.0,
})

# Polarity: harmonious > 0, challenging < 0.
ASPECT_WEIGHTS: Mapping[str, float] = MappingProxyType({
    "conjunction": 1.0,
    "trine": 0.8,
    "sextile": 0.5,
    "opposition": -0.7,
    "square": -0.5,
})

PLANET_WEIGHTS: Mapping[str, float] = MappingProxyType({
    "Sun": 1.0, "Moon": 1.0,
    "Venus": 0.9,
    "Mercury": 0.8, "Mars": 0.8,
    "Jupiter": 0.7, "Saturn": 0.7,
})

# ── chart defaults ───────────────────────────────────────────────────────────
DEFAULT_DEGREE: float = 15.0
DEFAULT_HOUSE: int = 1
MOON_DEG_PER_DAY: float = 12.0
RISING_DEG_PER_MINUTE: float = 0.25   # 1° every 4 minutes, 360° per day

# ── tiny angle helpers ───────────────────────────────────────────────────────
def wrap_deg(x: float) -> float:
    """Wrap any angle to [0, 360)."""
    x = math.fmod(float(x), 360.0)
    return x + 360.0 if x < 0.0 else x

def abs_sep_deg(a: float, b: float) -> float:
    """Absolute smallest separation between angles a and b (deg, [0, 180])."""
    d = abs(wrap_deg(a) - wrap_deg(b))
    return 360.0 - d if d > 180.0 else d

def sign_index(sign: str) -> int:
    return ZODIAC_SIGNS.index(sign)

def ecliptic_longitude(sign: str, degree: float) -> float:
    """Sign + degree-within-sign → ecliptic longitude in [0, 360)."""
    return wrap_deg(sign_index(sign) * 30.0 + float(degree))

def round_half_up(x: float) -> int:
    """Round .5 away from zero for non-negative scores (Python's round() is banker's)."""
    return int(math.floor(float(x) + 0.5))

def clamp(x: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return lo if x < lo else hi if x > hi else x
