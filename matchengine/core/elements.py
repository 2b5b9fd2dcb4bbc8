# matchengine/core/elements.py
"""
Element compatibility tables.

Two static matrices, built once at import:
- ELEMENT_SCORES[e1][e2]  base score 0..100 for an element pair
- SIGN_MODIFIERS[s1][s2]  per ordered pair modifier in -20..+20; rows cover the
  twelve signs and the seven planets. The raw table is asymmetric on purpose;
  `lookup` averages both directions so the effective modifier is symmetric.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from types import MappingProxyType
from typing import Any, Dict, Mapping

from matchengine.core.constants import ELEMENT_OF

__all__ = ["ElementScore", "ELEMENT_SCORES", "SIGN_MODIFIERS", "element_of", "element_score", "sign_modifier", "lookup"]


def _freeze(table: Dict[str, Dict[str, int]]) -> Mapping[str, Mapping[str, int]]:
    return MappingProxyType({k: MappingProxyType(dict(v)) for k, v in table.items()})


ELEMENT_SCORES = _freeze({
    "Fire":  {"Fire": 85, "Earth": 75, "Air": 90, "Water": 45},
    "Earth": {"Fire": 75, "Earth": 80, "Air": 45, "Water": 90},
    "Air":   {"Fire": 90, "Earth": 45, "Air": 85, "Water": 75},
    "Water": {"Fire": 45, "Earth": 90, "Air": 75, "Water": 95},
})

SIGN_MODIFIERS = _freeze({
    # signs
    "Aries": {
        "Aries": 10, "Leo": 15, "Sagittarius": 15, "Libra": 10, "Gemini": 10, "Aquarius": 10,
        "Taurus": -10, "Cancer": 0, "Virgo": 0, "Scorpio": 5, "Capricorn": -15, "Pisces": 0,
        "Sun": 15, "Moon": 0, "Mercury": 10, "Venus": -5, "Mars": 15, "Jupiter": 10, "Saturn": -10,
    },
    "Leo": {
        "Leo": 10, "Aries": 15, "Sagittarius": 15, "Libra": 15, "Gemini": 10, "Taurus": -10,
        "Cancer": 5, "Virgo": 0, "Scorpio": 5, "Capricorn": 0, "Aquarius": 5, "Pisces": 0,
        "Sun": 15, "Moon": 5, "Mercury": 5, "Venus": 10, "Mars": 10, "Jupiter": 15, "Saturn": -5,
    },
    "Sagittarius": {
        "Sagittarius": 10, "Aries": 15, "Leo": 15, "Gemini": 10, "Libra": 10, "Pisces": -10,
        "Taurus": 0, "Cancer": 0, "Virgo": -15, "Scorpio": 0, "Capricorn": 5, "Aquarius": 10,
        "Sun": 10, "Moon": 0, "Mercury": 5, "Venus": 0, "Mars": 10, "Jupiter": 15, "Saturn": 0,
    },
    "Taurus": {
        "Taurus": 10, "Virgo": 15, "Capricorn": 15, "Cancer": 15, "Pisces": 10, "Aries": -10,
        "Leo": -10, "Gemini": -10, "Libra": 5, "Scorpio": 10, "Sagittarius": 0, "Aquarius": -15,
        "Sun": -5, "Moon": 10, "Mercury": 0, "Venus": 15, "Mars": -10, "Jupiter": 5, "Saturn": 10,
    },
    "Virgo": {
        "Virgo": 10, "Taurus": 15, "Capricorn": 15, "Cancer": 10, "Scorpio": 10, "Sagittarius": -15,
        "Aries": 0, "Leo": 0, "Gemini": 5, "Libra": 5, "Aquarius": 0, "Pisces": 10,
        "Sun": 0, "Moon": 5, "Mercury": 15, "Venus": 10, "Mars": -5, "Jupiter": 0, "Saturn": 10,
    },
    "Capricorn": {
        "Capricorn": 10, "Taurus": 15, "Virgo": 15, "Scorpio": 15, "Pisces": 10, "Aries": -15,
        "Leo": 0, "Gemini": 0, "Cancer": 10, "Libra": 5, "Sagittarius": 5, "Aquarius": -10,
        "Sun": -5, "Moon": 5, "Mercury": 5, "Venus": 10, "Mars": -5, "Jupiter": 0, "Saturn": 15,
    },
    "Gemini": {
        "Gemini": 10, "Libra": 15, "Aquarius": 15, "Aries": 10, "Leo": 10, "Taurus": -10,
        "Cancer": 5, "Virgo": 5, "Scorpio": -10, "Sagittarius": 10, "Capricorn": 0, "Pisces": -5,
        "Sun": 5, "Moon": 0, "Mercury": 15, "Venus": 5, "Mars": 5, "Jupiter": 10, "Saturn": 0,
    },
    "Libra": {
        "Libra": 10, "Gemini": 15, "Aquarius": 15, "Leo": 15, "Sagittarius": 10, "Cancer": -5,
        "Taurus": 5, "Virgo": 5, "Scorpio": 10, "Capricorn": 5, "Aries": 10, "Pisces": 10,
        "Sun": 10, "Moon": 5, "Mercury": 10, "Venus": 15, "Mars": 0, "Jupiter": 10, "Saturn": 0,
    },
    "Aquarius": {
        "Aquarius": 10, "Gemini": 15, "Libra": 15, "Aries": 10, "Sagittarius": 10, "Taurus": -15,
        "Cancer": -10, "Leo": 5, "Virgo": 0, "Scorpio": 5, "Capricorn": -10, "Pisces": 10,
        "Sun": 5, "Moon": -5, "Mercury": 10, "Venus": 0, "Mars": 5, "Jupiter": 10, "Saturn": 10,
    },
    "Cancer": {
        "Cancer": 10, "Scorpio": 15, "Pisces": 15, "Taurus": 15, "Virgo": 10, "Aquarius": -10,
        "Aries": 0, "Leo": 5, "Gemini": 5, "Libra": -5, "Sagittarius": 0, "Capricorn": 10,
        "Sun": 0, "Moon": 15, "Mercury": 0, "Venus": 10, "Mars": -5, "Jupiter": 5, "Saturn": 5,
    },
    "Scorpio": {
        "Scorpio": 10, "Cancer": 15, "Pisces": 15, "Capricorn": 15, "Virgo": 10, "Gemini": -10,
        "Aries": 5, "Leo": 5, "Taurus": 10, "Libra": 10, "Sagittarius": 0, "Aquarius": 5,
        "Sun": 5, "Moon": 10, "Mercury": -5, "Venus": 5, "Mars": 15, "Jupiter": 5, "Saturn": 10,
    },
    "Pisces": {
        "Pisces": 10, "Cancer": 15, "Scorpio": 15, "Taurus": 10, "Capricorn": 10, "Gemini": -5,
        "Aries": 0, "Leo": 0, "Virgo": 10, "Libra": 10, "Sagittarius": -10, "Aquarius": 10,
        "Sun": 0, "Moon": 15, "Mercury": 0, "Venus": 10, "Mars": 0, "Jupiter": 15, "Saturn": 5,
    },
    # planets
    "Sun": {
        "Aries": 15, "Leo": 15, "Sagittarius": 10, "Taurus": -5, "Virgo": 0, "Capricorn": -5,
        "Gemini": 5, "Libra": 10, "Aquarius": 5, "Cancer": 0, "Scorpio": 5, "Pisces": 0,
        "Sun": 15, "Moon": 10, "Mercury": 5, "Venus": 5, "Mars": 10, "Jupiter": 15, "Saturn": -5,
    },
    "Moon": {
        "Aries": 0, "Leo": 5, "Sagittarius": 0, "Taurus": 10, "Virgo": 5, "Capricorn": 5,
        "Gemini": 0, "Libra": 5, "Aquarius": -5, "Cancer": 15, "Scorpio": 10, "Pisces": 15,
        "Sun": 10, "Moon": 15, "Mercury": 0, "Venus": 10, "Mars": -5, "Jupiter": 5, "Saturn": 0,
    },
    "Mercury": {
        "Aries": 10, "Leo": 5, "Sagittarius": 5, "Taurus": 0, "Virgo": 15, "Capricorn": 5,
        "Gemini": 15, "Libra": 10, "Aquarius": 10, "Cancer": 0, "Scorpio": -5, "Pisces": 0,
        "Sun": 5, "Moon": 0, "Mercury": 15, "Venus": 5, "Mars": 5, "Jupiter": 10, "Saturn": 5,
    },
    "Venus": {
        "Aries": -5, "Leo": 10, "Sagittarius": 0, "Taurus": 15, "Virgo": 10, "Capricorn": 10,
        "Gemini": 5, "Libra": 15, "Aquarius": 0, "Cancer": 10, "Scorpio": 5, "Pisces": 10,
        "Sun": 5, "Moon": 10, "Mercury": 5, "Venus": 15, "Mars": 0, "Jupiter": 10, "Saturn": 5,
    },
    "Mars": {
        "Aries": 15, "Leo": 10, "Sagittarius": 10, "Taurus": -10, "Virgo": -5, "Capricorn": -5,
        "Gemini": 5, "Libra": 0, "Aquarius": 5, "Cancer": -5, "Scorpio": 15, "Pisces": 0,
        "Sun": 10, "Moon": -5, "Mercury": 5, "Venus": 0, "Mars": 15, "Jupiter": 10, "Saturn": -10,
    },
    "Jupiter": {
        "Aries": 10, "Leo": 15, "Sagittarius": 15, "Taurus": 5, "Virgo": 0, "Capricorn": 0,
        "Gemini": 10, "Libra": 10, "Aquarius": 10, "Cancer": 5, "Scorpio": 5, "Pisces": 15,
        "Sun": 15, "Moon": 5, "Mercury": 10, "Venus": 10, "Mars": 10, "Jupiter": 15, "Saturn": 0,
    },
    "Saturn": {
        "Aries": -10, "Leo": -5, "Sagittarius": 0, "Taurus": 10, "Virgo": 10, "Capricorn": 15,
        "Gemini": 0, "Libra": 0, "Aquarius": 10, "Cancer": 5, "Scorpio": 10, "Pisces": 5,
        "Sun": -5, "Moon": 0, "Mercury": 5, "Venus": 5, "Mars": -10, "Jupiter": 0, "Saturn": 10,
    },
})


@dataclass(frozen=True)
class ElementScore:
    element_score: int
    sign_modifier: float

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def element_of(name: str) -> str:
    try:
        return ELEMENT_OF[name]
    except KeyError:
        raise KeyError(f"unknown sign or planet: {name}") from None

def element_score(a: str, b: str) -> int:
    return ELEMENT_SCORES[element_of(a)][element_of(b)]

def sign_modifier(a: str, b: str) -> int:
    """Raw, directional modifier; 0 when the pair is not authored."""
    return SIGN_MODIFIERS.get(a, {}).get(b, 0)

def lookup(a: str, b: str) -> ElementScore:
    return ElementScore(
        element_score=element_score(a, b),
        sign_modifier=(sign_modifier(a, b) + sign_modifier(b, a)) / 2.0,
    )
