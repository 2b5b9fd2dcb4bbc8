# matchengine/core/zodiac.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Tuple

__all__ = ["SignRange", "SIGN_RANGES", "zodiac_sign", "in_range"]


@dataclass(frozen=True)
class SignRange:
    sign: str
    start_month: int   # 1..12
    start_day: int
    end_month: int
    end_day: int

    @property
    def wraps_year(self) -> bool:
        return self.start_month > self.end_month


# Tropical sun-sign boundaries (inclusive on both ends).
SIGN_RANGES: Tuple[SignRange, ...] = (
    SignRange("Aries", 3, 21, 4, 19),
    SignRange("Taurus", 4, 20, 5, 20),
    SignRange("Gemini", 5, 21, 6, 20),
    SignRange("Cancer", 6, 21, 7, 22),
    SignRange("Leo", 7, 23, 8, 22),
    SignRange("Virgo", 8, 23, 9, 22),
    SignRange("Libra", 9, 23, 10, 22),
    SignRange("Scorpio", 10, 23, 11, 21),
    SignRange("Sagittarius", 11, 22, 12, 21),
    SignRange("Capricorn", 12, 22, 1, 19),
    SignRange("Aquarius", 1, 20, 2, 18),
    SignRange("Pisces", 2, 19, 3, 20),
)


def in_range(d: date, r: SignRange) -> bool:
    md = (d.month, d.day)
    start = (r.start_month, r.start_day)
    end = (r.end_month, r.end_day)
    if r.wraps_year:
        return md >= start or md <= end
    return start <= md <= end


def zodiac_sign(d: date) -> str:
    """Sun sign for a calendar date. The table covers every day of the year."""
    for r in SIGN_RANGES:
        if in_range(d, r):
            return r.sign
    raise ValueError(f"no zodiac range covers {d.isoformat()}")  # pragma: no cover
