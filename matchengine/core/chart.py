# matchengine/core/chart.py
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from matchengine.core.constants import (
    DEFAULT_DEGREE, DEFAULT_HOUSE, PLANETS, ZODIAC_SIGNS,
    ecliptic_longitude, sign_index, wrap_deg,
)
from matchengine.core.validators import BirthData

__all__ = [
    "PlanetPosition",
    "NatalChart",
    "position_from_longitude",
    "default_positions",
    "positions_from_mapping",
    "positions_to_mapping",
]


@dataclass(frozen=True)
class PlanetPosition:
    sign: str
    degree: float          # [0, 30)
    house: int             # 1..12

    def __post_init__(self) -> None:
        if self.sign not in ZODIAC_SIGNS:
            raise ValueError(f"unknown sign: {self.sign!r}")
        if not (0.0 <= float(self.degree) < 30.0):
            raise ValueError(f"degree out of range [0,30): {self.degree!r}")
        if isinstance(self.house, bool) or not isinstance(self.house, int) or not 1 <= self.house <= 12:
            raise ValueError(f"house out of range 1..12: {self.house!r}")

    @property
    def longitude(self) -> float:
        return ecliptic_longitude(self.sign, self.degree)

    def as_dict(self) -> Dict[str, Any]:
        return {"sign": self.sign, "degree": float(self.degree), "house": self.house}


@dataclass(frozen=True)
class NatalChart:
    """Derived once per BirthData fingerprint; never mutated afterwards."""
    birth_data: BirthData
    zodiac_sign: str
    planet_positions: Mapping[str, PlanetPosition]
    source: str = "static_default"
    meta: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "planet_positions", MappingProxyType(dict(self.planet_positions)))
        object.__setattr__(self, "meta", MappingProxyType(dict(self.meta)))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "birth_data": self.birth_data.as_dict(),
            "zodiac_sign": self.zodiac_sign,
            "planet_positions": positions_to_mapping(self.planet_positions),
            "source": self.source,
        }


def position_from_longitude(lon: float, reference_sign: Optional[str] = None) -> PlanetPosition:
    """
    Ecliptic longitude → (sign, degree-in-sign, house). Houses are counted as
    whole signs from `reference_sign` (house 1); without one, house 1.
    """
    lon = wrap_deg(lon)
    idx = int(lon // 30.0) % 12
    degree = round(lon - idx * 30.0, 6)
    if degree >= 30.0:  # rounds up onto the next cusp
        degree = 0.0
        idx = (idx + 1) % 12
    house = DEFAULT_HOUSE
    if reference_sign is not None:
        house = (idx - sign_index(reference_sign)) % 12 + 1
    return PlanetPosition(sign=ZODIAC_SIGNS[idx], degree=degree, house=house)


def default_positions(sun_sign: str) -> Dict[str, PlanetPosition]:
    """Every planet at the sun sign, degree 15, house 1."""
    pos = PlanetPosition(sign=sun_sign, degree=DEFAULT_DEGREE, house=DEFAULT_HOUSE)
    return {name: pos for name in PLANETS}


def positions_from_mapping(raw: Any) -> Dict[str, PlanetPosition]:
    """
    Strict parse of {planet: {sign, degree, house}}. All seven planets are
    required; a partial chart raises ValueError rather than being filled in.
    Planet keys are matched case-insensitively.
    """
    if not isinstance(raw, Mapping):
        raise ValueError("planet positions must be a mapping")
    by_lower = {str(k).lower(): v for k, v in raw.items()}
    out: Dict[str, PlanetPosition] = {}
    for name in PLANETS:
        row = by_lower.get(name.lower())
        if not isinstance(row, Mapping):
            raise ValueError(f"missing planet: {name}")
        try:
            out[name] = PlanetPosition(
                sign=str(row["sign"]).strip().title(),
                degree=float(row["degree"]),
                house=int(row["house"]),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"malformed row for {name}: {e}") from e
    return out


def positions_to_mapping(positions: Mapping[str, PlanetPosition]) -> Dict[str, Dict[str, Any]]:
    return {name: positions[name].as_dict() for name in PLANETS if name in positions}
