# matchengine/core/ephemeris_table.py
"""
Precomputed ephemeris table keyed by calendar date.

File format (JSON)::

    {"1990-03-25": {"Sun": {"sign": "Aries", "degree": 4.31, "house": 1}, ...}, ...}

`build_table` produces such a mapping with Skyfield (DE421), sampling each day
at 12:00 UTC; houses are solar houses (the Sun's sign is house 1). Skyfield is
only needed to build a table, never to read one.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterator, List, Mapping, Optional
import json
import logging
import os

from matchengine.core.chart import PlanetPosition, position_from_longitude, positions_from_mapping, positions_to_mapping
from matchengine.core.constants import PLANETS
from matchengine.core.ephemeris_adapter import EphemerisError, TierUnavailable

log = logging.getLogger(__name__)

__all__ = ["EphemerisTable", "build_table", "KERNEL_TARGETS"]

# Skyfield target names in a DE421 kernel
KERNEL_TARGETS: Dict[str, str] = {
    "Sun": "sun",
    "Moon": "moon",
    "Mercury": "mercury",
    "Venus": "venus",
    "Mars": "mars",
    "Jupiter": "jupiter barycenter",
    "Saturn": "saturn barycenter",
}


class EphemerisTable:
    """Read-only date → positions lookup. Rows are validated lazily on lookup."""

    def __init__(self, rows: Optional[Mapping[str, Any]] = None, source: str = "<memory>"):
        self._rows: Dict[str, Any] = dict(rows or {})
        self.source = source

    @classmethod
    def load(cls, path: Optional[str]) -> "EphemerisTable":
        if not path:
            raise TierUnavailable("config", "no ephemeris table configured")
        if not os.path.isfile(path):
            raise TierUnavailable("table", f"ephemeris table not found: {path}", path=path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                rows = json.load(f)
        except (OSError, ValueError) as e:
            raise EphemerisError("table", f"unreadable ephemeris table: {e}", path=path) from e
        if not isinstance(rows, dict):
            raise EphemerisError("table", "table root must be an object keyed by date", path=path)
        log.info("loaded ephemeris table %s (%d dates)", path, len(rows))
        return cls(rows, source=path)

    def __len__(self) -> int:
        return len(self._rows)

    def dates(self) -> List[date]:
        return sorted(datetime.strptime(k, "%Y-%m-%d").date() for k in self._rows)

    def lookup(self, d: date) -> Dict[str, PlanetPosition]:
        key = d.isoformat()
        row = self._rows.get(key)
        if row is None:
            raise EphemerisError("lookup", f"no table row for {key}", date=key)
        try:
            return positions_from_mapping(row)
        except ValueError as e:
            raise EphemerisError("lookup", f"malformed table row for {key}: {e}", date=key) from e

    def save(self, path: str) -> None:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self._rows, f, sort_keys=True, separators=(",", ":"))


# ─────────────────────────────────────────────────────────────────────────────
# Builder (Skyfield)
# ─────────────────────────────────────────────────────────────────────────────

def _days(start: date, end: date) -> Iterator[date]:
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


def build_table(start: date, end: date, kernel: str = "de421.bsp") -> EphemerisTable:
    """
    Geocentric apparent ecliptic-of-date longitudes at 12:00 UTC for every day
    in [start, end]. `kernel` is a path or a name Skyfield's loader can fetch.
    """
    if end < start:
        raise ValueError("end must not precede start")
    try:
        from skyfield.api import load
        from skyfield.framelib import ecliptic_frame
    except ImportError as e:
        raise EphemerisError("dependency", "Skyfield not installed (pip install matchengine[tables])") from e

    try:
        eph = load(kernel)
    except Exception as e:
        raise EphemerisError("kernel", f"Skyfield failed to load kernel: {kernel}", error=str(e)) from e
    ts = load.timescale()
    earth = eph["earth"]
    bodies = {name: eph[target] for name, target in KERNEL_TARGETS.items()}

    rows: Dict[str, Any] = {}
    for d in _days(start, end):
        t = ts.utc(d.year, d.month, d.day, 12)
        lons: Dict[str, float] = {}
        for name in PLANETS:
            _, lon, _ = earth.at(t).observe(bodies[name]).apparent().frame_latlon(ecliptic_frame)
            lons[name] = float(lon.degrees)
        sun_sign = position_from_longitude(lons["Sun"]).sign
        positions = {name: position_from_longitude(lons[name], sun_sign) for name in PLANETS}
        rows[d.isoformat()] = positions_to_mapping(positions)
    log.info("built ephemeris table %s..%s (%d dates)", start, end, len(rows))
    return EphemerisTable(rows, source=kernel)
