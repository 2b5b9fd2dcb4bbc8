# matchengine/core/ephemeris_adapter.py
# -----------------------------------------------------------------------------
# External ephemeris provider client
#
# • GET {base_url}/planets?api_key=&date=&time=&latitude=&longitude=&timezone=
# • Bounded timeout on every call; the provider is never trusted to answer
# • Strict mapping: all seven planets or an EphemerisError, never a partial chart
# • Rows carry either {sign, position, house} or an ecliptic {longitude}
# -----------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional
import logging

import requests

from matchengine.core.chart import PlanetPosition, position_from_longitude
from matchengine.core.constants import PLANETS, ZODIAC_SIGNS
from matchengine.core.validators import BirthData

log = logging.getLogger(__name__)

__all__ = [
    "EphemerisError",
    "TierUnavailable",
    "ProviderConfig",
    "EphemerisProvider",
    "map_provider_payload",
]

DEFAULT_TIMEOUT_S = 5.0

# ─────────────────────────────────────────────────────────────────────────────
# Exceptions
# ─────────────────────────────────────────────────────────────────────────────
class EphemerisError(RuntimeError):
    """Categorized error for tier callers."""
    def __init__(self, stage: str, message: str, **context: Any):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.message = message
        self.context = context


class TierUnavailable(EphemerisError):
    """The source behind a tier is not configured."""

# ─────────────────────────────────────────────────────────────────────────────
# Config
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class ProviderConfig:
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout_s: float = DEFAULT_TIMEOUT_S

    @classmethod
    def from_config(cls, cfg: Any) -> "ProviderConfig":
        eph = cfg.ephemeris
        return cls(
            base_url=eph.url or None,
            api_key=eph.api_key or None,
            timeout_s=float(eph.timeout_s or DEFAULT_TIMEOUT_S),
        )

# ─────────────────────────────────────────────────────────────────────────────
# Payload mapping
# ─────────────────────────────────────────────────────────────────────────────
def _map_row(name: str, row: Any, reference_sign: Optional[str]) -> PlanetPosition:
    if not isinstance(row, Mapping):
        raise EphemerisError("payload", f"missing planet {name}", planet=name)
    try:
        if "longitude" in row:
            pos = position_from_longitude(float(row["longitude"]), reference_sign)
            if "house" in row:
                pos = PlanetPosition(pos.sign, pos.degree, int(row["house"]))
            return pos
        sign = str(row["sign"]).strip().title()
        if sign not in ZODIAC_SIGNS:
            raise ValueError(f"unknown sign {row['sign']!r}")
        return PlanetPosition(sign=sign, degree=float(row["position"]), house=int(row["house"]))
    except (KeyError, TypeError, ValueError) as e:
        raise EphemerisError("payload", f"malformed row for {name}: {e}", planet=name) from e


def map_provider_payload(payload: Any) -> Dict[str, PlanetPosition]:
    """
    {"planets": {"sun": {...}, ..., "saturn": {...}}} → {planet: PlanetPosition}.
    Longitude-only rows take whole-sign houses from the Sun's sign.
    """
    planets = payload.get("planets") if isinstance(payload, Mapping) else None
    if not isinstance(planets, Mapping):
        raise EphemerisError("payload", "response has no 'planets' object")
    rows = {str(k).lower(): v for k, v in planets.items()}

    sun = _map_row("Sun", rows.get("sun"), None)
    reference = sun.sign
    if "longitude" in (rows.get("sun") or {}) and "house" not in rows["sun"]:
        sun = PlanetPosition(sun.sign, sun.degree, 1)

    out: Dict[str, PlanetPosition] = {"Sun": sun}
    for name in PLANETS[1:]:
        out[name] = _map_row(name, rows.get(name.lower()), reference)
    return out

# ─────────────────────────────────────────────────────────────────────────────
# Client
# ─────────────────────────────────────────────────────────────────────────────
class EphemerisProvider:
    """Thin HTTP client. Every failure surfaces as EphemerisError."""

    def __init__(self, config: Optional[ProviderConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or ProviderConfig()
        self.session = session

    @property
    def available(self) -> bool:
        return bool(self.config.base_url)

    def _params(self, birth: BirthData) -> Dict[str, Any]:
        return {
            "api_key": self.config.api_key or "",
            "date": birth.date.isoformat(),
            "time": birth.time,
            "latitude": birth.latitude,
            "longitude": birth.longitude,
            "timezone": birth.timezone,
        }

    def fetch(self, birth: BirthData) -> Dict[str, PlanetPosition]:
        if not self.available:
            raise TierUnavailable("config", "no ephemeris provider URL configured")
        url = f"{self.config.base_url.rstrip('/')}/planets"
        get = self.session.get if self.session is not None else requests.get
        try:
            resp = get(url, params=self._params(birth), timeout=self.config.timeout_s)
            resp.raise_for_status()
            payload = resp.json()
        except requests.Timeout as e:
            raise EphemerisError("timeout", f"provider did not answer within {self.config.timeout_s}s", url=url) from e
        except requests.RequestException as e:
            raise EphemerisError("http", str(e), url=url) from e
        except ValueError as e:
            raise EphemerisError("payload", f"response is not JSON: {e}", url=url) from e
        positions = map_provider_payload(payload)
        log.debug("ephemeris provider answered for %s", birth.fingerprint)
        return positions
