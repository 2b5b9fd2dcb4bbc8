# matchengine/core/natal.py
"""
Natal chart derivation.

Planet positions come from an ordered chain of tiers, each with the same
contract ``positions(birth) -> {planet: PlanetPosition}`` and raising on
failure:

    1. external   HTTP ephemeris provider (bounded timeout)
    2. table      precomputed per-date table
    3. heuristic  sun-sign defaults adjusted by time of day
    4. static     every planet at the sun sign, 15°, house 1

A tier that raises (for any reason) hands over to the next one. The static
tier cannot fail, so derivation never raises once BirthData is valid.
Derived charts are cached per BirthData fingerprint.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
import logging
import threading

from matchengine.core.chart import NatalChart, PlanetPosition, default_positions, positions_from_mapping
from matchengine.core.constants import (
    DEFAULT_DEGREE, MOON_DEG_PER_DAY, PLANETS, RISING_DEG_PER_MINUTE, sign_index, wrap_deg, ZODIAC_SIGNS,
)
from matchengine.core.ephemeris_adapter import EphemerisProvider, ProviderConfig, TierUnavailable
from matchengine.core.ephemeris_table import EphemerisTable
from matchengine.core.validators import BirthData, validate_birth_data
from matchengine.core.zodiac import zodiac_sign
from matchengine.utils.cache import ResultCache, chart_key
from matchengine.utils.metrics import chart_tier

log = logging.getLogger(__name__)

__all__ = [
    "ChartTier",
    "ExternalEphemerisTier",
    "PrecomputedTableTier",
    "HeuristicTier",
    "StaticDefaultTier",
    "NatalChartDeriver",
    "CHART_TTL_S",
]

CHART_TTL_S = 24 * 60 * 60

Positions = Dict[str, PlanetPosition]

# ─────────────────────────────────────────────────────────────────────────────
# Tiers
# ─────────────────────────────────────────────────────────────────────────────

class ChartTier:
    name = "tier"

    def positions(self, birth: BirthData) -> Positions:  # pragma: no cover - interface
        raise NotImplementedError


class ExternalEphemerisTier(ChartTier):
    name = "external"

    def __init__(self, provider: Optional[EphemerisProvider] = None):
        self.provider = provider or EphemerisProvider()

    def positions(self, birth: BirthData) -> Positions:
        return self.provider.fetch(birth)


class PrecomputedTableTier(ChartTier):
    """Loads the table from `path` on first use; a bad file fails every call."""
    name = "table"

    def __init__(self, table: Optional[EphemerisTable] = None, path: Optional[str] = None):
        self._table = table
        self._path = path
        self._lock = threading.Lock()

    def _get_table(self) -> EphemerisTable:
        if self._table is not None:
            return self._table
        if not self._path:
            raise TierUnavailable("config", "no ephemeris table configured")
        with self._lock:
            if self._table is None:
                self._table = EphemerisTable.load(self._path)
        return self._table

    def positions(self, birth: BirthData) -> Positions:
        return self._get_table().lookup(birth.date)


class HeuristicTier(ChartTier):
    """
    Sun-sign defaults with two time-of-day adjustments: the Moon advances
    ~12° per day within its sign, and a synthetic rising sign (1° per 4
    minutes) sets whole-sign houses for every planet.
    """
    name = "heuristic"

    def positions(self, birth: BirthData) -> Positions:
        sun = zodiac_sign(birth.date)
        moon_deg = (DEFAULT_DEGREE + (birth.minutes_of_day / 1440.0) * MOON_DEG_PER_DAY) % 30.0
        house = (sign_index(sun) - sign_index(self.rising_sign(birth))) % 12 + 1

        out: Positions = {}
        for name in PLANETS:
            degree = moon_deg if name == "Moon" else DEFAULT_DEGREE
            out[name] = PlanetPosition(sign=sun, degree=degree, house=house)
        return out

    @staticmethod
    def rising_sign(birth: BirthData) -> str:
        idx = int(wrap_deg(birth.minutes_of_day * RISING_DEG_PER_MINUTE) // 30.0) % 12
        return ZODIAC_SIGNS[idx]


class StaticDefaultTier(ChartTier):
    name = "static_default"

    def positions(self, birth: BirthData) -> Positions:
        return default_positions(zodiac_sign(birth.date))


def default_tiers(provider: Optional[EphemerisProvider] = None,
                  table: Optional[EphemerisTable] = None,
                  table_path: Optional[str] = None) -> List[ChartTier]:
    return [
        ExternalEphemerisTier(provider),
        PrecomputedTableTier(table=table, path=table_path),
        HeuristicTier(),
        StaticDefaultTier(),
    ]

# ─────────────────────────────────────────────────────────────────────────────
# Deriver
# ─────────────────────────────────────────────────────────────────────────────

class NatalChartDeriver:
    """
    BirthData → NatalChart through the tier chain. With a ResultCache the
    chart (and the tier that produced it) is stored for `ttl` seconds under
    ``chart:<fingerprint>``; repeated derivations reuse it.
    """

    def __init__(self, tiers: Optional[Sequence[ChartTier]] = None,
                 cache: Optional[ResultCache] = None, ttl: float = CHART_TTL_S):
        chain = list(tiers) if tiers is not None else default_tiers()
        if not chain or not isinstance(chain[-1], StaticDefaultTier):
            chain.append(StaticDefaultTier())
        self.tiers: Tuple[ChartTier, ...] = tuple(chain)
        self.cache = cache
        self.ttl = ttl

    @classmethod
    def from_config(cls, cfg: Any, cache: Optional[ResultCache] = None) -> "NatalChartDeriver":
        provider = EphemerisProvider(ProviderConfig.from_config(cfg))
        return cls(
            tiers=default_tiers(provider=provider, table_path=cfg.ephemeris.table_path),
            cache=cache,
            ttl=float(cfg.cache.chart_ttl_s),
        )

    def resolve_positions(self, birth: BirthData) -> Tuple[Positions, str]:
        for tier in self.tiers:
            try:
                positions = tier.positions(birth)
                missing = [p for p in PLANETS if p not in positions]
                if missing:
                    raise ValueError(f"tier returned an incomplete chart (missing {', '.join(missing)})")
            except TierUnavailable as e:
                log.debug("chart tier %s unavailable: %s", tier.name, e)
                continue
            except Exception as e:
                log.warning("chart tier %s failed (%s: %s); falling through", tier.name, type(e).__name__, e)
                continue
            chart_tier(tier.name)
            return {p: positions[p] for p in PLANETS}, tier.name
        # unreachable while the chain ends with StaticDefaultTier
        chart_tier(StaticDefaultTier.name)
        return StaticDefaultTier().positions(birth), StaticDefaultTier.name

    def _build(self, birth: BirthData) -> NatalChart:
        positions, tier = self.resolve_positions(birth)
        return NatalChart(
            birth_data=birth,
            zodiac_sign=zodiac_sign(birth.date),
            planet_positions=positions,
            source=tier,
        )

    def _from_cached(self, birth: BirthData, data: Mapping[str, Any]) -> NatalChart:
        return NatalChart(
            birth_data=birth,
            zodiac_sign=zodiac_sign(birth.date),
            planet_positions=positions_from_mapping(data["planet_positions"]),
            source=str(data.get("source", "cache")),
        )

    def derive(self, birth: Any) -> NatalChart:
        birth = validate_birth_data(birth)
        if self.cache is None:
            return self._build(birth)
        data = self.cache.get_or_fetch(chart_key(birth.fingerprint), lambda: self._build(birth).as_dict(), self.ttl)
        try:
            return self._from_cached(birth, data)
        except (KeyError, TypeError, ValueError) as e:
            log.warning("cached chart %s unusable (%s); recomputing", birth.fingerprint, e)
            self.cache.invalidate(chart_key(birth.fingerprint))
            chart = self._build(birth)
            self.cache.set(chart_key(birth.fingerprint), chart.as_dict(), self.ttl)
            return chart
