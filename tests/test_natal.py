# tests/test_natal.py
from __future__ import annotations

import json
import logging
from datetime import date

import pytest
import requests

from matchengine.core import ephemeris_adapter
from matchengine.core.chart import PlanetPosition, position_from_longitude, positions_to_mapping, default_positions
from matchengine.core.constants import PLANETS
from matchengine.core.ephemeris_adapter import (
    EphemerisError,
    EphemerisProvider,
    ProviderConfig,
    TierUnavailable,
    map_provider_payload,
)
from matchengine.core.ephemeris_table import EphemerisTable
from matchengine.core.natal import (
    ChartTier,
    ExternalEphemerisTier,
    HeuristicTier,
    NatalChartDeriver,
    PrecomputedTableTier,
    StaticDefaultTier,
)
from matchengine.core.validators import parse_birth_data
from matchengine.utils.cache import chart_key

# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _provider_payload(sign: str = "Gemini", position: float = 12.5, house: int = 7) -> dict:
    return {"planets": {p.lower(): {"sign": sign, "position": position, "house": house} for p in PLANETS}}


class _FakeResponse:
    def __init__(self, payload, status: int = 200):
        self._payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _CountingTier(ChartTier):
    name = "counting"

    def __init__(self):
        self.calls = 0

    def positions(self, birth):
        self.calls += 1
        return default_positions("Virgo")


class _BrokenTier(ChartTier):
    name = "broken"

    def positions(self, birth):
        raise RuntimeError("boom")


class _PartialTier(ChartTier):
    name = "partial"

    def positions(self, birth):
        return {"Sun": PlanetPosition("Aries", 1.0, 1)}


@pytest.fixture
def aries_noon(make_birth):
    return parse_birth_data(make_birth())


# ─────────────────────────────────────────────────────────────────────────────
# Pure conversions
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "lon,sign,deg",
    [(0.0, "Aries", 0.0), (29.5, "Aries", 29.5), (30.0, "Taurus", 0.0),
     (359.0, "Pisces", 29.0), (-10.0, "Pisces", 20.0), (725.0, "Aries", 5.0)],
)
def test_position_from_longitude(lon, sign, deg) -> None:
    p = position_from_longitude(lon)
    assert p.sign == sign
    assert p.degree == pytest.approx(deg)
    assert p.house == 1


def test_position_from_longitude_cusp_rounding() -> None:
    p = position_from_longitude(59.99999999)
    assert (p.sign, p.degree) == ("Gemini", 0.0)


def test_whole_sign_houses_from_reference() -> None:
    assert position_from_longitude(100.0, "Aries").house == 4       # Cancer from Aries
    assert position_from_longitude(10.0, "Capricorn").house == 4    # Aries from Capricorn


def test_position_rejects_out_of_range() -> None:
    with pytest.raises(ValueError):
        PlanetPosition("Aries", 30.0, 1)
    with pytest.raises(ValueError):
        PlanetPosition("Aries", 1.0, 13)
    with pytest.raises(ValueError):
        PlanetPosition("Ophiuchus", 1.0, 1)


# ─────────────────────────────────────────────────────────────────────────────
# Tiers
# ─────────────────────────────────────────────────────────────────────────────

def test_static_default_tier(aries_noon) -> None:
    pos = StaticDefaultTier().positions(aries_noon)
    assert set(pos) == set(PLANETS)
    assert all(p == PlanetPosition("Aries", 15.0, 1) for p in pos.values())


@pytest.mark.parametrize(
    "time,moon_deg,house",
    [("00:00", 15.0, 1), ("06:00", 18.0, 10), ("12:00", 21.0, 7), ("23:59", 26.991667, 2)],
)
def test_heuristic_tier(make_birth, time, moon_deg, house) -> None:
    b = parse_birth_data(make_birth(time=time))
    pos = HeuristicTier().positions(b)
    assert pos["Moon"].sign == "Aries"
    assert pos["Moon"].degree == pytest.approx(moon_deg, abs=1e-6)
    assert pos["Sun"].degree == 15.0
    assert {p.house for p in pos.values()} == {house}


def test_heuristic_rising_sign(make_birth) -> None:
    assert HeuristicTier.rising_sign(parse_birth_data(make_birth(time="00:00"))) == "Aries"
    assert HeuristicTier.rising_sign(parse_birth_data(make_birth(time="02:00"))) == "Taurus"
    assert HeuristicTier.rising_sign(parse_birth_data(make_birth(time="23:59"))) == "Pisces"


def test_table_tier_lookup_and_miss(aries_noon) -> None:
    row = positions_to_mapping(default_positions("Taurus"))
    tier = PrecomputedTableTier(table=EphemerisTable({"1990-03-25": row}))
    assert tier.positions(aries_noon)["Sun"].sign == "Taurus"

    other = parse_birth_data({**aries_noon.as_dict(), "date": "1990-03-26"})
    with pytest.raises(EphemerisError) as ei:
        tier.positions(other)
    assert ei.value.stage == "lookup"


def test_table_tier_unconfigured(aries_noon) -> None:
    with pytest.raises(TierUnavailable):
        PrecomputedTableTier().positions(aries_noon)


def test_table_load_from_file(tmp_path, aries_noon) -> None:
    path = tmp_path / "table.json"
    path.write_text(json.dumps({"1990-03-25": positions_to_mapping(default_positions("Libra"))}))
    tier = PrecomputedTableTier(path=str(path))
    assert tier.positions(aries_noon)["Moon"].sign == "Libra"

    table = EphemerisTable.load(str(path))
    assert table.dates() == [date(1990, 3, 25)]
    assert len(table) == 1


def test_table_malformed_row(aries_noon) -> None:
    table = EphemerisTable({"1990-03-25": {"Sun": {"sign": "Aries", "degree": 1, "house": 1}}})
    with pytest.raises(EphemerisError):
        table.lookup(aries_noon.date)


def test_table_save_roundtrip(tmp_path) -> None:
    rows = {"2000-01-01": positions_to_mapping(default_positions("Capricorn"))}
    out = tmp_path / "nested" / "t.json"
    EphemerisTable(rows).save(str(out))
    assert EphemerisTable.load(str(out)).lookup(date(2000, 1, 1))["Sun"].sign == "Capricorn"


def test_table_missing_file_is_unavailable(tmp_path) -> None:
    with pytest.raises(TierUnavailable):
        EphemerisTable.load(str(tmp_path / "nope.json"))


# ─────────────────────────────────────────────────────────────────────────────
# External provider
# ─────────────────────────────────────────────────────────────────────────────

def test_provider_without_url_is_unavailable(aries_noon) -> None:
    with pytest.raises(TierUnavailable):
        EphemerisProvider().fetch(aries_noon)


def test_provider_request_shape(monkeypatch, aries_noon) -> None:
    seen = {}

    def fake_get(url, params=None, timeout=None):
        seen.update(url=url, params=params, timeout=timeout)
        return _FakeResponse(_provider_payload())

    monkeypatch.setattr(ephemeris_adapter.requests, "get", fake_get)
    provider = EphemerisProvider(ProviderConfig(base_url="https://eph.example/v1/", api_key="k", timeout_s=2.5))
    pos = provider.fetch(aries_noon)

    assert seen["url"] == "https://eph.example/v1/planets"
    assert seen["timeout"] == 2.5
    assert seen["params"] == {
        "api_key": "k", "date": "1990-03-25", "time": "12:00",
        "latitude": aries_noon.latitude, "longitude": aries_noon.longitude,
        "timezone": "America/New_York",
    }
    assert pos["Venus"] == PlanetPosition("Gemini", 12.5, 7)


@pytest.mark.parametrize(
    "exc",
    [requests.Timeout("slow"), requests.ConnectionError("down")],
)
def test_provider_transport_errors(monkeypatch, aries_noon, exc) -> None:
    def fake_get(*_a, **_k):
        raise exc
    monkeypatch.setattr(ephemeris_adapter.requests, "get", fake_get)
    provider = EphemerisProvider(ProviderConfig(base_url="https://eph.example"))
    with pytest.raises(EphemerisError):
        provider.fetch(aries_noon)


def test_provider_http_error_and_bad_json(monkeypatch, aries_noon) -> None:
    provider = EphemerisProvider(ProviderConfig(base_url="https://eph.example"))
    monkeypatch.setattr(ephemeris_adapter.requests, "get", lambda *a, **k: _FakeResponse({}, status=503))
    with pytest.raises(EphemerisError) as ei:
        provider.fetch(aries_noon)
    assert ei.value.stage == "http"

    monkeypatch.setattr(ephemeris_adapter.requests, "get", lambda *a, **k: _FakeResponse(ValueError("nope")))
    with pytest.raises(EphemerisError) as ei:
        provider.fetch(aries_noon)
    assert ei.value.stage == "payload"


def test_payload_mapping_rejects_partial_charts() -> None:
    payload = _provider_payload()
    del payload["planets"]["saturn"]
    with pytest.raises(EphemerisError):
        map_provider_payload(payload)
    with pytest.raises(EphemerisError):
        map_provider_payload({"data": []})


def test_payload_mapping_with_longitudes() -> None:
    lons = {"sun": 5.0, "moon": 100.0, "mercury": 20.0, "venus": 40.0,
            "mars": 200.0, "jupiter": 300.0, "saturn": 359.0}
    pos = map_provider_payload({"planets": {k: {"longitude": v} for k, v in lons.items()}})
    assert pos["Sun"] == PlanetPosition("Aries", 5.0, 1)
    assert pos["Moon"] == PlanetPosition("Cancer", 10.0, 4)
    assert pos["Saturn"].sign == "Pisces" and pos["Saturn"].house == 12


# ─────────────────────────────────────────────────────────────────────────────
# Deriver: fall-through and caching
# ─────────────────────────────────────────────────────────────────────────────

def test_default_chain_without_config_uses_heuristic(aries_noon) -> None:
    chart = NatalChartDeriver().derive(aries_noon)
    assert chart.source == "heuristic"
    assert chart.zodiac_sign == "Aries"
    assert set(chart.planet_positions) == set(PLANETS)


def test_failures_fall_through_with_warning(aries_noon, caplog) -> None:
    deriver = NatalChartDeriver(tiers=[_BrokenTier(), _PartialTier(), HeuristicTier()])
    with caplog.at_level(logging.WARNING, logger="matchengine.core.natal"):
        chart = deriver.derive(aries_noon)
    assert chart.source == "heuristic"
    messages = " ".join(r.getMessage() for r in caplog.records)
    assert "broken" in messages and "RuntimeError" in messages
    assert "partial" in messages


def test_static_tier_is_always_appended(aries_noon) -> None:
    deriver = NatalChartDeriver(tiers=[_BrokenTier()])
    assert isinstance(deriver.tiers[-1], StaticDefaultTier)
    assert deriver.derive(aries_noon).source == "static_default"


def test_external_timeout_falls_back_to_next_tier(monkeypatch, aries_noon) -> None:
    def fake_get(*_a, **_k):
        raise requests.Timeout("slow")
    monkeypatch.setattr(ephemeris_adapter.requests, "get", fake_get)
    provider = EphemerisProvider(ProviderConfig(base_url="https://eph.example", timeout_s=0.1))
    deriver = NatalChartDeriver(tiers=[ExternalEphemerisTier(provider), HeuristicTier()])
    assert deriver.derive(aries_noon).source == "heuristic"


def test_external_success(monkeypatch, aries_noon) -> None:
    monkeypatch.setattr(ephemeris_adapter.requests, "get", lambda *a, **k: _FakeResponse(_provider_payload()))
    provider = EphemerisProvider(ProviderConfig(base_url="https://eph.example"))
    chart = NatalChartDeriver(tiers=[ExternalEphemerisTier(provider)]).derive(aries_noon)
    assert chart.source == "external"
    # the sun sign comes from the date table, positions from the provider
    assert chart.zodiac_sign == "Aries"
    assert chart.planet_positions["Sun"].sign == "Gemini"


def test_derive_validates_raw_input(make_birth) -> None:
    from matchengine.core.validators import ValidationError
    with pytest.raises(ValidationError):
        NatalChartDeriver().derive(make_birth(time="noon"))


def test_chart_is_cached_per_fingerprint(cache, clock, aries_noon) -> None:
    tier = _CountingTier()
    deriver = NatalChartDeriver(tiers=[tier], cache=cache)
    first = deriver.derive(aries_noon)
    second = deriver.derive(aries_noon)
    assert tier.calls == 1
    assert first.as_dict() == second.as_dict()
    assert second.source == "counting"
    assert cache.get(chart_key(aries_noon.fingerprint)) is not None

    clock.advance(24 * 3600 + 1)
    deriver.derive(aries_noon)
    assert tier.calls == 2


def test_fallback_chart_is_cached_too(cache, aries_noon) -> None:
    deriver = NatalChartDeriver(tiers=[_BrokenTier()], cache=cache)
    deriver.derive(aries_noon)
    assert cache.get(chart_key(aries_noon.fingerprint))["source"] == "static_default"


def test_unusable_cached_chart_is_recomputed(cache, aries_noon) -> None:
    cache.set(chart_key(aries_noon.fingerprint), {"planet_positions": {"Sun": {}}}, 3600)
    chart = NatalChartDeriver(tiers=[HeuristicTier()], cache=cache).derive(aries_noon)
    assert chart.source == "heuristic"
    assert cache.get(chart_key(aries_noon.fingerprint))["source"] == "heuristic"


def test_chart_is_immutable(aries_noon) -> None:
    chart = NatalChartDeriver().derive(aries_noon)
    with pytest.raises(TypeError):
        chart.planet_positions["Sun"] = PlanetPosition("Leo", 1.0, 1)  # type: ignore[index]


def test_broken_cache_store_does_not_break_derivation(cache, aries_noon) -> None:
    cache.store.conn.close()
    chart = NatalChartDeriver(tiers=[StaticDefaultTier()], cache=cache).derive(aries_noon)
    assert chart.source == "static_default"
    assert chart.zodiac_sign == "Aries"
