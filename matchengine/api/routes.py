# matchengine/api/routes.py
"""
Match engine HTTP routes

- POST /api/zodiac          {date} → sun sign + element
- POST /api/chart           birth data → natal chart (tier used included)
- POST /api/compatibility   {a, b} → score, explanations, questionnaire breakdown
- POST /api/matches/summary {user, partner} → five headline numbers

Validation failures raise ValidationError; the app-level handler renders 422.
The engine, cache and config live in app.extensions["matchengine"].
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import BadRequest

from matchengine.core.compatibility import CompatibilityEngine, Participant, match_summary
from matchengine.core.elements import element_of
from matchengine.core.validators import ValidationError, parse_birth_data, parse_date
from matchengine.core.zodiac import zodiac_sign
from matchengine.utils.cache import ResultCache, compatibility_key
from matchengine.utils.metrics import timed

log = logging.getLogger(__name__)
api = Blueprint("api", __name__)


# ───────────────────────── helpers ─────────────────────────
def _state() -> Dict[str, Any]:
    return current_app.extensions["matchengine"]

def _engine() -> CompatibilityEngine:
    return _state()["engine"]

def _cache() -> ResultCache:
    return _state()["cache"]

def _body() -> Dict[str, Any]:
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise BadRequest("JSON body must be an object")
    return data


# ───────────────────────── zodiac & chart ─────────────────────────
@api.post("/api/zodiac")
@timed("zodiac")
def zodiac():
    body = _body()
    if "date" not in body:
        raise ValidationError({"loc": ["date"], "msg": "field required", "type": "value_error.missing"})
    d = parse_date(body["date"])
    sign = zodiac_sign(d)
    return jsonify(ok=True, date=d.isoformat(), sign=sign, element=element_of(sign)), 200


@api.post("/api/chart")
@timed("chart")
def chart():
    birth = parse_birth_data(_body())
    natal = _engine().deriver.derive(birth)
    return jsonify(ok=True, chart=natal.as_dict()), 200


# ───────────────────────── compatibility ─────────────────────────
@api.post("/api/compatibility")
@timed("compatibility")
def compatibility():
    body = _body()
    a = Participant.from_mapping(body.get("a"), ["a"])
    b = Participant.from_mapping(body.get("b"), ["b"])
    engine = _engine()

    if a.id and b.id:
        # one entry per unordered pair; score in id order so the text is stable
        if b.id < a.id:
            a, b = b, a
        key = compatibility_key(a.id, b.id)
        ttl = float(_state()["config"].cache.matches_ttl_s)
        result = _cache().get_or_fetch(key, lambda: engine.score(a, b).as_dict(), ttl)
    else:
        key = None
        result = engine.score(a, b).as_dict()

    return jsonify(ok=True, cache_key=key, **result), 200


@api.post("/api/matches/summary")
@timed("matches_summary")
def matches_summary():
    body = _body()
    user = Participant.from_mapping(body.get("user"), ["user"], require_birth=False)
    partner = Participant.from_mapping(body.get("partner"), ["partner"], require_birth=False)
    summary = match_summary(user, partner, _engine())
    threshold = int(_state()["config"].scoring.match_threshold)
    return jsonify(
        ok=True,
        compatibility_details=summary,
        above_threshold=summary["overall_compatibility"] >= threshold,
    ), 200
