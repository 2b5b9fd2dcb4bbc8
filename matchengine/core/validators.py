# matchengine/core/validators.py
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

__all__ = [
    "ValidationError",
    "BirthData",
    "parse_birth_data",
    "validate_birth_data",
    "parse_date",
    "parse_ratings",
    "parse_answers",
    "RATING_MIN",
    "RATING_MAX",
]

RATING_MIN = 1
RATING_MAX = 10

# ───────────────────────── errors ─────────────────────────

class ValidationError(ValueError):
    """Structured validator error; `.errors()` lists every offending location."""
    def __init__(self, details: Union[str, Dict[str, Any], List[Dict[str, Any]]]):
        if isinstance(details, str):
            self._details = [{"loc": [], "msg": details, "type": "value_error"}]
            super().__init__(details)
        elif isinstance(details, dict):
            self._details = [details]
            super().__init__(details.get("msg", "validation_error"))
        elif isinstance(details, list) and details:
            self._details = details
            super().__init__(self._details[0]["msg"])
        else:
            self._details = [{"loc": [], "msg": "validation_error", "type": "value_error"}]
            super().__init__("validation_error")

    def errors(self) -> List[Dict[str, Any]]:
        return list(self._details)

    @property
    def field(self) -> Optional[str]:
        """Name of the first offending field (last path segment)."""
        loc = self._details[0].get("loc") or []
        return str(loc[-1]) if loc else None


# ───────────────────────── helpers ─────────────────────────

def _err(loc: List[str] | str, msg: str, typ: str = "value_error") -> Dict[str, Any]:
    return {"loc": [loc] if isinstance(loc, str) else loc, "msg": msg, "type": typ}

def _as_number(v: Any) -> Optional[float]:
    # bool is an int subclass; "true" is never a coordinate
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return None
    x = float(v)
    return x if math.isfinite(x) else None

_TIME_RE = re.compile(r"^(?:[01][0-9]|2[0-3]):[0-5][0-9]$")


# ───────────────────────── atomic checks ─────────────────────────

def _check_date(v: Any, loc: List[str]) -> date:
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if isinstance(v, str):
        try:
            return datetime.strptime(v, "%Y-%m-%d").date()
        except ValueError:
            pass
    raise ValidationError(_err(loc, "date must be a real calendar date 'YYYY-MM-DD'", "value_error.date"))

def _check_time(v: Any, loc: List[str]) -> str:
    if not isinstance(v, str) or not _TIME_RE.match(v):
        raise ValidationError(_err(loc, "time must be 24-hour 'HH:MM'", "value_error.time"))
    return v

def _check_latitude(v: Any, loc: List[str]) -> float:
    f = _as_number(v)
    if f is None:
        raise ValidationError(_err(loc, "latitude must be a finite number", "type_error.float"))
    if not -90.0 <= f <= 90.0:
        raise ValidationError(_err(loc, "latitude must be between -90 and 90", "value_error.range"))
    return f

def _check_longitude(v: Any, loc: List[str]) -> float:
    f = _as_number(v)
    if f is None:
        raise ValidationError(_err(loc, "longitude must be a finite number", "type_error.float"))
    if not -180.0 <= f <= 180.0:
        raise ValidationError(_err(loc, "longitude must be between -180 and 180", "value_error.range"))
    return f

def _check_timezone(v: Any, loc: List[str]) -> str:
    if not isinstance(v, str) or not v.strip():
        raise ValidationError(_err(loc, "timezone must be an IANA zone like 'Europe/Paris'", "value_error.timezone"))
    try:
        ZoneInfo(v)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        # "America" names a tzdata directory and raises IsADirectoryError
        raise ValidationError(_err(loc, f"unknown IANA timezone: {v}", "value_error.timezone"))
    return v


# ───────────────────────── birth data ─────────────────────────

@dataclass(frozen=True)
class BirthData:
    """
    Validated birth record. Construction runs every field check, so an invalid
    instance cannot exist; `parse_birth_data` is the entry point for raw JSON.
    """
    date: date
    time: str
    latitude: float
    longitude: float
    timezone: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", _check_date(self.date, ["date"]))
        _check_time(self.time, ["time"])
        object.__setattr__(self, "latitude", _check_latitude(self.latitude, ["latitude"]))
        object.__setattr__(self, "longitude", _check_longitude(self.longitude, ["longitude"]))
        _check_timezone(self.timezone, ["timezone"])

    @property
    def fingerprint(self) -> str:
        """date+time+lat+lon; the identity of a derived chart."""
        return f"{self.date.isoformat()}_{self.time}_{self.latitude!r}_{self.longitude!r}"

    @property
    def minutes_of_day(self) -> int:
        hh, mm = self.time.split(":")
        return int(hh) * 60 + int(mm)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "time": self.time,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timezone": self.timezone,
        }


def parse_birth_data(data: Any, loc: Optional[List[str]] = None) -> BirthData:
    """
    Parse a raw mapping {date, time, latitude, longitude, timezone} into BirthData.
    Missing fields and bad values raise ValidationError naming the field; nothing
    is coerced or defaulted.
    """
    base = list(loc or [])
    if not isinstance(data, Mapping):
        raise ValidationError(_err(base or ["birth"], "birth data must be an object", "type_error.dict"))
    for key in ("date", "time", "latitude", "longitude", "timezone"):
        if key not in data:
            raise ValidationError(_err(base + [key], "field required", "value_error.missing"))
    return BirthData(
        date=_check_date(data["date"], base + ["date"]),
        time=_check_time(data["time"], base + ["time"]),
        latitude=_check_latitude(data["latitude"], base + ["latitude"]),
        longitude=_check_longitude(data["longitude"], base + ["longitude"]),
        timezone=_check_timezone(data["timezone"], base + ["timezone"]),
    )

def parse_date(value: Any, loc: Optional[List[str]] = None) -> date:
    return _check_date(value, list(loc or ["date"]))

def validate_birth_data(data: Union[BirthData, Mapping[str, Any]]) -> BirthData:
    if isinstance(data, BirthData):
        return data
    return parse_birth_data(data)


# ───────────────────────── questionnaire inputs ─────────────────────────

def parse_ratings(raw: Any, loc: List[str]) -> Dict[str, int]:
    """Rating map on the 1–10 scale. None means "not answered" → empty map."""
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValidationError(_err(loc, "ratings must be an object", "type_error.dict"))
    out: Dict[str, int] = {}
    for key, value in raw.items():
        f = _as_number(value)
        if f is None or f != int(f):
            raise ValidationError(_err(loc + [str(key)], "rating must be an integer", "type_error.integer"))
        if not RATING_MIN <= f <= RATING_MAX:
            raise ValidationError(_err(loc + [str(key)], f"rating must be between {RATING_MIN} and {RATING_MAX}", "value_error.range"))
        out[str(key)] = int(f)
    return out

def parse_answers(raw: Any, loc: List[str], allowed: Optional[frozenset] = None) -> Dict[str, str]:
    """Categorical answers; blank answers are dropped, unknown questions rejected."""
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValidationError(_err(loc, "answers must be an object", "type_error.dict"))
    out: Dict[str, str] = {}
    for key, value in raw.items():
        if allowed is not None and key not in allowed:
            raise ValidationError(_err(loc + [str(key)], "unknown question", "value_error.question"))
        if value is None:
            continue
        if not isinstance(value, str):
            raise ValidationError(_err(loc + [str(key)], "answer must be a string", "type_error.str"))
        if value.strip():
            out[str(key)] = value
    return out
