# matchengine/utils/config.py
import copy
import logging
import os
import yaml

log = logging.getLogger(__name__)

DEFAULTS = {
    "ephemeris": {
        "url": None,              # external provider; None → tier unavailable
        "api_key": None,
        "timeout_s": 5.0,
        "table_path": None,       # precomputed JSON table; None → tier unavailable
    },
    "cache": {
        "path": "",               # SQLite file; "" → in-memory durable tier
        "capacity": 1024,
        "chart_ttl_s": 86400,
        "matches_ttl_s": 300,
        "profile_ttl_s": 300,
        "refresh_fraction": 0.25,
    },
    "scoring": {
        "questionnaire_scheme": "four_part",
        "match_threshold": 75,
    },
}


class AttrDict(dict):
    """Dict that also supports attribute access: cfg.cache and cfg['cache'] both work."""
    def __getattr__(self, item):
        try:
            return self[item]
        except KeyError as e:
            raise AttributeError(item) from e
    def __setattr__(self, key, value):
        self[key] = value

def _to_attr(obj):
    if isinstance(obj, dict):
        return AttrDict({k: _to_attr(v) for k, v in obj.items()})
    if isinstance(obj, list):
        return [_to_attr(x) for x in obj]
    return obj

def _merge(base, extra):
    for k, v in (extra or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _merge(base[k], v)
        else:
            base[k] = v
    return base

def _env_overrides(data):
    env = os.environ
    eph = data["ephemeris"]
    cache = data["cache"]
    if env.get("MATCHENGINE_EPHEMERIS_URL"):
        eph["url"] = env["MATCHENGINE_EPHEMERIS_URL"]
    if env.get("MATCHENGINE_EPHEMERIS_API_KEY"):
        eph["api_key"] = env["MATCHENGINE_EPHEMERIS_API_KEY"]
    if env.get("MATCHENGINE_EPHEMERIS_TIMEOUT"):
        eph["timeout_s"] = float(env["MATCHENGINE_EPHEMERIS_TIMEOUT"])
    if env.get("MATCHENGINE_EPHEMERIS_TABLE"):
        eph["table_path"] = env["MATCHENGINE_EPHEMERIS_TABLE"]
    if "MATCHENGINE_CACHE_PATH" in env:
        cache["path"] = env["MATCHENGINE_CACHE_PATH"]
    if env.get("MATCHENGINE_CHART_TTL"):
        cache["chart_ttl_s"] = int(env["MATCHENGINE_CHART_TTL"])
    return data

def load_config(path=None):
    """
    Built-in defaults, deep-merged with YAML from `path` (or MATCHENGINE_CONFIG),
    then env overrides:
      - MATCHENGINE_EPHEMERIS_URL / _API_KEY / _TIMEOUT / _TABLE
      - MATCHENGINE_CACHE_PATH
      - MATCHENGINE_CHART_TTL
    A missing file falls back to defaults; malformed YAML raises yaml.YAMLError.
    Returns an AttrDict for convenient access.
    """
    data = copy.deepcopy(DEFAULTS)
    path = path or os.getenv("MATCHENGINE_CONFIG")
    if path:
        if os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
            if not isinstance(loaded, dict):
                raise ValueError(f"config root must be a mapping: {path}")
            _merge(data, loaded)
        else:
            log.info("config file %s not found; using defaults", path)
    return _to_attr(_env_overrides(data))
