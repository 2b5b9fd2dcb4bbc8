# matchengine/core/aspects.py
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List, Optional, Tuple
import math

from matchengine.core.constants import (
    ASPECT_ANGLES_DEG, ASPECT_ORBS_DEG, ASPECT_WEIGHTS, PLANETS, PLANET_WEIGHTS,
    abs_sep_deg, round_half_up,
)

__all__ = [
    "AspectDetail",
    "AspectCompatibility",
    "classify_separation",
    "compute_aspects",     # PURE geometry (list of details)
    "aggregate_aspects",   # weighted mean in [-1, 1]
    "analyze_aspects",     # geometry → aggregate → 0..100, blended with element score
    "significant_aspects",
    "aspect_summary",
]

SIGNIFICANCE_CUTOFF = 0.5

# ─────────────────────────────────────────────────────────────────────────────
# Results
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AspectDetail:
    planet1: str                   # from the first chart
    planet2: str                   # from the second chart
    aspect_type: str
    separation_deg: float          # [0, 180]
    score: float                   # [-1, 1]; sign is polarity

    def as_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["separation_deg"] = float(d["separation_deg"])
        d["score"] = float(d["score"])
        return d


@dataclass(frozen=True)
class AspectCompatibility:
    total: int                     # 0..100, aspect and element in equal parts
    aspect_score: int              # 0..100
    element_score: int             # 0..100
    details: Tuple[AspectDetail, ...] = field(default_factory=tuple)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "aspect_score": self.aspect_score,
            "element_score": self.element_score,
            "details": [a.as_dict() for a in self.details],
        }

# ─────────────────────────────────────────────────────────────────────────────
# Geometry
# ─────────────────────────────────────────────────────────────────────────────

def classify_separation(sep_deg: float) -> Optional[Tuple[str, float]]:
    """
    First aspect (catalog order) whose orb contains `sep_deg`, with its raw
    score `(1 - deviation/orb) * weight`. None when no orb matches.
    """
    sep = float(sep_deg)
    for name, angle in ASPECT_ANGLES_DEG.items():
        orb = ASPECT_ORBS_DEG[name]
        dev = abs(sep - angle)
        if dev <= orb:
            return name, (1.0 - dev / orb) * ASPECT_WEIGHTS[name]
    return None


def _longitudes(chart: Any) -> Dict[str, float]:
    # NatalChart or a bare {planet: PlanetPosition} mapping
    positions = getattr(chart, "planet_positions", chart)
    return {name: positions[name].longitude for name in PLANETS if name in positions}


def compute_aspects(chart_a: Any, chart_b: Any) -> List[AspectDetail]:
    """
    PURE geometry: every (planet of A, planet of B) pair whose separation
    falls inside an orb. Separations use full ecliptic longitude.
    """
    la = _longitudes(chart_a)
    lb = _longitudes(chart_b)
    out: List[AspectDetail] = []
    for p1, lon1 in la.items():
        for p2, lon2 in lb.items():
            sep = abs_sep_deg(lon1, lon2)
            hit = classify_separation(sep)
            if hit is None:
                continue
            name, score = hit
            out.append(AspectDetail(
                planet1=p1, planet2=p2, aspect_type=name,
                separation_deg=sep, score=score,
            ))
    return out

# ─────────────────────────────────────────────────────────────────────────────
# Scoring
# ─────────────────────────────────────────────────────────────────────────────

def aggregate_aspects(details: Iterable[AspectDetail]) -> float:
    """
    Weighted mean of aspect scores, weight = product of both planets'
    significance. fsum keeps the result independent of iteration order.
    No qualifying aspects → 0.0 (neutral).
    """
    num: List[float] = []
    den: List[float] = []
    for a in details:
        w = PLANET_WEIGHTS[a.planet1] * PLANET_WEIGHTS[a.planet2]
        num.append(a.score * w)
        den.append(w)
    total_w = math.fsum(den)
    if total_w <= 0.0:
        return 0.0
    return max(-1.0, min(1.0, math.fsum(num) / total_w))


def analyze_aspects(chart_a: Any, chart_b: Any, element_score: float) -> AspectCompatibility:
    details = compute_aspects(chart_a, chart_b)
    # 9 decimals absorbs float noise before half-up rounding
    raw = round((aggregate_aspects(details) + 1.0) * 50.0, 9)
    return AspectCompatibility(
        total=round_half_up((raw + float(element_score)) / 2.0),
        aspect_score=round_half_up(raw),
        element_score=round_half_up(element_score),
        details=tuple(details),
    )

# ─────────────────────────────────────────────────────────────────────────────
# Explanation
# ─────────────────────────────────────────────────────────────────────────────

def significant_aspects(details: Iterable[AspectDetail], cutoff: float = SIGNIFICANCE_CUTOFF) -> List[AspectDetail]:
    return [a for a in details if abs(a.score) > cutoff]


def aspect_summary(details: Iterable[AspectDetail], cutoff: float = SIGNIFICANCE_CUTOFF) -> str:
    lines = ["Planetary Aspects:", ""]
    for a in significant_aspects(details, cutoff):
        strength = round_half_up(abs(a.score) * 100.0)
        lines.append(f"{a.planet1} {a.aspect_type} {a.planet2}: {strength}% strength")
    return "\n".join(lines) + "\n"

