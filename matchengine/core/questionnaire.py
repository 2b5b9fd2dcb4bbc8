# matchengine/core/questionnaire.py
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional
import math

from matchengine.core.validators import (
    RATING_MAX, RATING_MIN, ValidationError, parse_answers, parse_ratings,
)

__all__ = [
    "CATEGORICAL_QUESTIONS",
    "RATING_CATEGORIES",
    "SCHEMES",
    "QuestionnaireProfile",
    "QuestionnaireScore",
    "rating_similarity",
    "categorical_similarity",
    "score_questionnaire",
]

NEUTRAL = 50.0
MAX_DIFF = float(RATING_MAX - RATING_MIN)   # 9 on a 1..10 scale

RATING_CATEGORIES = ("personality", "lifestyle", "values")

CATEGORICAL_QUESTIONS = frozenset({
    "decision_making", "social_behavior", "conflict_handling", "life_goals",
    "relationship_role", "free_time", "self_investment", "commitment_approach",
    "relationship_value", "care_expression", "ideal_lifestyle", "difficult_situations",
    "personal_growth", "dating_approach", "commitment_preference", "communication_style",
    "relationship_values", "relationship_roles", "relationship_offering",
    "partner_expectations", "partner_evaluation", "problem_solving", "future_planning",
    "boundary_approach", "relationship_success",
})

# Category weights per scheme; each scheme sums to 1.0.
SCHEMES: Mapping[str, Mapping[str, float]] = MappingProxyType({
    "four_part": MappingProxyType({
        "personality": 0.30,
        "lifestyle": 0.25,
        "values": 0.25,
        "multiple_choice": 0.20,
    }),
})

# ───────────────────────── inputs ─────────────────────────

@dataclass(frozen=True)
class QuestionnaireProfile:
    personality: Mapping[str, int] = field(default_factory=dict)
    lifestyle: Mapping[str, int] = field(default_factory=dict)
    values: Mapping[str, int] = field(default_factory=dict)
    answers: Mapping[str, str] = field(default_factory=dict)

    @property
    def has_ratings(self) -> bool:
        return bool(self.personality or self.lifestyle or self.values)

    @classmethod
    def from_mapping(cls, raw: Any, loc: Optional[List[str]] = None) -> "QuestionnaireProfile":
        """
        {"ratings": {"personality": {...}, "lifestyle": {...}, "values": {...}},
         "answers": {question: choice}}; either part may be absent.
        """
        base = list(loc or [])
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise ValidationError({"loc": base, "msg": "profile must be an object", "type": "type_error.dict"})
        ratings = raw.get("ratings") or {}
        if not isinstance(ratings, Mapping):
            raise ValidationError({"loc": base + ["ratings"], "msg": "ratings must be an object", "type": "type_error.dict"})
        unknown = [k for k in ratings if k not in RATING_CATEGORIES]
        if unknown:
            raise ValidationError({"loc": base + ["ratings", str(unknown[0])], "msg": "unknown rating category", "type": "value_error.category"})
        return cls(
            personality=parse_ratings(ratings.get("personality"), base + ["ratings", "personality"]),
            lifestyle=parse_ratings(ratings.get("lifestyle"), base + ["ratings", "lifestyle"]),
            values=parse_ratings(ratings.get("values"), base + ["ratings", "values"]),
            answers=parse_answers(raw.get("answers"), base + ["answers"], CATEGORICAL_QUESTIONS),
        )

# ───────────────────────── similarity ─────────────────────────

def rating_similarity(r1: Mapping[str, float], r2: Mapping[str, float]) -> float:
    """100 × (1 − Σ|v1−v2| / Σ9) over shared keys; 50 when none are shared."""
    shared = [k for k in r1 if k in r2]
    if not shared:
        return NEUTRAL
    total_diff = math.fsum(abs(float(r1[k]) - float(r2[k])) for k in shared)
    return 100.0 * (1.0 - total_diff / (MAX_DIFF * len(shared)))


def categorical_similarity(a1: Mapping[str, str], a2: Mapping[str, str]) -> float:
    """Exact-match ratio × 100 over questions both answered; 50 when none are."""
    shared = [k for k in a1 if k in a2 and a1[k] and a2[k]]
    if not shared:
        return NEUTRAL
    matches = sum(1 for k in shared if a1[k] == a2[k])
    return 100.0 * matches / len(shared)

# ───────────────────────── scoring ─────────────────────────

@dataclass(frozen=True)
class QuestionnaireScore:
    total: float
    personality: float
    lifestyle: float
    values: float
    multiple_choice: float
    scheme: str = "four_part"

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def score_questionnaire(p1: QuestionnaireProfile, p2: QuestionnaireProfile,
                        scheme: str = "four_part") -> QuestionnaireScore:
    try:
        weights = SCHEMES[scheme]
    except KeyError:
        raise ValueError(f"unknown questionnaire scheme: {scheme}") from None
    parts = {
        "personality": rating_similarity(p1.personality, p2.personality),
        "lifestyle": rating_similarity(p1.lifestyle, p2.lifestyle),
        "values": rating_similarity(p1.values, p2.values),
        "multiple_choice": categorical_similarity(p1.answers, p2.answers),
    }
    total = round(math.fsum(parts[k] * w for k, w in weights.items()), 9)
    return QuestionnaireScore(total=max(0.0, min(100.0, total)), scheme=scheme, **parts)
