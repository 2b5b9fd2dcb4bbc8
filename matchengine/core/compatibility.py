# matchengine/core/compatibility.py
"""
Composite compatibility: astrological and questionnaire subscores merged into
one 0..100 result with three explanation strings.

    astrological.total = round(aspect.total × 0.5 + (element + sign modifier) × 0.5)
    questionnaire      = round(questionnaire score)
    total              = round(questionnaire × 0.5 + astrological.total × 0.5)

Every function here is pure; identical inputs give identical output, text
included. Rounding is half-up.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
import logging

from matchengine.core.aspects import AspectCompatibility, analyze_aspects, aspect_summary
from matchengine.core.chart import NatalChart
from matchengine.core.elements import ElementScore, element_of, lookup
from matchengine.core.natal import NatalChartDeriver
from matchengine.core.questionnaire import QuestionnaireProfile, QuestionnaireScore, score_questionnaire
from matchengine.core.validators import BirthData, ValidationError, parse_birth_data
from matchengine.core.constants import clamp, round_half_up

log = logging.getLogger(__name__)

__all__ = [
    "Participant",
    "AstrologicalScore",
    "CompatibilityScore",
    "CompatibilityResult",
    "astrological_score",
    "combine",
    "astrological_explanation",
    "element_explanation",
    "CompatibilityEngine",
    "match_summary",
    "enhance_match",
]

NEUTRAL = 50
HARMONIOUS_AT = 80
POTENTIAL_AT = 60

_INTERACTIONS: Dict[frozenset, str] = {
    frozenset({"Fire", "Earth"}): "Fire brings passion and inspiration while Earth provides stability and practicality.",
    frozenset({"Fire", "Air"}): "Fire and Air feed each other's enthusiasm and create exciting energy.",
    frozenset({"Fire", "Water"}): "Fire and Water can create steam: intense but potentially volatile.",
    frozenset({"Earth", "Air"}): "Earth grounds Air's ideas while Air brings fresh perspectives to Earth.",
    frozenset({"Earth", "Water"}): "Earth and Water nurture growth and create a stable emotional foundation.",
    frozenset({"Air", "Water"}): (
        "Air brings intellectual clarity and perspective while Water provides emotional depth and intuition. "
        "Success requires Air to respect Water's emotional needs and Water to appreciate Air's need for "
        "rational understanding."
    ),
}

# ───────────────────────── records ─────────────────────────

@dataclass(frozen=True)
class Participant:
    """One side of a comparison: validated birth data plus questionnaire answers."""
    birth: Optional[BirthData] = None
    profile: QuestionnaireProfile = field(default_factory=QuestionnaireProfile)
    id: Optional[str] = None

    @classmethod
    def from_mapping(cls, raw: Any, loc: Optional[List[str]] = None, require_birth: bool = True) -> "Participant":
        base = list(loc or [])
        if not isinstance(raw, Mapping):
            raise ValidationError({"loc": base, "msg": "participant must be an object", "type": "type_error.dict"})
        birth = None
        if raw.get("birth") is not None:
            birth = parse_birth_data(raw["birth"], base + ["birth"])
        elif require_birth:
            raise ValidationError({"loc": base + ["birth"], "msg": "field required", "type": "value_error.missing"})
        pid = raw.get("id")
        return cls(
            birth=birth,
            profile=QuestionnaireProfile.from_mapping(raw, base),
            id=None if pid is None else str(pid),
        )


@dataclass(frozen=True)
class AstrologicalScore:
    total: int
    aspect: AspectCompatibility
    element: ElementScore

    def as_dict(self) -> Dict[str, Any]:
        return {"total": self.total, "aspect": self.aspect.as_dict(), "element": self.element.as_dict()}


@dataclass(frozen=True)
class CompatibilityScore:
    total: int
    questionnaire: int
    astrological: AstrologicalScore

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "questionnaire": self.questionnaire,
            "astrological": self.astrological.as_dict(),
        }


@dataclass(frozen=True)
class CompatibilityResult:
    score: CompatibilityScore
    astrological_details: str
    aspect_details: str
    element_details: str
    questionnaire: QuestionnaireScore

    def as_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score.as_dict(),
            "explanations": {
                "astrological": self.astrological_details,
                "aspects": self.aspect_details,
                "elements": self.element_details,
            },
            "questionnaire_breakdown": self.questionnaire.as_dict(),
        }

# ───────────────────────── scoring ─────────────────────────

def astrological_score(chart_a: NatalChart, chart_b: NatalChart) -> AstrologicalScore:
    element = lookup(chart_a.zodiac_sign, chart_b.zodiac_sign)
    aspect = analyze_aspects(chart_a, chart_b, element.element_score)
    raw = aspect.total * 0.5 + (element.element_score + element.sign_modifier) * 0.5
    return AstrologicalScore(
        total=int(clamp(round_half_up(raw))),
        aspect=aspect,
        element=element,
    )


def combine(questionnaire: float, astrological: float) -> int:
    return int(clamp(round_half_up(float(questionnaire) * 0.5 + float(astrological) * 0.5)))

# ───────────────────────── explanations ─────────────────────────

def astrological_explanation(sign1: str, sign2: str) -> str:
    e1, e2 = element_of(sign1), element_of(sign2)
    score = lookup(sign1, sign2)
    parts = [f"{sign1} ({e1}) and {sign2} ({e2}) Compatibility:", ""]

    if score.element_score >= HARMONIOUS_AT:
        line = "This is a naturally harmonious match!"
    elif score.element_score >= POTENTIAL_AT:
        line = "This combination has good potential with some effort."
    else:
        line = "This match may face some natural challenges."

    if e1 == e2:
        line += f" As both are {e1} signs, they share a deep understanding of each other's core nature."
    else:
        line += " " + _INTERACTIONS[frozenset({e1, e2})]

    if score.sign_modifier > 0:
        line += f" {sign1} and {sign2} have particularly complementary qualities."
    elif score.sign_modifier < 0:
        line += f" {sign1} and {sign2} may need to work on understanding their differences."
    parts.append(line)
    return "\n".join(parts)


def element_explanation(sign1: str, sign2: str, element_score: int) -> str:
    return f"Element compatibility between {sign1} and {sign2}: {element_score}%"

# ───────────────────────── engine ─────────────────────────

class CompatibilityEngine:
    """
    Participant × Participant → CompatibilityResult. Chart derivation (and its
    cache) is the only stateful collaborator; the scoring itself is pure.
    """

    def __init__(self, deriver: Optional[NatalChartDeriver] = None, scheme: str = "four_part"):
        self.deriver = deriver or NatalChartDeriver()
        self.scheme = scheme

    def score(self, a: Participant, b: Participant) -> CompatibilityResult:
        if a.birth is None or b.birth is None:
            raise ValidationError({"loc": ["birth"], "msg": "both participants need birth data", "type": "value_error.missing"})
        chart_a = self.deriver.derive(a.birth)
        chart_b = self.deriver.derive(b.birth)
        return self.score_charts(chart_a, chart_b, a.profile, b.profile)

    def score_charts(self, chart_a: NatalChart, chart_b: NatalChart,
                     profile_a: Optional[QuestionnaireProfile] = None,
                     profile_b: Optional[QuestionnaireProfile] = None) -> CompatibilityResult:
        q = score_questionnaire(profile_a or QuestionnaireProfile(), profile_b or QuestionnaireProfile(), self.scheme)
        astro = astrological_score(chart_a, chart_b)
        # the emitted questionnaire value is the one the total is built from
        q_total = round_half_up(q.total)
        s1, s2 = chart_a.zodiac_sign, chart_b.zodiac_sign
        return CompatibilityResult(
            score=CompatibilityScore(
                total=combine(q_total, astro.total),
                questionnaire=q_total,
                astrological=astro,
            ),
            astrological_details=astrological_explanation(s1, s2),
            aspect_details=aspect_summary(astro.aspect.details),
            element_details=element_explanation(s1, s2, astro.element.element_score),
            questionnaire=q,
        )

# ───────────────────────── match helpers ─────────────────────────

def _neutral_summary() -> Dict[str, int]:
    return {
        "zodiac_compatibility": NEUTRAL,
        "personality_match": NEUTRAL,
        "lifestyle_match": NEUTRAL,
        "values_match": NEUTRAL,
        "overall_compatibility": NEUTRAL,
    }


def match_summary(user: Participant, partner: Participant,
                  engine: Optional[CompatibilityEngine] = None) -> Dict[str, int]:
    """
    Five headline numbers for a match card. A partner without ratings, or a
    side without birth data, yields the neutral 50 everywhere.
    """
    if not partner.profile.has_ratings or user.birth is None or partner.birth is None:
        return _neutral_summary()
    result = (engine or CompatibilityEngine()).score(user, partner)
    q = result.questionnaire
    return {
        "zodiac_compatibility": result.score.astrological.total,
        "personality_match": round_half_up(q.personality),
        "lifestyle_match": round_half_up(q.lifestyle),
        "values_match": round_half_up(q.values),
        "overall_compatibility": result.score.total,
    }


def enhance_match(match: Mapping[str, Any], user: Participant, partner: Participant,
                  engine: Optional[CompatibilityEngine] = None) -> Dict[str, Any]:
    """Copy of `match` with `compatibility_details` attached; the input is not modified."""
    out = dict(match)
    out["compatibility_details"] = match_summary(user, partner, engine)
    return out
