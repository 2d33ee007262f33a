"""
Evaluation record produced by the AI idea evaluator.

Accepts the camelCase JSON the model emits as well as snake_case. Scores
are intentionally NOT range-validated here: an out-of-range score is a
verification finding, not a parse error.
"""

from __future__ import annotations
import json
import re
from typing import List, Dict, Optional, Any, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel


class EvaluationParseError(ValueError):
    """Raised when model output cannot be turned into an EvaluationRecord."""


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Summary(_Model):
    title: str = ""
    one_liner: str = ""
    main_verdict: str = ""


class Technical(_Model):
    feasibility_score: float = 0
    key_risks: List[str] = Field(default_factory=list)
    required_components: List[str] = Field(default_factory=list)
    comments: str = ""


class Tokenomics(_Model):
    token_needed: bool = False
    design_score: float = 0
    main_issues: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


class Competitor(_Model):
    name: str
    metrics: Dict[str, Any] = Field(default_factory=dict)


class Market(_Model):
    market_fit_score: float = 0
    target_audience: List[str] = Field(default_factory=list)
    competitor_signals: List[str] = Field(default_factory=list)
    go_to_market_risks: List[str] = Field(default_factory=list)
    competitors: List[Competitor] = Field(default_factory=list)


class Execution(_Model):
    complexity_level: str = "medium"
    founder_readiness_flags: List[str] = Field(default_factory=list)
    estimated_timeline: str = ""
    execution_risk_score: float = 0
    execution_risk_label: str = "medium"
    execution_signals: List[str] = Field(default_factory=list)


class Recommendations(_Model):
    must_fix_before_build: List[str] = Field(default_factory=list)
    recommended_pivots: List[str] = Field(default_factory=list)
    nice_to_have_later: List[str] = Field(default_factory=list)


class EvaluationRecord(_Model):
    overall_score: float
    summary: Summary = Field(default_factory=Summary)
    technical: Technical = Field(default_factory=Technical)
    tokenomics: Tokenomics = Field(default_factory=Tokenomics)
    market: Market = Field(default_factory=Market)
    execution: Execution = Field(default_factory=Execution)
    recommendations: Recommendations = Field(default_factory=Recommendations)
    launch_readiness_score: Optional[float] = None
    launch_readiness_label: Optional[str] = None      # low, medium, high
    launch_readiness_signals: List[str] = Field(default_factory=list)
    quality_warnings: List[str] = Field(default_factory=list)
    calibration_notes: List[str] = Field(default_factory=list)
    project_type: Optional[str] = None
    confidence_level: Optional[str] = None

    def score_values(self) -> List[Tuple[str, float, float, float]]:
        """(path, value, low, high) for every score that is present."""
        out = []
        for path, (low, high) in SCORE_RANGES.items():
            value = _resolve(self, path)
            if value is not None:
                out.append((path, value, low, high))
        return out

    def text_fields(self) -> Dict[str, str]:
        """Free-text fields that may carry numerical claims, in a stable order.

        List items are newline-joined so each one is its own sentence.
        """
        return {
            "summary": "\n".join(filter(None, [self.summary.one_liner, self.summary.main_verdict])),
            "technical": self.technical.comments,
            "technical_components": "\n".join(self.technical.required_components),
            "technical_risks": "\n".join(self.technical.key_risks),
            "tokenomics": "\n".join(self.tokenomics.main_issues + self.tokenomics.suggestions),
            "market": "\n".join(
                self.market.target_audience
                + self.market.competitor_signals
                + self.market.go_to_market_risks
            ),
            "execution": "\n".join(
                self.execution.execution_signals + self.execution.founder_readiness_flags
            ),
            "launch": "\n".join(self.launch_readiness_signals),
            "recommendations": "\n".join(
                self.recommendations.must_fix_before_build
                + self.recommendations.recommended_pivots
                + self.recommendations.nice_to_have_later
            ),
        }

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# Valid range per score path. Extend here when a 0-10 field is added.
SCORE_RANGES: Dict[str, Tuple[float, float]] = {
    "overall_score": (0, 100),
    "technical.feasibility_score": (0, 100),
    "tokenomics.design_score": (0, 100),
    "market.market_fit_score": (0, 100),
    "execution.execution_risk_score": (0, 100),
    "launch_readiness_score": (0, 100),
}


def _resolve(obj: Any, path: str) -> Optional[float]:
    for part in path.split("."):
        obj = getattr(obj, part, None)
        if obj is None:
            return None
    return obj


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    cleaned = re.sub(r'^```(?:json)?\s*', '', cleaned)
    cleaned = re.sub(r'\s*```$', '', cleaned)
    return cleaned


def parse_evaluation_response(raw: Union[str, Dict[str, Any]]) -> EvaluationRecord:
    """Parse model output (JSON string, fenced JSON or dict) into a record."""
    data: Any = raw
    if isinstance(raw, str):
        cleaned = _strip_fences(raw)
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError:
            s, e = cleaned.find("{"), cleaned.rfind("}")
            if s < 0 or e <= s:
                raise EvaluationParseError("No JSON object found in model output")
            try:
                data = json.loads(cleaned[s:e + 1])
            except json.JSONDecodeError as exc:
                raise EvaluationParseError(f"Invalid JSON in model output: {exc}") from exc

    if not isinstance(data, dict):
        raise EvaluationParseError("Evaluation JSON must be an object")
    try:
        return EvaluationRecord.model_validate(data)
    except ValidationError as exc:
        raise EvaluationParseError(str(exc)) from exc
