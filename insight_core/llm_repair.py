"""
LLM-backed repair function for the verification loop.

make_llm_repair_fn() returns a callable with the (record, issue) -> record
signature run_verification() expects. The LLM call is injectable so tests
can drive it without a network; by default it goes to Claude.
"""

from __future__ import annotations
import json
import re
import logging
from typing import Any, Callable, Optional

from insight_core.config import get_settings
from insight_core.evaluation import EvaluationRecord, EvaluationParseError, parse_evaluation_response
from insight_core.run_metrics import RunMetrics

log = logging.getLogger("insight.llm_repair")

CallLLM = Callable[[str, str, int], str]

REPAIR_SYSTEM = (
    "You are a meticulous analyst correcting a structured startup/crypto idea "
    "evaluation. Return ONLY the full corrected JSON object, same schema, no prose."
)

REPAIR_PROMPT = """A quality check failed on the evaluation below.

ISSUE:
{issue}

Fix ONLY what is needed to resolve the issue. Keep every score between 0 and 100.
Do not invent market figures; if a number cannot be supported, remove it or
phrase it qualitatively.

CURRENT EVALUATION JSON:
{evaluation}
"""


# ---------------------------------------------------------------------------
# LLM helpers
# ---------------------------------------------------------------------------

def _get_claude_client(api_key: Optional[str] = None):
    key = api_key or get_settings().anthropic_api_key
    if not key:
        return None
    from anthropic import Anthropic
    return Anthropic(api_key=key)


def _make_claude_caller(model: Optional[str] = None) -> Optional[CallLLM]:
    settings = get_settings()
    client = _get_claude_client(settings.anthropic_api_key)
    if client is None:
        return None
    model_name = model or settings.default_model

    def call(prompt: str, system: str = "", max_tokens: int = 4000) -> str:
        resp = client.messages.create(
            model=model_name,
            max_tokens=max_tokens,
            temperature=0.2,
            system=system or REPAIR_SYSTEM,
            messages=[{"role": "user", "content": prompt}],
        )
        return resp.content[0].text

    return call


def _parse_json_from_llm(text: str) -> Any:
    """Extract a JSON object from an LLM reply, handling markdown fences."""
    cleaned = text.strip()
    cleaned = re.sub(r'^```(?:json)?\s*', '', cleaned)
    cleaned = re.sub(r'\s*```$', '', cleaned)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    s, e = cleaned.find("{"), cleaned.rfind("}")
    if s >= 0 and e > s:
        try:
            return json.loads(cleaned[s:e + 1])
        except json.JSONDecodeError:
            return None
    return None


def build_repair_prompt(record: EvaluationRecord, issue: str) -> str:
    evaluation = record.model_dump(by_alias=True, exclude={"quality_warnings", "calibration_notes"})
    return REPAIR_PROMPT.format(issue=issue, evaluation=json.dumps(evaluation, indent=2))


# ---------------------------------------------------------------------------
# Repair function factory
# ---------------------------------------------------------------------------

def make_llm_repair_fn(
    call_llm: Optional[CallLLM] = None,
    model: Optional[str] = None,
    metrics: Optional[RunMetrics] = None,
    max_tokens: int = 4000,
) -> Optional[Callable[[EvaluationRecord, str], Optional[EvaluationRecord]]]:
    """Build a repair_fn. Returns None when no LLM is available.

    The returned function never raises: client errors and unusable replies
    are logged and reported as None (a failed attempt).
    """
    caller = call_llm or _make_claude_caller(model)
    if caller is None:
        log.info("llm repair disabled: no ANTHROPIC_API_KEY configured")
        return None

    def repair(record: EvaluationRecord, issue: str) -> Optional[EvaluationRecord]:
        prompt = build_repair_prompt(record, issue)
        if metrics is not None:
            metrics.inc_llm()
        try:
            reply = caller(prompt, REPAIR_SYSTEM, max_tokens)
        except Exception as e:
            log.warning("llm repair call failed: %s: %s", type(e).__name__, e)
            return None

        data = _parse_json_from_llm(reply or "")
        if not isinstance(data, dict):
            log.warning("llm repair reply had no JSON object (%d chars)", len(reply or ""))
            return None
        try:
            return parse_evaluation_response(data)
        except EvaluationParseError as e:
            log.warning("llm repair reply failed validation: %s", e)
            return None

    return repair
