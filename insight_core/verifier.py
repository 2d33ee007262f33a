"""
Rule-based verification and bounded repair of AI evaluation records.

Flow for one run:
 1. Run every check against the current record snapshot
 2. Any failed fatal check -> stop, no repairs
 3. Otherwise feed each failed, repairable check to the caller's repair_fn,
    bounded by a global budget (max_repairs) and a per-check attempt cap
 4. Re-run only the repaired check; a later failed check is re-run once
    against the repaired record first and skipped if it now passes.
    Leftovers become quality warnings
 5. Summarize the run as an immutable VerificationLogEntry

Expected failures (bad scores, contradicted claims, flaky repair) are data.
Nothing in here raises for them.
"""

from __future__ import annotations
import re
import time
import uuid
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Dict, Optional, Any, Callable, Mapping, Sequence, Tuple, Union

from insight_core.evaluation import EvaluationRecord, EvaluationParseError, parse_evaluation_response
from insight_core.numerical_claims import (
    DEFAULT_TOLERANCE, ClaimVerificationResult,
    extract_numerical_claims, verify_claims_against_grounding,
)
from insight_core.grounding import (
    DataFreshness, GroundingCache, GroundingEnvelope, compute_data_freshness, merge_grounding,
)
from insight_core.run_metrics import RunMetrics
from insight_core.verification_log import (
    FailedCheckRecord, VerificationLogEntry,
    build_verification_log_entry, emit_verification_log,
)

log = logging.getLogger("insight.verifier")

DEFAULT_MAX_REPAIRS = 2

# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------

class Severity(str, Enum):
    FATAL = "fatal"
    MAJOR = "major"
    MINOR = "minor"


@dataclass
class CheckOutcome:
    passed: bool
    detail: str = ""


@dataclass
class VerificationCheck:
    id: str
    name: str
    severity: Severity
    predicate: Callable[[EvaluationRecord], CheckOutcome]
    auto_repair: bool = False
    max_repair_attempts: int = 1

    def run(self, record: EvaluationRecord) -> CheckOutcome:
        return self.predicate(record)


RepairFn = Callable[[EvaluationRecord, str], Union[EvaluationRecord, Dict[str, Any], None]]


@dataclass
class VerificationOptions:
    max_repairs: int = DEFAULT_MAX_REPAIRS
    repair_fn: Optional[RepairFn] = None
    checks: Optional[List[VerificationCheck]] = None       # None -> default check set
    grounding: Optional[Mapping[str, Any]] = None
    contradiction_tolerance: float = DEFAULT_TOLERANCE
    evaluation_id: Optional[str] = None
    metrics: Optional[RunMetrics] = None
    emit_log: bool = True
    # Envelope sources merged under `grounding` (explicit keys win)
    grounding_envelopes: Optional[Sequence[GroundingEnvelope]] = None
    fetch_grounding: Optional[Callable[[], Sequence[GroundingEnvelope]]] = None
    grounding_cache: Optional[GroundingCache] = None
    grounding_key: str = "default"


@dataclass
class VerificationOutcome:
    record: EvaluationRecord
    status: str   # pass, soft_fail, hard_fail
    fatal_failure: bool
    checks_run: int
    checks_failed: int
    repairs_used: int
    quality_warnings: List[str]
    failed_checks: List[FailedCheckRecord]
    log_entry: VerificationLogEntry
    claim_verification: Optional[ClaimVerificationResult] = None
    data_freshness: Optional[DataFreshness] = None

    @property
    def checks_passed(self) -> int:
        return self.log_entry.checks_passed

    @property
    def repairs_attempted(self) -> int:
        return self.log_entry.repairs_attempted

    @property
    def repairs_succeeded(self) -> int:
        return self.log_entry.repairs_succeeded

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "fatal_failure": self.fatal_failure,
            "checks_run": self.checks_run,
            "checks_passed": self.checks_passed,
            "checks_failed": self.checks_failed,
            "repairs_used": self.repairs_used,
            "repairs_succeeded": self.repairs_succeeded,
            "quality_warnings": list(self.quality_warnings),
            "failed_checks": [fc.to_dict() for fc in self.failed_checks],
            "claim_verification": self.claim_verification.to_dict() if self.claim_verification else None,
            "data_freshness": self.data_freshness.to_dict() if self.data_freshness else None,
            "log_entry": self.log_entry.to_dict(),
            "record": self.record.to_dict(),
        }


# ---------------------------------------------------------------------------
# Default checks
# ---------------------------------------------------------------------------

HIGH_SCORE = 75
LOW_SCORE = 30

_NEGATIVE_TONE = re.compile(
    r"\b(not recommended|avoid|do not (?:build|invest|pursue|launch)|kill|reject|"
    r"not viable|unviable|fatally flawed|pass on this)\b",
    re.IGNORECASE,
)
_POSITIVE_TONE = re.compile(
    r"\b(strong buy|highly recommended|exceptional|outstanding|all in|must build|"
    r"clear winner)\b",
    re.IGNORECASE,
)


def check_score_range(record: EvaluationRecord) -> CheckOutcome:
    bad = []
    for path, value, low, high in record.score_values():
        # NaN fails both comparisons
        if not (low <= value <= high):
            bad.append(f"{path}={value:g} outside [{low:g}, {high:g}]")
    if bad:
        return CheckOutcome(False, "Score out of range: " + "; ".join(bad))
    return CheckOutcome(True)


def check_score_justification_alignment(record: EvaluationRecord) -> CheckOutcome:
    tone_text = f"{record.summary.one_liner} {record.summary.main_verdict}"
    score = record.overall_score
    if score >= HIGH_SCORE and _NEGATIVE_TONE.search(tone_text):
        return CheckOutcome(False, f"Score {score:g} conflicts with recommendation tone")
    if score <= LOW_SCORE and _POSITIVE_TONE.search(tone_text):
        return CheckOutcome(False, f"Score {score:g} conflicts with enthusiastic recommendation tone")
    return CheckOutcome(True)


def check_competitive_not_empty(record: EvaluationRecord) -> CheckOutcome:
    signals = [s for s in record.market.competitor_signals if s.strip()]
    if not signals and not record.market.competitors:
        return CheckOutcome(False, "Competitive analysis is empty or trivial")
    return CheckOutcome(True)


def check_risks_identified(record: EvaluationRecord) -> CheckOutcome:
    if not record.technical.key_risks and not record.market.go_to_market_risks:
        return CheckOutcome(False, "No technical or go-to-market risks identified")
    return CheckOutcome(True)


def check_summary_present(record: EvaluationRecord) -> CheckOutcome:
    if not record.summary.main_verdict.strip():
        return CheckOutcome(False, "Summary verdict is missing")
    return CheckOutcome(True)


def make_claims_check(
    grounding: Optional[Mapping[str, Any]],
    tolerance: float = DEFAULT_TOLERANCE,
) -> Callable[[EvaluationRecord], CheckOutcome]:
    def check_numeric_claims_grounded(record: EvaluationRecord) -> CheckOutcome:
        if not grounding:
            return CheckOutcome(True, "No grounding snapshot supplied")
        claims = extract_numerical_claims(record.text_fields())
        result = verify_claims_against_grounding(claims, grounding, tolerance)
        if result.contradicted_claims == 0:
            return CheckOutcome(True)
        shown = ", ".join(
            f"{c.claim.raw_text} vs {c.grounding_field}={c.grounding_value:g}"
            for c in result.contradictions[:3]
        )
        return CheckOutcome(
            False,
            f"{result.contradicted_claims} numerical claim(s) contradict grounding data: {shown}",
        )
    return check_numeric_claims_grounded


def build_default_checks(
    grounding: Optional[Mapping[str, Any]] = None,
    tolerance: float = DEFAULT_TOLERANCE,
) -> List[VerificationCheck]:
    return [
        VerificationCheck("score_range", "Score within valid range", Severity.FATAL,
                          check_score_range),
        VerificationCheck("score_justification_alignment", "Score matches recommendation tone",
                          Severity.MAJOR, check_score_justification_alignment,
                          auto_repair=True, max_repair_attempts=2),
        VerificationCheck("competitive_not_empty", "Competitive analysis present", Severity.MAJOR,
                          check_competitive_not_empty, auto_repair=True, max_repair_attempts=2),
        VerificationCheck("numeric_claims_grounded", "Numerical claims agree with grounding data",
                          Severity.MAJOR, make_claims_check(grounding, tolerance),
                          auto_repair=True, max_repair_attempts=1),
        VerificationCheck("risks_identified", "Risks identified", Severity.MINOR,
                          check_risks_identified, auto_repair=True, max_repair_attempts=1),
        VerificationCheck("summary_present", "Summary verdict present", Severity.MINOR,
                          check_summary_present, auto_repair=True, max_repair_attempts=1),
    ]


# ---------------------------------------------------------------------------
# Verification loop
# ---------------------------------------------------------------------------

def _evaluate(check: VerificationCheck, record: EvaluationRecord, metrics: RunMetrics) -> CheckOutcome:
    metrics.inc_checks()
    return check.run(record)


def _attempt_repair(
    repair_fn: RepairFn,
    record: EvaluationRecord,
    detail: str,
    check: VerificationCheck,
    fatal_checks: List[VerificationCheck],
    metrics: RunMetrics,
) -> Optional[EvaluationRecord]:
    """One repair call. Returns the repaired record or None for a failed attempt."""
    metrics.inc_repair()
    try:
        out = repair_fn(record.model_copy(deep=True), detail)
        if isinstance(out, dict):
            out = parse_evaluation_response(out)
    except EvaluationParseError as e:
        log.warning("repair for %s returned unparseable record: %s", check.id, e)
        out = None
    except Exception as e:
        log.warning("repair for %s raised %s: %s", check.id, type(e).__name__, e)
        out = None

    if not isinstance(out, EvaluationRecord):
        metrics.inc_repair_failure()
        return None

    # A repair must never introduce a fatal defect
    for fc in fatal_checks:
        metrics.inc_checks()
        if not fc.run(out).passed:
            log.warning("repair for %s broke fatal check %s; discarded", check.id, fc.id)
            metrics.inc_repair_failure()
            return None
    return out


def resolve_grounding(
    opts: VerificationOptions,
) -> Tuple[Dict[str, Any], List[GroundingEnvelope]]:
    """Snapshot and envelopes for a run.

    Envelopes come from grounding_envelopes, else from fetch_grounding
    (through grounding_cache when one is set). A failing fetch leaves the
    run ungrounded rather than aborting it.
    """
    envelopes: List[GroundingEnvelope] = []
    if opts.grounding_envelopes is not None:
        envelopes = list(opts.grounding_envelopes)
    elif opts.fetch_grounding is not None:
        try:
            if opts.grounding_cache is not None:
                envelopes = opts.grounding_cache.get_or_fetch(opts.grounding_key, opts.fetch_grounding)
            else:
                envelopes = list(opts.fetch_grounding() or [])
        except Exception as e:
            log.warning("grounding fetch for %s failed: %s: %s", opts.grounding_key, type(e).__name__, e)
            envelopes = []

    snapshot = merge_grounding(envelopes)
    if opts.grounding:
        snapshot.update(opts.grounding)
    return snapshot, envelopes


def run_verification(
    record: EvaluationRecord,
    options: Optional[VerificationOptions] = None,
) -> VerificationOutcome:
    opts = options or VerificationOptions()
    metrics = opts.metrics or RunMetrics()
    started = time.perf_counter()

    grounding, envelopes = resolve_grounding(opts)
    checks = opts.checks if opts.checks is not None else build_default_checks(
        grounding, opts.contradiction_tolerance)
    fatal_checks = [c for c in checks if c.severity == Severity.FATAL]
    current = initial = record.model_copy(deep=True)

    with metrics.stage("checks"):
        results = [(c, _evaluate(c, current, metrics)) for c in checks]
    failed = [(c, o) for c, o in results if not o.passed]
    fatal = [(c, o) for c, o in failed if c.severity == Severity.FATAL]

    warnings: List[str] = []
    records: List[FailedCheckRecord] = []
    budget = max(0, opts.max_repairs)
    repairs_used = 0

    if fatal:
        warnings.extend(f"Fatal verification failure: {o.detail}" for _, o in fatal)
        warnings.extend(o.detail for c, o in failed if c.severity != Severity.FATAL)
        records = [FailedCheckRecord(c.id, c.severity.value, o.detail) for c, o in failed]
    else:
        with metrics.stage("repairs"):
            for check, outcome in failed:
                detail = outcome.detail
                attempted = succeeded = False
                # An earlier repair may already have fixed this check
                if current is not initial:
                    latest = _evaluate(check, current, metrics)
                    if latest.passed:
                        records.append(FailedCheckRecord(check.id, check.severity.value, detail,
                                                         False, False))
                        continue
                    detail = latest.detail or detail
                if check.auto_repair and opts.repair_fn is not None:
                    attempts = 0
                    while attempts < check.max_repair_attempts and budget > 0:
                        attempts += 1
                        budget -= 1
                        repairs_used += 1
                        attempted = True
                        repaired = _attempt_repair(opts.repair_fn, current, detail, check,
                                                   fatal_checks, metrics)
                        if repaired is None:
                            continue
                        current = repaired
                        recheck = _evaluate(check, current, metrics)
                        if recheck.passed:
                            succeeded = True
                            break
                        detail = recheck.detail or detail
                if not succeeded:
                    warnings.append(detail)
                records.append(FailedCheckRecord(check.id, check.severity.value, detail,
                                                 attempted, succeeded))

    current.quality_warnings = list(warnings)

    claim_verification = None
    if grounding:
        claim_verification = verify_claims_against_grounding(
            extract_numerical_claims(current.text_fields()),
            grounding, opts.contradiction_tolerance,
        )
    data_freshness = compute_data_freshness(envelopes) if envelopes else None

    entry = build_verification_log_entry(
        evaluation_id=opts.evaluation_id or f"eval-{uuid.uuid4().hex[:12]}",
        checks_run=len(checks),
        checks_failed=len(failed),
        repairs_used=repairs_used,
        fatal_failure=bool(fatal),
        quality_warnings=warnings,
        failed_checks=records,
        duration_ms=(time.perf_counter() - started) * 1000,
    )
    if opts.emit_log:
        emit_verification_log(entry)
    metrics.log_summary()

    if fatal:
        status = "hard_fail"
    elif warnings:
        status = "soft_fail"
    else:
        status = "pass"

    return VerificationOutcome(
        record=current,
        status=status,
        fatal_failure=bool(fatal),
        checks_run=len(checks),
        checks_failed=len(failed),
        repairs_used=repairs_used,
        quality_warnings=warnings,
        failed_checks=records,
        log_entry=entry,
        claim_verification=claim_verification,
        data_freshness=data_freshness,
    )
