"""
Score calibration: deterministic post-processing of a verified evaluation.

Runs after verification and nudges scores with rules the model is known to
get wrong: meme/hype ideas are capped, under-scored infra ideas get a floor,
execution and launch readiness are adjusted per project type, and investor
constraints are applied when the original submission is available. Every
change is recorded in calibration_notes.

The input record is never mutated; calibrate_score() returns a deep copy.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from insight_core.evaluation import EvaluationRecord

log = logging.getLogger("insight.calibration")

MEME_FLOOR, MEME_CAP = 10, 90
DEFI_FLOOR, DEFI_CAP = 10, 95
INFRA_FLOOR, INFRA_CAP = 60, 90
STRONG_SUBSCORE = 75
FINAL_FLOOR = 5
VAGUE_DESCRIPTION_LEN = 100
SOL_STRONG_PRICE = 150
BTC_RISK_OFF, BTC_RISK_ON = 60, 40

_MEME_HINTS = ("meme", "pure hype", "no real utility", "speculative")
_LEGAL_HINTS = ("legal", "copyright", "ip infringement", "trademark", "scam")
_SECURITY_HINTS = ("audit", "security", "regulation", "compliance")


@dataclass
class MarketSnapshot:
    """Market conditions at evaluation time. source='fallback' means no live data."""
    source: str = "live"
    sol_price_usd: Optional[float] = None
    btc_dominance: Optional[float] = None

    @property
    def is_live(self) -> bool:
        return self.source != "fallback"


@dataclass
class IdeaSubmission:
    """The founder's original submission, when the caller has it."""
    description: str = ""
    team_size: Optional[str] = None          # solo, small, large
    resources: List[str] = field(default_factory=list)
    attachments: str = ""
    mvp_scope: str = ""
    launch_liquidity_plan: str = ""
    go_to_market_plan: str = ""


def _has_any(text: str, words) -> bool:
    return any(w in text for w in words)


def _lower_join(items) -> str:
    return " ".join(items).lower()


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def _calibrate_meme(r: EvaluationRecord, project_type: str, market: Optional[MarketSnapshot], notes: List[str]) -> None:
    summary = f"{r.summary.one_liner} {r.summary.main_verdict}".lower()
    if project_type != "memecoin" and not _has_any(summary, _MEME_HINTS):
        return

    score = r.overall_score
    if _has_any(_lower_join(r.technical.key_risks + r.market.go_to_market_risks), _LEGAL_HINTS):
        score -= 20
        notes.append("Memecoin: minus points for heavy dependence on one celebrity/brand without a twist.")
    if r.market.market_fit_score < 50:
        score -= 10
        notes.append("Memecoin: minus points for weak or generic meme narrative.")
    r.overall_score = _clamp(score, MEME_FLOOR, MEME_CAP)

    if market and market.is_live and market.sol_price_usd is not None and market.sol_price_usd > SOL_STRONG_PRICE:
        r.overall_score += 2
        notes.append("Market: + points for launching during strong Solana price action (> $150).")


def _calibrate_defi(r: EvaluationRecord, market: Optional[MarketSnapshot], notes: List[str]) -> None:
    risk_text = _lower_join(r.technical.key_risks + [r.technical.comments] + r.market.go_to_market_risks)
    has_security = _has_any(risk_text, _SECURITY_HINTS)
    complexity = r.execution.complexity_level
    is_complex = complexity == "high"
    audience = r.market.target_audience
    has_specific_audience = bool(audience) and len(audience[0]) > 3

    score = r.overall_score
    if (is_complex and not has_security) or (r.tokenomics.token_needed and not has_specific_audience):
        score -= 5
        notes.append("DeFi: minus points for high complexity and no audit/security plan mentioned.")
    if complexity in ("low", "medium") and has_security and has_specific_audience:
        score += 5
        notes.append("DeFi: plus points for explicit audit/security thinking and a concrete target user.")
    r.overall_score = _clamp(score, DEFI_FLOOR, DEFI_CAP)

    if market and market.is_live and market.btc_dominance is not None:
        if market.btc_dominance > BTC_RISK_OFF and is_complex:
            r.overall_score -= 2
            notes.append("DeFi: minus points for high complexity during risk-off market conditions.")
        if market.btc_dominance < BTC_RISK_ON and has_security:
            r.overall_score += 3
            notes.append("DeFi: plus points for launching during favorable risk-on market conditions.")


def _calibrate_infra(r: EvaluationRecord, notes: List[str]) -> None:
    strong = (
        r.technical.feasibility_score >= STRONG_SUBSCORE
        and r.market.market_fit_score >= STRONG_SUBSCORE
        and not r.tokenomics.token_needed
    )
    if not strong:
        return
    if r.overall_score < INFRA_FLOOR:
        r.overall_score = INFRA_FLOOR
        notes.append("AI: plus points for a clear pain point and realistic data/infra story.")
    if r.overall_score > INFRA_CAP:
        r.overall_score = INFRA_CAP
        notes.append("AI: capped at 90 to maintain realism.")


def _raise_execution(r: EvaluationRecord, amount: float) -> None:
    r.execution.execution_risk_score = min(100, r.execution.execution_risk_score + amount)


def _lower_execution(r: EvaluationRecord, amount: float) -> None:
    r.execution.execution_risk_score = max(0, r.execution.execution_risk_score - amount)
    r.execution.execution_risk_label = "high"


def _calibrate_execution(r: EvaluationRecord, project_type: str, notes: List[str]) -> None:
    text = _lower_join(r.execution.execution_signals + r.execution.founder_readiness_flags)
    is_complex = r.execution.complexity_level == "high"

    if project_type == "memecoin":
        is_anon = "anon" in text
        has_track_record = _has_any(text, ("shipped", "track record", "previous exit"))
        if is_anon and not has_track_record:
            _lower_execution(r, 10)
            notes.append("Execution: minus points for anon team with no prior shipped products.")
        if has_track_record:
            _raise_execution(r, 10)
            notes.append("Execution: plus points for proven domain experience and previous launches.")

    elif project_type == "defi":
        has_experience = _has_any(text, ("defi experience", "solidity", "rust"))
        has_audit = _has_any(text, ("audit", "security partner"))
        if is_complex and not has_experience and not has_audit:
            _lower_execution(r, 15)
            r.overall_score = max(10, r.overall_score - 5)
            notes.append("Execution: minus points for complex DeFi protocol without specific experience or audits.")
        if has_experience or has_audit:
            _raise_execution(r, 10)
            notes.append("Execution: plus points for DeFi experience or security partners.")

    elif project_type == "ai":
        has_ml = _has_any(text, ("ml engineer", "phd", "faang", "research"))
        if is_complex and not has_ml:
            _lower_execution(r, 10)
            notes.append("Execution: minus points for ambitious AI project without clear ML/engineering background.")
        if has_ml:
            _raise_execution(r, 10)
            notes.append("Execution: plus points for strong technical/ML background.")


def _launch_label(score: float) -> str:
    if score >= 70:
        return "high"
    if score >= 40:
        return "medium"
    return "low"


def _calibrate_launch(
    r: EvaluationRecord, project_type: str, submission: Optional[IdeaSubmission], notes: List[str],
) -> None:
    if r.launch_readiness_score is None:
        return
    signals = _lower_join(r.launch_readiness_signals)
    sub = submission or IdeaSubmission()

    def bump(amount: float) -> None:
        r.launch_readiness_score = _clamp(r.launch_readiness_score + amount, 0, 100)

    if project_type == "memecoin":
        has_lp = _has_any(signals, ("liquidity", "lp", "treasury")) or len(sub.launch_liquidity_plan) > 10
        has_community = _has_any(signals, ("community", "content", "viral")) or len(sub.go_to_market_plan) > 10
        if not has_lp:
            bump(-20)
            notes.append("Launch (memecoin): minus points for no LP or anti-rug thinking.")
        if has_lp and has_community:
            bump(10)
            notes.append("Launch: plus points for clear LP and community plan.")

    elif project_type == "defi":
        has_audit = _has_any(signals, ("audit", "security"))
        has_gtm = _has_any(signals, ("user", "acquisition", "market"))
        if not has_audit:
            bump(-15)
            notes.append("Launch: minus points for no security/audit plan.")
        if has_audit and has_gtm:
            bump(10)
            notes.append("Launch: plus points for security plan and clear GTM.")

    elif project_type in ("ai", "other"):
        scope = sub.mvp_scope.lower()
        has_mvp = _has_any(signals, ("mvp", "prototype", "demo")) or len(scope) > 10
        has_data = _has_any(signals, ("data", "infra")) or "data" in scope
        if _has_any(signals, ("vague", "unclear")) or (not has_mvp and not has_data):
            bump(-15)
            notes.append("Launch: minus points for vague MVP/data plan.")
        if has_mvp and has_data:
            bump(10)
            notes.append("Launch: plus points for realistic MVP scope and data plan.")

    r.launch_readiness_label = _launch_label(r.launch_readiness_score)

    if r.overall_score >= 70 and r.launch_readiness_score < 40:
        r.overall_score -= 5
        notes.append("Overall: minus points for severe lack of launch readiness despite good idea.")
    elif 50 <= r.overall_score < 70 and r.launch_readiness_score >= 80:
        r.overall_score += 5
        notes.append("Overall: plus points for exceptional launch readiness.")


def _is_vague(sub: IdeaSubmission) -> bool:
    return len(sub.description) < VAGUE_DESCRIPTION_LEN and len(sub.attachments) <= 5


def _apply_constraints(r: EvaluationRecord, project_type: str, sub: IdeaSubmission, notes: List[str]) -> bool:
    """Investor constraints that need the submission. Returns True on a hard fail."""
    if sub.team_size == "solo" and r.execution.complexity_level == "high" and r.execution.execution_risk_score > 60:
        r.execution.execution_risk_score = 60
        r.execution.execution_risk_label = "high"
        notes.append("Constraint: Solo founder execution score capped due to high complexity.")

    has_budget = "budget" in sub.resources
    if project_type == "memecoin" and not has_budget:
        if r.launch_readiness_score is not None and r.launch_readiness_score > 40:
            r.launch_readiness_score = 40
            r.launch_readiness_label = "low"
            notes.append("Constraint: Memecoin without budget capped at low launch readiness.")
        if r.overall_score > 20:
            r.overall_score -= 10
            notes.append("Constraint: Overall score penalty for memecoin with no budget.")

    vague = _is_vague(sub)
    if vague:
        r.overall_score -= 5
        r.technical.comments += " [System: Confidence Low due to sparse input]"
        notes.append("Constraint: Minor penalty for vague/short description.")

    if project_type == "defi":
        risks = _lower_join(r.technical.key_risks)
        plan = f"{sub.mvp_scope} {sub.description}".lower()
        if _has_any(risks, ("admin", "centralization")) and not _has_any(
            plan, ("timelock", "dao", "multisig", "immutable")
        ):
            r.execution.execution_risk_score = min(r.execution.execution_risk_score, 40)
            notes.append("Constraint: DeFi with centralization risks and no safeguards flagged as High Risk.")

    if project_type == "memecoin":
        signals = _lower_join(r.launch_readiness_signals)
        has_lp = _has_any(signals, ("liquidity", "lp")) or len(sub.launch_liquidity_plan) > 10
        if not has_budget and vague and not has_lp:
            notes.append("CRITICAL: Hard Fail triggered (No Budget + Vague + No LP Plan). Score collapsed to 0.")
            return True
    return False


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def calibrate_score(
    record: EvaluationRecord,
    project_type: str,
    market: Optional[MarketSnapshot] = None,
    submission: Optional[IdeaSubmission] = None,
) -> EvaluationRecord:
    """Return a calibrated copy of `record`; notes are appended to calibration_notes.

    Investor constraints and the memecoin hard fail only run when the
    submission is supplied.
    """
    r = record.model_copy(deep=True)
    project_type = (project_type or "other").lower()
    notes: List[str] = []
    before = r.overall_score

    _calibrate_meme(r, project_type, market, notes)
    if project_type == "defi":
        _calibrate_defi(r, market, notes)
    _calibrate_infra(r, notes)
    _calibrate_execution(r, project_type, notes)
    _calibrate_launch(r, project_type, submission, notes)

    hard_fail = _apply_constraints(r, project_type, submission, notes) if submission is not None else False

    if hard_fail:
        r.overall_score = 0
    else:
        r.overall_score = max(FINAL_FLOOR, r.overall_score)
    r.overall_score = min(100, r.overall_score)

    r.calibration_notes = list(record.calibration_notes) + notes
    r.project_type = project_type
    low_confidence = "Confidence Low" in r.technical.comments or any(
        "vague/short description" in n for n in notes
    )
    r.confidence_level = "low" if low_confidence else "high"

    log.info("calibration type=%s score %.0f -> %.0f notes=%d", project_type, before, r.overall_score, len(notes))
    return r
