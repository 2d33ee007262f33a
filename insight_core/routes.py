"""Insight API routes

Thin HTTP surface over the statistics and verification core. Handlers
translate request models into core calls and return plain dicts.
"""
from __future__ import annotations

import datetime
import logging
from typing import List, Optional, Dict, Any, Literal

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from insight_core.calibration import IdeaSubmission, MarketSnapshot, calibrate_score
from insight_core.config import get_settings
from insight_core.creator_score import calculate_creator_score, returns_std_by_pair
from insight_core.evaluation import EvaluationParseError, parse_evaluation_response
from insight_core.grounding import wrap_grounding
from insight_core.llm_repair import make_llm_repair_fn
from insight_core.numerical_claims import (
    ClaimKind, extract_numerical_claims, verify_claims_against_grounding,
)
from insight_core.run_metrics import RunMetrics
from insight_core.verifier import VerificationOptions, run_verification
from insight_core.winsorize import (
    PairReturn, winsorize, winsorize_by_pair, winsorized_mean, winsorized_std,
)

log = logging.getLogger("insight.api")

router = APIRouter(prefix="/api", tags=["insight"])


# ---------------------------------------------------------------------------
# Request Models
# ---------------------------------------------------------------------------

class WinsorizeRequest(BaseModel):
    sample: List[float]
    alpha: float = 0.05

class PairReturnItem(BaseModel):
    pair: str
    ret: float

class ReturnsStdRequest(BaseModel):
    returns: List[PairReturnItem]
    alpha: Optional[float] = None  # None -> size-based alpha per pair

class CreatorScoreRequest(BaseModel):
    matured_n: int = Field(ge=0)
    brier_mean: float
    ret_std_30d: Optional[float] = None
    notional_30d: float = 0
    daily_accuracy: Optional[List[float]] = None
    daily_scores: Optional[List[float]] = None

class ExtractClaimsRequest(BaseModel):
    fields: Dict[str, str]

class VerifyClaimsRequest(BaseModel):
    fields: Dict[str, str]
    grounding: Dict[str, Any]
    tolerance: Optional[float] = None
    field_map: Optional[Dict[ClaimKind, str]] = None

class GroundingSourceItem(BaseModel):
    source: str
    data: Dict[str, Any]
    fetched_at: datetime.datetime
    ttl_hours: float = Field(ge=0)

class MarketConditions(BaseModel):
    source: str = "live"   # "fallback" disables market-aware rules
    sol_price_usd: Optional[float] = None
    btc_dominance: Optional[float] = None

class SubmissionItem(BaseModel):
    description: str = ""
    team_size: Optional[Literal["solo", "small", "large"]] = None
    resources: List[str] = []
    attachments: str = ""
    mvp_scope: str = ""
    launch_liquidity_plan: str = ""
    go_to_market_plan: str = ""

class VerifyEvaluationRequest(BaseModel):
    evaluation: Dict[str, Any]
    grounding: Optional[Dict[str, Any]] = None
    grounding_sources: Optional[List[GroundingSourceItem]] = None
    max_repairs: Optional[int] = Field(default=None, ge=0)
    tolerance: Optional[float] = None
    evaluation_id: Optional[str] = None
    repair: bool = False
    # Calibration runs only when project_type is given
    project_type: Optional[Literal["memecoin", "defi", "ai", "other"]] = None
    market: Optional[MarketConditions] = None
    submission: Optional[SubmissionItem] = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/health")
def health():
    settings = get_settings()
    return {"status": "ok", "llm_repair_available": settings.llm_enabled}


@router.post("/stats/winsorize")
def winsorize_sample(req: WinsorizeRequest):
    return {
        "winsorized": winsorize(req.sample, req.alpha),
        "mean": winsorized_mean(req.sample, req.alpha),
        "std": winsorized_std(req.sample, req.alpha),
    }


@router.post("/stats/returns-std")
def returns_std(req: ReturnsStdRequest):
    returns = [PairReturn(pair=r.pair, ret=r.ret) for r in req.returns]
    if req.alpha is None:
        std = returns_std_by_pair(returns)
    else:
        clipped = winsorize_by_pair(returns, req.alpha)
        std = winsorized_std([r.ret for r in clipped], 0) if clipped else None
    return {"std": std, "count": len(returns)}


@router.post("/creator-score")
def creator_score(req: CreatorScoreRequest):
    breakdown = calculate_creator_score(
        matured_n=req.matured_n,
        brier_mean=req.brier_mean,
        ret_std_30d=req.ret_std_30d,
        notional_30d=req.notional_30d,
        daily_accuracy=req.daily_accuracy,
        daily_scores=req.daily_scores,
        vol_norm=get_settings().creator_vol_norm,
    )
    return breakdown.to_dict()


@router.post("/claims/extract")
def extract_claims(req: ExtractClaimsRequest):
    claims = extract_numerical_claims(req.fields)
    return {"claims": [c.to_dict() for c in claims]}


@router.post("/claims/verify")
def verify_claims(req: VerifyClaimsRequest):
    tolerance = req.tolerance if req.tolerance is not None else get_settings().contradiction_tolerance
    result = verify_claims_against_grounding(
        extract_numerical_claims(req.fields), req.grounding, tolerance, req.field_map,
    )
    return result.to_dict()


@router.post("/evaluations/verify")
def verify_evaluation(req: VerifyEvaluationRequest):
    try:
        record = parse_evaluation_response(req.evaluation)
    except EvaluationParseError as e:
        raise HTTPException(status_code=422, detail=f"Invalid evaluation: {e}")

    settings = get_settings()
    metrics = RunMetrics()
    repair_fn = None
    if req.repair:
        repair_fn = make_llm_repair_fn(model=settings.default_model, metrics=metrics)
        if repair_fn is None:
            log.info("repair requested but no LLM configured; verifying without repairs")

    envelopes = None
    if req.grounding_sources:
        envelopes = [
            wrap_grounding(s.data, s.source, s.fetched_at, s.ttl_hours) for s in req.grounding_sources
        ]

    outcome = run_verification(record, VerificationOptions(
        max_repairs=req.max_repairs if req.max_repairs is not None else settings.max_repairs,
        repair_fn=repair_fn,
        grounding=req.grounding,
        grounding_envelopes=envelopes,
        contradiction_tolerance=req.tolerance if req.tolerance is not None else settings.contradiction_tolerance,
        evaluation_id=req.evaluation_id,
        metrics=metrics,
    ))
    body = outcome.to_dict()

    if req.project_type:
        with metrics.stage("calibration"):
            calibrated = calibrate_score(
                outcome.record,
                req.project_type,
                market=MarketSnapshot(**req.market.model_dump()) if req.market else None,
                submission=IdeaSubmission(**req.submission.model_dump()) if req.submission else None,
            )
        body["record"] = calibrated.to_dict()

    body["metrics"] = metrics.to_dict()
    return body
