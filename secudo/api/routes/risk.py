"""Risk scoring endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from secudo.api.schemas import RiskMatrixRequest, RiskScoreRequest
from secudo.auth import Session, require_session
from secudo.risk import build_risk_matrix, calculate_risk_score

router = APIRouter(prefix="/risk", tags=["Risk"])


@router.post("/score")
async def score(req: RiskScoreRequest, session: Session = Depends(require_session)):
    result = calculate_risk_score(req.asset_value, req.finding_severity)
    return {
        "asset_value": req.asset_value,
        "finding_severity": req.finding_severity,
        "score": result.score,
        "level": result.level.value,
    }


@router.post("/matrix")
async def matrix(req: RiskMatrixRequest, session: Session = Depends(require_session)):
    """Counts of asset/finding pairings per level and finding severity."""
    return {"matrix": build_risk_matrix(req.asset_values, req.finding_severities)}
