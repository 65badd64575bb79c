from __future__ import annotations

from typing import List, Optional

from fastapi import FastAPI, HTTPException

from ..awards import NormalizedAward, load_awards, load_transactions
from ..config_schema import SIGNAL_DEFAULTS, get_default_config
from ..consolidator import consolidate_signals
from ..convergence import compute_convergence
from ..engine import CONFIG_KEYS, INDICATOR_REGISTRY, SignalEngineResult, run_engine
from ..errors import InvalidRecordError, UnknownIndicatorError
from ..signals import QueryContext
from .schemas import (
    FindingsRequest,
    FindingsResponse,
    IndicatorInfo,
    QueryContextIn,
    SignalsRequest,
    SignalsResponse,
)


app = FastAPI(title="Procurement Red-Flag Screening API")


def _query_context(qc: Optional[QueryContextIn]) -> Optional[QueryContext]:
    if qc is None:
        return None
    return QueryContext.from_filters(
        recipient=qc.recipient,
        agency=qc.agency,
        subtier_agency=qc.subtier_agency,
        period_start=qc.period_start,
        period_end=qc.period_end,
    )


def _run(req: SignalsRequest) -> tuple[List[NormalizedAward], SignalEngineResult]:
    try:
        awards = load_awards(req.awards)
        transactions = load_transactions(req.transactions)
    except InvalidRecordError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    try:
        result = run_engine(
            get_default_config(),
            awards,
            transactions,
            indicator_filter=req.indicators,
            query_context=_query_context(req.query_context),
        )
    except UnknownIndicatorError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return awards, result


@app.post("/signals", response_model=SignalsResponse)
def compute_signals(req: SignalsRequest) -> SignalsResponse:
    _, result = _run(req)
    return SignalsResponse(**result.to_dict())


@app.post("/findings", response_model=FindingsResponse)
def compute_findings(req: FindingsRequest) -> FindingsResponse:
    awards, result = _run(req)

    cfg = get_default_config().materiality
    if req.materiality is not None:
        overrides = req.materiality.model_dump(exclude_none=True)
        cfg = cfg.model_copy(update=overrides)

    findings = consolidate_signals(result.signals, awards, cfg)
    convergence = compute_convergence(findings)
    return FindingsResponse(
        summary=result.summary.to_dict(),
        findings=[f.to_dict() for f in findings],
        convergence=[c.to_dict() for c in convergence],
    )


@app.get("/indicators", response_model=List[IndicatorInfo])
def list_indicators() -> List[IndicatorInfo]:
    out: List[IndicatorInfo] = []
    for indicator_id, config_key in CONFIG_KEYS.items():
        indicator = INDICATOR_REGISTRY[indicator_id]()
        out.append(
            IndicatorInfo(
                id=indicator.id,
                name=indicator.name,
                description=indicator.description,
                config_key=config_key,
                settings=dict(SIGNAL_DEFAULTS[config_key]),
            )
        )
    return out
