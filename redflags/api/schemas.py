from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..awards import AwardIn, TransactionIn


class QueryContextIn(BaseModel):
    recipient: Optional[str] = None
    agency: Optional[str] = None
    subtier_agency: Optional[str] = None
    period_start: str = ""
    period_end: str = ""


class MaterialityIn(BaseModel):
    min_award_count: Optional[int] = None
    min_total_amount: Optional[float] = None
    max_findings: Optional[int] = None
    max_per_indicator: Optional[int] = Field(default=None, ge=1)


class SignalsRequest(BaseModel):
    awards: List[AwardIn]
    transactions: Dict[str, List[TransactionIn]] = Field(default_factory=dict)
    indicators: Optional[List[str]] = None
    query_context: Optional[QueryContextIn] = None


class FindingsRequest(SignalsRequest):
    materiality: Optional[MaterialityIn] = None


class SignalOut(BaseModel):
    indicator_id: str
    indicator_name: str
    severity: str
    entity_type: str
    entity_id: str
    entity_name: str
    value: float
    threshold: float
    context: str
    affected_awards: List[str]


class DataCoverageOut(BaseModel):
    total_records: int
    records_with_required_fields: int
    coverage_percent: float


class IndicatorMetadataOut(BaseModel):
    id: str
    name: str
    description: str
    methodology: str
    thresholds_used: Dict[str, Any]
    data_coverage: DataCoverageOut


class EngineSummaryOut(BaseModel):
    total_indicators_run: int
    total_signals: int
    signals_by_severity: Dict[str, int]
    signals_by_indicator: Dict[str, int]


class SignalsResponse(BaseModel):
    signals: List[SignalOut]
    metadata: List[IndicatorMetadataOut]
    summary: EngineSummaryOut


class EntityContextOut(BaseModel):
    primary_naics_description: Optional[str] = None
    primary_set_aside: Optional[str] = None
    total_awards_in_dataset: int = 0
    first_award_date: Optional[str] = None
    last_award_date: Optional[str] = None


class FindingOut(BaseModel):
    id: str
    entity_name: str
    indicator_id: str
    indicator_name: str
    severity: str
    materiality_score: float
    total_dollar_value: float
    signal_count: int
    affected_award_ids: List[str]
    signals: List[SignalOut]
    entity_context: Optional[EntityContextOut] = None
    source: str
    ai_tag: str


class ConvergenceOut(BaseModel):
    entity_name: str
    indicators: List[str]
    total_exposure: float
    convergence_score: float
    finding_ids: List[str]


class FindingsResponse(BaseModel):
    summary: EngineSummaryOut
    findings: List[FindingOut]
    convergence: List[ConvergenceOut]


class IndicatorInfo(BaseModel):
    id: str
    name: str
    description: str
    config_key: str
    settings: Dict[str, Any]
