from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Literal, Mapping, Optional, Tuple


Severity = Literal["low", "medium", "high"]
EntityType = Literal["award", "recipient", "agency"]

SEVERITY_WEIGHTS: Dict[str, int] = {"high": 3, "medium": 2, "low": 1}
# Sort rank for engine output: high first.
SEVERITY_ORDER: Dict[str, int] = {"high": 0, "medium": 1, "low": 2}


@dataclass(frozen=True)
class Signal:
    """One raw flagged observation from a single indicator for one entity.

    value is the indicator-specific magnitude (a percentage, a count or a
    multiplier) and threshold is the reference it was compared against.
    """

    indicator_id: str
    indicator_name: str
    severity: Severity
    entity_type: EntityType
    entity_id: str
    entity_name: str
    value: float
    threshold: float
    context: str
    affected_awards: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["affected_awards"] = list(self.affected_awards)
        return d

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Signal":
        return cls(
            indicator_id=str(data["indicator_id"]),
            indicator_name=str(data.get("indicator_name", "")),
            severity=data.get("severity", "low"),
            entity_type=data.get("entity_type", "recipient"),
            entity_id=str(data.get("entity_id", "")),
            entity_name=str(data.get("entity_name", "")),
            value=float(data.get("value", 0.0)),
            threshold=float(data.get("threshold", 0.0)),
            context=str(data.get("context", "")),
            affected_awards=tuple(str(a) for a in data.get("affected_awards", ())),
        )


@dataclass
class DataCoverage:
    total_records: int = 0
    records_with_required_fields: int = 0

    @property
    def coverage_percent(self) -> float:
        if self.total_records == 0:
            return 0.0
        return self.records_with_required_fields / self.total_records * 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_records": self.total_records,
            "records_with_required_fields": self.records_with_required_fields,
            "coverage_percent": self.coverage_percent,
        }


@dataclass
class IndicatorMetadata:
    """Transparency record describing how an indicator ran."""

    id: str
    name: str
    description: str
    methodology: str
    thresholds_used: Dict[str, float]
    data_coverage: DataCoverage

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "methodology": self.methodology,
            "thresholds_used": dict(self.thresholds_used),
            "data_coverage": self.data_coverage.to_dict(),
        }


@dataclass
class QueryContext:
    """Filters the award set was collected with.

    Indicators use it to avoid trivially true flags, e.g. a vendor holding
    ~100% of spend in a query already restricted to that vendor.
    """

    recipient_filter: Optional[str] = None
    agency_filter: Optional[str] = None
    subtier_agency_filter: Optional[str] = None
    period_start: str = ""
    period_end: str = ""
    is_recipient_filtered: bool = False
    is_agency_filtered: bool = False
    is_subtier_filtered: bool = False

    @classmethod
    def from_filters(
        cls,
        *,
        recipient: Optional[str] = None,
        agency: Optional[str] = None,
        subtier_agency: Optional[str] = None,
        period_start: str = "",
        period_end: str = "",
    ) -> "QueryContext":
        return cls(
            recipient_filter=recipient,
            agency_filter=agency,
            subtier_agency_filter=subtier_agency,
            period_start=period_start,
            period_end=period_end,
            is_recipient_filtered=bool(recipient),
            is_agency_filtered=bool(agency) or bool(subtier_agency),
            is_subtier_filtered=bool(subtier_agency),
        )


def normalize_name(name: Optional[str]) -> str:
    """Uppercase and collapse whitespace for name comparisons."""

    return " ".join(str(name or "").upper().split())
