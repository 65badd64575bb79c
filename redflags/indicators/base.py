from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from ..awards import NormalizedAward, Transaction
from ..signals import DataCoverage, IndicatorMetadata, QueryContext, Severity, Signal, EntityType


class Indicator(Protocol):
    id: str
    name: str
    description: str

    def configure(self, settings: Mapping[str, Any]) -> None:  # pragma: no cover - interface only
        ...

    def fold(self, award: NormalizedAward) -> None:  # pragma: no cover - interface only
        ...

    def finalize(self) -> List[Signal]:  # pragma: no cover - interface only
        ...

    def get_metadata(self) -> IndicatorMetadata:  # pragma: no cover - interface only
        ...


class BaseIndicator:
    """Shared plumbing for red-flag indicators.

    Lifecycle: ``configure(settings)`` once, ``fold(award)`` per record
    (optionally ``fold_transactions``), then ``finalize()`` exactly once.
    ``get_metadata()`` may be called afterwards. Subclasses keep their own
    accumulators; no indicator reads another's state.
    """

    id: str = ""
    name: str = ""
    description: str = ""

    def __init__(self) -> None:
        self.coverage = DataCoverage()
        self.query_context: Optional[QueryContext] = None

    # Settings readers: wrong-typed values keep the compiled default.

    @staticmethod
    def _number(settings: Mapping[str, Any], key: str, default: float) -> float:
        v = settings.get(key)
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return v
        return default

    @staticmethod
    def _flag(settings: Mapping[str, Any], key: str, default: bool) -> bool:
        v = settings.get(key)
        return v if isinstance(v, bool) else default

    @staticmethod
    def _choice(settings: Mapping[str, Any], key: str, allowed: Sequence[str], default: str) -> str:
        v = settings.get(key)
        return v if isinstance(v, str) and v in allowed else default

    @staticmethod
    def _list(settings: Mapping[str, Any], key: str, default: List[Any]) -> List[Any]:
        v = settings.get(key)
        return list(v) if isinstance(v, (list, tuple)) else list(default)

    def configure(self, settings: Mapping[str, Any]) -> None:
        """Apply indicator-specific settings. Unknown keys are ignored."""

    def set_query_context(self, context: QueryContext) -> None:
        self.query_context = context

    def fold(self, award: NormalizedAward) -> None:
        raise NotImplementedError

    def fold_transactions(self, award_id: str, transactions: List[Transaction]) -> None:
        """Consume transaction detail. Only modification-based indicators override this."""

    @property
    def uses_transactions(self) -> bool:
        return type(self).fold_transactions is not BaseIndicator.fold_transactions

    def finalize(self) -> List[Signal]:
        raise NotImplementedError

    def methodology(self) -> str:
        return ""

    def thresholds(self) -> Dict[str, float]:
        return {}

    def get_metadata(self) -> IndicatorMetadata:
        return IndicatorMetadata(
            id=self.id,
            name=self.name,
            description=self.description,
            methodology=self.methodology(),
            thresholds_used=self.thresholds(),
            data_coverage=DataCoverage(
                total_records=self.coverage.total_records,
                records_with_required_fields=self.coverage.records_with_required_fields,
            ),
        )

    def _signal(
        self,
        *,
        severity: Severity,
        entity_type: EntityType,
        entity_id: str,
        entity_name: str,
        value: float,
        threshold: float,
        context: str,
        affected_awards: Sequence[str],
    ) -> Signal:
        return Signal(
            indicator_id=self.id,
            indicator_name=self.name,
            severity=severity,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            value=float(value),
            threshold=float(threshold),
            context=context,
            affected_awards=tuple(affected_awards),
        )

    @staticmethod
    def _by_value(signals: List[Signal]) -> List[Signal]:
        return sorted(signals, key=lambda s: s.value, reverse=True)


def fmt_usd(amount: float) -> str:
    """$1,234,567 style, cents shown only when present."""

    if float(amount).is_integer():
        return f"${amount:,.0f}"
    return f"${amount:,.2f}"
