from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .awards import NormalizedAward, Transaction
from .config_schema import Config
from .errors import EngineStateError, UnknownIndicatorError
from .indicators import (
    BaseIndicator,
    ConcentrationIndicator,
    ModificationsIndicator,
    NonCompetitiveIndicator,
    PriceOutliersIndicator,
    SingleBidIndicator,
    SplittingIndicator,
)
from .signals import SEVERITY_ORDER, IndicatorMetadata, QueryContext, Signal


class IndicatorId(str, Enum):
    SINGLE_BID = "R001"
    NON_COMPETITIVE = "R002"
    SPLITTING = "R003"
    CONCENTRATION = "R004"
    MODIFICATIONS = "R005"
    PRICE_OUTLIERS = "R006"


INDICATOR_REGISTRY: Dict[IndicatorId, Callable[[], BaseIndicator]] = {
    IndicatorId.SINGLE_BID: SingleBidIndicator,
    IndicatorId.NON_COMPETITIVE: NonCompetitiveIndicator,
    IndicatorId.SPLITTING: SplittingIndicator,
    IndicatorId.CONCENTRATION: ConcentrationIndicator,
    IndicatorId.MODIFICATIONS: ModificationsIndicator,
    IndicatorId.PRICE_OUTLIERS: PriceOutliersIndicator,
}

# Config section name for each indicator, in execution order.
CONFIG_KEYS: Dict[IndicatorId, str] = {
    IndicatorId.SINGLE_BID: "R001_single_bid",
    IndicatorId.NON_COMPETITIVE: "R002_non_competitive",
    IndicatorId.SPLITTING: "R003_splitting",
    IndicatorId.CONCENTRATION: "R004_concentration",
    IndicatorId.MODIFICATIONS: "R005_modifications",
    IndicatorId.PRICE_OUTLIERS: "R006_price_outliers",
}


@dataclass
class EngineSummary:
    total_indicators_run: int = 0
    total_signals: int = 0
    signals_by_severity: Dict[str, int] = field(default_factory=dict)
    signals_by_indicator: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_indicators_run": self.total_indicators_run,
            "total_signals": self.total_signals,
            "signals_by_severity": dict(self.signals_by_severity),
            "signals_by_indicator": dict(self.signals_by_indicator),
        }


@dataclass
class SignalEngineResult:
    signals: List[Signal]
    metadata: List[IndicatorMetadata]
    summary: EngineSummary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signals": [s.to_dict() for s in self.signals],
            "metadata": [m.to_dict() for m in self.metadata],
            "summary": self.summary.to_dict(),
        }


def resolve_filter(indicator_filter: Optional[Iterable[str]]) -> Optional[List[IndicatorId]]:
    """Map requested ids onto IndicatorId, raising for any the registry lacks."""

    if indicator_filter is None:
        return None
    requested = [str(i).strip().upper() for i in indicator_filter]
    known = {i.value for i in IndicatorId}
    unknown = {r for r in requested if r not in known}
    if unknown:
        raise UnknownIndicatorError(unknown)
    return [IndicatorId(r) for r in requested]


class SignalEngine:
    """Drives the configure -> fold -> finalize loop over all enabled indicators.

    Usage:
        engine = SignalEngine()
        engine.initialize(cfg)
        engine.process_awards(awards)
        engine.process_transactions(txns_by_award)  # optional
        result = engine.finalize()
    """

    def __init__(self) -> None:
        self.indicators: List[BaseIndicator] = []
        self.records_processed = 0
        self._finalized = False
        self.logger = logging.getLogger(self.__class__.__name__)

    def initialize(
        self,
        config: Config,
        indicator_filter: Optional[Sequence[str]] = None,
        query_context: Optional[QueryContext] = None,
    ) -> None:
        """Instantiate and configure every enabled indicator that passes the filter.

        Args:
            config: Loaded configuration.
            indicator_filter: Optional allow-list of indicator ids (e.g. ["R001"]).
            query_context: Filters the award set was collected with.

        Raises:
            UnknownIndicatorError: if the filter names an id with no registry entry.
        """

        allowed = resolve_filter(indicator_filter)

        self.indicators = []
        self.records_processed = 0
        self._finalized = False
        for indicator_id, config_key in CONFIG_KEYS.items():
            if allowed is not None and indicator_id not in allowed:
                continue
            settings = config.signals.get(config_key)
            if settings is None or not settings.enabled:
                continue
            indicator = INDICATOR_REGISTRY[indicator_id]()
            indicator.configure(settings.as_dict())
            if query_context is not None:
                indicator.set_query_context(query_context)
            self.indicators.append(indicator)

        self.logger.info("Initialized indicators: %s", [i.id for i in self.indicators])

    def process_awards(self, awards: Iterable[NormalizedAward]) -> None:
        """Fold every award through every active indicator."""

        self._check_open()
        n = 0
        for award in awards:
            for indicator in self.indicators:
                indicator.fold(award)
            n += 1
        self.records_processed += n
        self.logger.info("Folded %d awards through %d indicators", n, len(self.indicators))

    def process_transactions(self, transactions_by_award: Mapping[str, List[Transaction]]) -> None:
        """Feed per-award transaction detail to indicators that consume it."""

        self._check_open()
        for indicator in self.indicators:
            if not indicator.uses_transactions:
                continue
            for award_id, transactions in transactions_by_award.items():
                indicator.fold_transactions(award_id, transactions)
        self.logger.info("Transaction detail supplied for %d awards", len(transactions_by_award))

    def finalize(self) -> SignalEngineResult:
        """Finalize all indicators and collect results.

        Signals are ordered by severity (high first), then by descending value.
        """

        self._check_open()
        self._finalized = True

        all_signals: List[Signal] = []
        all_metadata: List[IndicatorMetadata] = []
        for indicator in self.indicators:
            all_signals.extend(indicator.finalize())
            meta = indicator.get_metadata()
            all_metadata.append(meta)
            self.logger.debug(
                "%s coverage %.1f%% (%d/%d)",
                meta.id,
                meta.data_coverage.coverage_percent,
                meta.data_coverage.records_with_required_fields,
                meta.data_coverage.total_records,
            )

        all_signals.sort(key=lambda s: (SEVERITY_ORDER[s.severity], -s.value))

        summary = EngineSummary(
            total_indicators_run=len(self.indicators),
            total_signals=len(all_signals),
        )
        for s in all_signals:
            summary.signals_by_severity[s.severity] = summary.signals_by_severity.get(s.severity, 0) + 1
            summary.signals_by_indicator[s.indicator_id] = (
                summary.signals_by_indicator.get(s.indicator_id, 0) + 1
            )

        self.logger.info(
            "Signal computation complete: %d signals from %d indicators",
            summary.total_signals,
            summary.total_indicators_run,
        )
        return SignalEngineResult(signals=all_signals, metadata=all_metadata, summary=summary)

    def _check_open(self) -> None:
        if self._finalized:
            raise EngineStateError("engine already finalized; call initialize() to start a new run")


def run_engine(
    config: Config,
    awards: Sequence[NormalizedAward],
    transactions: Optional[Mapping[str, List[Transaction]]] = None,
    *,
    indicator_filter: Optional[Sequence[str]] = None,
    query_context: Optional[QueryContext] = None,
) -> SignalEngineResult:
    """One-shot convenience wrapper around SignalEngine."""

    engine = SignalEngine()
    engine.initialize(config, indicator_filter, query_context)
    engine.process_awards(awards)
    if transactions:
        engine.process_transactions(transactions)
    return engine.finalize()
