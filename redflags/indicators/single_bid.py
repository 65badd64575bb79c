from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from ..awards import NormalizedAward
from ..signals import Signal
from ..stats import round1, to_number
from .base import BaseIndicator


# Extent-competed codes for competitively solicited actions.
COMPETITIVE_CODES = frozenset({"A", "CDO", "D", "E", "F"})


@dataclass
class AgencyBidStats:
    total_competed: int = 0
    single_bid: int = 0
    single_bid_awards: List[str] = field(default_factory=list)


class SingleBidIndicator(BaseIndicator):
    """R001: competitively solicited contracts that drew exactly one offer.

    Rates are computed per awarding agency. The 20% default follows the EU
    Single Market Scoreboard benchmark for single-bidder procedures.
    """

    id = "R001"
    name = "Single-Bid Competition"
    description = "Flags competitively-solicited contracts that received only one bid"

    def __init__(self) -> None:
        super().__init__()
        self.severity_threshold = 0.2
        self.require_competitive_type = True
        self.by_agency: Dict[str, AgencyBidStats] = {}

    def configure(self, settings: Mapping[str, Any]) -> None:
        self.severity_threshold = self._number(settings, "severity_threshold", self.severity_threshold)
        self.require_competitive_type = self._flag(
            settings, "require_competitive_type", self.require_competitive_type
        )

    def fold(self, award: NormalizedAward) -> None:
        self.coverage.total_records += 1

        if award.number_of_offers_received is None or not award.extent_competed:
            return
        self.coverage.records_with_required_fields += 1

        if self.require_competitive_type and award.extent_competed not in COMPETITIVE_CODES:
            return

        stats = self.by_agency.setdefault(award.awarding_agency, AgencyBidStats())
        stats.total_competed += 1
        # Offers may arrive as "1"
        if to_number(award.number_of_offers_received) == 1:
            stats.single_bid += 1
            stats.single_bid_awards.append(award.award_id)

    def finalize(self) -> List[Signal]:
        signals: List[Signal] = []
        for agency, stats in self.by_agency.items():
            if stats.total_competed == 0 or stats.single_bid == 0:
                continue
            rate = stats.single_bid / stats.total_competed
            if rate >= self.severity_threshold:
                severity = "high"
            elif rate >= self.severity_threshold / 2:
                severity = "medium"
            else:
                severity = "low"
            signals.append(
                self._signal(
                    severity=severity,
                    entity_type="agency",
                    entity_id=agency,
                    entity_name=agency,
                    value=round1(rate * 100),
                    threshold=self.severity_threshold * 100,
                    context=(
                        f"{stats.single_bid} of {stats.total_competed} competitively-solicited contracts "
                        f"({rate * 100:.1f}%) received only one bid. "
                        f"EU benchmark considers >{self.severity_threshold * 100:.0f}% as high-risk."
                    ),
                    affected_awards=stats.single_bid_awards,
                )
            )
        return self._by_value(signals)

    def methodology(self) -> str:
        return (
            "Counts competitively-solicited contracts where number_of_offers_received = 1, "
            "per awarding agency. Based on OCP Red Flags Guide and EU Single Market "
            "Scoreboard methodology."
        )

    def thresholds(self) -> Dict[str, float]:
        return {"severity_threshold": self.severity_threshold}
