from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

from ..awards import NormalizedAward, Transaction
from ..signals import Signal
from .base import BaseIndicator, fmt_usd


@dataclass
class AwardModStats:
    award_id: str
    recipient_name: str
    agency: str
    original_amount: float
    current_amount: float
    modification_count: int = 0
    total_mod_amount: float = 0.0
    has_mod_data: bool = False

    @property
    def growth_ratio(self) -> float:
        if self.original_amount <= 0:
            return 1.0
        return self.current_amount / self.original_amount


class ModificationsIndicator(BaseIndicator):
    """R005: contracts modified too often or grown far beyond their award value.

    Modification counts come from the award rollup fields, or are recomputed
    from substantive transactions when transaction detail is folded in.
    """

    id = "R005"
    name = "Excessive Modifications"
    description = "Flags contracts with too many modifications or excessive cost growth"

    def __init__(self) -> None:
        super().__init__()
        self.max_modification_count = 5
        self.max_growth_ratio = 2.0
        self.by_award: Dict[str, AwardModStats] = {}

    def configure(self, settings: Mapping[str, Any]) -> None:
        self.max_modification_count = self._number(
            settings, "max_modification_count", self.max_modification_count
        )
        self.max_growth_ratio = self._number(settings, "max_growth_ratio", self.max_growth_ratio)

    def fold(self, award: NormalizedAward) -> None:
        self.coverage.total_records += 1
        has_rollup = award.modification_count is not None
        if has_rollup:
            self.coverage.records_with_required_fields += 1

        self.by_award[award.award_id] = AwardModStats(
            award_id=award.award_id,
            recipient_name=award.recipient_name,
            agency=award.awarding_agency,
            original_amount=award.award_amount,
            current_amount=(
                award.total_obligation if award.total_obligation is not None else award.award_amount
            ),
            modification_count=award.modification_count or 0,
            total_mod_amount=award.total_modification_amount or 0.0,
            has_mod_data=has_rollup,
        )

    def fold_transactions(self, award_id: str, transactions: List[Transaction]) -> None:
        stats = self.by_award.get(award_id)
        if stats is None:
            return
        substantive = [t for t in transactions if t.is_substantive]
        stats.modification_count = len(substantive)
        stats.total_mod_amount = sum(t.federal_action_obligation for t in substantive)
        if not stats.has_mod_data:
            stats.has_mod_data = True
            self.coverage.records_with_required_fields += 1

    def finalize(self) -> List[Signal]:
        signals: List[Signal] = []
        for stats in self.by_award.values():
            if not stats.has_mod_data:
                continue
            growth = stats.growth_ratio
            count_exceeded = stats.modification_count > self.max_modification_count
            growth_exceeded = growth > self.max_growth_ratio
            if not (count_exceeded or growth_exceeded):
                continue
            signals.append(
                self._signal(
                    severity="high" if growth_exceeded else "medium",
                    entity_type="award",
                    entity_id=stats.award_id,
                    entity_name=f"{stats.award_id} ({stats.recipient_name})",
                    value=max(float(stats.modification_count), growth * 100),
                    threshold=(
                        self.max_modification_count if count_exceeded else self.max_growth_ratio * 100
                    ),
                    context=(
                        f"Contract {stats.award_id} to {stats.recipient_name}: "
                        f"{stats.modification_count} modifications, cost grew from "
                        f"{fmt_usd(stats.original_amount)} to {fmt_usd(stats.current_amount)} "
                        f"({(growth - 1) * 100:.0f}% increase)."
                    ),
                    affected_awards=[stats.award_id],
                )
            )
        return self._by_value(signals)

    def methodology(self) -> str:
        return (
            "Counts substantive modifications (excluding $0 admin changes) per contract. "
            f"Flags contracts with >{self.max_modification_count} modifications or cost growth "
            f">{(self.max_growth_ratio - 1) * 100:.0f}%. Based on OECD procurement integrity "
            "guidelines."
        )

    def thresholds(self) -> Dict[str, float]:
        return {
            "max_modification_count": self.max_modification_count,
            "max_growth_ratio": self.max_growth_ratio,
        }
