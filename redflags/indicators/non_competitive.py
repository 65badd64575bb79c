from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from ..awards import NormalizedAward
from ..signals import Signal
from ..stats import round1, safe_div
from .base import BaseIndicator, fmt_usd


DEFAULT_CODES_TO_FLAG = ("B", "C", "G", "NDO")


@dataclass
class RecipientCompetition:
    recipient_name: str
    non_competed_count: int = 0
    total_count: int = 0
    non_competed_amount: float = 0.0
    total_amount: float = 0.0
    award_ids: List[str] = field(default_factory=list)


class NonCompetitiveIndicator(BaseIndicator):
    """R002: share of a recipient's awards made without open competition."""

    id = "R002"
    name = "Non-Competitive Awards"
    description = "Flags awards made without open competition (sole-source, non-competed)"

    def __init__(self) -> None:
        super().__init__()
        self.codes_to_flag = frozenset(DEFAULT_CODES_TO_FLAG)
        self.by_recipient: Dict[str, RecipientCompetition] = {}

    def configure(self, settings: Mapping[str, Any]) -> None:
        codes = self._list(settings, "codes_to_flag", sorted(self.codes_to_flag))
        self.codes_to_flag = frozenset(str(c) for c in codes)

    def fold(self, award: NormalizedAward) -> None:
        self.coverage.total_records += 1
        if not award.extent_competed:
            return
        self.coverage.records_with_required_fields += 1

        stats = self.by_recipient.setdefault(
            award.recipient_name, RecipientCompetition(recipient_name=award.recipient_name)
        )
        stats.total_count += 1
        stats.total_amount += award.award_amount
        if award.extent_competed in self.codes_to_flag:
            stats.non_competed_count += 1
            stats.non_competed_amount += award.award_amount
            stats.award_ids.append(award.award_id)

    def finalize(self) -> List[Signal]:
        signals: List[Signal] = []
        for stats in self.by_recipient.values():
            if stats.non_competed_count == 0:
                continue
            rate = stats.non_competed_count / stats.total_count
            amount_rate = safe_div(stats.non_competed_amount, stats.total_amount) or 0.0
            if rate >= 0.8:
                severity = "high"
            elif rate >= 0.5:
                severity = "medium"
            else:
                severity = "low"
            noun = "award" if stats.total_count == 1 else "awards"
            verb = "was" if stats.non_competed_count == 1 else "were"
            signals.append(
                self._signal(
                    severity=severity,
                    entity_type="recipient",
                    entity_id=stats.recipient_name,
                    entity_name=stats.recipient_name,
                    value=round1(rate * 100),
                    threshold=50,
                    context=(
                        f"{stats.non_competed_count} of {stats.total_count} {noun} "
                        f"({rate * 100:.1f}%) to {stats.recipient_name} {verb} non-competitive. "
                        f"Non-competed amount: {fmt_usd(stats.non_competed_amount)} "
                        f"({amount_rate * 100:.1f}% of total)."
                    ),
                    affected_awards=stats.award_ids,
                )
            )
        return self._by_value(signals)

    def methodology(self) -> str:
        return (
            "Identifies awards with extent_competed codes indicating no open competition "
            "(B=Not Available, C=Not Competed, G=Not Competed Under SAP, "
            "NDO=Non-Competitive Delivery Order). Based on OECD Guidelines and "
            "Fazekas & Kocsis corruption risk methodology."
        )

    def thresholds(self) -> Dict[str, float]:
        return {"codes_to_flag_count": len(self.codes_to_flag), "reference_rate_pct": 50}
