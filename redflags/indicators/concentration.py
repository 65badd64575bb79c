from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import AbstractSet, Any, Dict, List, Mapping, Set, Tuple

from ..awards import NormalizedAward
from ..signals import Signal, normalize_name
from ..stats import round1
from .base import BaseIndicator, fmt_usd


@dataclass
class RecipientSpend:
    amount: float = 0.0
    count: int = 0
    awards: List[str] = field(default_factory=list)


@dataclass
class GroupSpend:
    """Spend of one group (agency, sub-agency or NAICS sector) split by recipient."""

    label: str
    total_amount: float = 0.0
    award_count: int = 0
    by_recipient: Dict[str, RecipientSpend] = field(default_factory=dict)

    def add(self, award: NormalizedAward) -> None:
        self.total_amount += award.award_amount
        self.award_count += 1
        spend = self.by_recipient.setdefault(award.recipient_name, RecipientSpend())
        spend.amount += award.award_amount
        spend.count += 1
        spend.awards.append(award.award_id)

    def shares(self) -> Dict[str, float]:
        if self.total_amount <= 0:
            return {}
        return {r: s.amount / self.total_amount for r, s in self.by_recipient.items()}

    def hhi(self) -> float:
        """Herfindahl-Hirschman index on a 0-10,000 scale."""

        return sum((share * 100.0) ** 2 for share in self.shares().values())


class ConcentrationIndicator(BaseIndicator):
    """R004: a single vendor holding a dominant share of a spending pool.

    Three pools are evaluated in priority order: top-tier agency, sub-agency
    (only when it differs from the top tier), then NAICS sector. Within a level
    every (pool, recipient) pair over the threshold is reported; a recipient
    flagged at one level is skipped at the later ones. NAICS sectors
    need ``min_sector_spend`` and ``min_sector_awards`` to be considered, and
    at most ``max_naics_signals`` sector-level signals are kept.
    """

    id = "R004"
    name = "Vendor Concentration"
    description = "Flags when a single supplier dominates an agency's spending"

    HIGH_SHARE = 0.6

    def __init__(self) -> None:
        super().__init__()
        self.vendor_share_threshold = 0.3
        self.spike_threshold = 0.15
        self.min_sector_spend = 1_000_000.0
        self.min_sector_awards = 3
        self.max_naics_signals = 10
        self.by_agency: Dict[str, GroupSpend] = {}
        self.by_sub_agency: Dict[str, GroupSpend] = {}
        self.by_naics: Dict[str, GroupSpend] = {}

    def configure(self, settings: Mapping[str, Any]) -> None:
        self.vendor_share_threshold = self._number(
            settings, "vendor_share_threshold", self.vendor_share_threshold
        )
        self.spike_threshold = self._number(settings, "spike_threshold", self.spike_threshold)
        self.min_sector_spend = self._number(settings, "min_sector_spend", self.min_sector_spend)
        self.min_sector_awards = int(self._number(settings, "min_sector_awards", self.min_sector_awards))
        self.max_naics_signals = int(self._number(settings, "max_naics_signals", self.max_naics_signals))

    def fold(self, award: NormalizedAward) -> None:
        self.coverage.total_records += 1
        if not math.isfinite(award.award_amount) or award.award_amount <= 0:
            return
        self.coverage.records_with_required_fields += 1

        agency = award.awarding_agency
        self.by_agency.setdefault(agency, GroupSpend(label=agency)).add(award)

        sub = award.awarding_sub_agency
        if sub and sub != agency:
            self.by_sub_agency.setdefault(sub, GroupSpend(label=sub)).add(award)

        if award.naics_code:
            label = f"NAICS {award.naics_code}"
            if award.naics_description:
                label += f" ({award.naics_description})"
            self.by_naics.setdefault(award.naics_code, GroupSpend(label=label)).add(award)

    def _is_tautology(self, recipient: str) -> bool:
        ctx = self.query_context
        if ctx is None or not ctx.is_recipient_filtered:
            return False
        return normalize_name(ctx.recipient_filter) == normalize_name(recipient)

    def _flag_level(
        self, level: str, groups: Mapping[str, GroupSpend], earlier: AbstractSet[str]
    ) -> List[Signal]:
        """Every (group, recipient) pair over the share threshold, skipping
        recipients already flagged at an earlier level."""

        out: List[Signal] = []
        for group in groups.values():
            if group.total_amount <= 0:
                continue
            hhi = group.hhi()
            for recipient, spend in group.by_recipient.items():
                share = spend.amount / group.total_amount
                if share < self.vendor_share_threshold or recipient in earlier:
                    continue
                if self._is_tautology(recipient):
                    continue
                pool = group.label if level != "naics" else f"the {group.label} sector"
                out.append(
                    self._signal(
                        severity="high" if share >= self.HIGH_SHARE else "medium",
                        entity_type="recipient",
                        entity_id=recipient,
                        entity_name=recipient,
                        value=round1(share * 100),
                        threshold=self.vendor_share_threshold * 100,
                        context=(
                            f"{recipient} received {share * 100:.1f}% ({fmt_usd(spend.amount)}) "
                            f"of {pool}'s total contract value ({fmt_usd(group.total_amount)}) "
                            f"across {spend.count} {'award' if spend.count == 1 else 'awards'}. "
                            f"HHI for this pool: {hhi:,.0f}."
                        ),
                        affected_awards=spend.awards,
                    )
                )
        return out

    def _qualifying_sectors(self) -> Dict[str, GroupSpend]:
        return {
            code: g
            for code, g in self.by_naics.items()
            if g.total_amount >= self.min_sector_spend and g.award_count >= self.min_sector_awards
        }

    def levels(self) -> List[Tuple[str, Dict[str, GroupSpend]]]:
        """Spending pools in priority order. NAICS sectors are pre-gated."""

        return [
            ("agency", self.by_agency),
            ("sub_agency", self.by_sub_agency),
            ("naics", self._qualifying_sectors()),
        ]

    def finalize(self) -> List[Signal]:
        signals: List[Signal] = []
        flagged: Set[str] = set()
        for level, groups in self.levels():
            level_signals = self._flag_level(level, groups, flagged)
            if level == "naics":
                level_signals = self._by_value(level_signals)[: self.max_naics_signals]
            flagged.update(s.entity_id for s in level_signals)
            signals += level_signals
        return self._by_value(signals)

    def methodology(self) -> str:
        return (
            "Computes each vendor's share of contract spend per awarding agency, then per "
            "sub-agency, then per NAICS sector (sectors with at least "
            f"{fmt_usd(self.min_sector_spend)} and {self.min_sector_awards} awards). "
            f"Flags vendors with >= {self.vendor_share_threshold * 100:.0f}% share; a vendor "
            "is reported only at the first level where it qualifies. Based on EU Single "
            "Market Scoreboard concentration benchmarks and the Herfindahl-Hirschman Index."
        )

    def thresholds(self) -> Dict[str, float]:
        return {
            "vendor_share_threshold": self.vendor_share_threshold,
            "spike_threshold": self.spike_threshold,
            "min_sector_spend": self.min_sector_spend,
            "min_sector_awards": self.min_sector_awards,
            "max_naics_signals": self.max_naics_signals,
        }
