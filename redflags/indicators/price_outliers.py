from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

from ..awards import NormalizedAward
from ..signals import Signal
from ..stats import iqr_upper_fence, mean, round1, zscore_upper_fence
from .base import BaseIndicator, fmt_usd


@dataclass
class CategoryGroup:
    code: str
    # (award_id, amount, recipient)
    awards: List[Tuple[str, float, str]] = field(default_factory=list)

    @property
    def amounts(self) -> List[float]:
        return [a for _, a, _ in self.awards]


class PriceOutliersIndicator(BaseIndicator):
    """R006: awards priced far above peers in the same NAICS (or PSC) category."""

    id = "R006"
    name = "Price Outliers"
    description = "Flags awards with abnormally high amounts vs same-category peers"

    METHODS = ("iqr", "zscore")

    def __init__(self) -> None:
        super().__init__()
        self.method = "iqr"
        self.iqr_multiplier = 1.5
        self.zscore_threshold = 2.0
        self.min_group_size = 5
        self.by_category: Dict[str, CategoryGroup] = {}

    def configure(self, settings: Mapping[str, Any]) -> None:
        self.method = self._choice(settings, "method", self.METHODS, self.method)
        self.iqr_multiplier = self._number(settings, "iqr_multiplier", self.iqr_multiplier)
        self.zscore_threshold = self._number(settings, "zscore_threshold", self.zscore_threshold)
        self.min_group_size = int(self._number(settings, "min_group_size", self.min_group_size))

    def fold(self, award: NormalizedAward) -> None:
        self.coverage.total_records += 1
        code = award.naics_code or award.psc_code
        if not code or not math.isfinite(award.award_amount) or award.award_amount <= 0:
            return
        self.coverage.records_with_required_fields += 1

        group = self.by_category.setdefault(code, CategoryGroup(code=code))
        group.awards.append((award.award_id, award.award_amount, award.recipient_name))

    def upper_fence(self, amounts: List[float]) -> float:
        if self.method == "iqr":
            return iqr_upper_fence(amounts, self.iqr_multiplier)
        return zscore_upper_fence(amounts, self.zscore_threshold)

    def finalize(self) -> List[Signal]:
        signals: List[Signal] = []
        for code, group in self.by_category.items():
            amounts = group.amounts
            if len(amounts) < self.min_group_size:
                continue
            fence = self.upper_fence(amounts)
            group_mean = mean(amounts)
            for award_id, amount, recipient in group.awards:
                if amount <= fence:
                    continue
                factor = amount / group_mean if group_mean > 0 else 0.0
                if factor >= 5:
                    severity = "high"
                elif factor >= 2:
                    severity = "medium"
                else:
                    severity = "low"
                signals.append(
                    self._signal(
                        severity=severity,
                        entity_type="award",
                        entity_id=award_id,
                        entity_name=f"{award_id} ({recipient})",
                        value=round1(factor),
                        threshold=round(fence),
                        context=(
                            f"Award {award_id} ({fmt_usd(amount)}) to {recipient} is "
                            f"{factor:.1f}x the category mean ({fmt_usd(round(group_mean, 2))}) for "
                            f"{code} (n={len(amounts)}). Upper fence: {fmt_usd(round(fence, 2))} "
                            f"({self.method} method)."
                        ),
                        affected_awards=[award_id],
                    )
                )
        return self._by_value(signals)

    def methodology(self) -> str:
        if self.method == "iqr":
            return (
                "Groups awards by NAICS/PSC code, computes Q1/Q3/IQR, flags amounts above "
                f"Q3 + {self.iqr_multiplier}*IQR. Quartile-based thresholding."
            )
        return (
            "Groups awards by NAICS/PSC code, flags amounts more than "
            f"{self.zscore_threshold} standard deviations above the mean."
        )

    def thresholds(self) -> Dict[str, float]:
        out: Dict[str, float] = {"min_group_size": self.min_group_size}
        if self.method == "iqr":
            out["iqr_multiplier"] = self.iqr_multiplier
        else:
            out["zscore_threshold"] = self.zscore_threshold
        return out
