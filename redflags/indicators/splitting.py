from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, NamedTuple, Optional

from ..awards import NormalizedAward
from ..signals import Signal
from ..stats import mean
from .base import BaseIndicator, fmt_usd


class ClusterKey(NamedTuple):
    agency: str
    recipient: str
    period: str
    threshold: float


@dataclass
class SplittingCluster:
    key: ClusterKey
    award_ids: List[str] = field(default_factory=list)
    amounts: List[float] = field(default_factory=list)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def period_key(d: date, period: str) -> str:
    """FY{year} or FY{year}-Q{quarter} from the calendar date."""

    if period == "year":
        return f"FY{d.year}"
    return f"FY{d.year}-Q{(d.month - 1) // 3 + 1}"


class SplittingIndicator(BaseIndicator):
    """R003: clusters of awards priced just under a regulatory threshold.

    An award in [threshold * (1 - band), threshold) joins the cluster for its
    (agency, recipient, period, threshold). Clusters reaching
    ``min_cluster_size`` suggest a requirement split to stay under the limit.
    """

    id = "R003"
    name = "Contract Value Splitting"
    description = "Detects clusters of awards just below regulatory thresholds"

    def __init__(self) -> None:
        super().__init__()
        self.thresholds_usd: List[float] = [250_000, 7_500_000]
        self.band_width_pct = 0.1
        self.min_cluster_size = 3
        self.period = "quarter"
        self.clusters: Dict[ClusterKey, SplittingCluster] = {}

    def configure(self, settings: Mapping[str, Any]) -> None:
        thresholds = self._list(settings, "thresholds", self.thresholds_usd)
        if all(isinstance(t, (int, float)) and not isinstance(t, bool) for t in thresholds):
            self.thresholds_usd = thresholds
        self.band_width_pct = self._number(settings, "band_width_pct", self.band_width_pct)
        self.min_cluster_size = int(self._number(settings, "min_cluster_size", self.min_cluster_size))
        self.period = self._choice(settings, "period", ("quarter", "year"), self.period)

    def fold(self, award: NormalizedAward) -> None:
        self.coverage.total_records += 1
        start = parse_iso_date(award.start_date)
        if start is None or award.award_amount <= 0:
            return
        self.coverage.records_with_required_fields += 1

        period = period_key(start, self.period)
        for threshold in self.thresholds_usd:
            lower = threshold * (1 - self.band_width_pct)
            if lower <= award.award_amount < threshold:
                key = ClusterKey(award.awarding_agency, award.recipient_name, period, threshold)
                cluster = self.clusters.get(key)
                if cluster is None:
                    cluster = self.clusters[key] = SplittingCluster(key=key)
                cluster.award_ids.append(award.award_id)
                cluster.amounts.append(award.award_amount)

    def finalize(self) -> List[Signal]:
        signals: List[Signal] = []
        for key, cluster in self.clusters.items():
            size = len(cluster.award_ids)
            if size < self.min_cluster_size:
                continue
            severity = "high" if size >= self.min_cluster_size * 2 else "medium"
            signals.append(
                self._signal(
                    severity=severity,
                    entity_type="agency",
                    entity_id=key.agency,
                    entity_name=key.agency,
                    value=size,
                    threshold=key.threshold,
                    context=(
                        f"{size} awards from {key.agency} to {key.recipient} during {key.period} "
                        f"fall within {self.band_width_pct * 100:.0f}% below the "
                        f"{fmt_usd(key.threshold)} threshold (avg: {fmt_usd(round(mean(cluster.amounts), 2))})."
                    ),
                    affected_awards=cluster.award_ids,
                )
            )
        return self._by_value(signals)

    def methodology(self) -> str:
        limits = ", ".join(fmt_usd(t) for t in self.thresholds_usd)
        return (
            "Groups awards by (agency, recipient, period) and counts those falling within "
            f"{self.band_width_pct * 100:.0f}% below regulatory thresholds ({limits}). "
            f"Clusters of {self.min_cluster_size}+ awards in the band suggest deliberate splitting."
        )

    def thresholds(self) -> Dict[str, float]:
        out: Dict[str, float] = {
            "band_width_pct": self.band_width_pct,
            "min_cluster_size": self.min_cluster_size,
        }
        for i, t in enumerate(self.thresholds_usd):
            out[f"threshold_{i}"] = t
        return out
