"""Signal consolidation and materiality ranking.

Raw signals are grouped by (entity, indicator) into material findings:

    materiality_score = dollar_factor * severity_weight * signal_count

where dollar_factor is the total dollar value up to $1M and
log10(total) * 1e6 above it. Findings are ranked by score and admitted
under a per-indicator diversity cap.
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Sequence, Set, Tuple, Union

from .awards import NormalizedAward
from .config_schema import MaterialityConfig
from .signals import SEVERITY_WEIGHTS, Severity, Signal

logger = logging.getLogger(__name__)


FindingSource = Literal["signal_consolidation", "investigator_agent"]
AiTag = Literal["RULE", "AI-ENHANCED", "AI-DISCOVERED"]

INDICATOR_SUFFIXES: Dict[str, str] = {
    "R001": "SINGLEBID",
    "R002": "NONCOMP",
    "R003": "SPLITTING",
    "R004": "CONCENTRATION",
    "R005": "MODS",
    "R006": "OUTLIER",
}

LOG_SCALE_FLOOR = 1_000_000.0
MAX_SLUG_LEN = 12


@dataclass
class EntityContext:
    """Summary of an entity derived from the award set alone."""

    primary_naics_description: Optional[str] = None
    primary_set_aside: Optional[str] = None
    total_awards_in_dataset: int = 0
    first_award_date: Optional[str] = None
    last_award_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary_naics_description": self.primary_naics_description,
            "primary_set_aside": self.primary_set_aside,
            "total_awards_in_dataset": self.total_awards_in_dataset,
            "first_award_date": self.first_award_date,
            "last_award_date": self.last_award_date,
        }


@dataclass
class MaterialFinding:
    id: str
    entity_name: str
    indicator_id: str
    indicator_name: str
    severity: Severity
    materiality_score: float
    total_dollar_value: float
    signal_count: int
    affected_award_ids: List[str]
    signals: List[Signal]
    entity_context: Optional[EntityContext] = None
    source: FindingSource = "signal_consolidation"
    ai_tag: AiTag = "RULE"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "entity_name": self.entity_name,
            "indicator_id": self.indicator_id,
            "indicator_name": self.indicator_name,
            "severity": self.severity,
            "materiality_score": self.materiality_score,
            "total_dollar_value": self.total_dollar_value,
            "signal_count": self.signal_count,
            "affected_award_ids": list(self.affected_award_ids),
            "signals": [s.to_dict() for s in self.signals],
            "entity_context": self.entity_context.to_dict() if self.entity_context else None,
            "source": self.source,
            "ai_tag": self.ai_tag,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MaterialFinding":
        ctx = data.get("entity_context")
        return cls(
            id=str(data["id"]),
            entity_name=str(data["entity_name"]),
            indicator_id=str(data["indicator_id"]),
            indicator_name=str(data.get("indicator_name", "")),
            severity=data.get("severity", "low"),
            materiality_score=float(data.get("materiality_score", 0.0)),
            total_dollar_value=float(data.get("total_dollar_value", 0.0)),
            signal_count=int(data.get("signal_count", 0)),
            affected_award_ids=[str(a) for a in data.get("affected_award_ids", [])],
            signals=[Signal.from_dict(s) for s in data.get("signals", [])],
            entity_context=EntityContext(**ctx) if ctx else None,
            source=data.get("source", "signal_consolidation"),
            ai_tag=data.get("ai_tag", "RULE"),
        )


def dollar_factor(total_dollar_value: float) -> float:
    """Linear up to $1M, log10-compressed (times 1e6) above it."""

    if total_dollar_value > LOG_SCALE_FLOOR:
        return math.log10(total_dollar_value) * LOG_SCALE_FLOOR
    return total_dollar_value


def materiality_score(total_dollar_value: float, severity: Severity, signal_count: int) -> float:
    return dollar_factor(total_dollar_value) * SEVERITY_WEIGHTS[severity] * signal_count


def max_severity(signals: Iterable[Signal]) -> Severity:
    best: Severity = "low"
    for s in signals:
        if SEVERITY_WEIGHTS[s.severity] > SEVERITY_WEIGHTS[best]:
            best = s.severity
    return best


def entity_slug(entity_name: str) -> str:
    """First one or two words of the name, alphanumerics only, at most 12 chars."""

    words = re.sub(r"[^A-Z0-9 ]", "", " ".join(entity_name.upper().split())).split()
    if not words:
        return "UNKNOWN"
    return "-".join(words[:2])[:MAX_SLUG_LEN].rstrip("-")


def finding_id(indicator_id: str, entity_name: str, taken: Set[str]) -> str:
    """F-{indicator}-{slug}-{suffix}, made unique against ``taken`` with -2, -3, ..."""

    suffix = INDICATOR_SUFFIXES.get(indicator_id, indicator_id)
    base = f"F-{indicator_id}-{entity_slug(entity_name)}-{suffix}"
    candidate = base
    n = 2
    while candidate in taken:
        candidate = f"{base}-{n}"
        n += 1
    taken.add(candidate)
    return candidate


def _entity_awards(
    signal: Signal, affected: Sequence[NormalizedAward], awards: Sequence[NormalizedAward]
) -> List[NormalizedAward]:
    if signal.entity_type == "agency":
        return [
            a for a in awards if signal.entity_name in (a.awarding_agency, a.awarding_sub_agency)
        ]
    if signal.entity_type == "recipient":
        return [a for a in awards if a.recipient_name == signal.entity_name]
    # Award-level entities are described by the recipients of the flagged awards.
    recipients = {a.recipient_name for a in affected}
    return [a for a in awards if a.recipient_name in recipients]


def _most_common(values: Iterable[Optional[str]]) -> Optional[str]:
    counts = Counter(v for v in values if v)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def build_entity_context(
    signal: Signal,
    affected: Sequence[NormalizedAward],
    awards: Sequence[NormalizedAward],
) -> EntityContext:
    """Derive an EntityContext for a finding from the in-memory award set."""

    entity_awards = _entity_awards(signal, affected, awards) or list(affected)
    dates = sorted(a.start_date for a in entity_awards if a.start_date)
    return EntityContext(
        primary_naics_description=_most_common(a.naics_description for a in affected),
        primary_set_aside=_most_common(a.type_set_aside for a in affected),
        total_awards_in_dataset=len(entity_awards),
        first_award_date=dates[0] if dates else None,
        last_award_date=dates[-1] if dates else None,
    )


def _resolve_config(
    config: Optional[Union[MaterialityConfig, Mapping[str, Any]]]
) -> MaterialityConfig:
    if config is None:
        return MaterialityConfig()
    if isinstance(config, MaterialityConfig):
        return config
    return MaterialityConfig(**{k: v for k, v in config.items() if v is not None})


def apply_diversity_cap(
    findings: Sequence[MaterialFinding], max_findings: int, max_per_indicator: int
) -> List[MaterialFinding]:
    """Walk ranked findings, admitting each while its indicator is under the cap."""

    admitted: List[MaterialFinding] = []
    per_indicator: Dict[str, int] = {}
    for f in findings:
        if len(admitted) >= max_findings:
            break
        count = per_indicator.get(f.indicator_id, 0)
        if count >= max_per_indicator:
            continue
        per_indicator[f.indicator_id] = count + 1
        admitted.append(f)
    return admitted


def consolidate_signals(
    signals: Sequence[Signal],
    awards: Sequence[NormalizedAward],
    config: Optional[Union[MaterialityConfig, Mapping[str, Any]]] = None,
) -> List[MaterialFinding]:
    """Consolidate raw signals into ranked material findings.

    Args:
        signals: Flat signal list from the engine.
        awards: The award set the signals were computed from, used to
            resolve dollar values and entity context.
        config: MaterialityConfig or a partial mapping of its fields.

    Returns:
        Findings sorted by materiality score (descending) after the minimum
        thresholds and the diversity cap have been applied.
    """

    cfg = _resolve_config(config)

    award_map: Dict[str, NormalizedAward] = {}
    for award in awards:
        award_map[award.award_id] = award
        if award.internal_id:
            award_map[award.internal_id] = award

    groups: Dict[Tuple[str, str], List[Signal]] = {}
    for s in signals:
        groups.setdefault((s.entity_name, s.indicator_id), []).append(s)

    findings: List[MaterialFinding] = []
    taken_ids: Set[str] = set()
    for (entity_name, indicator_id), group in groups.items():
        first = group[0]
        affected_ids = list(dict.fromkeys(a for s in group for a in s.affected_awards))
        affected = [award_map[a] for a in affected_ids if a in award_map]
        total = sum(award_map[a].award_amount for a in affected_ids if a in award_map)
        severity = max_severity(group)

        if len(affected_ids) < cfg.min_award_count:
            continue
        if total < cfg.min_total_amount:
            continue

        findings.append(
            MaterialFinding(
                id=finding_id(indicator_id, entity_name, taken_ids),
                entity_name=entity_name,
                indicator_id=indicator_id,
                indicator_name=first.indicator_name,
                severity=severity,
                materiality_score=materiality_score(total, severity, len(group)),
                total_dollar_value=total,
                signal_count=len(group),
                affected_award_ids=affected_ids,
                signals=list(group),
                entity_context=build_entity_context(first, affected, awards),
            )
        )

    findings.sort(key=lambda f: f.materiality_score, reverse=True)
    admitted = apply_diversity_cap(findings, cfg.max_findings, cfg.max_per_indicator)

    logger.info(
        "Consolidated %d signals into %d findings (%d admitted after diversity cap)",
        len(signals),
        len(findings),
        len(admitted),
    )
    return admitted
