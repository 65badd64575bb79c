from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from .consolidator import MaterialFinding

logger = logging.getLogger(__name__)


@dataclass
class ConvergenceEntity:
    """An entity flagged by two or more distinct indicators."""

    entity_name: str
    indicators: List[str]
    total_exposure: float
    convergence_score: float
    findings: List[MaterialFinding] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_name": self.entity_name,
            "indicators": list(self.indicators),
            "total_exposure": self.total_exposure,
            "convergence_score": self.convergence_score,
            "finding_ids": [f.id for f in self.findings],
        }


def compute_convergence(findings: Sequence[MaterialFinding]) -> List[ConvergenceEntity]:
    """Group findings by entity and keep entities seen by 2+ distinct indicators.

    convergence_score = distinct indicator count * sum of materiality scores.
    Exposure sums each finding's dollar value, so awards shared between
    findings are counted once per finding.
    """

    by_entity: Dict[str, List[MaterialFinding]] = {}
    for f in findings:
        by_entity.setdefault(f.entity_name, []).append(f)

    out: List[ConvergenceEntity] = []
    for entity_name, group in by_entity.items():
        indicators = sorted({f.indicator_id for f in group})
        if len(indicators) < 2:
            continue
        out.append(
            ConvergenceEntity(
                entity_name=entity_name,
                indicators=indicators,
                total_exposure=sum(f.total_dollar_value for f in group),
                convergence_score=len(indicators) * sum(f.materiality_score for f in group),
                findings=list(group),
            )
        )

    out.sort(key=lambda e: e.convergence_score, reverse=True)
    logger.debug("%d entities flagged by multiple indicators", len(out))
    return out
