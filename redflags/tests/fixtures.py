from __future__ import annotations

from itertools import count
from typing import Any, Sequence

from ..awards import NormalizedAward, Transaction
from ..signals import Signal

_ids = count(1)


def make_award(**overrides: Any) -> NormalizedAward:
    """Award with sensible defaults; every field can be overridden."""

    n = next(_ids)
    values = dict(
        award_id=f"AWD-{n:04d}",
        internal_id=f"INT-{n:04d}",
        recipient_name="ACME CORP",
        awarding_agency="Department of Defense",
        awarding_sub_agency="Department of the Army",
        award_amount=100_000.0,
        award_type="D",
        naics_code="541330",
        naics_description="ENGINEERING SERVICES",
        start_date="2024-01-15",
        extent_competed="A",
        number_of_offers_received=3,
    )
    values.update(overrides)
    return NormalizedAward(**values)


def make_signal(
    indicator_id: str = "R001",
    entity_name: str = "ACME CORP",
    severity: str = "medium",
    value: float = 50.0,
    affected_awards: Sequence[str] = (),
    **overrides: Any,
) -> Signal:
    values = dict(
        indicator_id=indicator_id,
        indicator_name=f"Indicator {indicator_id}",
        severity=severity,
        entity_type="recipient",
        entity_id=entity_name,
        entity_name=entity_name,
        value=value,
        threshold=30.0,
        context="test signal",
        affected_awards=tuple(affected_awards),
    )
    values.update(overrides)
    return Signal(**values)


def make_transaction(award_id: str, modification_number: str = "P00001", obligation: float = 10_000.0, **overrides: Any) -> Transaction:
    values = dict(
        id=next(_ids),
        award_id=award_id,
        modification_number=modification_number,
        action_date="2024-03-01",
        federal_action_obligation=obligation,
    )
    values.update(overrides)
    return Transaction(**values)
