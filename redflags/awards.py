from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .errors import InvalidRecordError
from .stats import to_number


OffersReceived = Union[int, float, str]


@dataclass
class NormalizedAward:
    """Normalized procurement award record supplied by the collection layer.

    ``award_amount`` is the authoritative dollar value for every indicator.
    Optional fields may be missing; indicators exclude such records from the
    relevant denominator instead of failing.
    """

    # Identifiers
    award_id: str
    internal_id: str = ""
    parent_award_id: Optional[str] = None

    # Parties
    recipient_name: str = ""
    recipient_uei: Optional[str] = None
    awarding_agency: str = ""
    awarding_sub_agency: Optional[str] = None
    funding_agency: Optional[str] = None

    # Financials
    award_amount: float = 0.0
    total_obligation: Optional[float] = None

    # Classification
    award_type: str = ""
    naics_code: Optional[str] = None
    naics_description: Optional[str] = None
    psc_code: Optional[str] = None
    psc_description: Optional[str] = None
    description: Optional[str] = None

    # Dates (ISO strings)
    start_date: str = ""
    end_date: Optional[str] = None
    last_modified_date: Optional[str] = None

    # Competition
    extent_competed: Optional[str] = None
    extent_competed_description: Optional[str] = None
    number_of_offers_received: Optional[OffersReceived] = None
    type_set_aside: Optional[str] = None

    # Modification rollups
    modification_count: Optional[int] = None
    total_modification_amount: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NormalizedAward":
        """Build an award from a camelCase or snake_case mapping.

        Unknown keys are ignored. Numeric fields are coerced where possible;
        unparseable or non-finite numbers become None (0.0 for ``award_amount``).

        Raises:
            InvalidRecordError: if the record has no award id.
        """

        return _validate(AwardIn, data, "award").to_award()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Transaction:
    """A single contract action (modification) on an award."""

    id: Union[int, str]
    award_id: str
    modification_number: str
    action_date: str
    federal_action_obligation: float = 0.0
    action_type: Optional[str] = None
    action_type_description: Optional[str] = None
    description: Optional[str] = None

    @property
    def is_substantive(self) -> bool:
        """False for the base award ("0") and zero-dollar administrative actions."""

        return str(self.modification_number) != "0" and self.federal_action_obligation != 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Transaction":
        return _validate(TransactionIn, data, "transaction").to_transaction()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Input models. Keys may arrive camelCase (collection layer JSON) or snake_case.


class RecordIn(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


class AwardIn(RecordIn):
    award_id: str = Field(min_length=1)
    internal_id: str = ""
    parent_award_id: Optional[str] = None
    recipient_name: str = ""
    recipient_uei: Optional[str] = None
    awarding_agency: str = ""
    awarding_sub_agency: Optional[str] = None
    funding_agency: Optional[str] = None
    award_amount: float = 0.0
    total_obligation: Optional[float] = None
    award_type: str = ""
    naics_code: Optional[str] = None
    naics_description: Optional[str] = None
    psc_code: Optional[str] = None
    psc_description: Optional[str] = None
    description: Optional[str] = None
    start_date: str = ""
    end_date: Optional[str] = None
    last_modified_date: Optional[str] = None
    extent_competed: Optional[str] = None
    extent_competed_description: Optional[str] = None
    number_of_offers_received: Optional[OffersReceived] = None
    type_set_aside: Optional[str] = None
    modification_count: Optional[int] = None
    total_modification_amount: Optional[float] = None

    @field_validator("internal_id", "recipient_name", "awarding_agency", "award_type", "start_date", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("award_amount", mode="before")
    @classmethod
    def amount_or_zero(cls, v: Any) -> float:
        x = to_number(v)
        return 0.0 if x is None else x

    @field_validator("total_obligation", "total_modification_amount", mode="before")
    @classmethod
    def finite_or_none(cls, v: Any) -> Optional[float]:
        return to_number(v)

    @field_validator("modification_count", mode="before")
    @classmethod
    def whole_count(cls, v: Any) -> Optional[int]:
        x = to_number(v)
        return int(x) if x is not None else None

    def to_award(self) -> NormalizedAward:
        return NormalizedAward(**self.model_dump())


class TransactionIn(RecordIn):
    id: Union[int, str] = ""
    # Filled from the enclosing award id when rows are grouped by award.
    award_id: Optional[str] = None
    modification_number: str = "0"
    action_date: str = ""
    federal_action_obligation: float = 0.0
    action_type: Optional[str] = None
    action_type_description: Optional[str] = None
    description: Optional[str] = None

    @field_validator("modification_number", mode="before")
    @classmethod
    def base_when_missing(cls, v: Any) -> Any:
        return "0" if v is None else v

    @field_validator("action_date", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("federal_action_obligation", mode="before")
    @classmethod
    def amount_or_zero(cls, v: Any) -> float:
        x = to_number(v)
        return 0.0 if x is None else x

    def to_transaction(self, award_id: Optional[str] = None) -> Transaction:
        owner = self.award_id or award_id
        if not owner:
            raise InvalidRecordError("transaction record is missing award_id")
        values = self.model_dump()
        values["award_id"] = str(owner)
        return Transaction(**values)


RecordT = TypeVar("RecordT", bound=RecordIn)


def _validate(model: Type[RecordT], data: Union[RecordT, Mapping[str, Any]], kind: str) -> RecordT:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(dict(data))
    except ValidationError as exc:
        raise InvalidRecordError(f"invalid {kind} record: {exc}") from exc


def load_awards(rows: Iterable[Union[AwardIn, Mapping[str, Any]]]) -> List[NormalizedAward]:
    """Convert validated models or plain mappings (e.g. parsed JSON) into awards."""

    return [_validate(AwardIn, r, "award").to_award() for r in rows]


def load_transactions(
    by_award: Mapping[str, Iterable[Union[TransactionIn, Mapping[str, Any]]]]
) -> Dict[str, List[Transaction]]:
    """Convert an award id -> transaction rows mapping into Transaction objects."""

    out: Dict[str, List[Transaction]] = {}
    for award_id, rows in by_award.items():
        out[str(award_id)] = [
            _validate(TransactionIn, r, "transaction").to_transaction(str(award_id)) for r in rows
        ]
    return out
