"""
Ledger data models — transactions, recurring definitions, categories.

Records are persisted as JSON with camelCase keys and ``DD-MM-YYYY`` dates.
Both the alias and the Python field name are accepted on input.
"""

from __future__ import annotations

import uuid
from datetime import date
from enum import Enum
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)

from fintrack.dates import parse_flexible, to_day_first


def generate_id() -> str:
    """Return a short opaque identifier for a new record."""
    return uuid.uuid4().hex[:12]


def coerce_date(value: Any) -> date:
    """Validator helper: accept either date encoding, reject anything else."""
    parsed = parse_flexible(value)
    if parsed is None:
        raise ValueError(f"invalid date: {value!r}")
    return parsed


# Calendar date stored as DD-MM-YYYY in JSON.
LedgerDate = Annotated[
    date,
    BeforeValidator(coerce_date),
    PlainSerializer(to_day_first, return_type=str, when_used="json"),
]


class Record(BaseModel):
    """Base for persisted records."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_record(self) -> dict[str, Any]:
        """Serialize to the JSON shape used by the key-value store."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TransactionType(str, Enum):
    """Direction of a ledger entry."""

    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class Transaction(Record):
    """A single ledger entry in the household's local currency."""

    id: str = Field(default_factory=generate_id)
    date: LedgerDate
    amount: float = Field(gt=0)
    type: TransactionType
    category: str
    description: str = ""
    is_recurring: bool = Field(default=False, alias="isRecurring")

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME


class RecurringDefinition(Record):
    """A charge or income that repeats on a nominal day of every month.

    ``last_processed_date`` is owned by the materializer: it records the
    date of the most recent transaction generated from this definition.
    """

    id: str = Field(default_factory=generate_id)
    type: TransactionType
    category: str
    description: str = ""
    amount: float = Field(gt=0)
    day_of_month: int = Field(ge=1, le=31, alias="dayOfMonth")
    active: bool = True
    last_processed_date: LedgerDate | None = Field(default=None, alias="lastProcessedDate")

    @field_validator("last_processed_date", mode="before")
    @classmethod
    def parse_marker(cls, value: Any) -> date | None:
        # A corrupt marker is treated as "never processed".
        return parse_flexible(value)


class CategoryData(BaseModel):
    """User-ordered category labels, one list per transaction type."""

    model_config = ConfigDict(frozen=True)

    income: list[str] = Field(default_factory=list)
    expense: list[str] = Field(default_factory=list)

    def for_type(self, type: TransactionType) -> list[str]:
        return list(self.income if type == TransactionType.INCOME else self.expense)

    def with_list(self, type: TransactionType, labels: list[str]) -> CategoryData:
        """Return a copy with the list for ``type`` replaced."""
        key = "income" if type == TransactionType.INCOME else "expense"
        return self.model_copy(update={key: list(labels)})
