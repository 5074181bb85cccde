from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Iterator
from uuid import uuid4

from wallettrack.errors import NotFoundError, ValidationError

DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%m/%d/%Y", "%d-%m-%Y", "%d %b %Y", "%d %B %Y")
DATETIME_FORMATS = ("%Y-%m-%d %H:%M", "%d/%m/%Y %H:%M", "%Y-%m-%dT%H:%M")

# Amounts above this are rejected at ingestion and skipped at aggregation.
MAX_AMOUNT = Decimal("1000000000000")

DECIMAL_COMMA_PATTERN = re.compile(r"^\d+,\d{1,2}$")
THOUSANDS_PATTERN = re.compile(r"^\d{1,3}(,\d{3})+(\.\d+)?$")

KIND_ALIASES = {
    "revenue": "income",
    "revenu": "income",
    "depense": "expense",
    "dépense": "expense",
}


class TransactionKind(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"

    @classmethod
    def validate(cls, value: "TransactionKind | str") -> "TransactionKind":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValidationError("Invalid transaction type.", field="kind")
        normalized = value.strip().lower()
        normalized = KIND_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValidationError("Invalid transaction type.", field="kind") from exc


@dataclass(frozen=True)
class Transaction:
    id: str
    amount: Decimal
    category: str
    occurred_at: datetime
    kind: TransactionKind

    @property
    def is_income(self) -> bool:
        return self.kind == TransactionKind.INCOME

    @property
    def is_expense(self) -> bool:
        return self.kind == TransactionKind.EXPENSE


def build_transaction(
    amount: Decimal | int | float | str,
    category: str | None,
    occurred_at: datetime | date | str | None,
    kind: TransactionKind | str,
    *,
    transaction_id: str,
) -> Transaction:
    normalized_kind = TransactionKind.validate(kind)

    parsed_amount = parse_amount(amount)
    if parsed_amount is None:
        raise ValidationError("Amount must be a number.", field="amount")
    if parsed_amount <= 0:
        raise ValidationError("Amount must be greater than zero.", field="amount")
    if parsed_amount > MAX_AMOUNT:
        raise ValidationError("Amount is too large.", field="amount")

    cleaned_category = category.strip() if isinstance(category, str) else ""
    if not cleaned_category:
        raise ValidationError("Category required.", field="category")

    parsed_date = parse_occurred_at(occurred_at)
    if parsed_date is None:
        raise ValidationError("A valid date is required.", field="occurred_at")

    return Transaction(
        id=transaction_id,
        amount=parsed_amount,
        category=cleaned_category,
        occurred_at=parsed_date,
        kind=normalized_kind,
    )


class Ledger:
    """Insertion-ordered set of validated transactions keyed by id."""

    def __init__(self, id_factory: Callable[[], str] | None = None) -> None:
        self._entries: dict[str, Transaction] = {}
        self._id_factory = id_factory or _new_transaction_id

    def add(
        self,
        amount: Decimal | int | float | str,
        category: str | None,
        occurred_at: datetime | date | str | None,
        kind: TransactionKind | str,
    ) -> Transaction:
        transaction = build_transaction(
            amount,
            category,
            occurred_at,
            kind,
            transaction_id=self.new_id(),
        )
        self._entries[transaction.id] = transaction
        return transaction

    def admit(self, transaction: Transaction) -> Transaction:
        """Insert a pre-built transaction after validating it like ``add``."""
        if not transaction.id or transaction.id in self._entries:
            raise ValidationError("Transaction id must be unique.", field="id")
        validated = build_transaction(
            transaction.amount,
            transaction.category,
            transaction.occurred_at,
            transaction.kind,
            transaction_id=transaction.id,
        )
        self._entries[validated.id] = validated
        return validated

    def remove(self, transaction_id: str) -> Transaction:
        try:
            return self._entries.pop(transaction_id)
        except KeyError as exc:
            raise NotFoundError(f"Transaction not found: {transaction_id}") from exc

    def get(self, transaction_id: str) -> Transaction | None:
        return self._entries.get(transaction_id)

    def snapshot(self) -> tuple[Transaction, ...]:
        return tuple(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Transaction]:
        return iter(self.snapshot())

    def __contains__(self, transaction_id: object) -> bool:
        return transaction_id in self._entries

    def new_id(self) -> str:
        candidate = self._id_factory()
        while candidate in self._entries:
            candidate = self._id_factory()
        return candidate


def parse_occurred_at(value: datetime | date | str | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_local_naive(value)
    if isinstance(value, date):
        return datetime.combine(value, time())
    if not isinstance(value, str):
        return None

    cleaned = value.strip()
    if not cleaned:
        return None
    if cleaned.endswith(("Z", "z")):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        return to_local_naive(datetime.fromisoformat(cleaned))
    except ValueError:
        pass
    for fmt in DATETIME_FORMATS + DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt)
        except ValueError:
            continue
    return None


def to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def parse_amount(value: Decimal | int | float | str | None) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        amount = parse_decimal(value)
        if amount is None:
            return None
    else:
        return None
    if not amount.is_finite():
        return None
    return amount


def parse_decimal(value: str | None) -> Decimal | None:
    cleaned = value.strip() if value else ""
    if not cleaned:
        return None

    negative = False
    if cleaned.startswith("(") and cleaned.endswith(")"):
        negative = True
        cleaned = cleaned[1:-1]

    cleaned = cleaned.replace("€", "").replace("$", "")
    cleaned = re.sub(r"\s+", "", cleaned)

    if cleaned.startswith("-"):
        negative = True
        cleaned = cleaned[1:]
    elif cleaned.startswith("+"):
        cleaned = cleaned[1:]

    if "," in cleaned:
        cleaned = _normalize_separators(cleaned)
        if cleaned is None:
            return None

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None

    return -amount if negative else amount


def _normalize_separators(value: str) -> str | None:
    # "12,50" is a decimal comma; "1,234.50" uses thousands separators.
    if DECIMAL_COMMA_PATTERN.match(value):
        return value.replace(",", ".")
    if THOUSANDS_PATTERN.match(value):
        return value.replace(",", "")
    return None


def _new_transaction_id() -> str:
    return uuid4().hex
