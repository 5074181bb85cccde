"""Per-record reading shared by the projection builders.

Records reaching a builder were validated at ingestion, but a builder still
reads each one defensively: a record it cannot interpret is reported and
skipped instead of aborting the whole projection.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, DecimalException
from typing import Iterable, Iterator

from wallettrack.currency_conversion import StaticRateProvider, convert_amount
from wallettrack.errors import MalformedRecordError
from wallettrack.ledger import (
    MAX_AMOUNT,
    Transaction,
    TransactionKind,
    parse_amount,
    parse_occurred_at,
)
from wallettrack.logging_setup import get_logger

ZERO = Decimal("0")

logger = get_logger(__name__)


@dataclass(frozen=True)
class RecordView:
    transaction_id: str
    occurred_at: datetime
    kind: TransactionKind
    category: str
    amount: Decimal


def read_record(
    transaction: Transaction,
    currency: str,
    rate_provider: StaticRateProvider | None = None,
) -> RecordView:
    transaction_id = getattr(transaction, "id", None)

    occurred_at = parse_occurred_at(getattr(transaction, "occurred_at", None))
    if occurred_at is None:
        raise MalformedRecordError("Unreadable transaction date.", transaction_id)

    raw_kind = getattr(transaction, "kind", None)
    try:
        kind = TransactionKind.validate(raw_kind)
    except ValueError as exc:
        raise MalformedRecordError("Unreadable transaction type.", transaction_id) from exc

    amount = parse_amount(getattr(transaction, "amount", None))
    if amount is None or amount <= ZERO or amount > MAX_AMOUNT:
        raise MalformedRecordError("Unreadable transaction amount.", transaction_id)

    category = getattr(transaction, "category", None)
    category = category.strip() if isinstance(category, str) else ""

    try:
        converted = convert_amount(amount, currency, rate_provider=rate_provider)
    except DecimalException as exc:
        raise MalformedRecordError("Unconvertible transaction amount.", transaction_id) from exc

    return RecordView(
        transaction_id=transaction_id,
        occurred_at=occurred_at,
        kind=kind,
        category=category,
        amount=converted,
    )


def iter_records(
    transactions: Iterable[Transaction],
    currency: str,
    skipped: list[str],
    *,
    projection: str,
    rate_provider: StaticRateProvider | None = None,
) -> Iterator[RecordView]:
    """Yield readable records, appending the ids of unreadable ones to ``skipped``."""
    for transaction in transactions:
        try:
            yield read_record(transaction, currency, rate_provider=rate_provider)
        except MalformedRecordError as exc:
            logger.warning(
                "record_skipped",
                projection=projection,
                transaction_id=exc.transaction_id,
                reason=str(exc),
            )
            skipped.append(exc.transaction_id or "")
