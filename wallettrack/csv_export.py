from __future__ import annotations

import csv
import io
import re
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from pydantic import BaseModel

from wallettrack.currency_conversion import (
    CANONICAL_CURRENCY,
    StaticRateProvider,
    convert_amount,
    normalize_currency,
    to_canonical,
)
from wallettrack.ledger import (
    MAX_AMOUNT,
    Transaction,
    TransactionKind,
    parse_decimal,
    parse_occurred_at,
)

EXPORT_HEADER = ["id", "date", "category", "type", "amount", "currency"]
DISPLAY_HEADER = ["display_amount", "display_currency"]

FIELD_MAP: dict[str, list[str]] = {
    "id": ["id", "transaction id", "reference"],
    "date": ["date", "occurred at", "transaction date", "datetime"],
    "category": ["category", "categorie", "catégorie"],
    "type": ["type", "kind"],
    "amount": ["amount", "montant"],
    "currency": ["currency", "devise"],
}


class ParsedTransaction(BaseModel):
    id: str | None = None
    occurred_at: datetime
    category: str
    kind: TransactionKind
    amount: Decimal

    def to_transaction(self) -> Transaction:
        return Transaction(
            id=self.id or "",
            amount=self.amount,
            category=self.category,
            occurred_at=self.occurred_at,
            kind=self.kind,
        )


class CSVParseResult(BaseModel):
    rows: list[ParsedTransaction]
    rejected_lines: list[int] = []


def export_transactions_csv(
    transactions: Iterable[Transaction],
    display_currency: str | None = None,
    rate_provider: StaticRateProvider | None = None,
) -> str:
    """Serialize ledger transactions, canonical amounts first.

    When ``display_currency`` is given two extra columns carry the amount
    converted from the canonical value.
    """
    target = normalize_currency(display_currency) if display_currency else None
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_HEADER + (DISPLAY_HEADER if target else []))
    for txn in transactions:
        row = [
            txn.id,
            txn.occurred_at.isoformat(),
            txn.category,
            txn.kind.value,
            str(txn.amount),
            CANONICAL_CURRENCY,
        ]
        if target:
            row.extend(
                [str(convert_amount(txn.amount, target, rate_provider=rate_provider)), target]
            )
        writer.writerow(row)
    return buffer.getvalue()


def parse_transactions_csv(
    contents: str,
    rate_provider: StaticRateProvider | None = None,
) -> CSVParseResult:
    reader = csv.reader(io.StringIO(contents))
    rows = list(reader)
    if not rows:
        raise ValueError("CSV missing header row.")

    fieldnames = rows[0]
    headers = {key: find_header(fieldnames, candidates) for key, candidates in FIELD_MAP.items()}
    if not headers["date"] or not headers["category"] or not headers["type"] or not headers["amount"]:
        raise ValueError("CSV headers missing required fields.")

    parsed: list[ParsedTransaction] = []
    rejected: list[int] = []
    for line_number, raw in enumerate(rows[1:], start=2):
        row = row_to_dict(fieldnames, raw)
        if is_blank_row(row):
            continue
        result = parse_row(row, headers, rate_provider=rate_provider)
        if result is None:
            rejected.append(line_number)
            continue
        parsed.append(result)

    return CSVParseResult(rows=parsed, rejected_lines=rejected)


def parse_row(
    row: dict[str, str | None],
    headers: dict[str, str | None],
    rate_provider: StaticRateProvider | None = None,
) -> ParsedTransaction | None:
    occurred_at = parse_occurred_at(clean_text(row.get(headers["date"])))
    if occurred_at is None:
        return None

    category = clean_text(row.get(headers["category"]))
    if not category:
        return None

    try:
        kind = TransactionKind.validate(clean_text(row.get(headers["type"])))
    except ValueError:
        return None

    amount = parse_decimal(row.get(headers["amount"]))
    if amount is None or amount <= 0:
        return None

    currency = clean_text(row.get(headers["currency"])) if headers["currency"] else ""
    if currency:
        try:
            amount = to_canonical(amount, currency, rate_provider=rate_provider)
        except ValueError:
            return None
    if amount > MAX_AMOUNT:
        return None

    transaction_id = clean_text(row.get(headers["id"])) if headers["id"] else ""
    return ParsedTransaction(
        id=transaction_id or None,
        occurred_at=occurred_at,
        category=category,
        kind=kind,
        amount=amount,
    )


def row_to_dict(fieldnames: list[str], row: list[str]) -> dict[str, str | None]:
    if len(row) < len(fieldnames):
        row = row + [""] * (len(fieldnames) - len(row))
    if len(row) > len(fieldnames):
        row = row[: len(fieldnames)]
    return dict(zip(fieldnames, row))


def find_header(fieldnames: list[str], candidates: list[str]) -> str | None:
    normalized = [(name, normalize_header(name)) for name in fieldnames if name]
    for candidate in candidates:
        cand_norm = normalize_header(candidate)
        for name, norm in normalized:
            if norm == cand_norm:
                return name
    return None


def normalize_header(value: str) -> str:
    return re.sub(r"[^a-z0-9é]", "", value.strip().lower())


def clean_text(value: str | None) -> str:
    return value.strip() if value else ""


def is_blank_row(row: dict[str, str | None]) -> bool:
    return all(not clean_text(value) for value in row.values())
