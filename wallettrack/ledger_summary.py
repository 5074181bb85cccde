from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from wallettrack.aggregation import ZERO, iter_records
from wallettrack.currency_conversion import StaticRateProvider, normalize_currency
from wallettrack.ledger import Transaction, TransactionKind


@dataclass(frozen=True)
class LedgerSummary:
    total_revenue: Decimal
    total_expense: Decimal
    transaction_count: int
    currency: str

    @property
    def balance(self) -> Decimal:
        return self.total_revenue - self.total_expense

    @property
    def status(self) -> str:
        return "surplus" if self.balance >= ZERO else "deficit"


def summarize_ledger(
    transactions: Iterable[Transaction],
    currency: str,
    rate_provider: Optional[StaticRateProvider] = None,
) -> LedgerSummary:
    normalized_currency = normalize_currency(currency)
    records = list(
        iter_records(
            transactions,
            normalized_currency,
            [],
            projection="summary",
            rate_provider=rate_provider,
        )
    )
    return LedgerSummary(
        total_revenue=_sum_kind(records, TransactionKind.INCOME),
        total_expense=_sum_kind(records, TransactionKind.EXPENSE),
        transaction_count=len(records),
        currency=normalized_currency,
    )


def _sum_kind(records, kind: TransactionKind) -> Decimal:
    total = ZERO
    for record in records:
        if record.kind != kind:
            continue
        total += record.amount
    return total
