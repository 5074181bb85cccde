from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from wallettrack.aggregation import ZERO, iter_records
from wallettrack.currency_conversion import StaticRateProvider, normalize_currency
from wallettrack.ledger import Transaction, TransactionKind
from wallettrack.periods import MONTH_WINDOW, month_key, trailing_months


@dataclass(frozen=True)
class MonthBucket:
    label: str
    month: date
    revenue: Decimal
    expense: Decimal

    @property
    def savings(self) -> Decimal:
        return self.revenue - self.expense

    @property
    def status(self) -> str:
        return "surplus" if self.savings >= ZERO else "deficit"


@dataclass(frozen=True)
class MonthlyProjection:
    buckets: tuple[MonthBucket, ...]
    currency: str
    skipped: tuple[str, ...] = ()

    @property
    def labels(self) -> list[str]:
        return [bucket.label for bucket in self.buckets]

    @property
    def revenues(self) -> list[Decimal]:
        return [bucket.revenue for bucket in self.buckets]

    @property
    def expenses(self) -> list[Decimal]:
        return [bucket.expense for bucket in self.buckets]

    @property
    def is_empty(self) -> bool:
        return all(
            bucket.revenue == ZERO and bucket.expense == ZERO for bucket in self.buckets
        )


def build_monthly_projection(
    transactions: Iterable[Transaction],
    currency: str,
    reference: date,
    rate_provider: Optional[StaticRateProvider] = None,
) -> MonthlyProjection:
    normalized_currency = normalize_currency(currency)
    months = trailing_months(reference, MONTH_WINDOW)
    totals_by_month: dict[str, dict[str, Decimal]] = {
        month_key(month): {"revenue": ZERO, "expense": ZERO} for month in months
    }

    skipped: list[str] = []
    for record in iter_records(
        transactions,
        normalized_currency,
        skipped,
        projection="monthly",
        rate_provider=rate_provider,
    ):
        entry = totals_by_month.get(month_key(record.occurred_at))
        if entry is None:
            continue
        if record.kind == TransactionKind.INCOME:
            entry["revenue"] += record.amount
        else:
            entry["expense"] += record.amount

    buckets = tuple(
        MonthBucket(
            label=month_key(month),
            month=month,
            revenue=totals_by_month[month_key(month)]["revenue"],
            expense=totals_by_month[month_key(month)]["expense"],
        )
        for month in months
    )
    return MonthlyProjection(
        buckets=buckets,
        currency=normalized_currency,
        skipped=tuple(skipped),
    )
