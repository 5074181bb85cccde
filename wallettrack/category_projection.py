from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from wallettrack.aggregation import ZERO, iter_records
from wallettrack.currency_conversion import StaticRateProvider, normalize_currency
from wallettrack.ledger import Transaction, TransactionKind

ONE_DECIMAL = Decimal("0.1")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class CategoryProjection:
    labels: tuple[str, ...]
    values: tuple[Decimal, ...]
    total: Decimal
    currency: str
    skipped: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return self.total == ZERO

    @property
    def top_category(self) -> Optional[str]:
        if self.is_empty:
            return None
        top_index = 0
        for index, value in enumerate(self.values):
            if value > self.values[top_index]:
                top_index = index
        return self.labels[top_index]

    def share(self, entry: str | int) -> Decimal:
        """Percentage of ``total`` held by one category, rounded to one decimal."""
        if self.is_empty:
            raise ValueError("Shares are undefined for an empty breakdown.")
        if isinstance(entry, str):
            try:
                index = self.labels.index(entry)
            except ValueError as exc:
                raise KeyError(entry) from exc
        else:
            index = entry
        return _percentage(self.values[index], self.total)

    def shares(self) -> list[Decimal]:
        if self.is_empty:
            return []
        return [_percentage(value, self.total) for value in self.values]


def build_category_projection(
    transactions: Iterable[Transaction],
    currency: str,
    rate_provider: Optional[StaticRateProvider] = None,
) -> CategoryProjection:
    normalized_currency = normalize_currency(currency)
    skipped: list[str] = []
    totals_by_category: dict[str, Decimal] = {}

    for record in iter_records(
        transactions,
        normalized_currency,
        skipped,
        projection="category",
        rate_provider=rate_provider,
    ):
        if record.kind != TransactionKind.EXPENSE:
            continue
        # dict insertion order keeps categories in order of first appearance
        totals_by_category[record.category] = (
            totals_by_category.get(record.category, ZERO) + record.amount
        )

    values = tuple(totals_by_category.values())
    return CategoryProjection(
        labels=tuple(totals_by_category),
        values=values,
        total=sum(values, ZERO),
        currency=normalized_currency,
        skipped=tuple(skipped),
    )


def _percentage(value: Decimal, total: Decimal) -> Decimal:
    return (value / total * HUNDRED).quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP)
