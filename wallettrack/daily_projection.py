from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from wallettrack.aggregation import ZERO, iter_records
from wallettrack.currency_conversion import StaticRateProvider, normalize_currency
from wallettrack.ledger import Transaction, TransactionKind
from wallettrack.periods import iter_month_days, same_month


class TrendSign(str, Enum):
    NON_NEGATIVE = "non_negative"
    NEGATIVE = "negative"

    @classmethod
    def of(cls, value: Decimal) -> "TrendSign":
        return cls.NON_NEGATIVE if value >= ZERO else cls.NEGATIVE


@dataclass(frozen=True)
class DailyBalanceProjection:
    day_labels: tuple[str, ...]
    balances: tuple[Decimal, ...]
    trend_sign: TrendSign
    currency: str
    skipped: tuple[str, ...] = ()

    @property
    def final_balance(self) -> Decimal:
        return self.balances[-1] if self.balances else ZERO

    @property
    def is_empty(self) -> bool:
        return all(balance == ZERO for balance in self.balances)


def build_daily_projection(
    transactions: Iterable[Transaction],
    currency: str,
    reference: date,
    rate_provider: Optional[StaticRateProvider] = None,
) -> DailyBalanceProjection:
    normalized_currency = normalize_currency(currency)
    days = iter_month_days(reference)

    skipped: list[str] = []
    month_records = [
        record
        for record in iter_records(
            transactions,
            normalized_currency,
            skipped,
            projection="daily",
            rate_provider=rate_provider,
        )
        if same_month(record.occurred_at, reference)
    ]
    month_records.sort(key=lambda record: record.occurred_at)

    balances: list[Decimal] = []
    running_balance = ZERO
    cursor = 0
    for day in days:
        while cursor < len(month_records) and month_records[cursor].occurred_at.day == day.day:
            record = month_records[cursor]
            if record.kind == TransactionKind.INCOME:
                running_balance += record.amount
            else:
                running_balance -= record.amount
            cursor += 1
        balances.append(running_balance)

    return DailyBalanceProjection(
        day_labels=tuple(day.isoformat() for day in days),
        balances=tuple(balances),
        trend_sign=TrendSign.of(running_balance),
        currency=normalized_currency,
        skipped=tuple(skipped),
    )
