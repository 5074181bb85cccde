from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional

from wallettrack.category_projection import build_category_projection
from wallettrack.currency_conversion import (
    CANONICAL_CURRENCY,
    DEFAULT_PROVIDER,
    StaticRateProvider,
    normalize_currency,
)
from wallettrack.daily_projection import build_daily_projection
from wallettrack.errors import ConfigError
from wallettrack.ledger import Ledger, Transaction, TransactionKind, build_transaction
from wallettrack.ledger_summary import LedgerSummary, summarize_ledger
from wallettrack.logging_setup import get_logger
from wallettrack.monthly_projection import build_monthly_projection
from wallettrack.periods import month_start
from wallettrack.projection_cache import Projection, ProjectionCache, ProjectionName
from wallettrack.scheduler import (
    DEFAULT_DEBOUNCE_SECONDS,
    LoopTimer,
    SchedulerState,
    Timer,
    ViewScheduler,
)

logger = get_logger(__name__)


class FinanceEngine:
    """Owns the ledger, display currency, view selector and projection cache.

    Every mutation is applied to the ledger synchronously and then handed to
    the ``ViewScheduler``, which recomputes the active projection once the
    debounce window has passed. Reads through ``get_projection`` always see
    the current ledger and currency.
    """

    def __init__(
        self,
        *,
        display_currency: str = CANONICAL_CURRENCY,
        timer: Optional[Timer] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rate_provider: Optional[StaticRateProvider] = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        active_view: ProjectionName | str = ProjectionName.CATEGORY,
        ledger: Optional[Ledger] = None,
    ) -> None:
        self._rate_provider = rate_provider or DEFAULT_PROVIDER
        self._display_currency = self._validate_currency(display_currency)
        self._clock = clock or datetime.now
        self._ledger = ledger if ledger is not None else Ledger()
        self._cache = ProjectionCache()
        self._scheduler = ViewScheduler(
            self._cache,
            self._recompute,
            timer or LoopTimer(),
            is_stale=self._is_stale,
            debounce_seconds=debounce_seconds,
            active_view=active_view,
        )

    @property
    def display_currency(self) -> str:
        return self._display_currency

    @property
    def active_view(self) -> ProjectionName:
        return self._scheduler.active_view

    @property
    def state(self) -> SchedulerState:
        return self._scheduler.state

    @property
    def cache(self) -> ProjectionCache:
        return self._cache

    @property
    def supported_currencies(self) -> list[str]:
        return self._rate_provider.currencies

    def add_transaction(
        self,
        amount: Decimal | int | float | str,
        category: str,
        occurred_at: datetime | date | str,
        kind: TransactionKind | str,
    ) -> str:
        transaction = self._ledger.add(amount, category, occurred_at, kind)
        logger.info(
            "transaction_added",
            transaction_id=transaction.id,
            kind=transaction.kind.value,
            category=transaction.category,
        )
        self._scheduler.data_changed()
        return transaction.id

    def import_transactions(self, transactions: Iterable[Transaction]) -> list[str]:
        """Add a batch of transactions; nothing is added if any of them is invalid."""
        staged: list[Transaction] = []
        seen_ids: set[str] = set()
        for transaction in transactions:
            transaction_id = transaction.id
            if not transaction_id or transaction_id in self._ledger or transaction_id in seen_ids:
                transaction_id = self._ledger.new_id()
            staged.append(
                build_transaction(
                    transaction.amount,
                    transaction.category,
                    transaction.occurred_at,
                    transaction.kind,
                    transaction_id=transaction_id,
                )
            )
            seen_ids.add(transaction_id)

        for transaction in staged:
            self._ledger.admit(transaction)
        if staged:
            logger.info("transactions_imported", count=len(staged))
            self._scheduler.data_changed()
        return [transaction.id for transaction in staged]

    def remove_transaction(self, transaction_id: str) -> None:
        self._ledger.remove(transaction_id)
        logger.info("transaction_removed", transaction_id=transaction_id)
        self._scheduler.data_changed()

    def set_display_currency(self, code: str) -> str:
        normalized = self._validate_currency(code)
        if normalized == self._display_currency:
            return normalized
        previous = self._display_currency
        self._display_currency = normalized
        logger.info("display_currency_changed", previous=previous, currency=normalized)
        self._scheduler.currency_changed()
        return normalized

    def select_view(self, name: ProjectionName | str) -> ProjectionName:
        return self._scheduler.switch_view(name)

    def get_projection(self, name: ProjectionName | str | None = None) -> Projection:
        return self._scheduler.read(self.active_view if name is None else name)

    def get_ledger_snapshot(self) -> tuple[Transaction, ...]:
        return self._ledger.snapshot()

    def get_summary(self) -> LedgerSummary:
        return summarize_ledger(
            self._ledger.snapshot(),
            self._display_currency,
            rate_provider=self._rate_provider,
        )

    def flush(self) -> None:
        self._scheduler.flush()

    def close(self) -> None:
        self._scheduler.close()

    def _validate_currency(self, code: str) -> str:
        normalized = normalize_currency(code)
        if not self._rate_provider.supports(normalized):
            raise ConfigError(f"Unsupported currency: {normalized}")
        return normalized

    def _reference_month(self) -> date:
        return month_start(self._clock())

    def _is_stale(self, name: ProjectionName) -> bool:
        return self._cache.is_stale(name, self._reference_month())

    def _recompute(self, name: ProjectionName) -> Projection:
        reference = self._clock()
        snapshot = self._ledger.snapshot()
        currency = self._display_currency

        if name == ProjectionName.CATEGORY:
            def builder() -> Projection:
                return build_category_projection(
                    snapshot, currency, rate_provider=self._rate_provider
                )
        elif name == ProjectionName.MONTHLY:
            def builder() -> Projection:
                return build_monthly_projection(
                    snapshot, currency, reference.date(), rate_provider=self._rate_provider
                )
        else:
            def builder() -> Projection:
                return build_daily_projection(
                    snapshot, currency, reference.date(), rate_provider=self._rate_provider
                )

        return self._cache.refresh(name, builder, month_start(reference))
