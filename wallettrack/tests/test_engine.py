import unittest
from datetime import date, datetime
from decimal import Decimal

from wallettrack.category_projection import CategoryProjection
from wallettrack.daily_projection import DailyBalanceProjection, TrendSign
from wallettrack.engine import FinanceEngine
from wallettrack.errors import ConfigError, NotFoundError, UnknownViewError, ValidationError
from wallettrack.ledger import Transaction, TransactionKind
from wallettrack.monthly_projection import MonthlyProjection
from wallettrack.projection_cache import ProjectionName
from wallettrack.scheduler import SchedulerState, VirtualTimer

TOLERANCE = Decimal("0.0000001")


class FinanceEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.now = datetime(2024, 6, 20, 12, 0)
        self.timer = VirtualTimer()
        self.engine = FinanceEngine(timer=self.timer, clock=lambda: self.now)

    def tearDown(self) -> None:
        self.engine.close()

    def recompute_count(self, name: ProjectionName) -> int:
        return self.engine.cache.recompute_counts()[name]

    def test_category_breakdown_ignores_income(self) -> None:
        self.engine.add_transaction(100, "Food", "2024-01-05", "expense")
        self.engine.add_transaction(50, "Transport", "2024-01-06", "expense")
        self.engine.add_transaction(500, "Salary", "2024-01-01", "income")
        self.engine.select_view("category")

        projection = self.engine.get_projection("category")

        self.assertIsInstance(projection, CategoryProjection)
        self.assertEqual(projection.labels, ("Food", "Transport"))
        self.assertEqual(projection.values, (Decimal("100"), Decimal("50")))
        self.assertEqual(projection.total, Decimal("150"))

    def test_monthly_window_places_income_in_current_month(self) -> None:
        self.engine.add_transaction(200, "Salary", date(2024, 6, 10), "income")

        projection = self.engine.get_projection("monthly")

        self.assertIsInstance(projection, MonthlyProjection)
        self.assertEqual(len(projection.buckets), 6)
        self.assertEqual(projection.labels[0], "2024-01")
        self.assertEqual(projection.revenues, [0, 0, 0, 0, 0, Decimal("200")])
        self.assertEqual(projection.expenses, [0] * 6)

    def test_daily_balance_steps_down_after_expense(self) -> None:
        self.engine.add_transaction(300, "Salary", date(2024, 6, 1), "income")
        self.engine.add_transaction(100, "Food", date(2024, 6, 15), "expense")

        projection = self.engine.get_projection("daily")

        self.assertIsInstance(projection, DailyBalanceProjection)
        self.assertEqual(len(projection.balances), 30)
        self.assertEqual(set(projection.balances[:14]), {Decimal("300")})
        self.assertEqual(set(projection.balances[14:]), {Decimal("200")})
        self.assertEqual(projection.trend_sign, TrendSign.NON_NEGATIVE)

    def test_rejected_transaction_leaves_ledger_unchanged(self) -> None:
        with self.assertRaises(ValidationError):
            self.engine.add_transaction(-5, "Food", date.today(), "expense")

        self.assertEqual(self.engine.get_ledger_snapshot(), ())
        self.assertEqual(self.engine.state, SchedulerState.IDLE)
        self.assertEqual(self.timer.pending, 0)

    def test_burst_of_mutations_recomputes_active_projection_once(self) -> None:
        ids = [
            self.engine.add_transaction(amount, "Food", date(2024, 6, 1), "expense")
            for amount in (1, 2, 3, 4)
        ]
        self.engine.remove_transaction(ids[0])

        self.assertEqual(self.recompute_count(ProjectionName.CATEGORY), 0)
        self.timer.advance(0.15)

        self.assertEqual(self.recompute_count(ProjectionName.CATEGORY), 1)
        self.assertEqual(self.recompute_count(ProjectionName.MONTHLY), 0)
        self.assertEqual(self.recompute_count(ProjectionName.DAILY), 0)
        cached = self.engine.cache.get(ProjectionName.CATEGORY).value
        self.assertEqual(cached.total, Decimal("9"))

    def test_view_switch_is_immediate_and_lazy(self) -> None:
        self.engine.add_transaction(10, "Food", date(2024, 6, 1), "expense")
        self.timer.advance(0.15)

        self.engine.select_view("daily")

        self.assertEqual(self.engine.active_view, ProjectionName.DAILY)
        self.assertEqual(self.recompute_count(ProjectionName.DAILY), 1)
        self.engine.select_view("category")
        self.engine.select_view("daily")
        self.assertEqual(self.recompute_count(ProjectionName.DAILY), 1)
        self.assertEqual(self.recompute_count(ProjectionName.CATEGORY), 1)

    def test_unknown_view_is_rejected(self) -> None:
        with self.assertRaises(UnknownViewError):
            self.engine.select_view("pie")
        with self.assertRaises(UnknownViewError):
            self.engine.get_projection("pie")

        self.assertEqual(self.engine.active_view, ProjectionName.CATEGORY)

    def test_reads_are_never_behind_the_ledger(self) -> None:
        self.engine.add_transaction(10, "Food", date(2024, 6, 1), "expense")
        self.assertEqual(self.engine.get_projection().total, Decimal("10"))

        self.engine.add_transaction(5, "Food", date(2024, 6, 2), "expense")

        self.assertEqual(self.engine.get_projection().total, Decimal("15"))

    def test_remove_unknown_id_reports_not_found(self) -> None:
        self.engine.add_transaction(10, "Food", date(2024, 6, 1), "expense")

        with self.assertRaises(NotFoundError):
            self.engine.remove_transaction("missing")

        self.assertEqual(len(self.engine.get_ledger_snapshot()), 1)

    def test_unknown_currency_keeps_previous_value(self) -> None:
        self.engine.set_display_currency("USD")

        with self.assertRaises(ConfigError):
            self.engine.set_display_currency("GBP")

        self.assertEqual(self.engine.display_currency, "USD")

    def test_currency_change_marks_all_projections_stale(self) -> None:
        self.engine.add_transaction(10, "Food", date(2024, 6, 1), "expense")
        for name in ProjectionName:
            self.engine.get_projection(name)

        self.engine.set_display_currency("XOF")

        for name in ProjectionName:
            self.assertTrue(self.engine.cache.is_stale(name))
        self.assertEqual(self.engine.state, SchedulerState.PENDING_RECOMPUTE)
        self.timer.advance(0.15)
        self.assertEqual(
            self.engine.cache.get(ProjectionName.CATEGORY).value.total, Decimal("6559.570")
        )

    def test_switching_currencies_back_and_forth_does_not_drift(self) -> None:
        self.engine.add_transaction("19.99", "Food", date(2024, 6, 3), "expense")
        self.engine.add_transaction("1234.56", "Salary", date(2024, 6, 1), "income")
        original_daily = self.engine.get_projection("daily")
        original_category = self.engine.get_projection("category")

        for _ in range(20):
            self.engine.set_display_currency("XOF")
            self.engine.get_projection("daily")
            self.engine.set_display_currency("USD")
            self.engine.get_projection("category")
        self.engine.set_display_currency("EUR")

        self.assertEqual(self.engine.get_projection("daily"), original_daily)
        self.assertEqual(self.engine.get_projection("category"), original_category)

    def test_converted_projection_round_trips_to_canonical(self) -> None:
        self.engine.add_transaction("19.99", "Food", date(2024, 6, 3), "expense")
        canonical_total = self.engine.get_projection("category").total

        self.engine.set_display_currency("XOF")
        converted_total = self.engine.get_projection("category").total

        self.assertLess(abs(converted_total / Decimal("655.957") - canonical_total), TOLERANCE)

    def test_recompute_is_idempotent(self) -> None:
        self.engine.add_transaction(10, "Food", date(2024, 6, 1), "expense")
        first = self.engine.get_projection("monthly")

        self.engine.cache.invalidate_all()
        second = self.engine.get_projection("monthly")

        self.assertEqual(first, second)
        self.assertEqual(self.recompute_count(ProjectionName.MONTHLY), 2)

    def test_month_rollover_forces_recompute(self) -> None:
        self.engine.add_transaction(10, "Food", date(2024, 6, 1), "expense")
        june = self.engine.get_projection("daily")

        self.now = datetime(2024, 7, 1, 0, 5)
        july = self.engine.get_projection("daily")

        self.assertEqual(len(june.balances), 30)
        self.assertEqual(len(july.balances), 31)
        self.assertEqual(july.final_balance, Decimal("0"))

    def test_malformed_record_is_skipped_and_cache_updated(self) -> None:
        good_id = self.engine.add_transaction(10, "Food", date(2024, 6, 1), "expense")
        broken = Transaction(
            id="broken",
            amount=Decimal("10"),
            category="Food",
            occurred_at="31/31/2024",
            kind=TransactionKind.EXPENSE,
        )
        self.engine._ledger._entries[broken.id] = broken
        self.engine.cache.invalidate_all()

        projection = self.engine.get_projection("category")

        self.assertEqual(projection.total, Decimal("10"))
        self.assertEqual(projection.skipped, ("broken",))
        self.assertIn(good_id, [txn.id for txn in self.engine.get_ledger_snapshot()])

    def test_oversized_amounts_are_rejected_and_projections_keep_working(self) -> None:
        self.engine.add_transaction(10, "Food", date(2024, 6, 1), "expense")

        for _ in range(2):
            with self.assertRaises(ValidationError):
                self.engine.add_transaction("9e999999", "Food", date(2024, 6, 2), "expense")

        self.assertEqual(len(self.engine.get_ledger_snapshot()), 1)
        for name in ProjectionName:
            self.engine.get_projection(name)
        self.assertEqual(self.engine.get_projection("category").total, Decimal("10"))

    def test_decimal_comma_amount(self) -> None:
        transaction_id = self.engine.add_transaction("12,50", "Food", date(2024, 6, 1), "expense")

        stored = {txn.id: txn for txn in self.engine.get_ledger_snapshot()}[transaction_id]
        self.assertEqual(stored.amount, Decimal("12.50"))

    def test_summary_totals(self) -> None:
        self.engine.add_transaction(500, "Salary", date(2024, 6, 1), "income")
        self.engine.add_transaction(120, "Food", date(2024, 6, 2), "expense")
        self.engine.set_display_currency("USD")

        summary = self.engine.get_summary()

        self.assertEqual(summary.total_revenue, Decimal("540.00"))
        self.assertEqual(summary.total_expense, Decimal("129.60"))
        self.assertEqual(summary.balance, Decimal("410.40"))
        self.assertEqual(summary.status, "surplus")
        self.assertEqual(summary.transaction_count, 2)

    def test_import_is_all_or_nothing(self) -> None:
        good = Transaction(
            id="",
            amount=Decimal("5"),
            category="Food",
            occurred_at=datetime(2024, 6, 1),
            kind=TransactionKind.EXPENSE,
        )
        bad = Transaction(
            id="",
            amount=Decimal("-1"),
            category="Food",
            occurred_at=datetime(2024, 6, 1),
            kind=TransactionKind.EXPENSE,
        )

        with self.assertRaises(ValidationError):
            self.engine.import_transactions([good, bad])
        self.assertEqual(self.engine.get_ledger_snapshot(), ())

        ids = self.engine.import_transactions([good, good])
        self.assertEqual(len(set(ids)), 2)
        self.assertEqual(self.engine.get_projection().total, Decimal("10"))

    def test_default_currency_must_be_supported(self) -> None:
        with self.assertRaises(ConfigError):
            FinanceEngine(display_currency="GBP", timer=VirtualTimer())


if __name__ == "__main__":
    unittest.main()
