import unittest
from datetime import datetime
from decimal import Decimal

from wallettrack.csv_export import export_transactions_csv, parse_transactions_csv
from wallettrack.ledger import Transaction, TransactionKind


class CSVExportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.transactions = [
            Transaction(
                id="a1",
                amount=Decimal("100"),
                category="Food",
                occurred_at=datetime(2024, 1, 5, 9, 30),
                kind=TransactionKind.EXPENSE,
            ),
            Transaction(
                id="b2",
                amount=Decimal("500"),
                category="Salaire, net",
                occurred_at=datetime(2024, 1, 1),
                kind=TransactionKind.INCOME,
            ),
        ]

    def test_exports_canonical_amounts(self) -> None:
        contents = export_transactions_csv(self.transactions)

        lines = contents.splitlines()
        self.assertEqual(lines[0], "id,date,category,type,amount,currency")
        self.assertEqual(lines[1], "a1,2024-01-05T09:30:00,Food,expense,100,EUR")
        self.assertEqual(lines[2], 'b2,2024-01-01T00:00:00,"Salaire, net",income,500,EUR')

    def test_exports_display_columns_when_requested(self) -> None:
        contents = export_transactions_csv(self.transactions[:1], display_currency="usd")

        lines = contents.splitlines()
        self.assertTrue(lines[0].endswith("display_amount,display_currency"))
        self.assertEqual(lines[1], "a1,2024-01-05T09:30:00,Food,expense,100,EUR,108.00,USD")

    def test_parses_exported_layout(self) -> None:
        contents = export_transactions_csv(self.transactions, display_currency="XOF")

        result = parse_transactions_csv(contents)

        self.assertEqual(result.rejected_lines, [])
        self.assertEqual([row.id for row in result.rows], ["a1", "b2"])
        self.assertEqual(result.rows[1].category, "Salaire, net")
        self.assertEqual(result.rows[1].kind, TransactionKind.INCOME)
        self.assertEqual(result.rows[0].amount, Decimal("100"))
        self.assertEqual(result.rows[0].occurred_at, datetime(2024, 1, 5, 9, 30))

    def test_converts_foreign_amounts_to_canonical(self) -> None:
        contents = "date,category,type,amount,currency\n2024-02-01,Food,Dépense,1311.914,FCFA\n"

        result = parse_transactions_csv(contents)

        self.assertEqual(result.rows[0].amount, Decimal("2"))
        self.assertEqual(result.rows[0].kind, TransactionKind.EXPENSE)
        self.assertIsNone(result.rows[0].id)

    def test_rejects_invalid_rows_with_line_numbers(self) -> None:
        contents = (
            "date,category,type,amount\n"
            "2024-02-01,Food,expense,10\n"
            "not-a-date,Food,expense,10\n"
            "\n"
            "2024-02-03,,expense,10\n"
            "2024-02-04,Food,transfer,10\n"
            "2024-02-05,Food,expense,-3\n"
        )

        result = parse_transactions_csv(contents)

        self.assertEqual(len(result.rows), 1)
        self.assertEqual(result.rejected_lines, [3, 5, 6, 7])

    def test_missing_headers_raise(self) -> None:
        with self.assertRaises(ValueError):
            parse_transactions_csv("when,what\n2024-01-01,x\n")
        with self.assertRaises(ValueError):
            parse_transactions_csv("")

    def test_export_then_parse_keeps_seconds(self) -> None:
        txn = Transaction(
            id="c3",
            amount=Decimal("7.25"),
            category="Coffee",
            occurred_at=datetime(2024, 3, 9, 14, 5, 42),
            kind=TransactionKind.EXPENSE,
        )

        result = parse_transactions_csv(export_transactions_csv([txn]))

        self.assertEqual(result.rows[0].occurred_at, datetime(2024, 3, 9, 14, 5, 42))

    def test_rejects_unsupported_currency_and_oversized_amounts(self) -> None:
        contents = (
            "date,category,type,amount,currency\n"
            "2024-02-01,Food,expense,10,GBP\n"
            "2024-02-02,Food,expense,9e999999,EUR\n"
            "2024-02-03,Food,expense,\"12,50\",EUR\n"
        )

        result = parse_transactions_csv(contents)

        self.assertEqual(result.rejected_lines, [2, 3])
        self.assertEqual(result.rows[0].amount, Decimal("12.50"))

    def test_parsed_rows_convert_to_transactions(self) -> None:
        result = parse_transactions_csv("date,category,type,amount\n2024-02-01,Food,expense,10\n")

        transaction = result.rows[0].to_transaction()

        self.assertEqual(transaction.id, "")
        self.assertEqual(transaction.amount, Decimal("10"))
        self.assertEqual(transaction.kind, TransactionKind.EXPENSE)


if __name__ == "__main__":
    unittest.main()
