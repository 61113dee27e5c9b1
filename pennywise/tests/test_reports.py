import unittest
from datetime import date
from decimal import Decimal

from pennywise.reports import (
    CategoryFlow,
    Flow,
    category_breakdown,
    expense_summary,
    month_end,
    monthly_income_expense,
    monthly_trend,
    percent_change,
    period_ranges,
    summarize_transactions,
    summary_csv,
    total_flows,
    transactions_csv,
)


class PeriodRangeTests(unittest.TestCase):
    def test_monthly_range_crosses_year(self) -> None:
        start, end, prev_start, prev_end = period_ranges("monthly", date(2024, 1, 17))

        self.assertEqual((start, end), (date(2024, 1, 1), date(2024, 1, 31)))
        self.assertEqual((prev_start, prev_end), (date(2023, 12, 1), date(2023, 12, 31)))

    def test_weekly_range_starts_on_sunday(self) -> None:
        start, end, prev_start, prev_end = period_ranges("weekly", date(2024, 5, 15))

        self.assertEqual((start, end), (date(2024, 5, 12), date(2024, 5, 18)))
        self.assertEqual((prev_start, prev_end), (date(2024, 5, 5), date(2024, 5, 11)))

    def test_sunday_opens_its_own_week(self) -> None:
        start, _, _, _ = period_ranges("WEEKLY", date(2024, 5, 12))

        self.assertEqual(start, date(2024, 5, 12))

    def test_unknown_period_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            period_ranges("daily", date(2024, 5, 15))

    def test_month_end_handles_leap_february(self) -> None:
        self.assertEqual(month_end(date(2024, 2, 10)), date(2024, 2, 29))
        self.assertEqual(month_end(date(2024, 12, 5)), date(2024, 12, 31))


class TransactionSummaryTests(unittest.TestCase):
    def test_compares_current_and_previous_month(self) -> None:
        flows = [
            Flow(Decimal("3000"), "INCOME", date(2024, 5, 1)),
            Flow(Decimal("1200"), "EXPENSE", date(2024, 5, 3)),
            Flow(Decimal("2000"), "INCOME", date(2024, 4, 1)),
            Flow(Decimal("1500"), "EXPENSE", date(2024, 4, 9)),
            Flow(Decimal("999"), "EXPENSE", date(2024, 3, 9)),
        ]

        summary = summarize_transactions(flows, "monthly", date(2024, 5, 20))

        self.assertEqual(summary.income.total, Decimal("3000"))
        self.assertEqual(summary.income.change, Decimal("50"))
        self.assertEqual(summary.expenses.total, Decimal("1200"))
        self.assertEqual(summary.expenses.change, Decimal("-20"))
        self.assertEqual(summary.balance.total, Decimal("1800"))
        self.assertEqual(summary.balance.change, Decimal("260"))

    def test_percent_change_without_previous_value(self) -> None:
        self.assertEqual(percent_change(Decimal("10"), Decimal("0")), Decimal("100"))
        self.assertEqual(percent_change(Decimal("0"), Decimal("0")), Decimal("0"))

    def test_total_flows(self) -> None:
        totals = total_flows(
            [
                Flow(Decimal("40"), "income", date(2024, 5, 1)),
                Flow(Decimal("15"), "expense", date(2024, 5, 2)),
                Flow(Decimal("5"), "EXPENSE", date(2024, 5, 3)),
            ]
        )

        self.assertEqual(totals.total_income, Decimal("40"))
        self.assertEqual(totals.total_expense, Decimal("20"))
        self.assertEqual(totals.balance, Decimal("20"))


CATEGORY_IDS = {"Food": 1, "Rent": 2, "Salary": 3, "Eating Out": 4}


def share(amount, day, category="Food", type="EXPENSE", **extra):
    return CategoryFlow(
        amount=Decimal(amount),
        type=type,
        date=day,
        category_id=CATEGORY_IDS[category],
        category_name=category,
        **extra,
    )


class AnalyticsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.flows = [
            share("1000", date(2024, 4, 25), "Salary", type="INCOME"),
            share("150", date(2024, 4, 28), "Food"),
            share("300", date(2024, 5, 2), "Rent"),
            share("50", date(2024, 5, 9), "Food"),
            share("2000", date(2024, 5, 30), "Salary", type="INCOME"),
        ]

    def test_expense_summary(self) -> None:
        summary = expense_summary(self.flows)

        self.assertEqual(summary.total_income, Decimal("3000"))
        self.assertEqual(summary.total_expenses, Decimal("500"))
        self.assertEqual(summary.net_savings, Decimal("2500"))
        self.assertAlmostEqual(float(summary.savings_rate), 83.3333, places=3)
        self.assertEqual(summary.largest_expense.category, "Rent")
        self.assertEqual(summary.largest_expense.amount, Decimal("300"))
        self.assertEqual(summary.largest_expense.percentage, Decimal("60"))

    def test_expense_summary_without_income_or_expenses(self) -> None:
        only_expense = expense_summary([share("40", date(2024, 5, 1))])
        empty = expense_summary([])

        self.assertEqual(only_expense.savings_rate, Decimal("0"))
        self.assertEqual(only_expense.net_savings, Decimal("-40"))
        self.assertEqual(empty.largest_expense.category, "N/A")
        self.assertEqual(empty.largest_expense.amount, Decimal("0"))
        self.assertEqual(empty.largest_expense.percentage, Decimal("0"))

    def test_monthly_income_expense_is_ordered_by_month(self) -> None:
        flows = [share("20", date(2024, 1, 3))] + self.flows

        months = monthly_income_expense(reversed(flows))

        self.assertEqual(
            [(item.month, item.income, item.expenses) for item in months],
            [
                ("Jan 2024", Decimal("0"), Decimal("20")),
                ("Apr 2024", Decimal("1000"), Decimal("150")),
                ("May 2024", Decimal("2000"), Decimal("350")),
            ],
        )
        self.assertEqual(months[1].month_start, date(2024, 4, 1))

    def test_category_breakdown_sorts_by_value(self) -> None:
        slices = category_breakdown(self.flows)

        self.assertEqual([item.name for item in slices], ["Rent", "Food"])
        self.assertEqual(slices[0].value, Decimal("300"))
        self.assertEqual(slices[0].percentage, Decimal("60"))
        self.assertEqual(slices[1].value, Decimal("200"))
        self.assertEqual(slices[1].percentage, Decimal("40"))
        self.assertNotEqual(slices[0].color, slices[1].color)

    def test_monthly_trend_keys_categories(self) -> None:
        flows = self.flows + [share("25", date(2024, 5, 12), "Eating Out")]

        trend = monthly_trend(flows)

        self.assertEqual([item.month for item in trend], ["Apr 2024", "May 2024"])
        self.assertEqual(trend[0].categories, {"food": Decimal("150")})
        self.assertEqual(
            trend[1].categories,
            {"eatingout": Decimal("25"), "food": Decimal("50"), "rent": Decimal("300")},
        )
        self.assertEqual(trend[1].total, Decimal("375"))

    def test_transactions_csv_signs_expenses(self) -> None:
        content = transactions_csv(
            [
                share("12.50", date(2024, 5, 9), description='Lunch, "team"'),
                share("100", date(2024, 5, 1), "Salary", type="INCOME", description="Pay"),
            ]
        )

        self.assertEqual(
            content.splitlines(),
            [
                "Date,Description,Category,Amount,Type",
                '2024-05-09,"Lunch, ""team""",Food,-12.50,expense',
                "2024-05-01,Pay,Salary,100,income",
            ],
        )

    def test_summary_csv(self) -> None:
        content = summary_csv(expense_summary(self.flows))

        lines = content.splitlines()
        self.assertEqual(lines[0], '"Metric","Value"')
        self.assertIn('"Savings Rate","83.33%"', lines)
        self.assertIn('"Largest Expense Category","Rent"', lines)
        self.assertIn('"Largest Expense Percentage","60.00%"', lines)
        self.assertEqual(len(lines), 8)


if __name__ == "__main__":
    unittest.main()
