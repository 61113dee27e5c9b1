import unittest
from datetime import date
from decimal import Decimal

from pennywise.budget_spending import (
    Budget,
    BudgetSpending,
    SpendRecord,
    compute_budget_spending,
    evaluate_budget,
    is_near_limit,
    is_over_budget,
    round_percentage,
    summarize_budgets,
)


def _expense(amount: str, day: date, category_id: int = 1, **kwargs) -> SpendRecord:
    return SpendRecord(
        amount=Decimal(amount),
        type=kwargs.pop("type", "EXPENSE"),
        category_id=category_id,
        date=day,
        **kwargs,
    )


class BudgetSpendingTests(unittest.TestCase):
    def test_sums_only_matching_expenses_inside_window(self) -> None:
        budget = Budget(
            id=1,
            category_id=1,
            amount=Decimal("500"),
            start_date=date(2024, 5, 1),
            end_date=date(2024, 5, 31),
            category_name="Food",
        )
        records = [
            _expense("150", date(2024, 5, 10)),
            _expense("50", date(2024, 5, 31)),
            _expense("70", date(2024, 6, 1)),
            _expense("30", date(2024, 5, 5), type="INCOME"),
            _expense("40", date(2024, 5, 12), category_id=2),
            _expense("60", date(2024, 5, 3), is_deleted=True),
        ]

        result = evaluate_budget(budget, records)

        self.assertEqual(result.spent_amount, Decimal("200"))
        self.assertEqual(result.percentage_used, Decimal("40"))
        self.assertEqual(result.remaining_amount, Decimal("300"))
        self.assertFalse(result.is_over_budget)
        self.assertFalse(result.is_near_limit)
        self.assertEqual(result.category_name, "Food")

    def test_overspent_budget_reports_negative_remaining(self) -> None:
        budget = Budget(
            id=7,
            category_id=3,
            amount=Decimal("1000"),
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 31),
        )

        result = evaluate_budget(budget, [_expense("1250", date(2024, 1, 15), category_id=3)])

        self.assertEqual(result.remaining_amount, Decimal("-250"))
        self.assertEqual(result.percentage_used, Decimal("125"))
        self.assertTrue(result.is_over_budget)
        self.assertFalse(result.is_near_limit)

    def test_window_bounds_are_inclusive(self) -> None:
        budget = Budget(
            id=1,
            category_id=1,
            amount=Decimal("100"),
            start_date=date(2024, 3, 1),
            end_date=date(2024, 3, 31),
        )
        records = [
            _expense("10", date(2024, 3, 1)),
            _expense("10", date(2024, 3, 31)),
            _expense("10", date(2024, 2, 29)),
            _expense("10", date(2024, 4, 1)),
        ]

        self.assertEqual(evaluate_budget(budget, records).spent_amount, Decimal("20"))

    def test_threshold_boundaries(self) -> None:
        self.assertTrue(is_near_limit(Decimal("80")))
        self.assertFalse(is_over_budget(Decimal("80")))
        self.assertFalse(is_near_limit(Decimal("79.99")))
        self.assertTrue(is_near_limit(Decimal("99.99")))
        self.assertTrue(is_over_budget(Decimal("100")))
        self.assertFalse(is_near_limit(Decimal("100")))

    def test_exactly_eighty_percent_is_near_limit(self) -> None:
        budget = Budget(
            id=1,
            category_id=1,
            amount=Decimal("250"),
            start_date=date(2024, 5, 1),
            end_date=date(2024, 5, 31),
        )

        result = evaluate_budget(budget, [_expense("200", date(2024, 5, 2))])

        self.assertTrue(result.is_near_limit)
        self.assertFalse(result.is_over_budget)

    def test_zero_budget_reports_zero_percent(self) -> None:
        budget = Budget(
            id=1,
            category_id=1,
            amount=Decimal("0"),
            start_date=date(2024, 5, 1),
            end_date=date(2024, 5, 31),
        )

        result = evaluate_budget(budget, [_expense("15", date(2024, 5, 2))])

        self.assertEqual(result.percentage_used, Decimal("0"))
        self.assertEqual(result.remaining_amount, Decimal("-15"))
        self.assertFalse(result.is_over_budget)

    def test_no_expenses_means_nothing_spent(self) -> None:
        budget = Budget(
            id=4,
            category_id=9,
            amount=Decimal("300"),
            start_date=date(2024, 5, 1),
            end_date=date(2024, 5, 31),
        )

        result = evaluate_budget(budget, [])

        self.assertEqual(result.spent_amount, Decimal("0"))
        self.assertEqual(result.remaining_amount, Decimal("300"))

    def test_compute_keeps_budget_order(self) -> None:
        budgets = [
            Budget(2, 2, Decimal("100"), date(2024, 5, 1), date(2024, 5, 31)),
            Budget(1, 1, Decimal("100"), date(2024, 5, 1), date(2024, 5, 31)),
        ]
        records = [
            _expense("90", date(2024, 5, 4), category_id=2),
            _expense("20", date(2024, 5, 4), category_id=1),
        ]

        results = compute_budget_spending(budgets, records)

        self.assertEqual([item.budget_id for item in results], [2, 1])
        self.assertTrue(results[0].is_near_limit)
        self.assertEqual(results[1].spent_amount, Decimal("20"))

    def test_inverted_window_is_rejected(self) -> None:
        budget = Budget(1, 1, Decimal("100"), date(2024, 5, 31), date(2024, 5, 1))

        with self.assertRaises(ValueError):
            evaluate_budget(budget, [])


class BudgetSummaryTests(unittest.TestCase):
    def _spending(self, budget_id: int, name: str, budgeted: str, spent: str) -> BudgetSpending:
        budget = Budget(
            id=budget_id,
            category_id=budget_id,
            amount=Decimal(budgeted),
            start_date=date(2024, 5, 1),
            end_date=date(2024, 5, 31),
            category_name=name,
        )
        return evaluate_budget(budget, [_expense(spent, date(2024, 5, 2), category_id=budget_id)])

    def test_groups_categories_by_state(self) -> None:
        spending = [
            self._spending(1, "Food", "300", "100"),
            self._spending(2, "Travel", "200", "250"),
            self._spending(3, "Fun", "150", "125"),
        ]

        summary = summarize_budgets(spending, date(2024, 5, 21), date(2024, 5, 31))

        self.assertEqual(summary.total_budgeted, Decimal("650"))
        self.assertEqual(summary.total_spent, Decimal("475"))
        self.assertEqual(summary.percentage_used, Decimal("73.1"))
        self.assertEqual(summary.remaining_days, 10)
        self.assertEqual([item.name for item in summary.over_budget_categories], ["Travel"])
        self.assertEqual(summary.over_budget_categories[0].percentage, Decimal("125.0"))
        self.assertEqual([item.name for item in summary.near_limit_categories], ["Fun"])
        self.assertEqual(summary.near_limit_categories[0].percentage, Decimal("83.3"))

    def test_empty_summary(self) -> None:
        summary = summarize_budgets([], date(2024, 5, 31), date(2024, 5, 31))

        self.assertEqual(summary.total_budgeted, Decimal("0"))
        self.assertEqual(summary.percentage_used, Decimal("0.0"))
        self.assertEqual(summary.remaining_days, 0)
        self.assertEqual(summary.over_budget_categories, [])

    def test_round_percentage_rounds_half_up(self) -> None:
        self.assertEqual(round_percentage(Decimal("66.65")), Decimal("66.7"))
        self.assertEqual(round_percentage(Decimal("33.333")), Decimal("33.3"))


if __name__ == "__main__":
    unittest.main()
