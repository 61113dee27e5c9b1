import unittest
from datetime import date
from decimal import Decimal

from sqlalchemy import insert

from pennywise.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from pennywise.errors import InvalidArgument
from pennywise.pager import (
    PageRequest,
    SortKey,
    fetch_page,
    iter_pages,
    normalize_page_request,
)
from pennywise.schema import (
    categories,
    create_db_engine,
    init_db,
    recurring_expenses,
    transactions,
    users,
)


class PageRequestTests(unittest.TestCase):
    def test_defaults_and_clamps_page_size(self) -> None:
        self.assertEqual(normalize_page_request(None, None).page_size, DEFAULT_PAGE_SIZE)
        self.assertEqual(normalize_page_request(None, 10_000).page_size, MAX_PAGE_SIZE)

    def test_rejects_page_size_below_one(self) -> None:
        with self.assertRaises(InvalidArgument):
            normalize_page_request(None, 0)

    def test_parses_cursor(self) -> None:
        self.assertEqual(normalize_page_request("42", 5).cursor, 42)
        self.assertIsNone(normalize_page_request("", 5).cursor)
        with self.assertRaises(InvalidArgument):
            normalize_page_request("abc", 5)


class FetchPageTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_db_engine("sqlite://")
        init_db(self.engine)
        with self.engine.begin() as conn:
            conn.execute(
                insert(users),
                [
                    {"id": 1, "email": "a@example.com", "hashed_password": "x"},
                    {"id": 2, "email": "b@example.com", "hashed_password": "x"},
                ],
            )
            conn.execute(
                insert(categories),
                [
                    {"user_id": 1 if index < 5 else 2, "name": f"Cat {index}", "type": "EXPENSE"}
                    for index in range(7)
                ],
            )

    def tearDown(self) -> None:
        self.engine.dispose()

    def _categories(self, conn, request: PageRequest):
        return fetch_page(conn, categories, categories.c.user_id, 1, SortKey(), request)

    def test_first_page_has_cursor_and_total(self) -> None:
        with self.engine.connect() as conn:
            page = self._categories(conn, PageRequest(page_size=2))

        self.assertEqual([item["id"] for item in page.items], [1, 2])
        self.assertEqual(page.next_cursor, 2)
        self.assertEqual(page.total_count, 5)

    def test_last_page_has_no_cursor(self) -> None:
        with self.engine.connect() as conn:
            page = self._categories(conn, PageRequest(cursor=4, page_size=2))

        self.assertEqual([item["id"] for item in page.items], [5])
        self.assertIsNone(page.next_cursor)
        self.assertEqual(page.total_count, 5)

    def test_cursor_past_the_end_is_an_empty_page(self) -> None:
        with self.engine.connect() as conn:
            page = self._categories(conn, PageRequest(cursor=99, page_size=2))

        self.assertEqual(page.items, [])
        self.assertIsNone(page.next_cursor)
        self.assertEqual(page.total_count, 5)

    def test_exact_fit_has_no_cursor(self) -> None:
        with self.engine.connect() as conn:
            page = self._categories(conn, PageRequest(page_size=5))

        self.assertEqual(len(page.items), 5)
        self.assertIsNone(page.next_cursor)

    def test_pages_cover_owned_rows_once(self) -> None:
        with self.engine.connect() as conn:
            pages = list(
                iter_pages(conn, categories, categories.c.user_id, 1, SortKey(), 2)
            )

        ids = [item["id"] for page in pages for item in page.items]
        self.assertEqual(ids, [1, 2, 3, 4, 5])
        self.assertEqual(len(pages), 3)

    def test_other_owner_rows_are_never_returned(self) -> None:
        with self.engine.connect() as conn:
            page = fetch_page(
                conn, categories, categories.c.user_id, 2, SortKey(), PageRequest(page_size=10)
            )

        self.assertEqual([item["id"] for item in page.items], [6, 7])
        self.assertEqual(page.total_count, 2)

    def test_conditions_narrow_rows_and_total(self) -> None:
        with self.engine.connect() as conn:
            page = fetch_page(
                conn,
                categories,
                categories.c.user_id,
                1,
                SortKey(),
                PageRequest(page_size=10),
                [categories.c.name.in_(["Cat 1", "Cat 3"])],
            )

        self.assertEqual([item["name"] for item in page.items], ["Cat 1", "Cat 3"])
        self.assertEqual(page.total_count, 2)

    def test_descending_id_order(self) -> None:
        with self.engine.connect() as conn:
            first = fetch_page(
                conn,
                categories,
                categories.c.user_id,
                1,
                SortKey("id", descending=True),
                PageRequest(page_size=2),
            )
            second = fetch_page(
                conn,
                categories,
                categories.c.user_id,
                1,
                SortKey("id", descending=True),
                PageRequest(cursor=first.next_cursor, page_size=2),
            )

        self.assertEqual([item["id"] for item in first.items], [5, 4])
        self.assertEqual([item["id"] for item in second.items], [3, 2])


class KeysetPageTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_db_engine("sqlite://")
        init_db(self.engine)
        with self.engine.begin() as conn:
            conn.execute(
                insert(users),
                [
                    {"id": 1, "email": "a@example.com", "hashed_password": "x"},
                    {"id": 2, "email": "b@example.com", "hashed_password": "x"},
                ],
            )
            due_dates = [
                date(2024, 6, 3),
                date(2024, 6, 1),
                date(2024, 6, 3),
                date(2024, 6, 2),
                date(2024, 6, 1),
            ]
            conn.execute(
                insert(recurring_expenses),
                [
                    {
                        "user_id": 1,
                        "description": f"Expense {index}",
                        "amount": Decimal("10"),
                        "frequency": "MONTHLY",
                        "start_date": date(2024, 5, 1),
                        "next_due_date": due,
                    }
                    for index, due in enumerate(due_dates)
                ],
            )
            conn.execute(
                insert(transactions),
                [
                    {
                        "creator_id": 1,
                        "description": f"Txn {index}",
                        "total_amount": Decimal("5"),
                        "date": day,
                    }
                    for index, day in enumerate(
                        [date(2024, 5, 1), date(2024, 5, 9), date(2024, 5, 9), date(2024, 5, 4)]
                    )
                ],
            )

    def tearDown(self) -> None:
        self.engine.dispose()

    def test_ties_on_sort_key_are_broken_by_id(self) -> None:
        with self.engine.connect() as conn:
            pages = list(
                iter_pages(
                    conn,
                    recurring_expenses,
                    recurring_expenses.c.user_id,
                    1,
                    SortKey("next_due_date"),
                    1,
                )
            )

        ids = [item["id"] for page in pages for item in page.items]
        self.assertEqual(ids, [2, 5, 4, 1, 3])

    def test_descending_dates_continue_after_cursor(self) -> None:
        with self.engine.connect() as conn:
            pages = list(
                iter_pages(
                    conn,
                    transactions,
                    transactions.c.creator_id,
                    1,
                    SortKey("date", descending=True),
                    2,
                )
            )

        ids = [item["id"] for page in pages for item in page.items]
        self.assertEqual(ids, [3, 2, 4, 1])
        self.assertEqual(pages[0].next_cursor, 2)

    def test_unknown_cursor_returns_empty_page(self) -> None:
        with self.engine.connect() as conn:
            page = fetch_page(
                conn,
                recurring_expenses,
                recurring_expenses.c.user_id,
                2,
                SortKey("next_due_date"),
                PageRequest(cursor=1, page_size=5),
            )

        self.assertEqual(page.items, [])
        self.assertIsNone(page.next_cursor)
        self.assertEqual(page.total_count, 0)


if __name__ == "__main__":
    unittest.main()
