"""Keyset ("cursor") pagination shared by every list endpoint.

A page is fetched with ``WHERE owner = :user AND <filters> AND key > :cursor
ORDER BY key LIMIT page_size + 1``. The extra row only tells us whether another
page exists; it is never returned. The cursor handed back to the caller is the
id of the last row on the page, and each entity kind has one fixed sort key so
that the cursor keeps its meaning between calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from sqlalchemy import Table, and_, func, or_, select
from sqlalchemy.engine import Connection
from sqlalchemy.sql import ColumnElement

from pennywise.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from pennywise.errors import InvalidArgument


@dataclass(frozen=True)
class SortKey:
    column: str = "id"
    descending: bool = False


@dataclass(frozen=True)
class PageRequest:
    cursor: int | None = None
    page_size: int = DEFAULT_PAGE_SIZE


@dataclass
class Page:
    items: list[dict[str, Any]] = field(default_factory=list)
    next_cursor: int | None = None
    total_count: int = 0


def normalize_page_request(
    cursor: int | str | None, page_size: int | None
) -> PageRequest:
    if page_size is None:
        page_size = DEFAULT_PAGE_SIZE
    if page_size < 1:
        raise InvalidArgument("Page size must be at least 1.")
    page_size = min(page_size, MAX_PAGE_SIZE)

    if cursor is None or cursor == "":
        return PageRequest(cursor=None, page_size=page_size)
    try:
        resolved = int(cursor)
    except (TypeError, ValueError) as exc:
        raise InvalidArgument("Invalid cursor.") from exc
    return PageRequest(cursor=resolved, page_size=page_size)


def fetch_page(
    conn: Connection,
    table: Table,
    owner_column: ColumnElement,
    owner_id: int,
    sort_key: SortKey,
    request: PageRequest,
    conditions: Sequence[ColumnElement] = (),
) -> Page:
    # Ownership always comes first and is never supplied by the caller.
    scope = [owner_column == owner_id, *conditions]
    id_column = table.c.id
    sort_column = table.c[sort_key.column]

    total_count = conn.execute(
        select(func.count()).select_from(table).where(*scope)
    ).scalar_one()

    stmt = select(table).where(*scope)
    if request.cursor is not None:
        if sort_column is id_column:
            boundary = _id_boundary(id_column, request.cursor, sort_key.descending)
        else:
            anchor = conn.execute(
                select(sort_column).where(
                    id_column == request.cursor, owner_column == owner_id
                )
            ).first()
            if anchor is None:
                return Page(items=[], next_cursor=None, total_count=total_count)
            boundary = _keyset_boundary(
                sort_column, id_column, anchor[0], request.cursor, sort_key.descending
            )
        stmt = stmt.where(boundary)

    stmt = stmt.order_by(*_ordering(sort_column, id_column, sort_key.descending))
    rows = conn.execute(stmt.limit(request.page_size + 1)).mappings().all()

    has_next_page = len(rows) > request.page_size
    items = [dict(row) for row in rows[: request.page_size]]
    next_cursor = items[-1]["id"] if has_next_page and items else None
    return Page(items=items, next_cursor=next_cursor, total_count=total_count)


def iter_pages(
    conn: Connection,
    table: Table,
    owner_column: ColumnElement,
    owner_id: int,
    sort_key: SortKey,
    page_size: int,
    conditions: Sequence[ColumnElement] = (),
) -> Iterable[Page]:
    request = PageRequest(cursor=None, page_size=page_size)
    while True:
        page = fetch_page(
            conn, table, owner_column, owner_id, sort_key, request, conditions
        )
        yield page
        if page.next_cursor is None:
            return
        request = PageRequest(cursor=page.next_cursor, page_size=page_size)


def _id_boundary(id_column, cursor: int, descending: bool) -> ColumnElement:
    return id_column < cursor if descending else id_column > cursor


def _keyset_boundary(
    sort_column, id_column, anchor_value, cursor: int, descending: bool
) -> ColumnElement:
    if descending:
        return or_(
            sort_column < anchor_value,
            and_(sort_column == anchor_value, id_column < cursor),
        )
    return or_(
        sort_column > anchor_value,
        and_(sort_column == anchor_value, id_column > cursor),
    )


def _ordering(sort_column, id_column, descending: bool) -> list:
    if sort_column is id_column:
        return [id_column.desc() if descending else id_column.asc()]
    if descending:
        return [sort_column.desc(), id_column.desc()]
    return [sort_column.asc(), id_column.asc()]
