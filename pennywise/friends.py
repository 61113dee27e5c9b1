from __future__ import annotations

from typing import Any

from sqlalchemy import and_, delete, func, insert, or_, select, update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from pennywise.errors import Conflict, InvalidArgument, NotFound
from pennywise.schema import friend_requests, friends, users

PENDING = "PENDING"
ACCEPTED = "ACCEPTED"
REJECTED = "REJECTED"
SEARCH_LIMIT = 10


def friend_ids(conn: Connection, user_id: int) -> set[int]:
    return set(
        conn.execute(
            select(friends.c.friend_id).where(friends.c.user_id == user_id)
        ).scalars()
    )


def send_request(conn: Connection, user_id: int, receiver_email: str) -> dict[str, Any]:
    email = receiver_email.strip().lower()
    if not email:
        raise InvalidArgument("Email address is required.")
    receiver = conn.execute(
        select(users.c.id).where(users.c.email == email)
    ).scalar_one_or_none()
    if receiver is None:
        raise NotFound("User not found with this email address.")
    if receiver == user_id:
        raise InvalidArgument("You cannot send a friend request to yourself.")
    if receiver in friend_ids(conn, user_id):
        raise Conflict("You are already friends with this user.")

    pending = conn.execute(
        select(friend_requests.c.id).where(
            friend_requests.c.status == PENDING,
            or_(
                and_(
                    friend_requests.c.sender_id == user_id,
                    friend_requests.c.receiver_id == receiver,
                ),
                and_(
                    friend_requests.c.sender_id == receiver,
                    friend_requests.c.receiver_id == user_id,
                ),
            ),
        )
    ).first()
    if pending:
        raise Conflict("A friend request already exists between you and this user.")

    result = conn.execute(
        insert(friend_requests).values(sender_id=user_id, receiver_id=receiver, status=PENDING)
    )
    return _request_row(conn, result.inserted_primary_key[0])


def respond_to_request(
    conn: Connection, user_id: int, request_id: int, accept: bool
) -> dict[str, Any]:
    request = conn.execute(
        select(friend_requests).where(
            friend_requests.c.id == request_id,
            friend_requests.c.receiver_id == user_id,
            friend_requests.c.status == PENDING,
        )
    ).mappings().first()
    if not request:
        raise NotFound("Friend request not found.")

    status = ACCEPTED if accept else REJECTED
    if accept:
        try:
            conn.execute(
                insert(friends),
                [
                    {"user_id": request["sender_id"], "friend_id": user_id},
                    {"user_id": user_id, "friend_id": request["sender_id"]},
                ],
            )
        except IntegrityError as exc:
            raise Conflict("You are already friends with this user.") from exc
    conn.execute(
        update(friend_requests)
        .where(friend_requests.c.id == request_id)
        .values(status=status)
    )
    return _request_row(conn, request_id)


def remove(conn: Connection, user_id: int, friend_id: int) -> None:
    result = conn.execute(
        delete(friends).where(
            or_(
                and_(friends.c.user_id == user_id, friends.c.friend_id == friend_id),
                and_(friends.c.user_id == friend_id, friends.c.friend_id == user_id),
            )
        )
    )
    if result.rowcount == 0:
        raise NotFound("Friend not found.")


def list_all(conn: Connection, user_id: int) -> dict[str, list[dict[str, Any]]]:
    friend_rows = conn.execute(
        select(users.c.id, users.c.email, users.c.name)
        .select_from(friends.join(users, users.c.id == friends.c.friend_id))
        .where(friends.c.user_id == user_id)
        .order_by(users.c.name.asc(), users.c.id.asc())
    ).mappings().all()
    received = conn.execute(
        select(friend_requests, users.c.email, users.c.name)
        .select_from(
            friend_requests.join(users, users.c.id == friend_requests.c.sender_id)
        )
        .where(friend_requests.c.receiver_id == user_id, friend_requests.c.status == PENDING)
        .order_by(friend_requests.c.id.desc())
    ).mappings().all()
    sent = conn.execute(
        select(friend_requests, users.c.email, users.c.name)
        .select_from(
            friend_requests.join(users, users.c.id == friend_requests.c.receiver_id)
        )
        .where(friend_requests.c.sender_id == user_id, friend_requests.c.status == PENDING)
        .order_by(friend_requests.c.id.desc())
    ).mappings().all()
    return {
        "friends": [dict(row) for row in friend_rows],
        "received_requests": [dict(row) for row in received],
        "sent_requests": [dict(row) for row in sent],
    }


def search_users(
    conn: Connection, user_id: int, query: str, limit: int = SEARCH_LIMIT
) -> list[dict[str, Any]]:
    """Users whose name or email contains ``query``, ignoring case.

    The caller, their friends and anyone on either side of a pending request
    with them are left out.
    """
    term = query.strip().lower()
    if not term:
        raise InvalidArgument("Search query is required.")

    excluded = {user_id} | friend_ids(conn, user_id)
    pending = conn.execute(
        select(friend_requests.c.sender_id, friend_requests.c.receiver_id).where(
            friend_requests.c.status == PENDING,
            or_(
                friend_requests.c.sender_id == user_id,
                friend_requests.c.receiver_id == user_id,
            ),
        )
    ).all()
    for sender_id, receiver_id in pending:
        excluded.update((sender_id, receiver_id))

    rows = conn.execute(
        select(users.c.id, users.c.email, users.c.name)
        .where(
            or_(
                func.lower(users.c.name).contains(term, autoescape=True),
                func.lower(users.c.email).contains(term, autoescape=True),
            ),
            users.c.id.not_in(excluded),
        )
        .order_by(users.c.name.asc(), users.c.id.asc())
        .limit(limit)
    ).mappings().all()
    return [dict(row) for row in rows]


def _request_row(conn: Connection, request_id: int) -> dict[str, Any]:
    row = conn.execute(
        select(friend_requests).where(friend_requests.c.id == request_id)
    ).mappings().first()
    return dict(row)
