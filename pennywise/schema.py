from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    event,
    func,
)
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from pennywise.config import DATABASE_URL

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), unique=True, nullable=False),
    Column("name", String(255)),
    Column("hashed_password", String(255), nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("icon", String(50)),
    Column("type", String(20), nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now()),
    UniqueConstraint("user_id", "name", "type", name="uq_categories_user_name_type"),
)

tags = Table(
    "tags",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("color", String(20)),
    Column("icon", String(50)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now()),
    UniqueConstraint("user_id", "name", name="uq_tags_user_name"),
)

payment_methods = Table(
    "payment_methods",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("icon", String(50)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now()),
    UniqueConstraint("user_id", "name", name="uq_payment_methods_user_name"),
)

recurring_expenses = Table(
    "recurring_expenses",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("description", String(500), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("frequency", String(20), nullable=False),
    Column("start_date", Date, nullable=False),
    Column("end_date", Date),
    Column("next_due_date", Date, nullable=False),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("is_deleted", Boolean, nullable=False, server_default="0"),
    Column("deleted_at", DateTime),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now()),
)

budgets = Table(
    "budgets",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id"), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("start_date", Date, nullable=False),
    Column("end_date", Date, nullable=False),
    Column("icon", String(50)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now()),
)

transactions = Table(
    "transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("creator_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("description", String(500), nullable=False),
    Column("total_amount", Numeric(12, 2), nullable=False),
    Column("date", Date, nullable=False),
    Column("reference_number", String(100)),
    Column("notes", String(500)),
    Column("recurring_expense_id", Integer, ForeignKey("recurring_expenses.id")),
    Column("is_deleted", Boolean, nullable=False, server_default="0"),
    Column("deleted_at", DateTime),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now()),
)

transaction_participants = Table(
    "transaction_participants",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("transaction_id", Integer, ForeignKey("transactions.id"), nullable=False),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("type", String(20), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id"), nullable=False),
    Column("payment_method_id", Integer, ForeignKey("payment_methods.id"), nullable=False),
    Column("description", String(500)),
)

participant_tags = Table(
    "participant_tags",
    metadata,
    Column("participant_id", Integer, ForeignKey("transaction_participants.id"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id"), primary_key=True),
)

friends = Table(
    "friends",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("friend_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    UniqueConstraint("user_id", "friend_id", name="uq_friends_pair"),
)

friend_requests = Table(
    "friend_requests",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("sender_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("receiver_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("status", String(20), nullable=False, server_default="PENDING"),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now()),
)

Index("idx_transactions_creator_date", transactions.c.creator_id, transactions.c.date)
Index("idx_participants_category", transaction_participants.c.category_id)
Index("idx_participants_transaction", transaction_participants.c.transaction_id)
Index("idx_recurring_user_due", recurring_expenses.c.user_id, recurring_expenses.c.next_due_date)


def create_db_engine(database_url: str | None = None) -> Engine:
    url = database_url or DATABASE_URL
    if not url.startswith("sqlite"):
        return create_engine(url)
    if url in {"sqlite://", "sqlite:///:memory:"}:
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(url, connect_args={"check_same_thread": False})

    # SQLite's built-in lower() only folds ASCII letters.
    @event.listens_for(engine, "connect")
    def _register_functions(dbapi_conn, _record) -> None:
        dbapi_conn.create_function("lower", 1, _unicode_lower, deterministic=True)

    return engine


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def init_db(engine: Engine) -> None:
    metadata.create_all(engine)
