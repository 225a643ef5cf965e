"""SQLAlchemy database models for the kiosk order backend."""
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive values read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Order(Base):
    """
    Orders table.

    Line items are JSON snapshots of name and unit price taken at creation.
    Rows are never deleted; status only moves pending -> confirmed -> ready.
    """

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    order_number: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    lines: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False)
    total_price: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    payment_session_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    receipt_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    telegram_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    store_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint("total_price >= 0", name="non_negative_total"),
        CheckConstraint("status IN ('pending', 'confirmed', 'ready')", name="valid_order_status"),
        CheckConstraint("payment_method IN ('card', 'swish')", name="valid_payment_method"),
        Index("idx_orders_user_created", "telegram_user_id", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation of Order."""
        return (
            f"<Order(id={self.id}, number={self.order_number}, "
            f"total={self.total_price}, status={self.status})>"
        )


class PaymentSession(Base):
    """
    Payment sessions table.

    external_reference is the provider-side id (Stripe Checkout Session id or
    Swish payeePaymentReference) and the only key inbound callbacks carry.
    """

    __tablename__ = "payment_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    order_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="created")
    external_reference: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('created', 'processing', 'succeeded', 'failed')",
            name="valid_session_status",
        ),
    )

    def __repr__(self) -> str:
        """String representation of PaymentSession."""
        return (
            f"<PaymentSession(id={self.id}, order_id={self.order_id}, "
            f"method={self.method}, status={self.status})>"
        )


class Receipt(Base):
    """
    Telegram receipts, one row per order.

    claimed_at marks an in-flight delivery so two concurrent confirmations
    cannot both send.
    """

    __tablename__ = "receipts"

    order_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Store(Base):
    """Bistro locations (static seed data)."""

    __tablename__ = "stores"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(255), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)


class UserContext(Base):
    """Per-user preferences set by the bot client."""

    __tablename__ = "user_contexts"

    telegram_user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    store_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class Favorite(Base):
    __tablename__ = "favorites"

    telegram_user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    menu_item_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class CategoryCoOccurrence(Base):
    """
    How often two menu categories were ordered together.

    Keys are canonical: category_a < category_b.
    """

    __tablename__ = "order_category_stats"

    category_a: Mapped[str] = mapped_column(String(64), primary_key=True)
    category_b: Mapped[str] = mapped_column(String(64), primary_key=True)
    co_occurrence_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("category_a < category_b", name="canonical_category_pair"),
    )


class ScheduledTransition(Base):
    """
    Pending delayed transitions (confirmed -> ready).

    Rows survive restarts and are rescheduled on startup.
    """

    __tablename__ = "scheduled_transitions"

    order_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    target_status: Mapped[str] = mapped_column(String(20), nullable=False, default="ready")
    due_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
