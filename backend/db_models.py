"""
SQLAlchemy ORM models for the Campus Live-State engine.

Tables:
    orders            — food / store orders with status, money fields and courier
    transactions      — wallet ledger rows (credit / debit / refund)
    wallets           — one balance row per user (authoritative value)
    student_profiles  — security profile (2FA flag, updated_at = password change proxy)
    auth_sessions     — signed-in devices with expiry
    feed_cursors      — change-feed poller position per watched table

Timestamps are stored as naive UTC.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Float, Boolean, DateTime, Text, JSON, Index,
)

from database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp for column defaults."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class Order(Base):
    """Food and dark-store orders placed by students, optionally assigned to a rider."""
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    order_number = Column(String(32), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    rider_id = Column(String(64), nullable=True, index=True)
    order_type = Column(String(10), nullable=False, default="food")  # "food" | "store"
    status = Column(String(20), nullable=False, default="pending")
    payment_method = Column(String(20), nullable=True)  # "cod" | "upi" | "razorpay" | "edcoins"
    total_amount = Column(Float, nullable=False, default=0.0)
    final_amount = Column(Float, nullable=True)
    delivery_fee = Column(Float, nullable=True)
    discount_amount = Column(Float, nullable=True)
    delivery_address = Column(Text, nullable=True)
    delivery_instructions = Column(Text, nullable=True)
    restaurant_name = Column(String(200), nullable=True)
    items = Column(JSON, nullable=True)  # [{id, name, quantity, price, available?}]
    notes = Column(Text, nullable=True)  # free-form; may hold JSON {customer_name, customer_phone, landmark}
    meta = Column("metadata", JSON, nullable=True)  # {rider_lat, rider_lng}
    estimated_delivery_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, index=True)

    __table_args__ = (
        # Rider dashboard: active / delivered orders for a rider
        Index("ix_orders_rider_status", "rider_id", "status"),
        # Student dashboard + history: a user's orders by status
        Index("ix_orders_user_status", "user_id", "status"),
    )


class Transaction(Base):
    """Wallet ledger entries."""
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    transaction_type = Column(String(10), nullable=False)  # "credit" | "debit" | "refund"
    amount = Column(Float, nullable=False, default=0.0)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending")  # pending | completed | failed
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, index=True)

    __table_args__ = (
        Index("ix_transactions_user_type_status", "user_id", "transaction_type", "status"),
    )


class Wallet(Base):
    """Authoritative wallet balance per user."""
    __tablename__ = "wallets"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, unique=True, index=True)
    balance = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, index=True)


class StudentProfile(Base):
    """Security-relevant profile fields; updated_at doubles as the password-change marker."""
    __tablename__ = "student_profiles"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, unique=True, index=True)
    two_factor_enabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, index=True)


class AuthSession(Base):
    """Signed-in devices for a user. is_current marks the session of this client."""
    __tablename__ = "auth_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    device = Column(String(100), nullable=True)
    location = Column(String(100), nullable=True)
    is_current = Column(Boolean, nullable=False, default=False)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class FeedCursor(Base):
    """Persisted change-feed position so the poller resumes after restarts."""
    __tablename__ = "feed_cursors"

    table_name = Column(String(64), primary_key=True)
    cursor = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# Store table name → ORM model, used by the SQL row store
TABLE_MODELS = {
    "orders": Order,
    "transactions": Transaction,
    "wallets": Wallet,
    "student_profiles": StudentProfile,
    "auth_sessions": AuthSession,
}
