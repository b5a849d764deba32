from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"
    transfer = "transfer"


class TransactionStatus(str, Enum):
    completed = "completed"
    pending = "pending"
    failed = "failed"


class CardType(str, Enum):
    debit = "debit"
    credit = "credit"


class NotificationType(str, Enum):
    info = "info"
    success = "success"
    warning = "warning"
    error = "error"
    transaction = "transaction"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # Economic date; NULL falls back to created_at for trend bucketing.
    date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(TransactionStatus), nullable=False, default=TransactionStatus.completed
    )
    reference: Mapped[Optional[str]] = mapped_column(String(64), unique=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(40))
    recipient_account: Mapped[Optional[str]] = mapped_column(String(20))
    recipient_bank: Mapped[Optional[str]] = mapped_column(String(100))
    metadata_json: Mapped[Optional[str]] = mapped_column(Text)
    card_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("cards.id", ondelete="SET NULL")
    )

    notifications: Mapped[list["Notification"]] = relationship(
        "Notification", back_populates="transaction"
    )

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_type_date", "user_id", "type", "date"),
        Index("ix_transactions_user_created", "user_id", "created_at"),
        Index("ix_transactions_card_date", "card_id", "date"),
        CheckConstraint("amount >= 0", name="ck_transactions_amount_positive"),
    )


class Card(Base, TimestampMixin):
    __tablename__ = "cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[CardType] = mapped_column(
        SAEnum(CardType), nullable=False, default=CardType.debit
    )
    last4: Mapped[str] = mapped_column(String(4), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(100), nullable=False)
    expiry_date: Mapped[str] = mapped_column(String(5), nullable=False)
    balance: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    color: Mapped[str] = mapped_column(String(20), nullable=False, default="blue")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    online_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    international_enabled: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    contactless_enabled: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    atm_withdrawals_enabled: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    atm_limit: Mapped[Optional[float]] = mapped_column(Float)
    online_limit: Mapped[Optional[float]] = mapped_column(Float)
    pos_limit: Mapped[Optional[float]] = mapped_column(Float)
    daily_limit: Mapped[Optional[float]] = mapped_column(Float)

    pin_hash: Mapped[Optional[str]] = mapped_column(String(100))
    pin_set: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("ix_cards_user_active", "user_id", "is_active"),
        CheckConstraint("balance >= 0", name="ck_cards_balance_positive"),
    )


class Profile(Base, TimestampMixin):
    __tablename__ = "profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    transaction_pin_hash: Mapped[Optional[str]] = mapped_column(String(100))
    transaction_pin_set: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(120), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        SAEnum(NotificationType), nullable=False, default=NotificationType.info
    )
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    link: Mapped[Optional[str]] = mapped_column(String(200))
    transaction_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("transactions.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    transaction: Mapped[Optional["Transaction"]] = relationship(
        "Transaction", back_populates="notifications"
    )

    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
        Index("ix_notifications_user_read", "user_id", "is_read"),
    )


class UserSession(Base):
    __tablename__ = "user_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    session_token: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    device_info: Mapped[Optional[str]] = mapped_column(String(120))
    browser: Mapped[Optional[str]] = mapped_column(String(40))
    os: Mapped[Optional[str]] = mapped_column(String(40))
    ip_address: Mapped[Optional[str]] = mapped_column(String(45))
    user_agent: Mapped[Optional[str]] = mapped_column(Text)
    last_active: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("ix_user_sessions_user_active", "user_id", "last_active"),
    )
