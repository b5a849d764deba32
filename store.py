from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Callable, Generic, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from models import Card, Transaction, TransactionStatus, TransactionType
from periods import Window

if TYPE_CHECKING:  # pragma: no cover
    from hooks import FetchCache

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")

ORDERINGS = {
    "created_at": Transaction.created_at.asc(),
    "-created_at": Transaction.created_at.desc(),
    "date": Transaction.date.asc(),
    "-date": Transaction.date.desc(),
}


class ErrorKind(str, Enum):
    unavailable = "unavailable"
    backend = "backend"
    not_found = "not_found"
    invalid = "invalid"


class StoreError(Exception):
    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """Outcome of a read at the data-access boundary.

    Callers branch on ``ok`` instead of probing the shape of backend errors.
    A failure may still carry a degraded ``data`` value (an empty aggregate)
    that is safe to display next to the error.
    """

    data: Optional[T] = None
    error: Optional[StoreError] = None

    @classmethod
    def success(cls, data: T) -> "FetchResult[T]":
        return cls(data=data, error=None)

    @classmethod
    def failure(
        cls, error: StoreError, fallback: Optional[T] = None
    ) -> "FetchResult[T]":
        return cls(data=fallback, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.data  # type: ignore[return-value]

    def map(self, fn: Callable[[T], U]) -> FetchResult[U]:
        if self.error is not None:
            return FetchResult.failure(self.error)
        return FetchResult.success(fn(self.data))  # type: ignore[arg-type]


@dataclass(frozen=True)
class TransactionRecord:
    id: int
    type: TransactionType
    amount: float
    category: Optional[str]
    date: Optional[datetime]
    created_at: Optional[datetime]
    status: TransactionStatus = TransactionStatus.completed
    description: str = ""
    payment_method: Optional[str] = None
    reference: Optional[str] = None

    @classmethod
    def from_row(cls, txn: Transaction) -> "TransactionRecord":
        return cls(
            id=txn.id,
            type=txn.type,
            amount=float(txn.amount or 0),
            category=txn.category,
            date=txn.date,
            created_at=txn.created_at,
            status=txn.status,
            description=txn.description or "",
            payment_method=txn.payment_method,
            reference=txn.reference,
        )


@dataclass(frozen=True)
class CardRecord:
    id: int
    balance: float
    is_active: bool
    last4: str
    bank_name: str

    @classmethod
    def from_row(cls, card: Card) -> "CardRecord":
        return cls(
            id=card.id,
            balance=float(card.balance or 0),
            is_active=bool(card.is_active),
            last4=card.last4,
            bank_name=card.bank_name,
        )


def _store_error(exc: SQLAlchemyError) -> StoreError:
    if isinstance(exc, OperationalError):
        return StoreError(ErrorKind.unavailable, "Transaction store is unavailable")
    return StoreError(ErrorKind.backend, f"Store query failed: {exc.__class__.__name__}")


class TransactionStore:
    def __init__(
        self, session: Session, user_id: str, cache: Optional["FetchCache"] = None
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.cache = cache

    def fetch_transactions(
        self,
        window: Optional[Window] = None,
        *,
        type: Optional[TransactionType] = None,
        order_by: str = "created_at",
    ) -> FetchResult[list[TransactionRecord]]:
        if order_by not in ORDERINGS:
            return FetchResult.failure(
                StoreError(ErrorKind.invalid, f"Unsupported ordering: {order_by}")
            )
        key = (
            "transactions",
            self.user_id,
            window.start if window else None,
            window.end if window else None,
            type.value if type else None,
            order_by,
        )
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return FetchResult.success(cached)

        stmt = select(Transaction).where(Transaction.user_id == self.user_id)
        if window is not None:
            # NULL dates never compare inside a range.
            stmt = stmt.where(
                Transaction.date.is_not(None),
                Transaction.date >= window.start,
                Transaction.date <= window.end,
            )
        if type is not None:
            stmt = stmt.where(Transaction.type == type)
        stmt = stmt.order_by(ORDERINGS[order_by], Transaction.id)

        try:
            rows = self.session.scalars(stmt).all()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                f"fetch_transactions_failed: user={self.user_id} window={window}",
                exc_info=exc,
            )
            return FetchResult.failure(_store_error(exc))

        records = [TransactionRecord.from_row(row) for row in rows]
        if self.cache is not None:
            self.cache.put(key, records)
        return FetchResult.success(records)

    def fetch_active_cards(self) -> FetchResult[list[CardRecord]]:
        return self._fetch_cards(active_only=True)

    def fetch_all_cards(self) -> FetchResult[list[CardRecord]]:
        return self._fetch_cards(active_only=False)

    def _fetch_cards(self, *, active_only: bool) -> FetchResult[list[CardRecord]]:
        key = ("cards", self.user_id, active_only)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return FetchResult.success(cached)

        stmt = select(Card).where(Card.user_id == self.user_id)
        if active_only:
            stmt = stmt.where(Card.is_active.is_(True))
        stmt = stmt.order_by(Card.created_at.desc(), Card.id.desc())
        try:
            rows = self.session.scalars(stmt).all()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                f"fetch_cards_failed: user={self.user_id} active_only={active_only}",
                exc_info=exc,
            )
            return FetchResult.failure(_store_error(exc))

        cards = [CardRecord.from_row(row) for row in rows]
        if self.cache is not None:
            self.cache.put(key, cards)
        return FetchResult.success(cards)
