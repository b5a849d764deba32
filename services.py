from __future__ import annotations

import json
import logging
import secrets
import string
import time
from datetime import datetime, timedelta
from typing import Optional

from rapidfuzz.distance import Levenshtein
from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

import analytics
from config import get_settings
from fx_rates import FxRateService
from hooks import FetchCache, fetch_cache
from models import (
    Card,
    Notification,
    NotificationType,
    Profile,
    Transaction,
    TransactionStatus,
    TransactionType,
    UserSession,
)
from periods import Window, local_now, previous_window, resolve_window
from schemas import (
    AnalyticsData,
    CardControlsIn,
    CardIn,
    CardLimitsIn,
    CategorySpending,
    DashboardStats,
    ExchangeIn,
    InvestIn,
    MonthlyData,
    PayBillIn,
    PaymentMethodUsage,
    ProfileIn,
    SendMoneyIn,
    SessionIn,
    TopUpIn,
    TransactionIn,
    TransactionStats,
    TransactionUpdate,
)
from security import hash_pin, validate_pin, verify_pin
from store import FetchResult, TransactionStore

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"NGN": "₦", "USD": "$"}
REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
TRANSACTIONS_LINK = "/transactions"


def format_currency(amount: float, currency: Optional[str] = None) -> str:
    code = (currency or get_settings().currency).upper()
    symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"


def new_reference(prefix: str) -> str:
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(9))
    return f"{prefix}-{millis}-{suffix}"


def normalize_category(raw: Optional[str]) -> Optional[str]:
    """Snap a free-form label onto a known category when it is one edit away."""
    if raw is None:
        return None
    name = raw.strip()
    if not name:
        return None
    lowered = name.lower()
    known = list(analytics.CATEGORY_COLORS)
    for category in known:
        if category.lower() == lowered:
            return category

    best: list[str] = []
    best_distance: Optional[int] = None
    for category in known:
        dist = int(Levenshtein.distance(lowered, category.lower()))
        if best_distance is None or dist < best_distance:
            best_distance = dist
            best = [category]
        elif dist == best_distance:
            best.append(category)
    if best_distance is not None and best_distance <= 1 and len(best) == 1:
        return best[0]
    return name


class PaymentError(ValueError):
    pass


class TransactionService:
    def __init__(
        self, session: Session, user_id: str, cache: Optional[FetchCache] = None
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.cache = cache if cache is not None else fetch_cache

    def _invalidate(self) -> None:
        self.cache.invalidate_user(self.user_id)

    def list_all(self) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        )
        return self.session.scalars(stmt).all()

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction).where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def build(self, data: TransactionIn) -> Transaction:
        if data.card_id is not None:
            CardService(self.session, self.user_id, self.cache).get(data.card_id)
        return Transaction(
            user_id=self.user_id,
            type=data.type,
            amount=data.amount,
            category=normalize_category(data.category),
            description=data.description.strip(),
            date=data.date if data.date is not None else local_now(),
            status=data.status,
            reference=data.reference or new_reference("TXN"),
            payment_method=data.payment_method,
            card_id=data.card_id,
        )

    def create(self, data: TransactionIn) -> Transaction:
        if data.reference and self.session.scalar(
            select(Transaction.id).where(Transaction.reference == data.reference)
        ):
            raise ValueError("Transaction reference already exists")
        txn = self.build(data)
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        self._invalidate()
        logger.info(
            f"transaction_created: user={self.user_id} id={txn.id} type={txn.type.value}"
        )
        return txn

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        if data.description is not None:
            txn.description = data.description.strip()
        if data.category is not None:
            txn.category = normalize_category(data.category)
        if data.status is not None:
            txn.status = data.status
        self.session.commit()
        self._invalidate()
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()
        self._invalidate()
        logger.info(f"transaction_deleted: user={self.user_id} id={transaction_id}")


class AnalyticsService:
    """Fetch-then-aggregate entry points, one per dashboard section.

    Windows follow the same rule everywhere: an explicit ``start``/``end``
    pair, otherwise the current calendar month up to now; the comparison
    window is the equal-length window right before it.
    """

    def __init__(
        self, session: Session, user_id: str, cache: Optional[FetchCache] = None
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.store = TransactionStore(
            session, user_id, cache=cache if cache is not None else fetch_cache
        )

    @staticmethod
    def _range(start: Optional[datetime], end: Optional[datetime]) -> Optional[Window]:
        if start is None and end is None:
            return None
        if start is not None and end is not None:
            return resolve_window(start, end)
        # One-sided ranges only bound the side that was given.
        return Window("open", start or datetime.min, end or datetime.max)

    def _windows(
        self,
        start: Optional[datetime],
        end: Optional[datetime],
        now: Optional[datetime],
    ) -> tuple[Window, Window]:
        window = resolve_window(start, end, now=now)
        return window, previous_window(window)

    def monthly_trend(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> FetchResult[list[MonthlyData]]:
        return self.store.fetch_transactions(self._range(start, end)).map(
            analytics.monthly_trend
        )

    def category_spending(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        *,
        now: Optional[datetime] = None,
    ) -> FetchResult[list[CategorySpending]]:
        window, previous = self._windows(start, end, now)
        # Unfiltered by type so the snapshot is shared with the other sections.
        current = self.store.fetch_transactions(window)
        if not current.ok:
            return FetchResult.failure(current.error, [])
        prior = self.store.fetch_transactions(previous)
        # A missing comparison only loses the trend column.
        return FetchResult.success(
            analytics.category_spending(current.data, prior.data if prior.ok else [])
        )

    def overview(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        *,
        now: Optional[datetime] = None,
    ) -> FetchResult[AnalyticsData]:
        window, previous = self._windows(start, end, now)
        cards = self.store.fetch_active_cards()
        cards_used = len(cards.data) if cards.ok else 0
        range_result = self.store.fetch_transactions(self._range(start, end))
        current = self.store.fetch_transactions(window)
        for result in (range_result, current):
            if not result.ok:
                return FetchResult.failure(result.error, AnalyticsData.empty(cards_used))
        prior = self.store.fetch_transactions(previous)
        return FetchResult.success(
            analytics.analytics_overview(
                range_result.data,
                current.data,
                prior.data if prior.ok else [],
                cards_used,
            )
        )

    def dashboard_stats(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        *,
        now: Optional[datetime] = None,
    ) -> FetchResult[DashboardStats]:
        window, previous = self._windows(start, end, now)
        cards = self.store.fetch_active_cards()
        active = cards.data if cards.ok else []
        current = self.store.fetch_transactions(window)
        if not current.ok:
            return FetchResult.failure(current.error, DashboardStats.empty(len(active)))
        prior = self.store.fetch_transactions(previous)
        ledger = self.store.fetch_transactions()
        return FetchResult.success(
            analytics.dashboard_stats(
                current.data,
                prior.data if prior.ok else [],
                active,
                ledger.data if ledger.ok else None,
            )
        )

    def payment_method_usage(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> FetchResult[list[PaymentMethodUsage]]:
        return self.store.fetch_transactions(self._range(start, end)).map(
            analytics.payment_method_usage
        )

    def transaction_stats(
        self, *, now: Optional[datetime] = None
    ) -> FetchResult[TransactionStats]:
        return self.store.fetch_transactions().map(
            lambda records: analytics.transaction_stats(records, now=now)
        )


class CardService:
    def __init__(
        self, session: Session, user_id: str, cache: Optional[FetchCache] = None
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.cache = cache if cache is not None else fetch_cache

    def _invalidate(self) -> None:
        self.cache.invalidate_user(self.user_id)

    def list_all(self) -> list[Card]:
        stmt = (
            select(Card)
            .where(Card.user_id == self.user_id)
            .order_by(Card.created_at.desc(), Card.id.desc())
        )
        return self.session.scalars(stmt).all()

    def active(self) -> list[Card]:
        return [card for card in self.list_all() if card.is_active]

    def get(self, card_id: int) -> Card:
        card = self.session.get(Card, card_id)
        if not card or card.user_id != self.user_id:
            raise ValueError("Card not found")
        return card

    def add(self, data: CardIn) -> Card:
        settings = get_settings()
        card = Card(
            user_id=self.user_id,
            type=data.type,
            last4=data.last4,
            expiry_date=data.expiry_date,
            bank_name=(data.bank_name or "").strip() or settings.default_bank,
            color=data.color or "blue",
            balance=0,
            is_active=True,
            is_blocked=False,
            online_enabled=True,
            international_enabled=False,
            contactless_enabled=True,
            atm_withdrawals_enabled=True,
        )
        self.session.add(card)
        self.session.commit()
        self.session.refresh(card)
        self._invalidate()
        logger.info(f"card_added: user={self.user_id} id={card.id} last4={card.last4}")
        return card

    def delete(self, card_id: int) -> None:
        card = self.get(card_id)
        self.session.delete(card)
        self.session.commit()
        self._invalidate()

    def set_blocked(self, card_id: int, blocked: bool) -> Card:
        card = self.get(card_id)
        card.is_blocked = blocked
        card.is_active = not blocked
        self.session.commit()
        self._invalidate()
        logger.info(f"card_block: user={self.user_id} id={card_id} blocked={blocked}")
        return card

    def update_controls(self, card_id: int, data: CardControlsIn) -> Card:
        card = self.get(card_id)
        for field, value in data.model_dump(exclude_none=True).items():
            setattr(card, field, value)
        self.session.commit()
        return card

    def update_limits(self, card_id: int, data: CardLimitsIn) -> Card:
        card = self.get(card_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(card, field, value)
        self.session.commit()
        return card

    def set_pin(self, card_id: int, pin: str) -> Card:
        card = self.get(card_id)
        card.pin_hash = hash_pin(pin)
        card.pin_set = True
        self.session.commit()
        return card

    def verify_pin(self, card_id: int, pin: str) -> bool:
        card = self.get(card_id)
        return card.pin_set and verify_pin(pin, card.pin_hash)

    def ledger_balance(self) -> float:
        rows = self.session.execute(
            select(Transaction.type, func.coalesce(func.sum(Transaction.amount), 0))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.status == TransactionStatus.completed,
            )
            .group_by(Transaction.type)
        ).all()
        totals = {txn_type: float(total or 0) for txn_type, total in rows}
        return totals.get(TransactionType.income, 0.0) - totals.get(
            TransactionType.expense, 0.0
        )


class ProfileService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def get_or_create(self) -> Profile:
        profile = self.session.get(Profile, self.user_id)
        if profile is None:
            profile = Profile(user_id=self.user_id, transaction_pin_set=False)
            self.session.add(profile)
            self.session.commit()
        return profile

    def update(self, data: ProfileIn) -> Profile:
        profile = self.get_or_create()
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(profile, field, value.strip() if isinstance(value, str) else value)
        self.session.commit()
        return profile

    def set_transaction_pin(self, pin: str, current_pin: Optional[str] = None) -> Profile:
        validate_pin(pin)
        profile = self.get_or_create()
        if profile.transaction_pin_set and not verify_pin(
            current_pin or "", profile.transaction_pin_hash
        ):
            raise ValueError("Current transaction PIN is incorrect")
        profile.transaction_pin_hash = hash_pin(pin)
        profile.transaction_pin_set = True
        self.session.commit()
        logger.info(f"transaction_pin_set: user={self.user_id}")
        return profile

    def verify_transaction_pin(self, pin: str) -> bool:
        profile = self.session.get(Profile, self.user_id)
        if profile is None or not profile.transaction_pin_set:
            return False
        return verify_pin(pin, profile.transaction_pin_hash)


class NotificationService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def build(
        self,
        title: str,
        message: str,
        type: NotificationType = NotificationType.info,
        link: Optional[str] = None,
        transaction_id: Optional[int] = None,
    ) -> Notification:
        return Notification(
            user_id=self.user_id,
            title=title,
            message=message,
            type=type,
            link=link,
            transaction_id=transaction_id,
            is_read=False,
            created_at=datetime.utcnow(),
        )

    def create(self, *args, **kwargs) -> Notification:
        notification = self.build(*args, **kwargs)
        self.session.add(notification)
        self.session.commit()
        self.session.refresh(notification)
        return notification

    def get(self, notification_id: int) -> Notification:
        notification = self.session.get(Notification, notification_id)
        if not notification or notification.user_id != self.user_id:
            raise ValueError("Notification not found")
        return notification

    def list_recent(self, limit: int = 20) -> list[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.user_id == self.user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).all()

    def unread_count(self) -> int:
        stmt = select(func.count(Notification.id)).where(
            Notification.user_id == self.user_id,
            Notification.is_read.is_(False),
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def mark_read(self, notification_id: int) -> Notification:
        notification = self.get(notification_id)
        notification.is_read = True
        self.session.commit()
        return notification

    def mark_all_read(self) -> int:
        result = self.session.execute(
            update(Notification)
            .where(
                Notification.user_id == self.user_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True)
        )
        self.session.commit()
        return int(result.rowcount or 0)

    def delete(self, notification_id: int) -> None:
        notification = self.get(notification_id)
        self.session.delete(notification)
        self.session.commit()

    def delete_all(self) -> int:
        result = self.session.execute(
            delete(Notification).where(Notification.user_id == self.user_id)
        )
        self.session.commit()
        return int(result.rowcount or 0)


def detect_device(user_agent: Optional[str]) -> dict[str, str]:
    ua = user_agent or ""
    browser = "Unknown Browser"
    if "Chrome" in ua and "Edg" not in ua and "OPR" not in ua:
        browser = "Chrome"
    elif "Safari" in ua and "Chrome" not in ua:
        browser = "Safari"
    elif "Firefox" in ua:
        browser = "Firefox"
    elif "Edg" in ua:
        browser = "Edge"
    elif "OPR" in ua or "Opera" in ua:
        browser = "Opera"

    # Order matters: iOS agents also contain "Mac OS X", Android ones "Linux".
    os_name = "Unknown OS"
    if "Mac OS X" in ua:
        os_name = "macOS"
    elif "Windows NT 10" in ua:
        os_name = "Windows 10/11"
    elif "Windows" in ua:
        os_name = "Windows"
    elif "Linux" in ua:
        os_name = "Linux"
    elif "iPhone" in ua:
        os_name = "iOS"
    elif "iPad" in ua:
        os_name = "iPadOS"
    elif "Android" in ua:
        os_name = "Android"
    return {"browser": browser, "os": os_name, "device_info": f"{browser} on {os_name}"}


def clean_expired_sessions(session: Session, user_id: Optional[str] = None) -> int:
    stmt = delete(UserSession).where(UserSession.expires_at < datetime.utcnow())
    if user_id is not None:
        stmt = stmt.where(UserSession.user_id == user_id)
    result = session.execute(stmt)
    session.commit()
    return int(result.rowcount or 0)


class SessionService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def create(self, data: SessionIn) -> UserSession:
        if self.session.scalar(
            select(UserSession.id).where(UserSession.session_token == data.session_token)
        ):
            raise ValueError("Session already registered")
        self.session.execute(
            update(UserSession)
            .where(UserSession.user_id == self.user_id)
            .values(is_current=False)
        )
        now = datetime.utcnow()
        device = detect_device(data.user_agent)
        record = UserSession(
            user_id=self.user_id,
            session_token=data.session_token,
            device_info=device["device_info"],
            browser=device["browser"],
            os=device["os"],
            ip_address=data.ip_address,
            user_agent=data.user_agent,
            last_active=now,
            created_at=now,
            expires_at=now + timedelta(hours=get_settings().session_ttl_hours),
            is_current=True,
        )
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        logger.info(
            f"session_created: user={self.user_id} device={record.device_info!r}"
        )
        return record

    def list_active(self) -> list[UserSession]:
        self.clean_expired()
        stmt = (
            select(UserSession)
            .where(UserSession.user_id == self.user_id)
            .order_by(UserSession.last_active.desc(), UserSession.id.desc())
        )
        return self.session.scalars(stmt).all()

    def get(self, session_id: int) -> UserSession:
        record = self.session.get(UserSession, session_id)
        if not record or record.user_id != self.user_id:
            raise ValueError("Session not found")
        return record

    def touch(self, session_token: str) -> UserSession:
        record = self.session.scalar(
            select(UserSession).where(
                UserSession.user_id == self.user_id,
                UserSession.session_token == session_token,
            )
        )
        if not record:
            raise ValueError("Session not found")
        record.last_active = datetime.utcnow()
        self.session.commit()
        return record

    def revoke(self, session_id: int) -> None:
        record = self.get(session_id)
        self.session.delete(record)
        self.session.commit()
        logger.info(f"session_revoked: user={self.user_id} id={session_id}")

    def revoke_others(self, current_session_id: int) -> int:
        self.get(current_session_id)
        result = self.session.execute(
            delete(UserSession).where(
                UserSession.user_id == self.user_id,
                UserSession.id != current_session_id,
            )
        )
        self.session.commit()
        return int(result.rowcount or 0)

    def clean_expired(self) -> int:
        return clean_expired_sessions(self.session, self.user_id)


BILL_TYPES: dict[str, tuple[str, tuple[str, ...]]] = {
    "airtime": ("Airtime", ("MTN", "Glo", "Airtel", "9mobile")),
    "data": ("Data Bundle", ("MTN", "Glo", "Airtel", "9mobile")),
    "electricity": ("Electricity", ("EKEDC", "IKEDC", "PHED", "AEDC", "KEDC", "IBEDC")),
    "cable": ("Cable TV", ("DSTV", "GOtv", "Startimes", "Showmax")),
    "internet": ("Internet", ("Smile", "Spectranet", "Swift", "ipNX")),
    "betting": (
        "Betting",
        ("Bet9ja", "SportyBet", "1xBet", "NairaBet", "BetKing", "MerryBet", "22Bet"),
    ),
}
TOP_UP_METHODS = {
    "card": "Debit/Credit Card",
    "bank": "Bank Transfer",
    "cash": "Cash Deposit",
}
TOP_UP_MIN = 100
TOP_UP_MAX = 1_000_000
INVESTMENT_PLANS = {
    "fixed": {
        "name": "Fixed Savings",
        "rate": 12,
        "min": 5000,
        "durations": (30, 90, 180, 365),
    },
    "target": {"name": "Target Savings", "rate": 8, "min": 1000, "durations": (365,)},
}
CHANNELS = {
    "online": ("online_enabled", "online_limit"),
    "pos": ("contactless_enabled", "pos_limit"),
    "atm": ("atm_withdrawals_enabled", "atm_limit"),
}


def simple_interest(principal: float, rate_percent: float, days: int) -> float:
    return principal * (rate_percent / 100) * (days / 365)


class PaymentService:
    """Quick actions: PIN check, ledger entry, card movement and notification.

    Everything an action writes is committed together; a rule violation
    raises ``PaymentError`` before anything is flushed.
    """

    def __init__(
        self, session: Session, user_id: str, cache: Optional[FetchCache] = None
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.cache = cache if cache is not None else fetch_cache
        self.cards = CardService(session, user_id, self.cache)
        self.notifications = NotificationService(session, user_id)

    def _verify_pin(self, pin: str) -> None:
        profile = self.session.get(Profile, self.user_id)
        if profile is None or not profile.transaction_pin_set:
            raise PaymentError("Transaction PIN is not set")
        if not verify_pin(pin, profile.transaction_pin_hash):
            raise PaymentError("Invalid transaction PIN")

    def _spent_today(self, card: Card) -> float:
        today = local_now().replace(hour=0, minute=0, second=0, microsecond=0)
        total = self.session.execute(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.card_id == card.id,
                Transaction.type.in_([TransactionType.expense, TransactionType.transfer]),
                Transaction.status == TransactionStatus.completed,
                Transaction.date >= today,
            )
        ).scalar_one()
        return float(total or 0)

    def check_card(
        self, card_id: int, amount: float, *, channel: str = "online", debit: bool = True
    ) -> Card:
        card = self.cards.get(card_id)
        if card.is_blocked or not card.is_active:
            raise PaymentError("Card is blocked or inactive")
        if not debit:
            return card
        if channel not in CHANNELS:
            raise PaymentError(f"Unsupported card channel: {channel}")
        enabled_field, limit_field = CHANNELS[channel]
        if not getattr(card, enabled_field):
            raise PaymentError(f"Card is not enabled for {channel} payments")
        limit = getattr(card, limit_field)
        if limit is not None and amount > limit:
            raise PaymentError(
                f"Amount exceeds the card {channel} limit of {format_currency(limit)}"
            )
        daily_limit = card.daily_limit
        if daily_limit is not None and self._spent_today(card) + amount > daily_limit:
            raise PaymentError("Amount exceeds the card daily limit")
        if card.balance < amount:
            raise PaymentError("Insufficient card balance")
        return card

    def _post(
        self,
        *,
        pin: str,
        card_id: Optional[int],
        txn_type: TransactionType,
        amount: float,
        category: str,
        prefix: str,
        description: str,
        title: str,
        message: str,
        payment_method: str = "wallet",
        recipient_account: Optional[str] = None,
        recipient_bank: Optional[str] = None,
        metadata: Optional[dict] = None,
        channel: str = "online",
    ) -> tuple[Transaction, Notification, Optional[Card]]:
        self._verify_pin(pin)
        debit = txn_type != TransactionType.income
        card = (
            self.check_card(card_id, amount, channel=channel, debit=debit)
            if card_id is not None
            else None
        )

        txn = Transaction(
            user_id=self.user_id,
            type=txn_type,
            amount=amount,
            category=category,
            description=description,
            date=local_now(),
            status=TransactionStatus.completed,
            reference=new_reference(prefix),
            payment_method=payment_method,
            recipient_account=recipient_account,
            recipient_bank=recipient_bank,
            metadata_json=json.dumps(metadata) if metadata else None,
            card_id=card.id if card else None,
        )
        if card is not None:
            card.balance = card.balance - amount if debit else card.balance + amount
        notification = self.notifications.build(
            title, message, NotificationType.transaction, TRANSACTIONS_LINK
        )
        notification.transaction = txn
        try:
            self.session.add_all([txn, notification])
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(txn)
        self.cache.invalidate_user(self.user_id)
        logger.info(
            f"quick_action: user={self.user_id} reference={txn.reference} "
            f"type={txn_type.value} amount={amount} card={card.id if card else None}"
        )
        return txn, notification, card

    def send_money(self, data: SendMoneyIn):
        note = (data.description or "").strip()
        description = f"Transfer to {data.bank_name} ({data.account_number})"
        if note:
            description = f"{description}: {note}"
        return self._post(
            pin=data.pin,
            card_id=data.card_id,
            txn_type=TransactionType.expense,
            amount=data.amount,
            category="Transfer",
            prefix="TRF",
            description=description,
            title="Money Sent",
            message=(
                f"You sent {format_currency(data.amount)} to {data.bank_name} "
                f"account {data.account_number}"
            ),
            payment_method=data.payment_method,
            recipient_account=data.account_number,
            recipient_bank=data.bank_name,
        )

    def pay_bill(self, data: PayBillIn):
        name, providers = BILL_TYPES[data.bill_type]
        provider = next(
            (p for p in providers if p.lower() == data.provider.strip().lower()), None
        )
        if provider is None:
            raise PaymentError(f"Unknown {name} provider: {data.provider}")
        identifier = data.account_identifier.strip()
        return self._post(
            pin=data.pin,
            card_id=data.card_id,
            txn_type=TransactionType.expense,
            amount=data.amount,
            category="Bills",
            prefix="BILL",
            description=f"{name} - {provider} ({identifier})",
            title="Bill Payment Successful",
            message=f"You paid {format_currency(data.amount)} for {name} - {provider}",
            recipient_account=identifier,
            recipient_bank=provider,
        )

    def top_up(self, data: TopUpIn):
        if data.amount < TOP_UP_MIN:
            raise PaymentError(f"Minimum top-up amount is {format_currency(TOP_UP_MIN)}")
        if data.amount > TOP_UP_MAX:
            raise PaymentError(f"Maximum top-up amount is {format_currency(TOP_UP_MAX)}")
        return self._post(
            pin=data.pin,
            card_id=data.card_id,
            txn_type=TransactionType.income,
            amount=data.amount,
            category="Top Up",
            prefix="TOP",
            description=f"Top up via {TOP_UP_METHODS[data.method]}",
            title="Top Up Successful",
            message=(
                f"Your account has been credited with {format_currency(data.amount)}"
            ),
            payment_method=data.method,
        )

    def invest(self, data: InvestIn):
        plan = INVESTMENT_PLANS[data.plan]
        if data.amount < plan["min"]:
            raise PaymentError(
                f"Minimum amount for {plan['name']} is {format_currency(plan['min'])}"
            )
        if data.plan == "fixed":
            if data.duration_days not in plan["durations"]:
                raise PaymentError("Duration must be one of 30, 90, 180 or 365 days")
            days = data.duration_days
        else:
            if not (data.goal_name or "").strip():
                raise PaymentError("Goal name is required for Target Savings")
            if data.target_amount is None or data.target_amount <= data.amount:
                raise PaymentError("Target amount must be greater than the initial amount")
            days = 365

        interest = simple_interest(data.amount, plan["rate"], days)
        maturity_date = local_now() + timedelta(days=days)
        if data.plan == "fixed":
            description = (
                f"Fixed Savings - {days} days at {plan['rate']}% p.a. "
                f"(Matures: {maturity_date.date().isoformat()})"
            )
            message = (
                f"You've invested {format_currency(data.amount)} in Fixed Savings for "
                f"{days} days. Expected returns: {format_currency(interest)}"
            )
        else:
            goal = data.goal_name.strip()
            description = (
                f"Target Savings: {goal} (Goal: {format_currency(data.target_amount)})"
            )
            message = (
                f'You\'ve started a Target Savings plan "{goal}" with '
                f"{format_currency(data.amount)}. Target: "
                f"{format_currency(data.target_amount)}"
            )
        metadata = {
            "investment_type": data.plan,
            "duration": days if data.plan == "fixed" else None,
            "interest_rate": plan["rate"],
            "expected_returns": round(interest, 2),
            "maturity_amount": round(data.amount + interest, 2),
            "maturity_date": maturity_date.isoformat() if data.plan == "fixed" else None,
            "goal_name": data.goal_name if data.plan == "target" else None,
            "target_amount": data.target_amount if data.plan == "target" else None,
        }
        return self._post(
            pin=data.pin,
            card_id=data.card_id,
            txn_type=TransactionType.expense,
            amount=data.amount,
            category="Investment",
            prefix="INV",
            description=description,
            title="Investment Created",
            message=message,
            metadata=metadata,
        )

    def exchange(self, data: ExchangeIn):
        if data.from_currency == data.to_currency:
            raise PaymentError("Source and target currencies must be different")
        try:
            conversion = FxRateService().convert(
                data.amount, data.from_currency, data.to_currency
            )
        except ValueError as exc:
            raise PaymentError(str(exc)) from exc

        sent = format_currency(data.amount, data.from_currency)
        received = format_currency(float(conversion.receive), data.to_currency)
        metadata = {
            "from_currency": data.from_currency,
            "to_currency": data.to_currency,
            "from_amount": data.amount,
            "to_amount": float(conversion.receive),
            "converted_amount": float(conversion.converted),
            "exchange_rate": float(conversion.quote.rate),
            "fee_amount": float(conversion.fee),
            "fee_percent": get_settings().fx_fee_bps / 100,
        }
        return self._post(
            pin=data.pin,
            card_id=data.card_id,
            txn_type=TransactionType.expense,
            amount=data.amount,
            category="Exchange",
            prefix="EXG",
            description=(
                f"Currency Exchange: {sent} {data.from_currency} → "
                f"{received} {data.to_currency}"
            ),
            title="Currency Exchange Successful",
            message=(
                f"You exchanged {sent} {data.from_currency} to {received} "
                f"{data.to_currency}. Rate: 1 {data.from_currency} = "
                f"{conversion.quote.rate:.4f} {data.to_currency}"
            ),
            metadata=metadata,
        )
