from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Generic, Hashable, Optional, TypeVar

import analytics
from analytics import TransactionQuery
from config import get_settings
from periods import local_now, previous_window, resolve_window
from schemas import (
    AnalyticsData,
    CategorySpending,
    DashboardStats,
    MonthlyData,
    TransactionStats,
)
from store import FetchResult, StoreError, TransactionRecord, TransactionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FetchCache:
    """Short-lived snapshot cache shared by aggregators of one request burst.

    Keys are tuples whose second element is the user id, so a single write
    can drop everything that user has cached.
    """

    def __init__(self, ttl_secs: float) -> None:
        self.ttl_secs = ttl_secs
        self._entries: dict[Hashable, tuple[float, object]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if time.monotonic() - stored_at > self.ttl_secs:
                del self._entries[key]
                return None
            return value

    def put(self, key: Hashable, value: object) -> None:
        if self.ttl_secs <= 0:
            return
        with self._lock:
            self._entries[key] = (time.monotonic(), value)

    def invalidate_user(self, user_id: str) -> int:
        with self._lock:
            stale = [
                key
                for key in self._entries
                if isinstance(key, tuple) and len(key) > 1 and key[1] == user_id
            ]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def prune(self) -> int:
        now = time.monotonic()
        with self._lock:
            expired = [
                key
                for key, (stored_at, _value) in self._entries.items()
                if now - stored_at > self.ttl_secs
            ]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


fetch_cache = FetchCache(get_settings().cache_ttl_secs)


class AggregateHook(Generic[T]):
    """Holds ``{data, is_loading, error}`` for one fetch-then-aggregate cycle."""

    def __init__(
        self, name: str, loader: Callable[[], FetchResult[T]], default: T
    ) -> None:
        self.name = name
        self._loader = loader
        self.data: T = default
        self.is_loading = False
        self.error: Optional[str] = None

    def refresh(self) -> "AggregateHook[T]":
        self.is_loading = True
        try:
            result = self._loader()
        except StoreError as exc:
            result = FetchResult.failure(exc)
        finally:
            self.is_loading = False

        if result.ok:
            self.data = result.data
            self.error = None
        else:
            if result.data is not None:
                self.data = result.data
            self.error = str(result.error)
            logger.error(f"hook_refresh_failed: hook={self.name} error={self.error}")
        return self

    def snapshot(self) -> dict[str, object]:
        data = self.data
        if isinstance(data, list):
            payload = [
                item.model_dump() if hasattr(item, "model_dump") else item
                for item in data
            ]
        elif hasattr(data, "model_dump"):
            payload = data.model_dump()
        else:
            payload = data
        return {"data": payload, "is_loading": self.is_loading, "error": self.error}


class TransactionListHook:
    """Full transaction list with a client-side filtered view.

    Changing the query recomputes the view from the held list; only
    ``refresh()`` goes back to the store.
    """

    def __init__(
        self, store: TransactionStore, *, now: Optional[datetime] = None
    ) -> None:
        self.store = store
        self.now = now
        self.query = TransactionQuery()
        self.all_transactions: list[TransactionRecord] = []
        self.transactions: list[TransactionRecord] = []
        self.is_loading = False
        self.error: Optional[str] = None

    def refresh(self) -> "TransactionListHook":
        self.is_loading = True
        result = self.store.fetch_transactions(order_by="-created_at")
        self.is_loading = False
        if result.ok:
            self.all_transactions = list(result.data)
            self.error = None
        else:
            self.error = str(result.error)
            logger.error(f"hook_refresh_failed: hook=transactions error={self.error}")
        self._recompute()
        return self

    def set_query(self, **changes) -> "TransactionListHook":
        self.query = self.query.with_changes(**changes)
        self._recompute()
        return self

    def reset_query(self) -> "TransactionListHook":
        self.query = TransactionQuery()
        self._recompute()
        return self

    def _recompute(self) -> None:
        self.transactions = analytics.filter_transactions(
            self.all_transactions, self.query, now=self.now
        )

    @property
    def recent_transactions(self) -> list[TransactionRecord]:
        return analytics.recent_transactions(self.all_transactions)

    @property
    def stats(self) -> TransactionStats:
        return analytics.transaction_stats(self.all_transactions, now=self.now)

    @property
    def total_count(self) -> int:
        return len(self.all_transactions)

    @property
    def filtered_count(self) -> int:
        return len(self.transactions)


class DashboardHooks:
    """The four dashboard sections for one user and one window.

    ``service`` is an ``AnalyticsService``. Each section fetches and fails
    independently; a broken section keeps its degraded value and reports an
    error without blocking the others.
    """

    def __init__(
        self,
        service,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        *,
        now: Optional[datetime] = None,
    ) -> None:
        # One instant for every section so they resolve the same window keys.
        now = now or local_now()
        self.window = resolve_window(start, end, now=now)
        self.previous = previous_window(self.window)
        bounds = {"start": start, "end": end, "now": now}

        self.monthly_trend: AggregateHook[list[MonthlyData]] = AggregateHook(
            "monthly_trend", lambda: service.monthly_trend(start, end), []
        )
        self.category_spending: AggregateHook[list[CategorySpending]] = AggregateHook(
            "category_spending", lambda: service.category_spending(**bounds), []
        )
        self.overview: AggregateHook[AnalyticsData] = AggregateHook(
            "overview", lambda: service.overview(**bounds), AnalyticsData.empty()
        )
        self.stats: AggregateHook[DashboardStats] = AggregateHook(
            "dashboard_stats",
            lambda: service.dashboard_stats(**bounds),
            DashboardStats.empty(),
        )

    @property
    def hooks(self) -> list[AggregateHook]:
        return [self.monthly_trend, self.category_spending, self.overview, self.stats]

    @property
    def errors(self) -> dict[str, str]:
        return {hook.name: hook.error for hook in self.hooks if hook.error}

    def refresh_all(self) -> "DashboardHooks":
        for hook in self.hooks:
            hook.refresh()
        return self

    def snapshot(self) -> dict[str, object]:
        return {
            "window": {
                "slug": self.window.slug,
                "start": self.window.start.isoformat(),
                "end": self.window.end.isoformat(),
                "previous_start": self.previous.start.isoformat(),
                "previous_end": self.previous.end.isoformat(),
            },
            "monthly_trend": self.monthly_trend.snapshot(),
            "category_spending": self.category_spending.snapshot(),
            "overview": self.overview.snapshot(),
            "stats": self.stats.snapshot(),
        }
