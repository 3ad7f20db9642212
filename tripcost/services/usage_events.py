"""Budget usage refresh notifications.

Expense writes ask for the category usage snapshot to be refreshed, but that
bookkeeping lives in its own failure domain: the write has already committed
when the notification is published, and a failed refresh is logged and
dropped. The snapshot then stays stale until the next successful refresh.

Delivery crosses an internal, token-authenticated boundary
(``InternalUsageGateway``), the same check the HTTP endpoint
``POST /internal/categories/{id}/usage-refresh`` applies.

Modes (``Settings.usage_refresh_mode``):
  async     deliver on a single background worker thread
  sync      deliver inline after the write, still failure-isolated
  disabled  drop notifications
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Set

from tripcost.core.errors import AuthorizationError
from tripcost.core.security import token_matches
from tripcost.models.category import UsageSnapshotEntry
from tripcost.services.budget_usage import UsageCacheRefresher

logger = logging.getLogger("tripcost.usage_events")


@dataclass(frozen=True)
class UsageRefreshRequested:
    category_id: int
    token: str
    requested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InternalUsageGateway:
    def __init__(self, refresher: UsageCacheRefresher, token: str):
        self.refresher = refresher
        self._token = token

    def handle(self, event: UsageRefreshRequested) -> List[UsageSnapshotEntry]:
        if not token_matches(event.token, self._token):
            logger.warning("rejected usage refresh for category %s: bad token", event.category_id)
            raise AuthorizationError("invalid internal token")
        return self.refresher.refresh(event.category_id)


class UsageRefreshNotifier:
    def __init__(self, gateway: InternalUsageGateway, token: str, mode: str = "async"):
        self.gateway = gateway
        self.mode = mode
        self._token = token
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()
        if mode == "async":
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="usage-refresh"
            )

    def notify(self, category_id: int) -> None:
        """Publish a refresh request; never raises."""
        if self.mode == "disabled":
            logger.debug("usage refresh disabled; dropping category %s", category_id)
            return
        event = UsageRefreshRequested(category_id=category_id, token=self._token)
        if self._executor is None:
            self._deliver(event)
            return
        try:
            future = self._executor.submit(self._deliver, event)
        except RuntimeError:
            # executor already shut down (application stopping)
            logger.warning("usage refresh for category %s not queued: notifier closed", category_id)
            return
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for queued deliveries to finish."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _deliver(self, event: UsageRefreshRequested) -> bool:
        try:
            self.gateway.handle(event)
            return True
        except Exception:
            logger.exception("budget usage refresh failed for category %s", event.category_id)
            return False
