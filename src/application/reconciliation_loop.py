"""
Periodic and on-demand pull of the authoritative listing collection.

One logical worker: passes never overlap. Timer ticks are skipped while a
pass is in flight; on-demand refreshes queue behind it and are coalesced,
since a pass that starts after a request answers that request too.

Local-only changes made by the lifecycle engine after a failed write stay
visible until the next successful pass replaces them with server truth.
"""
import asyncio
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from src.application.interfaces.listing_gateway import ListingGateway, PersistenceUnavailableError
from src.application.listing_store import ListingStore
from src.config import settings
from src.domain.enums.listing_status import CollectionScope

logger = structlog.get_logger(__name__)


class ReconciliationFailedError(Exception):
    """A reconciliation pass could not fetch the authoritative collection."""

    def __init__(self, scope: CollectionScope, cause: Exception) -> None:
        self.scope = scope
        self.cause = cause
        super().__init__(f"Failed to reconcile {scope.value} collection: {cause}")


class ReconciliationLoop:
    def __init__(
        self,
        store: ListingStore,
        gateway: ListingGateway,
        scope_provider: Callable[[], CollectionScope],
        *,
        interval_seconds: float = settings.reconcile_interval_seconds,
        failure_alert_threshold: int = settings.reconcile_failure_alert_threshold,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._scope_provider = scope_provider
        self._interval = interval_seconds
        self._alert_threshold = failure_alert_threshold

        self._lock = asyncio.Lock()
        self._requested = 0
        self._served = 0
        self._timer: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[bool]] = set()
        self._stopped = False

        self.consecutive_failures = 0
        self.last_error: ReconciliationFailedError | None = None
        self.last_success_at: datetime | None = None
        self._last_result = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopped = False
        self._timer = asyncio.get_running_loop().create_task(self._run())
        logger.info("reconciliation_loop_started", interval_seconds=self._interval)

    async def stop(self) -> None:
        """Cancel the timer and any queued passes; a cancelled pass applies nothing."""
        self._stopped = True
        tasks = [t for t in (self._timer, *self._background) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timer = None
        self._background.clear()
        logger.info("reconciliation_loop_stopped")

    async def _run(self) -> None:
        await self.refresh()
        while True:
            await asyncio.sleep(self._interval)
            await self.tick()

    # -------------------------------------------------------------------------
    # Passes
    # -------------------------------------------------------------------------

    async def tick(self) -> bool:
        """Timer-driven pass; skipped when another pass is already running."""
        if self._lock.locked():
            logger.debug("reconciliation_tick_skipped")
            return False
        return await self.refresh()

    async def refresh(self) -> bool:
        """Run a pass, queuing behind any in-flight one. Returns True on success."""
        self._requested += 1
        ticket = self._requested
        async with self._lock:
            if self._served >= ticket:
                return self._last_result
            self._served = self._requested
            self._last_result = await self._pull()
            return self._last_result

    def trigger(self) -> asyncio.Task[bool] | None:
        """Schedule a refresh without waiting for it. Does nothing once stopped."""
        if self._stopped:
            logger.debug("reconciliation_trigger_ignored")
            return None
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _pull(self) -> bool:
        scope = self._scope_provider()
        try:
            listings = await self._gateway.list_collection(scope)
        except PersistenceUnavailableError as exc:
            self._record_failure(scope, exc)
            logger.warning(
                "reconciliation_failed",
                scope=scope.value,
                consecutive_failures=self.consecutive_failures,
                error=str(exc),
            )
            return False
        except Exception as exc:
            # A malformed response must not end the loop; keep the stale snapshot
            self._record_failure(scope, exc)
            logger.exception(
                "reconciliation_failed_unexpectedly",
                scope=scope.value,
                consecutive_failures=self.consecutive_failures,
            )
            return False

        # No suspension point between the fetch returning and the swap.
        self._store.replace_all(listings)
        self.consecutive_failures = 0
        self.last_error = None
        self.last_success_at = datetime.now(timezone.utc)
        logger.info("reconciliation_completed", scope=scope.value, listing_count=len(listings))
        return True

    def _record_failure(self, scope: CollectionScope, exc: Exception) -> None:
        self.consecutive_failures += 1
        self.last_error = ReconciliationFailedError(scope, exc)
        if self.consecutive_failures >= self._alert_threshold:
            logger.warning(
                "reconciliation_failing_repeatedly",
                scope=scope.value,
                consecutive_failures=self.consecutive_failures,
                last_success_at=self.last_success_at.isoformat() if self.last_success_at else None,
            )
