"""
Fire-and-forget audit recording.

``record()`` never blocks and never raises: it builds the entry, puts it on a
queue and returns. A single worker task appends queued entries to the remote
log in the order they were recorded. Append failures are logged once and
dropped; re-sending them is not this component's job.
"""
import asyncio
from collections.abc import Callable
from typing import Any

import structlog

from src.application.interfaces.audit_log_gateway import AuditLogGateway, AuditWriteFailedError
from src.application.interfaces.listing_gateway import PersistenceUnavailableError
from src.domain.audit.descriptions import describe
from src.domain.audit.severity import classify_severity
from src.domain.entities.audit_record import (
    AuditAction,
    AuditContext,
    AuditEntry,
    EntityKind,
    dump_snapshot,
)

logger = structlog.get_logger(__name__)

ContextProvider = Callable[[], AuditContext | None]


class AuditPipeline:
    def __init__(
        self,
        gateway: AuditLogGateway,
        *,
        context_provider: ContextProvider | None = None,
        enabled: bool = True,
    ) -> None:
        self._gateway = gateway
        self._context_provider = context_provider
        self._enabled = enabled
        self._queue: asyncio.Queue[AuditEntry] | None = None
        self._worker: asyncio.Task[None] | None = None
        self.failed_writes = 0

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def record(
        self,
        actor_id: str,
        action: AuditAction | str,
        entity_kind: EntityKind | str,
        entity_id: str | None,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
        *,
        pending_sync: bool = False,
    ) -> AuditEntry | None:
        """Build an audit entry and queue it for appending. Returns the queued entry."""
        if not self._enabled:
            return None

        try:
            entry = self._build_entry(
                actor_id, action, entity_kind, entity_id, before, after, pending_sync
            )
            queue = self._ensure_worker()
        except Exception:
            logger.exception("audit_record_dropped", action=str(action), entity_id=entity_id)
            return None

        queue.put_nowait(entry)
        logger.debug(
            "audit_record_queued",
            action=entry.action,
            entity_kind=entry.entity_kind,
            entity_id=entity_id,
            pending_sync=pending_sync,
        )
        return entry

    def record_listing_action(
        self,
        actor_id: str,
        action: AuditAction,
        listing_id: str,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
        *,
        pending_sync: bool = False,
    ) -> AuditEntry | None:
        return self.record(
            actor_id, action, EntityKind.LISTING, listing_id, before, after,
            pending_sync=pending_sync,
        )

    def record_user_action(
        self,
        actor_id: str,
        action: AuditAction,
        user: dict[str, Any],
        before: dict[str, Any] | None = None,
    ) -> AuditEntry | None:
        after = None if action is AuditAction.USER_DELETED else user
        if action is AuditAction.USER_DELETED:
            before = before or user
        return self.record(actor_id, action, EntityKind.USER, str(user.get("id", actor_id)), before, after)

    def record_booking_action(
        self,
        actor_id: str,
        action: AuditAction,
        booking: dict[str, Any],
        before: dict[str, Any] | None = None,
    ) -> AuditEntry | None:
        return self.record(actor_id, action, EntityKind.BOOKING, str(booking.get("id")), before, booking)

    def record_system_action(
        self, actor_id: str, action: AuditAction, details: dict[str, Any] | None = None
    ) -> AuditEntry | None:
        return self.record(actor_id, action, EntityKind.SYSTEM, None, None, details)

    def _build_entry(
        self,
        actor_id: str,
        action: AuditAction | str,
        entity_kind: EntityKind | str,
        entity_id: str | None,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
        pending_sync: bool,
    ) -> AuditEntry:
        action_key = action.value if isinstance(action, AuditAction) else str(action)
        kind = entity_kind.value if isinstance(entity_kind, EntityKind) else str(entity_kind)
        subject = after if after is not None else before
        return AuditEntry(
            actor_id=actor_id,
            action=action_key,
            entity_kind=kind,
            entity_id=entity_id,
            severity=classify_severity(action_key),
            description=describe(action_key, kind, entity_id, subject, pending_sync=pending_sync),
            before=dump_snapshot(before),
            after=dump_snapshot(after),
            pending_sync=pending_sync,
            context=self._capture_context(),
        )

    def _capture_context(self) -> AuditContext | None:
        if self._context_provider is None:
            return None
        try:
            return self._context_provider()
        except Exception as exc:
            logger.debug("audit_context_unavailable", error=str(exc))
            return None

    # -------------------------------------------------------------------------
    # Worker
    # -------------------------------------------------------------------------

    def _ensure_worker(self) -> asyncio.Queue[AuditEntry]:
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            # Raises RuntimeError outside a running event loop
            self._worker = asyncio.get_running_loop().create_task(self._drain_queue())
        return self._queue

    async def _drain_queue(self) -> None:
        assert self._queue is not None
        while True:
            entry = await self._queue.get()
            try:
                await self._append(entry)
            finally:
                self._queue.task_done()

    async def _append(self, entry: AuditEntry) -> None:
        try:
            record = await self._gateway.append_audit_record(entry)
        except (AuditWriteFailedError, PersistenceUnavailableError) as exc:
            self.failed_writes += 1
            logger.warning(
                "audit_write_failed",
                action=entry.action,
                entity_kind=entry.entity_kind,
                entity_id=entry.entity_id,
                error=str(exc),
            )
        except Exception:
            self.failed_writes += 1
            logger.exception(
                "audit_write_failed",
                action=entry.action,
                entity_kind=entry.entity_kind,
                entity_id=entry.entity_id,
            )
        else:
            logger.debug("audit_record_appended", record_id=record.id, action=record.action)

    async def drain(self) -> None:
        """Wait until every queued entry has been attempted."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        await self.drain()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    # -------------------------------------------------------------------------
    # Switches
    # -------------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False
