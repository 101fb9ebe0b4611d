import csv
import io
from dataclasses import dataclass

import structlog

from src.application.interfaces.actor_directory import ActorDirectory
from src.application.interfaces.audit_log_gateway import AuditLogGateway
from src.config import settings
from src.domain.audit.filters import AuditFilters, PageRequest
from src.domain.entities.actor import ActorProfile
from src.domain.entities.audit_record import AuditRecord

logger = structlog.get_logger(__name__)

UNKNOWN_ACTOR = "Unknown actor"

CSV_FIELDS = [
    "occurred_at",
    "actor",
    "actor_id",
    "action",
    "entity_kind",
    "entity_id",
    "severity",
    "description",
    "ip_address",
    "pending_sync",
]


@dataclass(frozen=True)
class AuditFeedEntry:
    """A record paired with its actor. Records whose actor is gone are kept, not hidden."""

    record: AuditRecord
    actor: ActorProfile | None

    @property
    def actor_resolved(self) -> bool:
        return self.actor is not None

    @property
    def actor_name(self) -> str:
        return self.actor.name if self.actor is not None else UNKNOWN_ACTOR


@dataclass
class AuditFeedPage:
    entries: list[AuditFeedEntry]
    total: int
    page: int
    page_size: int

    @property
    def page_count(self) -> int:
        return max(1, -(-self.total // self.page_size))

    @property
    def has_next(self) -> bool:
        return self.page < self.page_count


class QueryAuditFeed:
    """Use case: Read one page of the audit feed, newest first, with actors resolved."""

    def __init__(
        self,
        audit_gateway: AuditLogGateway,
        actor_directory: ActorDirectory,
        *,
        max_page_size: int = settings.audit_page_size_max,
    ) -> None:
        self._audit_gateway = audit_gateway
        self._actor_directory = actor_directory
        self._max_page_size = max_page_size

    async def execute(
        self, filters: AuditFilters | None = None, page: PageRequest | None = None
    ) -> AuditFeedPage:
        filters = filters or AuditFilters()
        page = (page or PageRequest(page_size=settings.audit_page_size_default)).clamped(
            self._max_page_size
        )

        records, total = await self._audit_gateway.query_audit_records(filters, page)
        actors = await self._actor_directory.resolve_many({r.actor_id for r in records})

        entries = [AuditFeedEntry(record=r, actor=actors.get(r.actor_id)) for r in records]
        unresolved = sum(1 for e in entries if not e.actor_resolved)
        if unresolved:
            logger.debug("audit_feed_actors_unresolved", count=unresolved)

        return AuditFeedPage(entries=entries, total=total, page=page.page, page_size=page.page_size)


class ExportAuditFeedCsv:
    """Use case: Render every record matching the filters as CSV."""

    def __init__(self, query: QueryAuditFeed, *, page_size: int = settings.audit_page_size_max) -> None:
        self._query = query
        self._page_size = page_size

    async def execute(self, filters: AuditFilters | None = None) -> str:
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=CSV_FIELDS)
        writer.writeheader()

        page_number = 1
        rows = 0
        while True:
            page = await self._query.execute(
                filters, PageRequest(page=page_number, page_size=self._page_size)
            )
            for entry in page.entries:
                writer.writerow(_csv_row(entry))
                rows += 1
            if not page.entries or not page.has_next:
                break
            page_number += 1

        logger.info("audit_feed_exported", rows=rows)
        return buffer.getvalue()


def _csv_row(entry: AuditFeedEntry) -> dict[str, str]:
    record = entry.record
    return {
        "occurred_at": record.occurred_at.isoformat(),
        "actor": entry.actor_name,
        "actor_id": record.actor_id,
        "action": record.action,
        "entity_kind": record.entity_kind,
        "entity_id": record.entity_id or "",
        "severity": record.severity.value,
        "description": record.description,
        "ip_address": (record.context.ip_address or "") if record.context else "",
        "pending_sync": "true" if record.pending_sync else "false",
    }
