from dataclasses import dataclass
from datetime import datetime, timezone

from src.domain.entities.audit_record import AuditEntry, AuditSeverity


@dataclass(frozen=True)
class AuditFilters:
    """
    Conjunctive filters over the audit feed.

    Every supplied field must match; fields left as None are ignored, so an
    empty filter set selects the whole feed.
    """

    entity_kind: str | None = None
    action: str | None = None
    severity: AuditSeverity | None = None
    actor_id: str | None = None
    entity_id: str | None = None
    occurred_after: datetime | None = None
    occurred_before: datetime | None = None
    free_text: str | None = None

    def __post_init__(self) -> None:
        # Naive bounds are read as UTC, like every stored timestamp
        for name in ("occurred_after", "occurred_before"):
            value = getattr(self, name)
            if value is not None and value.tzinfo is None:
                object.__setattr__(self, name, value.replace(tzinfo=timezone.utc))

    def matches(self, record: AuditEntry) -> bool:
        if self.entity_kind is not None and record.entity_kind != self.entity_kind:
            return False
        if self.action is not None and record.action != self.action:
            return False
        if self.severity is not None and record.severity != self.severity:
            return False
        if self.actor_id is not None and record.actor_id != self.actor_id:
            return False
        if self.entity_id is not None and record.entity_id != self.entity_id:
            return False
        if self.occurred_after is not None and record.occurred_at < self.occurred_after:
            return False
        if self.occurred_before is not None and record.occurred_at > self.occurred_before:
            return False
        if self.free_text:
            needle = self.free_text.lower()
            haystack = (
                record.action,
                record.entity_kind,
                record.entity_id or "",
                record.actor_id,
                record.description,
            )
            if not any(needle in value.lower() for value in haystack):
                return False
        return True


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    page_size: int = 25

    def clamped(self, max_page_size: int) -> "PageRequest":
        """Return a copy with page >= 1 and 1 <= page_size <= max_page_size."""
        return PageRequest(
            page=max(self.page, 1),
            page_size=min(max(self.page_size, 1), max_page_size),
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size
