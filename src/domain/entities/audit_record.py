import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class EntityKind(str, Enum):
    LISTING = "listing"
    USER = "user"
    BOOKING = "booking"
    SESSION = "session"
    SYSTEM = "system"


class AuditAction(str, Enum):
    """Taxonomy of auditable actions."""

    # Listings
    LISTING_CREATED = "listing_created"
    LISTING_UPDATED = "listing_updated"
    LISTING_DELETED = "listing_deleted"
    LISTING_APPROVED = "listing_approved"
    LISTING_REJECTED = "listing_rejected"
    LISTING_FEATURED = "listing_featured"
    LISTING_UNFEATURED = "listing_unfeatured"
    # Users
    USER_CREATED = "user_created"
    USER_UPDATED = "user_updated"
    USER_DELETED = "user_deleted"
    USER_ROLE_CHANGED = "user_role_changed"
    # Sessions
    USER_LOGIN = "user_login"
    USER_LOGOUT = "user_logout"
    USER_LOGIN_FAILED = "user_login_failed"
    # Bookings
    BOOKING_CREATED = "booking_created"
    BOOKING_UPDATED = "booking_updated"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_COMPLETED = "booking_completed"
    BOOKING_FAILED = "booking_failed"
    PAYMENT_FAILED = "payment_failed"
    # System
    SYSTEM_SETTINGS_UPDATED = "system_settings_updated"
    SYSTEM_SHUTDOWN = "system_shutdown"


def dump_snapshot(values: dict[str, Any] | None) -> str | None:
    """Serialise a before/after snapshot to the opaque text form stored on records."""
    if values is None:
        return None
    return json.dumps(values, default=str, sort_keys=True)


def load_snapshot(text: str | None) -> dict[str, Any] | None:
    if text is None:
        return None
    return json.loads(text)


@dataclass(frozen=True)
class AuditContext:
    """Best-effort caller context; absence of any field is not an error."""

    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class AuditEntry:
    """An audit record that has been built but not yet appended to the log."""

    actor_id: str
    action: str
    entity_kind: str
    entity_id: str | None
    severity: AuditSeverity
    description: str
    before: str | None = None
    after: str | None = None
    pending_sync: bool = False
    context: AuditContext | None = None
    occurred_at: datetime = field(default_factory=_utcnow)

    def before_values(self) -> dict[str, Any] | None:
        return load_snapshot(self.before)

    def after_values(self) -> dict[str, Any] | None:
        return load_snapshot(self.after)

    def written(self, record_id: int) -> "AuditRecord":
        return AuditRecord(id=record_id, **{f: getattr(self, f) for f in _ENTRY_FIELDS})


@dataclass(frozen=True)
class AuditRecord(AuditEntry):
    """
    An appended, immutable audit record.

    ``id`` is assigned by the log and increases monotonically. Snapshots are
    kept as JSON text so no later operation can mutate a past record.
    """

    id: int = 0


_ENTRY_FIELDS: tuple[str, ...] = (
    "actor_id",
    "action",
    "entity_kind",
    "entity_id",
    "severity",
    "description",
    "before",
    "after",
    "pending_sync",
    "context",
    "occurred_at",
)
