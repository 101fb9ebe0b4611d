from collections.abc import Mapping
from typing import Any

from src.domain.entities.audit_record import AuditAction

DESCRIPTION_TEMPLATES: dict[str, str] = {
    AuditAction.LISTING_CREATED.value: 'Created new listing "{title}" in {location}',
    AuditAction.LISTING_UPDATED.value: 'Updated listing "{title}" (ID: {id})',
    AuditAction.LISTING_DELETED.value: 'Deleted listing "{title}" (ID: {id})',
    AuditAction.LISTING_APPROVED.value: 'Approved listing "{title}" for public visibility',
    AuditAction.LISTING_REJECTED.value: 'Rejected listing "{title}" from public visibility',
    AuditAction.LISTING_FEATURED.value: 'Featured listing "{title}" on the home page',
    AuditAction.LISTING_UNFEATURED.value: 'Removed listing "{title}" from the featured section',
    AuditAction.USER_CREATED.value: 'Created new user account for "{name}" ({username})',
    AuditAction.USER_UPDATED.value: 'Updated user account for "{name}" ({username})',
    AuditAction.USER_DELETED.value: 'Deleted user account for "{name}" ({username})',
    AuditAction.USER_ROLE_CHANGED.value: 'Changed role of user "{name}" to {role}',
    AuditAction.USER_LOGIN.value: 'User "{name}" logged in',
    AuditAction.USER_LOGOUT.value: 'User "{name}" logged out',
    AuditAction.USER_LOGIN_FAILED.value: 'Failed login attempt for username "{username}"',
    AuditAction.BOOKING_CREATED.value: "New booking created for {guest_name} (Listing: {listing_title})",
    AuditAction.BOOKING_UPDATED.value: "Updated booking #{id} for {guest_name}",
    AuditAction.BOOKING_CONFIRMED.value: "Confirmed booking #{id} for {guest_name}",
    AuditAction.BOOKING_CANCELLED.value: "Cancelled booking #{id} for {guest_name}",
    AuditAction.BOOKING_COMPLETED.value: "Completed booking #{id} for {guest_name}",
    AuditAction.BOOKING_FAILED.value: "Booking #{id} for {guest_name} failed",
    AuditAction.PAYMENT_FAILED.value: "Payment for booking #{id} failed",
    AuditAction.SYSTEM_SETTINGS_UPDATED.value: "Updated system settings",
    AuditAction.SYSTEM_SHUTDOWN.value: "System shutdown initiated",
}

PENDING_SYNC_NOTE = " [pending_sync: applied locally, not confirmed by the server]"


class _Fields(dict):  # type: ignore[type-arg]
    def __missing__(self, key: str) -> str:
        return "unknown"


def describe(
    action: str,
    entity_kind: str,
    entity_id: str | None,
    subject: Mapping[str, Any] | None,
    *,
    pending_sync: bool = False,
) -> str:
    """
    Render the human-readable summary for an audit record.

    ``subject`` is the after-snapshot when present, otherwise the
    before-snapshot (deletions). Fields a template needs but the snapshot
    lacks render as ``unknown``.
    """
    values = _Fields(subject or {})
    values.setdefault("id", entity_id or "unknown")

    template = DESCRIPTION_TEMPLATES.get(action)
    if template is None:
        label = values.get("title") or values.get("name") or entity_id or "unknown"
        text = f'{action} performed on {entity_kind} "{label}"'
    else:
        text = template.format_map(values)

    if pending_sync:
        text += PENDING_SYNC_NOTE
    return text
