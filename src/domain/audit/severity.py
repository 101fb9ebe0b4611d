"""
Fixed severity classification for audit actions.

The explicit table wins; actions it does not name are classified by analogy
on their suffix, so ``invoice_deleted`` is as critical as ``listing_deleted``.
"""
from src.domain.entities.audit_record import AuditAction, AuditSeverity

SEVERITY_TABLE: dict[str, AuditSeverity] = {
    # Destructive / irreversible
    AuditAction.LISTING_DELETED.value: AuditSeverity.CRITICAL,
    AuditAction.USER_DELETED.value: AuditSeverity.CRITICAL,
    AuditAction.SYSTEM_SHUTDOWN.value: AuditSeverity.CRITICAL,
    # Failed operation outcomes
    AuditAction.BOOKING_FAILED.value: AuditSeverity.ERROR,
    AuditAction.PAYMENT_FAILED.value: AuditSeverity.ERROR,
    # Trust-reducing or reversing a positive state
    AuditAction.LISTING_REJECTED.value: AuditSeverity.WARNING,
    AuditAction.BOOKING_CANCELLED.value: AuditSeverity.WARNING,
    AuditAction.USER_LOGIN_FAILED.value: AuditSeverity.WARNING,
}

_SUFFIX_ANALOGIES: tuple[tuple[str, AuditSeverity], ...] = (
    ("_deleted", AuditSeverity.CRITICAL),
    ("_failed", AuditSeverity.ERROR),
    ("_rejected", AuditSeverity.WARNING),
    ("_cancelled", AuditSeverity.WARNING),
    ("_revoked", AuditSeverity.WARNING),
    ("_suspended", AuditSeverity.WARNING),
)


def classify_severity(action: AuditAction | str) -> AuditSeverity:
    """Return the severity for ``action``; the same action always yields the same result."""
    key = action.value if isinstance(action, AuditAction) else str(action)
    severity = SEVERITY_TABLE.get(key)
    if severity is not None:
        return severity
    for suffix, analogous in _SUFFIX_ANALOGIES:
        if key.endswith(suffix):
            return analogous
    return AuditSeverity.INFO
