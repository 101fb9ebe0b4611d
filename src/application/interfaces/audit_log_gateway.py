from abc import ABC, abstractmethod

from src.domain.audit.filters import AuditFilters, PageRequest
from src.domain.entities.audit_record import AuditEntry, AuditRecord


class AuditWriteFailedError(Exception):
    """Raised when appending to the audit log fails."""


class AuditLogGateway(ABC):
    """Port for the append-only remote audit log."""

    @abstractmethod
    async def append_audit_record(self, entry: AuditEntry) -> AuditRecord:
        ...

    @abstractmethod
    async def query_audit_records(
        self, filters: AuditFilters, page: PageRequest
    ) -> tuple[list[AuditRecord], int]:
        """Return (records newest first, total matching count)."""
        ...
