from datetime import datetime

from pydantic import BaseModel

from src.domain.entities.actor import ActorProfile, ActorRole
from src.domain.entities.audit_record import AuditRecord, AuditSeverity


class AuditRecordCreateRequest(BaseModel):
    actor_id: str
    action: str
    entity_kind: str
    entity_id: str | None = None
    severity: AuditSeverity | None = None
    description: str | None = None
    before: str | None = None
    after: str | None = None
    pending_sync: bool = False
    ip_address: str | None = None
    user_agent: str | None = None
    occurred_at: datetime | None = None


class AuditRecordResponse(BaseModel):
    id: int
    actor_id: str
    action: str
    entity_kind: str
    entity_id: str | None
    severity: AuditSeverity
    description: str
    before: str | None
    after: str | None
    pending_sync: bool
    ip_address: str | None
    user_agent: str | None
    occurred_at: datetime

    @classmethod
    def from_domain(cls, record: AuditRecord) -> "AuditRecordResponse":
        context = record.context
        return cls(
            id=record.id,
            actor_id=record.actor_id,
            action=record.action,
            entity_kind=record.entity_kind,
            entity_id=record.entity_id,
            severity=record.severity,
            description=record.description,
            before=record.before,
            after=record.after,
            pending_sync=record.pending_sync,
            ip_address=context.ip_address if context else None,
            user_agent=context.user_agent if context else None,
            occurred_at=record.occurred_at,
        )


class AuditRecordPageResponse(BaseModel):
    records: list[AuditRecordResponse]
    total: int
    page: int
    page_size: int


class ActorResponse(BaseModel):
    id: str
    name: str
    email: str | None = None
    role: ActorRole

    @classmethod
    def from_domain(cls, profile: ActorProfile) -> "ActorResponse":
        return cls(id=profile.id, name=profile.name, email=profile.email, role=profile.role)


class ActorListResponse(BaseModel):
    actors: list[ActorResponse]
