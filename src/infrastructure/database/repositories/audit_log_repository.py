from sqlalchemy import ColumnElement, and_, func, or_, select, true
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.application.interfaces.audit_log_gateway import AuditLogGateway, AuditWriteFailedError
from src.application.interfaces.listing_gateway import PersistenceUnavailableError
from src.domain.audit.filters import AuditFilters, PageRequest
from src.domain.entities.audit_record import AuditContext, AuditEntry, AuditRecord, AuditSeverity
from src.infrastructure.database.models import AuditLogModel
from src.infrastructure.database.repositories.listing_repository import as_utc


def _to_domain(model: AuditLogModel) -> AuditRecord:
    context = None
    if model.ip_address or model.user_agent:
        context = AuditContext(ip_address=model.ip_address, user_agent=model.user_agent)
    return AuditRecord(
        id=model.id,
        actor_id=model.actor_id,
        action=model.action,
        entity_kind=model.entity_kind,
        entity_id=model.entity_id,
        severity=AuditSeverity(model.severity),
        description=model.description,
        before=model.before,
        after=model.after,
        pending_sync=model.pending_sync,
        context=context,
        occurred_at=as_utc(model.occurred_at),
    )


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _where(filters: AuditFilters) -> ColumnElement[bool]:
    clauses: list[ColumnElement[bool]] = []
    if filters.entity_kind is not None:
        clauses.append(AuditLogModel.entity_kind == filters.entity_kind)
    if filters.action is not None:
        clauses.append(AuditLogModel.action == filters.action)
    if filters.severity is not None:
        clauses.append(AuditLogModel.severity == filters.severity)
    if filters.actor_id is not None:
        clauses.append(AuditLogModel.actor_id == filters.actor_id)
    if filters.entity_id is not None:
        clauses.append(AuditLogModel.entity_id == filters.entity_id)
    if filters.occurred_after is not None:
        clauses.append(AuditLogModel.occurred_at >= filters.occurred_after)
    if filters.occurred_before is not None:
        clauses.append(AuditLogModel.occurred_at <= filters.occurred_before)
    if filters.free_text:
        pattern = f"%{_escape_like(filters.free_text.lower())}%"
        clauses.append(
            or_(
                func.lower(AuditLogModel.action).like(pattern, escape="\\"),
                func.lower(AuditLogModel.entity_kind).like(pattern, escape="\\"),
                func.lower(func.coalesce(AuditLogModel.entity_id, "")).like(pattern, escape="\\"),
                func.lower(AuditLogModel.actor_id).like(pattern, escape="\\"),
                func.lower(AuditLogModel.description).like(pattern, escape="\\"),
            )
        )
    return and_(true(), *clauses)


class SqlAlchemyAuditLogRepository(AuditLogGateway):
    """Append-only audit log table. Rows are inserted and read, never updated."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append_audit_record(self, entry: AuditEntry) -> AuditRecord:
        context = entry.context or AuditContext()
        model = AuditLogModel(
            actor_id=entry.actor_id,
            action=entry.action,
            entity_kind=entry.entity_kind,
            entity_id=entry.entity_id,
            severity=entry.severity,
            description=entry.description,
            before=entry.before,
            after=entry.after,
            pending_sync=entry.pending_sync,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            occurred_at=entry.occurred_at,
        )
        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as exc:
            raise AuditWriteFailedError(f"Failed to append audit record: {exc}") from exc
        return entry.written(model.id)

    async def query_audit_records(
        self, filters: AuditFilters, page: PageRequest
    ) -> tuple[list[AuditRecord], int]:
        where = _where(filters)
        query = (
            select(AuditLogModel)
            .where(where)
            .order_by(AuditLogModel.id.desc())
            .limit(page.page_size)
            .offset(page.offset)
        )
        count_query = select(func.count()).select_from(AuditLogModel).where(where)

        try:
            result = await self._session.execute(query)
            models = result.scalars().all()

            count_result = await self._session.execute(count_query)
            total = count_result.scalar_one()
        except SQLAlchemyError as exc:
            raise PersistenceUnavailableError(f"Failed to query audit records: {exc}") from exc

        return [_to_domain(m) for m in models], total
