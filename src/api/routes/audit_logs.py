from datetime import date, datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from src.api.dependencies import (
    get_audit_export,
    get_audit_repo,
    get_current_actor,
    get_privileged_actor,
)
from src.api.schemas.audit_schemas import (
    AuditRecordCreateRequest,
    AuditRecordPageResponse,
    AuditRecordResponse,
)
from src.application.interfaces.audit_log_gateway import AuditLogGateway, AuditWriteFailedError
from src.application.use_cases.query_audit_feed import ExportAuditFeedCsv
from src.config import settings
from src.domain.audit.descriptions import describe
from src.domain.audit.filters import AuditFilters, PageRequest
from src.domain.audit.severity import classify_severity
from src.domain.entities.actor import Actor
from src.domain.entities.audit_record import AuditContext, AuditEntry, AuditSeverity, load_snapshot

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/audit-logs", tags=["audit"])


def _filters(
    entity_kind: str | None = Query(default=None),
    action: str | None = Query(default=None),
    severity: AuditSeverity | None = Query(default=None),
    actor_id: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    occurred_after: datetime | None = Query(default=None),
    occurred_before: datetime | None = Query(default=None),
    q: str | None = Query(default=None, description="Case-insensitive free-text match"),
) -> AuditFilters:
    return AuditFilters(
        entity_kind=entity_kind,
        action=action,
        severity=severity,
        actor_id=actor_id,
        entity_id=entity_id,
        occurred_after=occurred_after,
        occurred_before=occurred_before,
        free_text=q,
    )


@router.post("", response_model=AuditRecordResponse, status_code=status.HTTP_201_CREATED)
async def append_audit_record(
    body: AuditRecordCreateRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    audit_repo: AuditLogGateway = Depends(get_audit_repo),
) -> AuditRecordResponse:
    if body.actor_id != actor.id and not actor.has_moderation_privilege:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Audit records may only be written for the calling actor.",
        )

    description = body.description
    if description is None:
        subject = load_snapshot(body.after) or load_snapshot(body.before)
        description = describe(
            body.action, body.entity_kind, body.entity_id, subject, pending_sync=body.pending_sync
        )

    entry = AuditEntry(
        actor_id=body.actor_id,
        action=body.action,
        entity_kind=body.entity_kind,
        entity_id=body.entity_id,
        severity=body.severity or classify_severity(body.action),
        description=description,
        before=body.before,
        after=body.after,
        pending_sync=body.pending_sync,
        context=AuditContext(
            ip_address=body.ip_address or (request.client.host if request.client else None),
            user_agent=body.user_agent or request.headers.get("user-agent"),
        ),
        occurred_at=body.occurred_at or datetime.now(timezone.utc),
    )
    try:
        record = await audit_repo.append_audit_record(entry)
    except AuditWriteFailedError as exc:
        logger.error("audit_append_failed", action=body.action, error=str(exc))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    logger.info("audit_record_appended", record_id=record.id, action=record.action)
    return AuditRecordResponse.from_domain(record)


@router.get("", response_model=AuditRecordPageResponse)
async def query_audit_records(
    filters: AuditFilters = Depends(_filters),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=settings.audit_page_size_default, ge=1),
    _: Actor = Depends(get_privileged_actor),
    audit_repo: AuditLogGateway = Depends(get_audit_repo),
) -> AuditRecordPageResponse:
    """Newest first. ``page_size`` is clamped to the configured maximum."""
    page_request = PageRequest(page=page, page_size=page_size).clamped(settings.audit_page_size_max)
    records, total = await audit_repo.query_audit_records(filters, page_request)
    return AuditRecordPageResponse(
        records=[AuditRecordResponse.from_domain(r) for r in records],
        total=total,
        page=page_request.page,
        page_size=page_request.page_size,
    )


@router.get("/export.csv")
async def export_audit_records(
    filters: AuditFilters = Depends(_filters),
    _: Actor = Depends(get_privileged_actor),
    export: ExportAuditFeedCsv = Depends(get_audit_export),
) -> Response:
    content = await export.execute(filters)
    filename = f"audit-logs-{date.today().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
