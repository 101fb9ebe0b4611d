"""HTTP client for the marketplace API (listings, audit log, actor directory)."""
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

import httpx
import structlog

from src.application.interfaces.actor_directory import ActorDirectory
from src.application.interfaces.audit_log_gateway import AuditLogGateway, AuditWriteFailedError
from src.application.interfaces.listing_gateway import (
    ListingGateway,
    PersistenceUnavailableError,
    WriteRejectedError,
)
from src.config import settings
from src.domain.audit.filters import AuditFilters, PageRequest
from src.domain.entities.actor import Actor, ActorProfile, ActorRole
from src.domain.entities.audit_record import AuditContext, AuditEntry, AuditRecord, AuditSeverity
from src.domain.entities.listing import Listing, ListingDraft, ListingInvariantError
from src.domain.enums.listing_status import CollectionScope

logger = structlog.get_logger(__name__)


def actor_headers(actor: Actor | None) -> dict[str, str]:
    if actor is None:
        return {}
    return {"X-Actor-Id": actor.id, "X-Actor-Role": actor.role.value}


def entry_to_json(entry: AuditEntry) -> dict[str, Any]:
    context = entry.context or AuditContext()
    return {
        "actor_id": entry.actor_id,
        "action": entry.action,
        "entity_kind": entry.entity_kind,
        "entity_id": entry.entity_id,
        "severity": entry.severity.value,
        "description": entry.description,
        "before": entry.before,
        "after": entry.after,
        "pending_sync": entry.pending_sync,
        "ip_address": context.ip_address,
        "user_agent": context.user_agent,
        "occurred_at": entry.occurred_at.isoformat(),
    }


def record_from_json(data: Mapping[str, Any]) -> AuditRecord:
    context = None
    if data.get("ip_address") or data.get("user_agent"):
        context = AuditContext(ip_address=data.get("ip_address"), user_agent=data.get("user_agent"))
    return AuditRecord(
        id=int(data["id"]),
        actor_id=str(data["actor_id"]),
        action=data["action"],
        entity_kind=data["entity_kind"],
        entity_id=data.get("entity_id"),
        severity=AuditSeverity(data["severity"]),
        description=data["description"],
        before=data.get("before"),
        after=data.get("after"),
        pending_sync=bool(data.get("pending_sync", False)),
        context=context,
        occurred_at=datetime.fromisoformat(data["occurred_at"].replace("Z", "+00:00")),
    )


def filters_to_params(filters: AuditFilters, page: PageRequest) -> dict[str, str | int]:
    params: dict[str, str | int] = {"page": page.page, "page_size": page.page_size}
    for name in ("entity_kind", "action", "actor_id", "entity_id"):
        value = getattr(filters, name)
        if value is not None:
            params[name] = value
    if filters.severity is not None:
        params["severity"] = filters.severity.value
    if filters.occurred_after is not None:
        params["occurred_after"] = filters.occurred_after.isoformat()
    if filters.occurred_before is not None:
        params["occurred_before"] = filters.occurred_before.isoformat()
    if filters.free_text:
        params["q"] = filters.free_text
    return params


class MarketplaceApiClient(ListingGateway, AuditLogGateway, ActorDirectory):
    """
    Thin HTTP wrapper around the marketplace REST API.

    Writes carry the acting actor's identity headers; reads use the identity
    the client was created for. Transport failures and 5xx responses raise
    ``PersistenceUnavailableError``, 4xx responses ``WriteRejectedError``.
    """

    def __init__(
        self,
        base_url: str = settings.marketplace_api_url,
        *,
        actor: Actor | None = None,
        timeout: float = settings.marketplace_api_timeout_seconds,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._actor = actor
        self._timeout = timeout
        self._transport = transport

    def with_actor(self, actor: Actor | None) -> "MarketplaceApiClient":
        return MarketplaceApiClient(
            self._base_url, actor=actor, timeout=self._timeout, transport=self._transport
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        actor: Actor | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = actor_headers(actor or self._actor)
        async with httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                response = await client.request(method, path, headers=headers, **kwargs)
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                logger.error(
                    "marketplace_request_failed",
                    method=method,
                    path=path,
                    status_code=status_code,
                    response=exc.response.text,
                )
                message = f"Marketplace API returned {status_code}: {exc.response.text}"
                if status_code < 500:
                    raise WriteRejectedError(message, status_code) from exc
                raise PersistenceUnavailableError(message) from exc
            except httpx.RequestError as exc:
                logger.error("marketplace_connection_failed", method=method, path=path, error=str(exc))
                raise PersistenceUnavailableError(f"Failed to reach marketplace API: {exc}") from exc

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    async def list_collection(self, scope: CollectionScope) -> list[Listing]:
        """GET /listings?scope=... → {"listings": [...]}"""
        response = await self._request("GET", "/listings", params={"scope": scope.value})
        try:
            return [Listing.from_snapshot(item) for item in response.json()["listings"]]
        except (
            ValueError, KeyError, TypeError, AttributeError, ArithmeticError, ListingInvariantError
        ) as exc:
            logger.error("marketplace_response_malformed", path="/listings", error=str(exc))
            raise PersistenceUnavailableError(f"Malformed listing collection: {exc}") from exc

    async def create_listing(self, actor: Actor, draft: ListingDraft) -> Listing:
        response = await self._request("POST", "/listings", actor=actor, json=draft.to_payload())
        listing = Listing.from_snapshot(response.json())
        logger.info("marketplace_listing_created", listing_id=listing.id, status=listing.status.value)
        return listing

    async def update_listing(
        self, actor: Actor, listing_id: str, changes: Mapping[str, Any]
    ) -> Listing:
        payload = {k: (str(v) if k == "price" else v) for k, v in changes.items()}
        response = await self._request(
            "PATCH", f"/listings/{listing_id}", actor=actor, json=payload
        )
        return Listing.from_snapshot(response.json())

    async def delete_listing(self, actor: Actor, listing_id: str) -> None:
        await self._request("DELETE", f"/listings/{listing_id}", actor=actor)

    # -------------------------------------------------------------------------
    # Audit log
    # -------------------------------------------------------------------------

    async def append_audit_record(self, entry: AuditEntry) -> AuditRecord:
        try:
            response = await self._request(
                "POST",
                "/audit-logs",
                actor=Actor(id=entry.actor_id),
                json=entry_to_json(entry),
            )
        except PersistenceUnavailableError as exc:
            raise AuditWriteFailedError(str(exc)) from exc
        return record_from_json(response.json())

    async def query_audit_records(
        self, filters: AuditFilters, page: PageRequest
    ) -> tuple[list[AuditRecord], int]:
        response = await self._request(
            "GET", "/audit-logs", params=filters_to_params(filters, page)
        )
        data = response.json()
        return [record_from_json(item) for item in data["records"]], int(data["total"])

    # -------------------------------------------------------------------------
    # Actors
    # -------------------------------------------------------------------------

    async def resolve_many(self, actor_ids: Iterable[str]) -> dict[str, ActorProfile]:
        ids = sorted(set(actor_ids))
        if not ids:
            return {}
        response = await self._request("GET", "/actors", params={"ids": ids})
        return {
            str(item["id"]): ActorProfile(
                id=str(item["id"]),
                name=item["name"],
                email=item.get("email"),
                role=ActorRole(item.get("role", ActorRole.USER.value)),
            )
            for item in response.json()["actors"]
        }
