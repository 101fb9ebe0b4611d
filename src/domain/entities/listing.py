from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import uuid4

from src.domain.entities.actor import Actor
from src.domain.enums.listing_status import ListingStatus, ModerationAction
from src.domain.state_machine.moderation_state_machine import ModerationStateMachine

_state_machine = ModerationStateMachine()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ListingValidationError(Exception):
    """Raised when a payload fails required-field or content checks."""

    def __init__(self, message: str, field_name: str | None = None) -> None:
        self.field_name = field_name
        super().__init__(message)


class ListingInvariantError(Exception):
    """Raised when a listing would be featured without being approved."""


# Descriptive payload: carried through the lifecycle, never interpreted.
CONTENT_FIELDS: frozenset[str] = frozenset(
    {
        "title",
        "description",
        "location",
        "price",
        "price_unit",
        "bedrooms",
        "bathrooms",
        "capacity",
        "amenities",
        "images",
    }
)

PROTECTED_FIELDS: frozenset[str] = frozenset(
    {"id", "owner_id", "status", "featured", "created_at", "updated_at"}
)


def _coerce_content(changes: Mapping[str, Any]) -> dict[str, Any]:
    coerced: dict[str, Any] = {}
    for name, value in changes.items():
        if name == "price":
            try:
                coerced[name] = Decimal(str(value))
            except (InvalidOperation, ValueError) as exc:
                raise ListingValidationError("Valid price is required", "price") from exc
        elif name in ("amenities", "images"):
            coerced[name] = tuple(value or ())
        elif name in ("bedrooms", "bathrooms", "capacity"):
            try:
                coerced[name] = int(value)
            except (TypeError, ValueError) as exc:
                raise ListingValidationError(f"{name} must be a whole number", name) from exc
        else:
            coerced[name] = value
    return coerced


def _validate_content(
    *,
    title: str,
    description: str,
    location: str,
    price: Decimal,
    bedrooms: int,
    bathrooms: int,
    capacity: int,
    **_: Any,
) -> None:
    for name, value in (("title", title), ("description", description), ("location", location)):
        if not isinstance(value, str) or not value.strip():
            raise ListingValidationError(f"Property {name} is required", name)
    if price.is_nan() or price <= 0:
        raise ListingValidationError("Valid price is required", "price")
    for name, value in (("bedrooms", bedrooms), ("bathrooms", bathrooms), ("capacity", capacity)):
        if value < 0:
            raise ListingValidationError(f"{name} cannot be negative", name)


@dataclass(frozen=True)
class ListingDraft:
    """Submission payload for a new listing."""

    title: str = ""
    description: str = ""
    location: str = ""
    price: Decimal = Decimal("0")
    price_unit: str = "night"
    bedrooms: int = 0
    bathrooms: int = 0
    capacity: int = 1
    amenities: tuple[str, ...] = ()
    images: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ListingDraft":
        unknown = set(payload) - CONTENT_FIELDS
        if unknown:
            raise ListingValidationError(f"Unknown listing fields: {sorted(unknown)}")
        return cls(**_coerce_content(payload))

    def validate(self) -> None:
        """Raise ListingValidationError if a required field is missing or invalid."""
        _validate_content(**self.content())

    def content(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def to_payload(self) -> dict[str, Any]:
        return {
            **self.content(),
            "price": str(self.price),
            "amenities": list(self.amenities),
            "images": list(self.images),
        }


@dataclass(frozen=True)
class Listing:
    """
    A property record subject to moderation.

    Instances are immutable; every transition returns a new Listing with a
    fresh ``updated_at``. The featured-implies-approved invariant is checked
    on construction, so no Listing object can ever violate it.
    """

    # Identity
    id: str = field(default_factory=lambda: uuid4().hex)
    owner_id: str = ""

    # Moderation
    status: ListingStatus = ListingStatus.PENDING
    featured: bool = False

    # Timestamps
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    # Descriptive payload
    title: str = ""
    description: str = ""
    location: str = ""
    price: Decimal = Decimal("0")
    price_unit: str = "night"
    bedrooms: int = 0
    bathrooms: int = 0
    capacity: int = 1
    amenities: tuple[str, ...] = ()
    images: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.featured and self.status is not ListingStatus.APPROVED:
            raise ListingInvariantError(
                f"Listing {self.id} cannot be featured while {self.status.value}."
            )

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def create_from_draft(
        cls,
        draft: ListingDraft,
        owner: Actor,
        *,
        listing_id: str | None = None,
        now: datetime | None = None,
    ) -> "Listing":
        draft.validate()
        timestamp = now or _utcnow()
        return cls(
            id=listing_id or uuid4().hex,
            owner_id=owner.id,
            status=_state_machine.initial_status_for(owner),
            featured=False,
            created_at=timestamp,
            updated_at=timestamp,
            **draft.content(),
        )

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    @property
    def is_public(self) -> bool:
        return self.status.is_public

    def moderate(self, action: ModerationAction) -> "Listing":
        """Apply approve/reject/feature/unfeature, validated by the state machine."""
        to_status, featured = _state_machine.resolve(action, self.status, self.featured)
        return replace(self, status=to_status, featured=featured, updated_at=_utcnow())

    def with_content(self, changes: Mapping[str, Any]) -> "Listing":
        """Return a copy with descriptive fields changed; status is untouched."""
        protected = set(changes) & PROTECTED_FIELDS
        if protected:
            raise ListingValidationError(
                f"Fields cannot be changed through a content update: {sorted(protected)}"
            )
        unknown = set(changes) - CONTENT_FIELDS
        if unknown:
            raise ListingValidationError(f"Unknown listing fields: {sorted(unknown)}")
        if not changes:
            raise ListingValidationError("Content update contains no changes")

        updated = replace(self, updated_at=_utcnow(), **_coerce_content(changes))
        _validate_content(**updated.content())
        return updated

    def apply_changes(self, changes: Mapping[str, Any]) -> "Listing":
        """
        Apply a partial update as received by the authoritative store.

        Accepts ``status``/``featured`` alongside content fields. Rejecting a
        listing clears ``featured`` in the same step.
        """
        immutable = set(changes) & {"id", "owner_id", "created_at", "updated_at"}
        if immutable:
            raise ListingValidationError(f"Fields are immutable: {sorted(immutable)}")

        content = {k: v for k, v in changes.items() if k not in ("status", "featured")}
        listing = self.with_content(content) if content else self

        try:
            status = ListingStatus(changes.get("status", listing.status))
        except ValueError as exc:
            raise ListingValidationError(f"Unknown status: {changes['status']}", "status") from exc
        featured = bool(changes.get("featured", listing.featured))
        if status is not ListingStatus.APPROVED and "featured" not in changes:
            featured = False
        try:
            return replace(listing, status=status, featured=featured, updated_at=_utcnow())
        except ListingInvariantError as exc:
            raise ListingValidationError(str(exc), "featured") from exc

    # -------------------------------------------------------------------------
    # Serialisation
    # -------------------------------------------------------------------------

    def content(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in CONTENT_FIELDS}

    def to_snapshot(self) -> dict[str, Any]:
        """JSON-safe representation used for audit before/after values and the wire."""
        data = asdict(self)
        data.update(
            status=self.status.value,
            created_at=self.created_at.isoformat(),
            updated_at=self.updated_at.isoformat(),
            price=str(self.price),
            amenities=list(self.amenities),
            images=list(self.images),
        )
        return data

    @classmethod
    def from_snapshot(cls, data: Mapping[str, Any]) -> "Listing":
        return cls(
            id=str(data["id"]),
            owner_id=str(data.get("owner_id", "")),
            status=ListingStatus(data.get("status", ListingStatus.PENDING.value)),
            featured=bool(data.get("featured", False)),
            created_at=_parse_datetime(data["created_at"]),
            updated_at=_parse_datetime(data["updated_at"]),
            title=data.get("title", ""),
            description=data.get("description", ""),
            location=data.get("location", ""),
            price=Decimal(str(data.get("price", "0"))),
            price_unit=data.get("price_unit", "night"),
            bedrooms=int(data.get("bedrooms", 0)),
            bathrooms=int(data.get("bathrooms", 0)),
            capacity=int(data.get("capacity", 1)),
            amenities=tuple(data.get("amenities") or ()),
            images=tuple(data.get("images") or ()),
        )
