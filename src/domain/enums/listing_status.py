from enum import Enum


class ListingStatus(str, Enum):
    """Moderation states a listing moves through."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_public(self) -> bool:
        """Only approved listings may appear on public surfaces."""
        return self is ListingStatus.APPROVED


class ModerationAction(str, Enum):
    """Operations the lifecycle engine can perform on a listing."""

    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    FEATURE = "feature"
    UNFEATURE = "unfeature"
    UPDATE = "update"
    DELETE = "delete"


class CollectionScope(str, Enum):
    """Visibility scope requested when pulling the authoritative collection."""

    PUBLIC = "public"
    PRIVILEGED = "privileged"
