"""Types and errors for the CRM adapter.

Attio stores every attribute as a list of historic values; CRMRecord is the
flattened view the tools hand back to the model.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

EntityType = Literal["company", "person", "deal"]

# Singular entity type -> Attio object slug
OBJECT_SLUGS: dict[str, str] = {
    "company": "companies",
    "person": "people",
    "deal": "deals",
}

# Singular entity type -> path segment used in web app links
URL_SEGMENTS: dict[str, str] = {
    "company": "company",
    "person": "person",
    "deal": "deals",
}


def object_slug(entity_type: str) -> str:
    """Map an entity type to its Attio object slug.

    Accepts either the singular form ("company") or the slug itself
    ("companies") so tool input can use both.

    Args:
        entity_type: Singular entity type or object slug.

    Returns:
        Attio object slug.

    Raises:
        CRMRequestError: If the entity type is not supported.
    """
    if entity_type in OBJECT_SLUGS:
        return OBJECT_SLUGS[entity_type]
    if entity_type in OBJECT_SLUGS.values():
        return entity_type
    raise CRMRequestError(f"Unsupported entity type: {entity_type}")


def entity_type_of(slug: str) -> str:
    """Map an Attio object slug back to the singular entity type."""
    for entity_type, object_name in OBJECT_SLUGS.items():
        if object_name == slug:
            return entity_type
    return slug


class CRMRecord(BaseModel):
    """Normalized CRM record as returned to the model."""

    id: str | None = Field(..., description="Attio record id")
    type: str = Field(..., description="Entity type (company, person, deal)")
    name: str = Field(..., description="Display name")
    description: str = Field("", description="Short summary line")
    url: str | None = Field(None, description="Link to the record in the Attio web app")
    extra: dict[str, Any] = Field(default_factory=dict, description="Type-specific fields")

    def to_output(self) -> dict[str, Any]:
        """Flatten to the dict shape tools return."""
        data = self.model_dump(exclude={"extra"})
        data.update(self.extra)
        return data


class CRMNote(BaseModel):
    """Normalized note attached to a CRM record."""

    id: str | None
    title: str
    content: str
    parent_object: str | None = None
    parent_record_id: str | None = None
    created_at: str | None = None
    created_by: str | None = None


# Error hierarchy


class CRMError(Exception):
    """Base exception for CRM adapter failures."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize with a message and the HTTP status, if any."""
        super().__init__(message)
        self.status_code = status_code


class CRMConnectionError(CRMError):
    """Raised when the CRM API cannot be reached."""

    pass


class CRMTimeout(CRMError):
    """Raised when a CRM request times out."""

    pass


class CRMRateLimit(CRMError):
    """Raised when the CRM API returns 429."""

    pass


class CRMNotFound(CRMError):
    """Raised when the requested record or note does not exist."""

    pass


class CRMRequestError(CRMError):
    """Raised for rejected requests and unexpected error statuses."""

    pass
