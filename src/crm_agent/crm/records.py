"""Conversion of raw Attio payloads into CRMRecord / CRMNote."""

from typing import Any

from crm_agent.crm.types import URL_SEGMENTS, CRMNote, CRMRecord


def first_value(values: dict[str, Any], attribute: str) -> Any:
    """Return the current value of an attribute, or None.

    Attio returns each attribute as a list of entries whose payload key
    depends on the attribute type (value, domain, email_address, ...).
    """
    entries = values.get(attribute) or []
    if not entries:
        return None
    entry = entries[0]
    if not isinstance(entry, dict):
        return entry
    for key in ("value", "full_name", "domain", "email_address", "original_phone_number", "option", "status"):
        if key in entry and entry[key] is not None:
            payload = entry[key]
            if isinstance(payload, dict):
                return payload.get("title") or payload.get("value")
            return payload
    if "currency_value" in entry:
        return entry["currency_value"]
    if "target_record_id" in entry:
        return entry["target_record_id"]
    return None


def _record_id(raw: dict[str, Any]) -> str | None:
    identifier = raw.get("id")
    if isinstance(identifier, dict):
        return identifier.get("record_id")
    return identifier


def _person_name(values: dict[str, Any]) -> str:
    entries = values.get("name") or []
    if not entries:
        return "Unnamed Person"
    entry = entries[0]
    name = entry.get("full_name") or entry.get("value")
    if not name:
        name = f"{entry.get('first_name') or ''} {entry.get('last_name') or ''}".strip()
    return name or "Unnamed Person"


def _domains(values: dict[str, Any]) -> list[str]:
    domains: list[str] = []
    for entry in values.get("domains") or []:
        if isinstance(entry, dict):
            domain = entry.get("domain") or entry.get("value")
        else:
            domain = entry
        if domain:
            domains.append(str(domain))
    return domains


def record_url(app_url: str, workspace: str, entity_type: str, record_id: str | None) -> str | None:
    """Build the web app link for a record.

    Args:
        app_url: Attio web app base URL.
        workspace: Workspace slug.
        entity_type: Singular entity type.
        record_id: Record id.

    Returns:
        Link like https://app.attio.com/<workspace>/company/<id>/overview,
        or None without an id.
    """
    if not record_id:
        return None
    segment = URL_SEGMENTS.get(entity_type, entity_type)
    return f"{app_url}/{workspace}/{segment}/{record_id}/overview"


def format_record(raw: dict[str, Any], entity_type: str, app_url: str, workspace: str) -> CRMRecord:
    """Flatten a raw Attio record into a CRMRecord.

    Args:
        raw: Record object from the Attio API.
        entity_type: Singular entity type of the record.
        app_url: Attio web app base URL.
        workspace: Workspace slug for links.

    Returns:
        Normalized record.
    """
    values = raw.get("values") or {}
    record_id = _record_id(raw)
    url = record_url(app_url, workspace, entity_type, record_id)

    if entity_type == "company":
        domains = _domains(values)
        return CRMRecord(
            id=record_id,
            type="company",
            name=first_value(values, "name") or "Unnamed Company",
            description=first_value(values, "description") or "No description",
            url=url,
            extra={"domains": domains},
        )

    if entity_type == "deal":
        value = first_value(values, "value")
        stage = first_value(values, "stage")
        status = first_value(values, "status") or stage or "Unknown status"
        value_text = "Unknown" if value is None else value
        return CRMRecord(
            id=record_id,
            type="deal",
            name=first_value(values, "name") or "Unnamed Deal",
            description=f"Value: {value_text}, Status: {status}",
            url=url,
            extra={
                "value": value,
                "status": status,
                "company_id": first_value(values, "associated_company"),
            },
        )

    if entity_type == "person":
        email = first_value(values, "email_addresses") or "No email"
        return CRMRecord(
            id=record_id,
            type="person",
            name=_person_name(values),
            description=email,
            url=url,
            extra={"email": email, "job_title": first_value(values, "job_title")},
        )

    return CRMRecord(
        id=record_id,
        type=entity_type,
        name=str(first_value(values, "name") or "Unnamed Record"),
        url=url,
    )


def format_note(raw: dict[str, Any]) -> CRMNote:
    """Flatten a raw Attio note."""
    identifier = raw.get("id")
    note_id = identifier.get("note_id") if isinstance(identifier, dict) else identifier
    content = raw.get("content_plaintext") or raw.get("content_markdown") or ""
    if not content and isinstance(raw.get("content"), dict):
        content = raw["content"].get("content") or ""
    actor = raw.get("created_by_actor") or {}
    return CRMNote(
        id=note_id,
        title=raw.get("title") or "Untitled Note",
        content=content,
        parent_object=raw.get("parent_object"),
        parent_record_id=raw.get("parent_record_id"),
        created_at=raw.get("created_at"),
        created_by=actor.get("name") or actor.get("type"),
    )
