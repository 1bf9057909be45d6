"""Async Attio REST client.

All network access to the CRM goes through AttioClient. Tool handlers call it;
the orchestrator never does.
"""

import asyncio
import time
from typing import Any

import httpx

from crm_agent.config import get_settings
from crm_agent.crm.matching import (
    build_advanced_filter,
    build_time_filter,
    company_search_filter,
    generate_search_variations,
    related_filter,
    relevance_score,
)
from crm_agent.crm.records import first_value, format_note, format_record
from crm_agent.crm.types import (
    CRMConnectionError,
    CRMError,
    CRMNote,
    CRMNotFound,
    CRMRateLimit,
    CRMRecord,
    CRMRequestError,
    CRMTimeout,
    entity_type_of,
    object_slug,
)
from crm_agent.telemetry import (
    CRM_REQUEST_COMPLETED,
    CRM_REQUEST_FAILED,
    CRM_REQUEST_RETRY,
    get_logger,
)

log = get_logger(__name__)

MAX_SEARCH_RESULTS = 10
DEFAULT_NOTE_TITLE = "Update from Slack"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


class AttioClient:
    """Client for the Attio v2 REST API.

    Usage:
        async with AttioClient() as crm:
            results = await crm.search("Acme Corp")
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        app_url: str | None = None,
        workspace_slug: str | None = None,
        timeout_seconds: float | None = None,
        max_retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client, falling back to settings for unset values.

        Args:
            api_key: Attio bearer token.
            base_url: REST API base URL.
            app_url: Web app base URL for record links.
            workspace_slug: Workspace slug for record links.
            timeout_seconds: Per-request timeout.
            max_retries: Retries for timeouts, 429 and 5xx.
            transport: Optional httpx transport (tests use MockTransport).

        Raises:
            ValueError: If no API key is configured.
        """
        settings = get_settings()
        api_key = api_key or settings.attio_api_key
        if not api_key:
            raise ValueError(
                "Attio API key not configured. Set CRM_AGENT_ATTIO_API_KEY environment variable."
            )

        self.app_url = (app_url or settings.attio_app_url).rstrip("/")
        self.workspace_slug = workspace_slug or settings.attio_workspace_slug
        self.max_retries = settings.attio_max_retries if max_retries is None else max_retries
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.attio_base_url).rstrip("/"),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout_seconds or settings.attio_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "AttioClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        idempotent: bool | None = None,
    ) -> dict[str, Any]:
        """Send one request with retry and error mapping.

        429 is retried with exponential backoff for every request, since Attio
        rejected it before doing any work. Timeouts and 5xx are retried only
        for idempotent requests: a write whose response was lost may already
        have been applied. Other failures are raised immediately.

        Args:
            method: HTTP method.
            path: Path relative to the API base URL.
            json: Optional JSON body.
            params: Optional query parameters.
            idempotent: Whether the request is safe to replay. Defaults to
                True for GET and False otherwise.

        Returns:
            Decoded JSON body ({} for empty responses).

        Raises:
            CRMError: Mapped failure.
        """
        if idempotent is None:
            idempotent = method == "GET"
        attempt = 0
        start = time.monotonic()
        last_error: CRMError | None = None

        while attempt <= self.max_retries:
            retryable = False
            try:
                response = await self._client.request(method, path, json=json, params=params)
                response.raise_for_status()
                log.debug(
                    CRM_REQUEST_COMPLETED,
                    method=method,
                    path=path,
                    status=response.status_code,
                    latency_ms=round((time.monotonic() - start) * 1000, 1),
                )
                if not response.content:
                    return {}
                return response.json()

            except httpx.TimeoutException as e:
                last_error = CRMTimeout(f"Attio request timed out: {method} {path}: {e}")
                retryable = idempotent
            except httpx.ConnectError as e:
                last_error = CRMConnectionError(f"Failed to connect to Attio: {e}")
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                message = _error_message(e.response)
                if status == 404:
                    last_error = CRMNotFound(f"Not found: {path}", status_code=status)
                elif status == 429:
                    last_error = CRMRateLimit(f"Attio rate limit exceeded: {message}", status)
                    retryable = True
                elif status >= 500:
                    last_error = CRMRequestError(f"Attio server error {status}: {message}", status)
                    retryable = idempotent
                else:
                    last_error = CRMRequestError(f"Attio rejected request ({status}): {message}", status)
            except httpx.RequestError as e:
                last_error = CRMConnectionError(f"Attio request error: {e}")
            except ValueError as e:
                last_error = CRMRequestError(f"Invalid JSON from Attio: {e}")

            if not retryable or attempt >= self.max_retries:
                break
            wait_time = 2**attempt
            log.warning(
                CRM_REQUEST_RETRY,
                method=method,
                path=path,
                attempt=attempt + 1,
                wait_time=wait_time,
            )
            await asyncio.sleep(wait_time)
            attempt += 1

        if last_error is None:
            last_error = CRMRequestError(f"Attio request failed: {method} {path}")
        log.warning(
            CRM_REQUEST_FAILED,
            method=method,
            path=path,
            error=str(last_error),
            error_type=type(last_error).__name__,
        )
        raise last_error

    def _format(self, raw: dict[str, Any], entity_type: str) -> CRMRecord:
        return format_record(raw, entity_type, self.app_url, self.workspace_slug)

    async def _query(
        self,
        entity_type: str,
        filter_: dict[str, Any],
        limit: int,
        sorts: list[dict[str, Any]] | None = None,
    ) -> list[dict[str, Any]]:
        body: dict[str, Any] = {"filter": filter_, "limit": limit}
        if sorts:
            body["sorts"] = sorts
        data = await self._request(
            "POST",
            f"/objects/{object_slug(entity_type)}/records/query",
            json=body,
            idempotent=True,
        )
        return data.get("data") or []

    # Search

    async def search_companies(self, query: str, limit: int = MAX_SEARCH_RESULTS) -> list[CRMRecord]:
        """Fuzzy company search over name and domains, ranked by relevance."""
        variations = generate_search_variations(query)
        raw_records = await self._query("company", company_search_filter(variations), limit=20)

        scored: list[tuple[int, CRMRecord]] = []
        for raw in raw_records:
            record = self._format(raw, "company")
            scored.append((relevance_score(query, record.name, record.extra["domains"]), record))
        scored.sort(key=lambda item: item[0], reverse=True)
        return [record for _, record in scored[:limit]]

    async def search_deals(self, query: str, limit: int = 5) -> list[CRMRecord]:
        """Deals whose name contains the query."""
        raw_records = await self._query("deal", {"name": {"$contains": query}}, limit=limit)
        return [self._format(raw, "deal") for raw in raw_records]

    async def search_people(self, query: str, limit: int = 5) -> list[CRMRecord]:
        """People whose name contains the query."""
        raw_records = await self._query("person", {"name": {"$contains": query}}, limit=limit)
        return [self._format(raw, "person") for raw in raw_records]

    async def search(self, query: str, entity_type: str = "all") -> list[CRMRecord]:
        """Search companies, deals and people concurrently.

        A failing sub-search contributes no results; if every requested kind
        fails the first error is raised.

        Args:
            query: Search text.
            entity_type: "company", "person", "deal" or "all".

        Returns:
            At most MAX_SEARCH_RESULTS records, companies first.

        Raises:
            CRMError: If every sub-search failed.
        """
        searches = {
            "company": self.search_companies,
            "deal": self.search_deals,
            "person": self.search_people,
        }
        kinds = list(searches) if entity_type == "all" else [entity_type]
        if any(kind not in searches for kind in kinds):
            raise CRMRequestError(f"Unsupported entity type: {entity_type}")

        outcomes = await asyncio.gather(
            *(searches[kind](query) for kind in kinds), return_exceptions=True
        )

        results: list[CRMRecord] = []
        errors: list[BaseException] = []
        for kind, outcome in zip(kinds, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                log.warning("crm_search_partial_failure", entity_type=kind, error=str(outcome))
                errors.append(outcome)
                continue
            results.extend(outcome)

        if errors and len(errors) == len(kinds):
            raise errors[0]
        return results[:MAX_SEARCH_RESULTS]

    async def advanced_search(
        self,
        entity_type: str,
        query: str | None = None,
        filters: dict[str, Any] | None = None,
        limit: int = 20,
        sort_by: str | None = None,
        sort_order: str = "desc",
    ) -> list[CRMRecord]:
        """Query one object type with attribute filters."""
        filter_ = build_advanced_filter(query, filters or {}, entity_type)
        sorts = None
        if sort_by:
            sorts = [{"attribute": sort_by, "direction": "asc" if sort_order == "asc" else "desc"}]
        raw_records = await self._query(entity_type, filter_, limit=limit, sorts=sorts)
        return [self._format(raw, entity_type) for raw in raw_records]

    async def search_related(
        self,
        source_entity_type: str,
        source_entity_id: str,
        target_entity_type: str,
        relationship_type: str | None = None,
        limit: int = 50,
    ) -> list[CRMRecord]:
        """Find records of one type related to a known record.

        Args:
            source_entity_type: Type of the known record.
            source_entity_id: Id of the known record.
            target_entity_type: Type of records to return.
            relationship_type: Attribute on the target that references the
                source (overrides the defaults).
            limit: Maximum number of results.

        Returns:
            Related records (possibly empty).
        """
        source = await self.get_raw_record(source_entity_type, source_entity_id)

        if source_entity_type == "deal" and target_entity_type == "company" and not relationship_type:
            company_id = first_value(source.get("values") or {}, "associated_company")
            if not company_id:
                return []
            return [await self.get_record("company", company_id)]

        filter_ = related_filter(
            source_entity_type, source_entity_id, target_entity_type, relationship_type
        )
        if not filter_:
            raise CRMRequestError(
                f"No known relationship from {source_entity_type} to {target_entity_type}"
            )
        raw_records = await self._query(target_entity_type, filter_, limit=limit)
        return [self._format(raw, target_entity_type) for raw in raw_records]

    async def search_by_time_range(
        self,
        entity_type: str,
        start_date: str | None = None,
        end_date: str | None = None,
        time_field: str = "created_at",
        limit: int = 20,
    ) -> list[CRMRecord]:
        """Records whose time_field falls in the range, newest first."""
        filter_ = build_time_filter(time_field, start_date, end_date)
        sorts = [{"attribute": time_field, "direction": "desc"}]
        raw_records = await self._query(entity_type, filter_, limit=limit, sorts=sorts)
        return [self._format(raw, entity_type) for raw in raw_records]

    # Records

    async def get_raw_record(self, entity_type: str, record_id: str) -> dict[str, Any]:
        """Fetch one record as returned by Attio."""
        data = await self._request("GET", f"/objects/{object_slug(entity_type)}/records/{record_id}")
        return data.get("data") or {}

    async def get_record(self, entity_type: str, record_id: str) -> CRMRecord:
        """Fetch one record, normalized."""
        return self._format(await self.get_raw_record(entity_type, record_id), entity_type)

    async def create_record(self, entity_type: str, values: dict[str, Any]) -> CRMRecord:
        """Create a record from Attio attribute values."""
        data = await self._request(
            "POST",
            f"/objects/{object_slug(entity_type)}/records",
            json={"data": {"values": values}},
        )
        return self._format(data.get("data") or {}, entity_type)

    async def update_record(
        self, entity_type: str, record_id: str, values: dict[str, Any]
    ) -> CRMRecord:
        """Patch attribute values on an existing record."""
        data = await self._request(
            "PATCH",
            f"/objects/{object_slug(entity_type)}/records/{record_id}",
            json={"data": {"values": values}},
        )
        return self._format(data.get("data") or {}, entity_type)

    # Notes

    async def create_note(
        self,
        entity_type: str,
        record_id: str,
        content: str,
        title: str | None = None,
    ) -> CRMNote:
        """Attach a plaintext note to a record."""
        data = await self._request(
            "POST",
            "/notes",
            json={
                "data": {
                    "parent_object": object_slug(entity_type),
                    "parent_record_id": record_id,
                    "title": title or DEFAULT_NOTE_TITLE,
                    "format": "plaintext",
                    "content": content,
                }
            },
        )
        return format_note(data.get("data") or {})

    async def list_notes(
        self,
        entity_type: str | None = None,
        record_id: str | None = None,
        limit: int = 20,
    ) -> list[CRMNote]:
        """List notes, optionally scoped to one record."""
        params: dict[str, Any] = {"limit": limit}
        if entity_type:
            params["parent_object"] = object_slug(entity_type)
        if record_id:
            params["parent_record_id"] = record_id
        data = await self._request("GET", "/notes", params=params)
        notes = [format_note(raw) for raw in data.get("data") or []]
        notes.sort(key=lambda note: note.created_at or "", reverse=True)
        return notes

    async def get_note(self, note_id: str) -> CRMNote:
        """Fetch one note."""
        data = await self._request("GET", f"/notes/{note_id}")
        return format_note(data.get("data") or {})

    async def delete_note(self, note_id: str) -> dict[str, Any]:
        """Delete a note, returning a description of what was removed.

        Raises:
            CRMNotFound: If the note does not exist.
        """
        note = await self.get_note(note_id)
        parent_name = None
        if note.parent_object and note.parent_record_id:
            parent_type = entity_type_of(note.parent_object)
            try:
                parent_name = (await self.get_record(parent_type, note.parent_record_id)).name
            except CRMError as e:
                log.debug("crm_note_parent_lookup_failed", note_id=note_id, error=str(e))

        await self._request("DELETE", f"/notes/{note_id}")
        target = f" from {parent_name}" if parent_name else ""
        return {
            "note_id": note_id,
            "title": note.title,
            "parent_record_id": note.parent_record_id,
            "parent_name": parent_name,
            "message": f'Deleted note "{note.title}"{target}',
        }
