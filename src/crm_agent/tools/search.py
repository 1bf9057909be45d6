"""Read-only CRM tools: search, filtered search, related records, time ranges."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from crm_agent.tools.types import ToolContext, ToolDefinition

EMPTY_SEARCH_HINT = (
    "No matches. Try part of the name, a spelling variant, or drop words like 'The' or 'Inc'."
)

ENTITY_ID_DESCRIPTION = (
    'EXACT record id from search results (e.g. "ffc6013f-2148-4427-8c1f-fec7b3f36554"). '
    "Never a name or slug."
)


def _results(records: list[Any], **extra: Any) -> dict[str, Any]:
    output: dict[str, Any] = {
        "results": [record.to_output() for record in records],
        "count": len(records),
    }
    output.update(extra)
    if not records:
        output["hint"] = EMPTY_SEARCH_HINT
    return output


# search_crm


class SearchCrmInput(BaseModel):
    query: str = Field(..., min_length=1, description="Company, person or deal name")
    entity_type: Literal["company", "person", "deal", "all"] = Field(
        "all", description="Type of entity to search for"
    )


async def search_crm_executor(args: SearchCrmInput, ctx: ToolContext) -> dict[str, Any]:
    records = await ctx.crm.search(args.query, args.entity_type)
    return _results(records, query=args.query)


search_crm_tool = ToolDefinition(
    name="search_crm",
    description=(
        "Search for companies, deals, and people in the CRM by name. Supports fuzzy "
        "matching. Returns ids and links for each match."
    ),
    capability="search",
    input_model=SearchCrmInput,
)


# advanced_search


class AdvancedSearchFilters(BaseModel):
    deal_value_min: float | None = Field(None, description="Minimum deal value (USD)")
    deal_value_max: float | None = Field(None, description="Maximum deal value (USD)")
    status: str | None = Field(None, description="Status to match exactly")
    stage: str | None = Field(None, description="Deal stage to match exactly")
    created_after: str | None = Field(None, description="Created on/after (YYYY-MM-DD)")
    created_before: str | None = Field(None, description="Created on/before (YYYY-MM-DD)")
    updated_after: str | None = Field(None, description="Updated on/after (YYYY-MM-DD)")
    updated_before: str | None = Field(None, description="Updated on/before (YYYY-MM-DD)")
    industry: str | None = Field(None, description="Company industry")
    location: str | None = Field(None, description="Location substring")


class AdvancedSearchInput(BaseModel):
    entity_type: Literal["company", "person", "deal"] = Field(
        ..., description="Type of entity to search"
    )
    query: str | None = Field(None, description="Optional name text to match")
    filters: AdvancedSearchFilters = Field(
        default_factory=AdvancedSearchFilters, description="Attribute filters"
    )
    limit: int = Field(20, ge=1, le=100, description="Maximum number of results")
    sort_by: str | None = Field(None, description="Attribute to sort by")
    sort_order: Literal["asc", "desc"] = Field("desc", description="Sort direction")


async def advanced_search_executor(args: AdvancedSearchInput, ctx: ToolContext) -> dict[str, Any]:
    records = await ctx.crm.advanced_search(
        entity_type=args.entity_type,
        query=args.query,
        filters=args.filters.model_dump(exclude_none=True),
        limit=args.limit,
        sort_by=args.sort_by,
        sort_order=args.sort_order,
    )
    return _results(records, entity_type=args.entity_type)


advanced_search_tool = ToolDefinition(
    name="advanced_search",
    description="Advanced search with filters for deal value, dates, status, stage, etc.",
    capability="search",
    input_model=AdvancedSearchInput,
)


# search_related_entities


class SearchRelatedInput(BaseModel):
    entity_id: str = Field(..., min_length=1, description=ENTITY_ID_DESCRIPTION)
    entity_type: Literal["company", "person", "deal"] = Field(
        ..., description="Type of the source entity"
    )
    relation_type: Literal["contacts", "deals", "companies"] = Field(
        ..., description="Type of relations to find"
    )


_RELATION_TARGETS = {"contacts": "person", "deals": "deal", "companies": "company"}


async def search_related_executor(args: SearchRelatedInput, ctx: ToolContext) -> dict[str, Any]:
    target = _RELATION_TARGETS[args.relation_type]
    records = await ctx.crm.search_related(args.entity_type, args.entity_id, target)
    return _results(records, source_id=args.entity_id, relation_type=args.relation_type)


search_related_entities_tool = ToolDefinition(
    name="search_related_entities",
    description="Find contacts, deals or companies related to a specific company, person, or deal",
    capability="search",
    input_model=SearchRelatedInput,
)


# search_by_time_range


class TimeRangeInput(BaseModel):
    entity_type: Literal["company", "person", "deal"] = Field(
        ..., description="Type of entity to search"
    )
    start_date: str | None = Field(None, description="Start date (YYYY-MM-DD)")
    end_date: str | None = Field(None, description="End date (YYYY-MM-DD)")
    time_field: Literal["created_at", "updated_at"] = Field(
        "created_at", description="Timestamp attribute to filter on"
    )
    limit: int = Field(20, ge=1, le=100, description="Maximum number of results")


async def search_by_time_range_executor(args: TimeRangeInput, ctx: ToolContext) -> dict[str, Any]:
    records = await ctx.crm.search_by_time_range(
        entity_type=args.entity_type,
        start_date=args.start_date,
        end_date=args.end_date,
        time_field=args.time_field,
        limit=args.limit,
    )
    return _results(records, start_date=args.start_date, end_date=args.end_date)


search_by_time_range_tool = ToolDefinition(
    name="search_by_time_range",
    description="Search for entities created or modified within a specific time period",
    capability="search",
    input_model=TimeRangeInput,
)


# get_entity_details


class EntityDetailsInput(BaseModel):
    entity_type: Literal["company", "person", "deal"] = Field(..., description="Type of entity")
    entity_id: str = Field(..., min_length=1, description=ENTITY_ID_DESCRIPTION)


async def get_entity_details_executor(args: EntityDetailsInput, ctx: ToolContext) -> dict[str, Any]:
    record = await ctx.crm.get_record(args.entity_type, args.entity_id)
    return {"record": record.to_output()}


get_entity_details_tool = ToolDefinition(
    name="get_entity_details",
    description="Fetch the full details of one company, person, or deal by id",
    capability="fetch_detail",
    input_model=EntityDetailsInput,
)
