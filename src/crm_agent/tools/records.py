"""Mutating record tools: field updates and record creation."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from crm_agent.tools.search import ENTITY_ID_DESCRIPTION
from crm_agent.tools.types import ToolContext, ToolDefinition


def _split_name(full_name: str) -> tuple[str, str]:
    parts = full_name.strip().split(None, 1)
    first = parts[0] if parts else ""
    last = parts[1] if len(parts) > 1 else ""
    return first, last


# update_entity_field


class UpdateFieldInput(BaseModel):
    entity_type: Literal["company", "person", "deal"] = Field(
        ..., description="Type of entity to update"
    )
    entity_id: str = Field(..., min_length=1, description=ENTITY_ID_DESCRIPTION)
    field_name: str = Field(
        ...,
        min_length=1,
        description='Attribute to update (e.g. "total_contract_value", "stage", "description")',
    )
    field_value: str | float | int | bool = Field(
        ...,
        description="New value. Use plain numbers for currency fields (150000 for $150,000)",
    )
    note_text: str | None = Field(None, description="Optional note documenting the change")


async def update_entity_field_executor(args: UpdateFieldInput, ctx: ToolContext) -> dict[str, Any]:
    record = await ctx.crm.update_record(
        args.entity_type, args.entity_id, {args.field_name: args.field_value}
    )
    output: dict[str, Any] = {
        "record": record.to_output(),
        "field_name": args.field_name,
        "field_value": args.field_value,
        "message": f"Updated {args.field_name} on {record.name}",
    }
    if args.note_text:
        note = await ctx.crm.create_note(
            args.entity_type, args.entity_id, args.note_text, f"Updated {args.field_name}"
        )
        output["note_id"] = note.id
    return output


update_entity_field_tool = ToolDefinition(
    name="update_entity_field",
    description="Update a specific field on a company, person, or deal",
    capability="mutate",
    input_model=UpdateFieldInput,
    mutating=True,
)


# create_person


class CreatePersonInput(BaseModel):
    name: str = Field(..., min_length=1, description="Full name of the person")
    email: str | None = Field(
        None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", description="Email address"
    )
    phone: str | None = Field(None, description="Phone number")
    job_title: str | None = Field(None, description="Job title or position")


async def create_person_executor(args: CreatePersonInput, ctx: ToolContext) -> dict[str, Any]:
    first, last = _split_name(args.name)
    values: dict[str, Any] = {
        "name": [{"first_name": first, "last_name": last, "full_name": args.name.strip()}]
    }
    if args.email:
        values["email_addresses"] = [args.email]
    if args.phone:
        values["phone_numbers"] = [{"original_phone_number": args.phone}]
    if args.job_title:
        values["job_title"] = args.job_title

    record = await ctx.crm.create_record("person", values)
    return {"record": record.to_output(), "message": f"Created person {record.name}"}


create_person_tool = ToolDefinition(
    name="create_person",
    description="Create a new person record in the CRM",
    capability="mutate",
    input_model=CreatePersonInput,
    mutating=True,
)


# create_company


class CreateCompanyInput(BaseModel):
    name: str = Field(..., min_length=1, description="Company name")
    description: str | None = Field(None, description="Company description")
    domain: str | None = Field(None, description='Website domain (e.g. "example.com")')


async def create_company_executor(args: CreateCompanyInput, ctx: ToolContext) -> dict[str, Any]:
    values: dict[str, Any] = {"name": args.name}
    if args.description:
        values["description"] = args.description
    if args.domain:
        domain = args.domain.lower().split("//", 1)[-1].removeprefix("www.").rstrip("/")
        values["domains"] = [domain]

    record = await ctx.crm.create_record("company", values)
    return {"record": record.to_output(), "message": f"Created company {record.name}"}


create_company_tool = ToolDefinition(
    name="create_company",
    description="Create a new company record in the CRM",
    capability="mutate",
    input_model=CreateCompanyInput,
    mutating=True,
)


# create_deal


class CreateDealInput(BaseModel):
    name: str = Field(..., min_length=1, description="Deal name or title")
    value: float | None = Field(None, ge=0, description="Deal value in USD (150000 for $150,000)")
    company_id: str | None = Field(None, description="Id of the associated company record")
    owner_id: str | None = Field(None, description="Workspace member id of the deal owner")
    stage: str | None = Field(None, description="Initial deal stage")


async def create_deal_executor(args: CreateDealInput, ctx: ToolContext) -> dict[str, Any]:
    values: dict[str, Any] = {"name": args.name}
    if args.value is not None:
        values["value"] = args.value
    if args.company_id:
        values["associated_company"] = [
            {"target_object": "companies", "target_record_id": args.company_id}
        ]
    if args.owner_id:
        values["owner"] = args.owner_id
    if args.stage:
        values["stage"] = args.stage

    record = await ctx.crm.create_record("deal", values)
    return {"record": record.to_output(), "message": f"Created deal {record.name}"}


create_deal_tool = ToolDefinition(
    name="create_deal",
    description="Create a new deal record in the CRM",
    capability="mutate",
    input_model=CreateDealInput,
    mutating=True,
)
