"""Note tools: create, list and delete notes on CRM records."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from crm_agent.config import get_settings
from crm_agent.crm.records import record_url
from crm_agent.tools.search import ENTITY_ID_DESCRIPTION
from crm_agent.tools.types import ToolContext, ToolDefinition


def slack_thread_url(workspace: str | None, channel: str | None, thread_ts: str | None) -> str | None:
    """Build a permalink to a Slack thread.

    Args:
        workspace: Slack workspace subdomain.
        channel: Channel id.
        thread_ts: Thread timestamp ("1712345678.123456").

    Returns:
        https://<workspace>.slack.com/archives/<channel>/p<ts without dot>,
        or None if any part is missing.
    """
    if not (workspace and channel and thread_ts):
        return None
    return f"https://{workspace}.slack.com/archives/{channel}/p{thread_ts.replace('.', '')}"


# create_note


class CreateNoteInput(BaseModel):
    entity_type: Literal["company", "person", "deal"] = Field(
        ..., description="Type of entity to add the note to"
    )
    entity_id: str = Field(..., min_length=1, description=ENTITY_ID_DESCRIPTION)
    note_content: str = Field(..., min_length=1, description="Content of the note")
    note_title: str | None = Field(
        None, description='Title for the note (defaults to "Update from Slack")'
    )


async def create_note_executor(args: CreateNoteInput, ctx: ToolContext) -> dict[str, Any]:
    request = ctx.request
    content = args.note_content
    thread_url = slack_thread_url(
        get_settings().slack_workspace, request.channel, request.thread_ts or request.message_ts
    )
    if thread_url:
        content = f"{content}\n\nSlack thread: {thread_url}"

    note = await ctx.crm.create_note(args.entity_type, args.entity_id, content, args.note_title)
    return {
        "note_id": note.id,
        "title": note.title,
        "entity_type": args.entity_type,
        "entity_id": args.entity_id,
        "url": record_url(ctx.crm.app_url, ctx.crm.workspace_slug, args.entity_type, args.entity_id),
        "slack_thread_url": thread_url,
        "message": f'Created note "{note.title}" on {args.entity_type} {args.entity_id}',
    }


create_note_tool = ToolDefinition(
    name="create_note",
    description=(
        "Create a note on a company, person, or deal. Search for the entity first and "
        "use its id. The Slack thread link is added automatically."
    ),
    capability="mutate",
    input_model=CreateNoteInput,
    mutating=True,
)


# get_notes


class GetNotesInput(BaseModel):
    entity_type: Literal["company", "person", "deal"] | None = Field(
        None, description="Type of entity to get notes for"
    )
    entity_id: str | None = Field(None, description=ENTITY_ID_DESCRIPTION)
    search_content: str | None = Field(None, description="Only notes containing this text")
    limit: int = Field(20, ge=1, le=50, description="Maximum number of notes to return")


async def get_notes_executor(args: GetNotesInput, ctx: ToolContext) -> dict[str, Any]:
    notes = await ctx.crm.list_notes(args.entity_type, args.entity_id, args.limit)
    if args.search_content:
        needle = args.search_content.lower()
        notes = [n for n in notes if needle in n.content.lower() or needle in n.title.lower()]
    return {
        "notes": [note.model_dump() for note in notes],
        "count": len(notes),
        "entity_id": args.entity_id,
    }


get_notes_tool = ToolDefinition(
    name="get_notes",
    description=(
        "Get notes for a specific entity (search for the entity first) or search notes by "
        "content. Returns the notes and their count."
    ),
    capability="fetch_detail",
    input_model=GetNotesInput,
)


# delete_note


class DeleteNoteInput(BaseModel):
    note_id: str = Field(..., min_length=1, description="ID of the note to delete")


async def delete_note_executor(args: DeleteNoteInput, ctx: ToolContext) -> dict[str, Any]:
    return await ctx.crm.delete_note(args.note_id)


delete_note_tool = ToolDefinition(
    name="delete_note",
    description="Delete a specific note. Find the note with get_notes first.",
    capability="mutate",
    input_model=DeleteNoteInput,
    mutating=True,
)
