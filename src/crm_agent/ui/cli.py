"""CLI interface for the CRM agent.

This module provides a Typer-based command-line interface for sending
messages through the orchestrator, approving previewed changes, and
inspecting the tool catalog and conversation log.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from crm_agent.config import get_settings
from crm_agent.config.validators import resolve_path
from crm_agent.conversation_log import (
    FileConversationSink,
    get_background_task_count,
    wait_for_background_tasks,
)
from crm_agent.orchestrator import Attachment, Orchestrator, ProcessingContext, RunResult
from crm_agent.tools import ToolResult, get_default_registry

app = typer.Typer(help="CRM Agent - chat with your Attio CRM")
console = Console()


@app.command(name="ask")
def ask_command(
    message: str = typer.Argument(..., help="Message to send to the agent"),
    preview: bool = typer.Option(
        True, "--preview/--no-preview", help="Ask for approval before changing CRM data"
    ),
    max_continuations: Optional[int] = typer.Option(
        None, "--max-continuations", "-c", min=0, help="Maximum follow-up model turns"
    ),
    image: Optional[list[Path]] = typer.Option(
        None, "--image", "-i", exists=True, dir_okay=False, help="Image to attach"
    ),
) -> None:
    """Send one message to the agent.

    Examples:
        crm-agent ask "find Acme Corp"
        crm-agent ask "add a note to Acme saying 'call scheduled'" --preview
        crm-agent ask "who is in this screenshot?" --image shot.png
    """
    attachments = tuple(Attachment.from_path(path) for path in image or [])
    context = ProcessingContext(message=message, attachments=attachments)

    try:
        asyncio.run(_handle_request(context, preview, max_continuations))
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e


async def _handle_request(
    context: ProcessingContext, preview: bool, max_continuations: int | None
) -> None:
    """Run one message, handle approval, then flush background tasks."""
    orchestrator = Orchestrator.from_settings()
    try:
        result = await orchestrator.process(
            context, preview=preview, max_continuations=max_continuations
        )
        _print_result(result)

        if result.pending_action is not None:
            action = result.pending_action
            _print_pending_action(action.action, action.input)
            if typer.confirm("Apply this change?", default=False):
                tool_result = await orchestrator.execute_action(
                    action.action, action.input, context
                )
                _print_tool_result(tool_result)
            else:
                console.print("[yellow]Change discarded.[/yellow]")
    finally:
        task_count = get_background_task_count()
        if task_count > 0:
            console.print(f"\n[dim]Completing {task_count} background task(s)...[/dim]")
            await wait_for_background_tasks()
        await orchestrator.aclose()


def _print_result(result: RunResult) -> None:
    if not result.success:
        console.print(f"\n[red]Error:[/red] {result.error}")
    else:
        console.print("\n[bold blue]Agent:[/bold blue]")
        console.print(Markdown(result.answer or ""))

    if result.tools_used:
        used = ", ".join(
            f"{usage.name}{'' if usage.success else ' (failed)'}" for usage in result.tools_used
        )
        console.print(f"\n[dim]Tools: {used}[/dim]")
    if result.trace_id:
        console.print(f"[dim]Trace ID: {result.trace_id}[/dim]")


def _print_pending_action(action: str, action_input: dict) -> None:
    table = Table(title=f"Pending action: {action}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white", overflow="fold")
    for key, value in action_input.items():
        table.add_row(key, value if isinstance(value, str) else json.dumps(value))
    console.print(table)


def _print_tool_result(result: ToolResult) -> None:
    if result.success:
        console.print(f"[green]Done:[/green] {result.message or result.tool_name}")
        url = result.output.get("url") or (result.output.get("record") or {}).get("url")
        if url:
            console.print(f"[dim]{url}[/dim]")
    else:
        console.print(f"[red]Failed:[/red] {result.error}")


@app.command(name="tools")
def tools_command() -> None:
    """List the tools available to the agent."""
    table = Table(title="CRM Tools")
    table.add_column("Name", style="green")
    table.add_column("Capability", style="blue")
    table.add_column("Mutating", style="magenta")
    table.add_column("Description", style="white", overflow="fold")

    for tool in get_default_registry().list():
        table.add_row(tool.name, tool.capability, "yes" if tool.mutating else "no", tool.description)
    console.print(table)


@app.command(name="conversations")
def conversations_command(
    date: Optional[str] = typer.Option(None, "--date", "-d", help="Day to show (YYYY-MM-DD)"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Maximum number of records"),
) -> None:
    """Show recent conversation log records."""
    sink = FileConversationSink(resolve_path(get_settings().conversation_log_dir))
    records = sink.read_records(date=date, limit=limit)
    if not records:
        console.print("[yellow]No conversation records found.[/yellow]")
        return

    table = Table(title=f"Conversations ({len(records)})")
    table.add_column("Timestamp", style="cyan")
    table.add_column("Message", style="white", overflow="fold")
    table.add_column("Tools", style="green", overflow="fold")
    table.add_column("OK", style="magenta")
    table.add_column("ms", style="blue", justify="right")
    for record in records:
        table.add_row(
            record.timestamp.isoformat()[:19],
            record.user_message[:80],
            ", ".join(str(t.get("name")) for t in record.tools_used),
            "yes" if record.success else "no",
            f"{record.processing_time_ms:.0f}",
        )
    console.print(table)


if __name__ == "__main__":
    app()
