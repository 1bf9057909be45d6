"""Conversation records and the sinks that persist them.

One record is written per run: who asked what, which tools ran, what was
answered and how long it took. Files are organized by date:
<dir>/YYYY-MM-DD/<trace_id>.json
"""

import asyncio
import pathlib
from datetime import datetime, timezone
from typing import Any, Protocol

import orjson
from pydantic import BaseModel, Field

from crm_agent.telemetry import CONVERSATION_LOGGED, get_logger

log = get_logger(__name__)


class ConversationRecord(BaseModel):
    """Structured record of one run (no message bodies beyond the text)."""

    conversation_id: str
    trace_id: str
    user_id: str | None = None
    user_name: str | None = None
    channel: str | None = None
    thread_ts: str | None = None
    message_ts: str | None = None
    user_message: str
    tools_used: list[dict[str, Any]] = Field(default_factory=list)
    final_response: str | None = None
    success: bool
    error: str | None = None
    preview: bool = False
    processing_time_ms: float = Field(0.0, ge=0)
    attachment_count: int = Field(0, ge=0)
    continuation_count: int = Field(0, ge=0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ConversationSink(Protocol):
    """Persistence collaborator for conversation records."""

    async def save(self, record: ConversationRecord) -> None:
        """Persist one record."""
        ...


class FileConversationSink:
    """Writes each record as pretty-printed JSON under a date directory."""

    def __init__(self, base_dir: pathlib.Path) -> None:
        self.base_dir = base_dir

    def path_for(self, record: ConversationRecord) -> pathlib.Path:
        """File path a record is written to."""
        date_str = record.timestamp.strftime("%Y-%m-%d")
        return self.base_dir / date_str / f"{record.trace_id}.json"

    def write(self, record: ConversationRecord) -> pathlib.Path:
        """Write a record synchronously.

        Args:
            record: Record to write.

        Returns:
            Path to the written file.
        """
        file_path = self.path_for(record)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(
            orjson.dumps(
                record.model_dump(),
                option=orjson.OPT_INDENT_2 | orjson.OPT_APPEND_NEWLINE,
            )
        )
        log.info(
            CONVERSATION_LOGGED,
            trace_id=record.trace_id,
            file_path=str(file_path),
            success=record.success,
        )
        return file_path

    async def save(self, record: ConversationRecord) -> None:
        """Write a record without blocking the event loop."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.write, record)

    def read_records(self, date: str | None = None, limit: int = 100) -> list[ConversationRecord]:
        """Read records back, newest date directory first.

        Args:
            date: Only read this date directory (YYYY-MM-DD).
            limit: Maximum number of records to return.

        Returns:
            List of records.
        """
        records: list[ConversationRecord] = []
        if not self.base_dir.exists():
            return records

        for date_dir in sorted(self.base_dir.iterdir(), reverse=True):
            if not date_dir.is_dir() or (date and date_dir.name != date):
                continue
            for json_file in sorted(date_dir.glob("*.json")):
                try:
                    records.append(ConversationRecord(**orjson.loads(json_file.read_bytes())))
                except ValueError as e:
                    log.warning(
                        "conversation_record_unreadable",
                        file_path=str(json_file),
                        error=str(e),
                    )
                    continue
                if len(records) >= limit:
                    return records
        return records
