"""Conversation logging: one structured record per run, saved in the background."""

from crm_agent.conversation_log.background import (
    get_background_task_count,
    run_in_background,
    wait_for_background_tasks,
)
from crm_agent.conversation_log.capture import (
    ConversationRecord,
    ConversationSink,
    FileConversationSink,
)

__all__ = [
    "ConversationRecord",
    "ConversationSink",
    "FileConversationSink",
    "get_background_task_count",
    "run_in_background",
    "wait_for_background_tasks",
]
