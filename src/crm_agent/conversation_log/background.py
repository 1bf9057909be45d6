"""Background task management for conversation logging.

Saves are scheduled as tracked tasks so the reply is never delayed by
persistence, and references are held until the task finishes so it is not
garbage collected mid-flight.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from crm_agent.telemetry import CONVERSATION_LOG_FAILED, get_logger

log = get_logger(__name__)

# Global set to hold references to running background tasks
_background_tasks: set[asyncio.Task[Any]] = set()


def run_in_background(coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
    """Run a coroutine in the background without blocking.

    Args:
        coro: Coroutine to run in background.

    Returns:
        The scheduled task.
    """
    task = asyncio.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    # Log any errors but don't propagate them
    task.add_done_callback(_log_task_error)
    return task


def _log_task_error(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        log.warning(
            CONVERSATION_LOG_FAILED,
            error=str(error),
            error_type=type(error).__name__,
            task_name=task.get_name(),
        )


async def wait_for_background_tasks() -> None:
    """Wait for all background tasks to complete.

    This is useful for testing or graceful shutdown.
    """
    if _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)


def get_background_task_count() -> int:
    """Get the number of running background tasks."""
    return len(_background_tasks)
