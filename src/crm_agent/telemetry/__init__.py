"""Telemetry module for structured logging and trace correlation.

This module provides:
- TraceContext for run correlation
- Structured logging via structlog
- Semantic event constants
"""

from crm_agent.telemetry.events import (
    APPROVAL_GRANTED,
    APPROVAL_REQUIRED,
    ATTACHMENT_REJECTED,
    CONTINUATION_CEILING_REACHED,
    CONTINUATION_DECIDED,
    CONVERSATION_LOG_FAILED,
    CONVERSATION_LOGGED,
    CRM_REQUEST_COMPLETED,
    CRM_REQUEST_FAILED,
    CRM_REQUEST_RETRY,
    IMAGE_RETRY,
    MODEL_CALL_COMPLETED,
    MODEL_CALL_ERROR,
    MODEL_CALL_STARTED,
    ORCHESTRATOR_FATAL_ERROR,
    REPLY_READY,
    REQUEST_RECEIVED,
    RUN_FAILED,
    TOOL_CALL_COMPLETED,
    TOOL_CALL_FAILED,
    TOOL_CALL_SKIPPED,
    TOOL_CALL_STARTED,
    TOOL_REGISTERED,
)
from crm_agent.telemetry.logger import configure_logging, get_logger
from crm_agent.telemetry.trace import TraceContext

__all__ = [
    "TraceContext",
    "configure_logging",
    "get_logger",
    "REQUEST_RECEIVED",
    "REPLY_READY",
    "RUN_FAILED",
    "ORCHESTRATOR_FATAL_ERROR",
    "MODEL_CALL_STARTED",
    "MODEL_CALL_COMPLETED",
    "MODEL_CALL_ERROR",
    "IMAGE_RETRY",
    "ATTACHMENT_REJECTED",
    "TOOL_CALL_STARTED",
    "TOOL_CALL_COMPLETED",
    "TOOL_CALL_FAILED",
    "TOOL_CALL_SKIPPED",
    "TOOL_REGISTERED",
    "CONTINUATION_DECIDED",
    "CONTINUATION_CEILING_REACHED",
    "APPROVAL_REQUIRED",
    "APPROVAL_GRANTED",
    "CRM_REQUEST_COMPLETED",
    "CRM_REQUEST_FAILED",
    "CRM_REQUEST_RETRY",
    "CONVERSATION_LOGGED",
    "CONVERSATION_LOG_FAILED",
]
