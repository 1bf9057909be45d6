"""Orchestrator for the CRM agent.

This module provides the tool-calling loop that turns one chat message into a
RunResult, together with its continuation policy and response synthesis.
"""

from crm_agent.orchestrator.continuation import (
    ContinuationDecision,
    ContinuationPolicy,
    KeywordContinuationController,
)
from crm_agent.orchestrator.orchestrator import Orchestrator
from crm_agent.orchestrator.synthesis import ACTIONS_FALLBACK, READY_FALLBACK, synthesize
from crm_agent.orchestrator.types import (
    Attachment,
    ConversationTurn,
    MaxContinuationsExceeded,
    ProcessingContext,
    RunResult,
    TaskState,
    ToolUsage,
)

__all__ = [
    "ACTIONS_FALLBACK",
    "Attachment",
    "ContinuationDecision",
    "ContinuationPolicy",
    "ConversationTurn",
    "KeywordContinuationController",
    "MaxContinuationsExceeded",
    "Orchestrator",
    "ProcessingContext",
    "READY_FALLBACK",
    "RunResult",
    "TaskState",
    "ToolUsage",
    "synthesize",
]
