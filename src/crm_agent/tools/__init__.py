"""Tool execution layer for the CRM agent.

This module provides the tool registry, the execution layer and the CRM tool
catalog.
"""

from crm_agent.tools.executor import ToolExecutionLayer
from crm_agent.tools.gate import WRITE_ACTIONS, is_write_action
from crm_agent.tools.notes import (
    create_note_executor,
    create_note_tool,
    delete_note_executor,
    delete_note_tool,
    get_notes_executor,
    get_notes_tool,
)
from crm_agent.tools.records import (
    create_company_executor,
    create_company_tool,
    create_deal_executor,
    create_deal_tool,
    create_person_executor,
    create_person_tool,
    update_entity_field_executor,
    update_entity_field_tool,
)
from crm_agent.tools.registry import ToolRegistry
from crm_agent.tools.search import (
    advanced_search_executor,
    advanced_search_tool,
    get_entity_details_executor,
    get_entity_details_tool,
    search_by_time_range_executor,
    search_by_time_range_tool,
    search_crm_executor,
    search_crm_tool,
    search_related_entities_tool,
    search_related_executor,
)
from crm_agent.tools.types import (
    PendingAction,
    ToolCall,
    ToolCallState,
    ToolContext,
    ToolDefinition,
    ToolResult,
)

__all__ = [
    "PendingAction",
    "ToolCall",
    "ToolCallState",
    "ToolContext",
    "ToolDefinition",
    "ToolExecutionLayer",
    "ToolRegistry",
    "ToolResult",
    "WRITE_ACTIONS",
    "get_default_registry",
    "is_write_action",
    "register_crm_tools",
]


def register_crm_tools(registry: ToolRegistry) -> None:
    """Register the CRM tool catalog.

    Args:
        registry: Tool registry to register tools in.
    """
    registry.register(search_crm_tool, search_crm_executor)
    registry.register(advanced_search_tool, advanced_search_executor)
    registry.register(search_related_entities_tool, search_related_executor)
    registry.register(search_by_time_range_tool, search_by_time_range_executor)
    registry.register(get_entity_details_tool, get_entity_details_executor)
    registry.register(get_notes_tool, get_notes_executor)
    registry.register(create_note_tool, create_note_executor)
    registry.register(delete_note_tool, delete_note_executor)
    registry.register(update_entity_field_tool, update_entity_field_executor)
    registry.register(create_person_tool, create_person_executor)
    registry.register(create_company_tool, create_company_executor)
    registry.register(create_deal_tool, create_deal_executor)


_default_registry: ToolRegistry | None = None


def get_default_registry() -> ToolRegistry:
    """Get or create the process-wide registry with the CRM tools.

    Returns:
        ToolRegistry with all CRM tools registered.
    """
    global _default_registry
    if _default_registry is None:
        _default_registry = ToolRegistry()
        register_crm_tools(_default_registry)
    return _default_registry
