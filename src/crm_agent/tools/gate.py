"""Write-action gate.

Classifies tools as read-only or mutating. Mutating calls made in preview
mode are skipped and surfaced as pending actions for approval.
"""

WRITE_ACTIONS: frozenset[str] = frozenset(
    {
        "create_note",
        "delete_note",
        "update_entity_field",
        "create_person",
        "create_company",
        "create_deal",
    }
)

PREVIEW_MESSAGE = "[Preview Mode: Action will be executed after approval]"


def is_write_action(name: str) -> bool:
    """Return True if the named tool changes CRM data."""
    return name in WRITE_ACTIONS


def should_skip(name: str, preview_mode: bool) -> bool:
    """Whether a call must stop at the gate instead of executing.

    Args:
        name: Tool name.
        preview_mode: Whether the run is previewing writes.

    Returns:
        True exactly when preview_mode is on and the tool is mutating.
    """
    return preview_mode and is_write_action(name)
