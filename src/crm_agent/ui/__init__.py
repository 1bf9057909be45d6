"""UI module for the CRM agent.

The CLI can be run directly:
    python -m crm_agent.ui.cli ask "find Acme Corp"

Note: We don't export CLI components from __init__.py to avoid
module loading issues when running as a script.
"""

__all__: list[str] = []  # CLI is run directly, no exports needed
