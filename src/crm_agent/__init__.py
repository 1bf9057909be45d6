"""Tool-calling CRM assistant backed by Claude and the Attio REST API."""

__version__ = "0.1.0"
