"""Attio CRM adapter."""

from crm_agent.crm.client import AttioClient
from crm_agent.crm.types import (
    CRMConnectionError,
    CRMError,
    CRMNote,
    CRMNotFound,
    CRMRateLimit,
    CRMRecord,
    CRMRequestError,
    CRMTimeout,
    EntityType,
)

__all__ = [
    "AttioClient",
    "CRMConnectionError",
    "CRMError",
    "CRMNote",
    "CRMNotFound",
    "CRMRateLimit",
    "CRMRecord",
    "CRMRequestError",
    "CRMTimeout",
    "EntityType",
]
