"""
Integrations - externally registered action handlers for integration nodes.
"""

from .models import (
    ActionContext,
    ActionResult,
    ConnectionData,
    IntegrationAction,
    IntegrationDefinition,
    IntegrationHandler,
)
from .registry import INTEGRATION_ENTRY_POINT, ConnectionResolver, IntegrationRegistry

__all__ = [
    "ActionContext",
    "ActionResult",
    "ConnectionData",
    "IntegrationAction",
    "IntegrationDefinition",
    "IntegrationHandler",
    "IntegrationRegistry",
    "ConnectionResolver",
    "INTEGRATION_ENTRY_POINT",
]
