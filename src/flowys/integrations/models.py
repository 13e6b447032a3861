"""
Integration Models - contracts between integration nodes and the
externally registered integrations that serve them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConnectionData(BaseModel):
    """
    A user's connection to an integration, with credentials already
    decrypted by the caller.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(..., description="Connection ID")
    integration_id: str = Field(..., alias="integrationId")
    name: str = Field("", description="Display name")
    credentials: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
    last_used_at: Optional[datetime] = Field(None, alias="lastUsedAt")


class ActionContext(BaseModel):
    """What an action receives: the connection and the merged input."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    connection: ConnectionData
    input: Dict[str, Any] = Field(default_factory=dict)


class ActionResult(BaseModel):
    """Outcome of an action, surfaced verbatim by the integration node."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    success: bool
    output: Any = None
    error: Optional[str] = None


class IntegrationAction(BaseModel):
    """One operation an integration exposes."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    name: str = ""
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=dict, alias="inputSchema")


class IntegrationDefinition(BaseModel):
    """Metadata about a registered integration."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(..., description="Unique integration identifier")
    name: str = Field(..., description="Human-readable name")
    description: str = ""
    category: str = "other"
    auth_type: str = Field("api_key", alias="authType")
    actions: List[IntegrationAction] = Field(default_factory=list)


class IntegrationHandler(ABC):
    """
    Base class for integrations.

    Subclasses provide a definition and implement execute_action().
    Credential storage, decryption and OAuth token refresh happen
    before the engine is involved.
    """

    definition: IntegrationDefinition

    @abstractmethod
    def execute_action(self, action_id: str, context: ActionContext) -> ActionResult:
        """Run `action_id` with the given connection and input."""
        raise NotImplementedError

    def get_action(self, action_id: str) -> Optional[IntegrationAction]:
        for action in self.definition.actions:
            if action.id == action_id:
                return action
        return None
