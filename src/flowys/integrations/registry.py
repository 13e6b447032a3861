"""
Integration Registry - lookup of integrations by ID.

Supports:
1. Manual registration
2. Entry-points (for plugin integration packages)

Connections are resolved through an injected ConnectionResolver so the
registry never touches credential storage itself.
"""

from __future__ import annotations

import logging
from importlib.metadata import entry_points
from typing import Callable, Dict, Iterator, List, Optional

from .models import ConnectionData, IntegrationDefinition, IntegrationHandler


logger = logging.getLogger(__name__)

# Entry point group for integration packages
INTEGRATION_ENTRY_POINT = "flowys.integrations"

ConnectionResolver = Callable[[str], Optional[ConnectionData]]


class IntegrationRegistry:
    """
    Central registry for integrations used by integration nodes.

    Usage:
        registry = IntegrationRegistry(connection_resolver=load_connection)
        registry.register(SlackIntegration())
        registry.discover_entry_points()

        handler = registry.get("slack")
        connection = registry.resolve_connection("conn_123")
    """

    def __init__(self, connection_resolver: Optional[ConnectionResolver] = None):
        """
        Initialize empty registry.

        Args:
            connection_resolver: Returns the decrypted connection for an ID,
                or None when it does not exist
        """
        self._handlers: Dict[str, IntegrationHandler] = {}
        self._connection_resolver = connection_resolver
        self._discovered = False

    def register(self, handler: IntegrationHandler) -> IntegrationDefinition:
        """
        Register an integration.

        Args:
            handler: IntegrationHandler instance

        Returns:
            The handler's definition
        """
        definition = handler.definition
        self._handlers[definition.id] = handler
        logger.debug(f"Registered integration: {definition.id}")
        return definition

    def set_connection_resolver(self, resolver: ConnectionResolver) -> None:
        self._connection_resolver = resolver

    def resolve_connection(self, connection_id: str) -> Optional[ConnectionData]:
        """Look up a connection; None without a resolver or when unknown."""
        if self._connection_resolver is None:
            return None
        return self._connection_resolver(connection_id)

    def discover_entry_points(self, force: bool = False) -> int:
        """
        Discover integrations via entry points.

        Entry points are declared in the providing package's pyproject.toml:

            [project.entry-points."flowys.integrations"]
            slack = "flowys_slack:SlackIntegration"

        Each entry point must load to an IntegrationHandler subclass or a
        zero-argument callable returning an IntegrationHandler.

        Args:
            force: Re-discover even if already done

        Returns:
            Number of integrations discovered
        """
        if self._discovered and not force:
            return len(self._handlers)

        count = 0
        for ep in entry_points(group=INTEGRATION_ENTRY_POINT):
            try:
                factory = ep.load()
                handler = factory()
                if not isinstance(handler, IntegrationHandler):
                    raise TypeError(
                        f"entry point returned {type(handler).__name__}, "
                        "not an IntegrationHandler"
                    )
                self.register(handler)
                count += 1
                logger.info(f"Discovered integration: {ep.name}")
            except Exception as e:
                logger.error(f"Failed to load integration '{ep.name}': {e}")

        self._discovered = True
        return count

    def get(self, integration_id: str) -> Optional[IntegrationHandler]:
        """Get integration by ID."""
        return self._handlers.get(integration_id)

    def list_integrations(self) -> List[IntegrationDefinition]:
        """List all registered integration definitions."""
        return [h.definition for h in self._handlers.values()]

    def __len__(self) -> int:
        return len(self._handlers)

    def __iter__(self) -> Iterator[IntegrationDefinition]:
        return iter(self.list_integrations())

    def __contains__(self, integration_id: str) -> bool:
        return integration_id in self._handlers


__all__ = [
    "IntegrationRegistry",
    "ConnectionResolver",
    "INTEGRATION_ENTRY_POINT",
]
