"""
Integration Node - delegates to an externally registered integration action.
"""

from __future__ import annotations

from typing import Any, Dict

from flowys.integrations.models import ActionContext
from flowys.node_sdk.basenode import NodeConfigError, NodeContext, NodeHandler, NodeOperationError, NodeType

from .config import IntegrationConfig


class IntegrationNode(NodeHandler):
    """
    Integration - run `actionId` of `integrationId` over a user connection.

    The action input is `config.input` overlaid with the node's payload.
    The action's success, output and error are surfaced unchanged.
    """

    node_type = NodeType.INTEGRATION
    config_model = IntegrationConfig
    display_name = "Integration"
    description = "Runs an action of a connected third-party integration"

    def execute(self, config: IntegrationConfig, context: NodeContext) -> Any:
        registry = context.integrations
        if registry is None:
            raise NodeConfigError("No integration registry is configured")

        connection = registry.resolve_connection(config.connection_id)
        if connection is None:
            raise NodeConfigError(f"Connection not found: {config.connection_id}")
        if not connection.enabled:
            raise NodeConfigError(f"Connection is disabled: {config.connection_id}")
        if connection.integration_id != config.integration_id:
            raise NodeConfigError(
                f"Connection {config.connection_id} belongs to integration "
                f"'{connection.integration_id}', not '{config.integration_id}'"
            )

        handler = registry.get(config.integration_id)
        if handler is None:
            raise NodeConfigError(f"Integration not found: {config.integration_id}")
        if handler.get_action(config.action_id) is None:
            raise NodeConfigError(f"Action not found: {config.action_id}")

        action_input: Dict[str, Any] = dict(config.input)
        if isinstance(context.payload, dict):
            action_input.update(context.payload)
        elif context.payload is not None:
            action_input.setdefault("data", context.payload)

        self.logger.info(
            f"Executing {config.integration_id}.{config.action_id} "
            f"with connection {config.connection_id}"
        )
        result = handler.execute_action(
            config.action_id,
            ActionContext(connection=connection, input=action_input),
        )
        if not result.success:
            raise NodeOperationError(result.error or "Integration action failed")
        return result.output
