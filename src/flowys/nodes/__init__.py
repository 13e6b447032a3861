"""
Node handlers - one per node type.

NODE_HANDLERS is the closed dispatch table from NodeType to the handler
instance that executes it.
"""

from __future__ import annotations

from typing import Mapping

from flowys.node_sdk.basenode import NodeHandler, NodeType

from .ai import AiNode
from .api import ApiNode
from .config import (
    CONFIG_MODELS,
    parse_node_config,
    validate_node_config,
)
from .input import InputNode
from .integration import IntegrationNode
from .logic import LogicNode
from .output import OutputNode
from .webhook import WebhookNode


NODE_HANDLERS: Mapping[NodeType, NodeHandler] = {
    handler.node_type: handler
    for handler in (
        InputNode(),
        ApiNode(),
        AiNode(),
        LogicNode(),
        OutputNode(),
        WebhookNode(),
        IntegrationNode(),
    )
}

if set(NODE_HANDLERS) != set(NodeType):
    raise RuntimeError(
        f"Node types without a handler: {sorted(t.value for t in set(NodeType) - set(NODE_HANDLERS))}"
    )


def get_handler(node_type: NodeType | str) -> NodeHandler:
    """Handler for a node type."""
    return NODE_HANDLERS[NodeType(node_type)]


__all__ = [
    "NODE_HANDLERS",
    "CONFIG_MODELS",
    "get_handler",
    "parse_node_config",
    "validate_node_config",
    "AiNode",
    "ApiNode",
    "InputNode",
    "IntegrationNode",
    "LogicNode",
    "OutputNode",
    "WebhookNode",
]
