"""
NodeHandler - Abstract base class for node type implementations.

Every node type in the closed set (input, api, ai, logic, output, webhook,
integration) is implemented by exactly one NodeHandler subclass. The engine
resolves templates and validates the config before calling execute(), so a
handler only sees a typed config model and its payload.

execute() is synchronous; handlers run on the engine's worker threads.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel

if TYPE_CHECKING:
    from flowys.config import Settings
    from flowys.integrations.registry import IntegrationRegistry
    from flowys.node_sdk.http import HttpClient
    from flowys.providers.base import LLMProvider


logger = logging.getLogger(__name__)


# ==============================================================================
# Closed enumerations shared by the SDK and the runtime
# ==============================================================================

class NodeType(str, Enum):
    """The fixed set of node types a workflow may contain."""
    INPUT = "input"
    API = "api"
    AI = "ai"
    LOGIC = "logic"
    OUTPUT = "output"
    WEBHOOK = "webhook"
    INTEGRATION = "integration"


class ErrorCategory(str, Enum):
    """Coarse classification of a node failure."""
    VALIDATION = "validation"
    NETWORK = "network"
    SCHEMA_MISMATCH = "schema_mismatch"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


# ==============================================================================
# Errors
# ==============================================================================

class NodeOperationError(Exception):
    """Error during node operation."""

    category: ClassVar[ErrorCategory] = ErrorCategory.UNKNOWN

    def __init__(self, message: str, node_id: Optional[str] = None) -> None:
        self.message = message
        self.node_id = node_id
        super().__init__(message)


class NodeConfigError(NodeOperationError):
    """Node configuration failed its schema check."""

    category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        node_id: Optional[str] = None,
    ) -> None:
        super().__init__(message, node_id)
        self.errors = errors or []


class NodeApiError(NodeOperationError):
    """Error from an external API call (transport failure or non-2xx)."""

    category = ErrorCategory.NETWORK

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        node_id: Optional[str] = None,
    ) -> None:
        super().__init__(message, node_id)
        self.status_code = status_code
        self.response_body = response_body


class NodeTimeoutError(NodeOperationError):
    """An outbound call exceeded its timeout."""

    category = ErrorCategory.TIMEOUT

    def __init__(
        self,
        message: str,
        timeout: Optional[float] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.timeout = timeout
        self.url = url


class OutputSchemaError(NodeOperationError):
    """A model response could not be parsed or did not match outputSchema."""

    category = ErrorCategory.SCHEMA_MISMATCH

    def __init__(
        self,
        message: str,
        raw_response: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(message)
        self.raw_response = raw_response
        self.errors = errors or []


class TemplateError(NodeOperationError):
    """Malformed {{...}} placeholder syntax."""

    category = ErrorCategory.VALIDATION


class ExpressionError(NodeOperationError):
    """A logic expression was rejected or failed to evaluate."""

    category = ErrorCategory.VALIDATION


def categorize_error(error: BaseException) -> ErrorCategory:
    """Map any exception raised inside a node to an ErrorCategory."""
    if isinstance(error, NodeOperationError):
        return error.category
    if isinstance(error, TimeoutError):
        return ErrorCategory.TIMEOUT
    return ErrorCategory.UNKNOWN


# ==============================================================================
# Execution context
# ==============================================================================

@dataclass
class NodeContext:
    """
    Everything a handler may consult while executing one node.

    `upstream` holds the merged inputs exactly as delivered by the engine
    (global input for root nodes, otherwise keyed by handle or source id);
    `payload` is the convenience view handlers operate on.
    """
    run_id: str
    node_id: str
    label: str
    node_type: NodeType
    global_input: Any
    upstream: Any
    payload: Any
    settings: "Settings"
    providers: Dict[str, "LLMProvider"] = field(default_factory=dict)
    integrations: Optional["IntegrationRegistry"] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)
    warnings: List[str] = field(default_factory=list)
    http_factory: Optional[Callable[..., "HttpClient"]] = None

    def warn(self, message: str) -> None:
        """Attach a non-fatal warning to this node's log entry."""
        self.warnings.append(message)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def http_client(self, **kwargs: Any) -> "HttpClient":
        """HTTP client for outbound calls; tests inject a factory."""
        if self.http_factory is not None:
            return self.http_factory(**kwargs)
        from flowys.node_sdk.http import HttpClient
        return HttpClient(**kwargs)


# ==============================================================================
# NodeHandler - Abstract base class
# ==============================================================================

class NodeHandler(ABC):
    """
    Abstract base class for all node type implementations.

    Subclasses declare:
    - node_type: the NodeType they implement
    - config_model: pydantic model validating the node's config
    - display_name / description: catalog metadata

    And implement execute(), which returns the node's output or raises a
    NodeOperationError subclass. Handlers hold no per-run state; one
    instance serves every run.

    Example:

        class EchoHandler(NodeHandler):
            node_type = NodeType.OUTPUT
            config_model = OutputConfig

            def execute(self, config, context):
                return context.payload
    """

    node_type: ClassVar[NodeType]
    config_model: ClassVar[Type[BaseModel]]
    display_name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    # Config fields interpolated as text even when they hold a single placeholder
    text_fields: ClassVar[Tuple[str, ...]] = ()

    def __init__(self) -> None:
        self.logger = logging.getLogger(f"flowys.node.{self.node_type.value}")

    @abstractmethod
    def execute(self, config: Any, context: NodeContext) -> Any:
        """
        Execute the node.

        Args:
            config: Validated instance of config_model
            context: Execution context for this node

        Returns:
            The node's output (JSON-compatible)

        Raises:
            NodeOperationError: On any failure the node should report
        """
        raise NotImplementedError

    @classmethod
    def get_definition(cls) -> Dict[str, Any]:
        """Catalog entry for this node type."""
        return {
            "type": cls.node_type.value,
            "displayName": cls.display_name or cls.node_type.value.title(),
            "description": cls.description,
            "configSchema": cls.config_model.model_json_schema(by_alias=True),
        }


__all__ = [
    "NodeType",
    "ErrorCategory",
    "NodeOperationError",
    "NodeConfigError",
    "NodeApiError",
    "NodeTimeoutError",
    "OutputSchemaError",
    "TemplateError",
    "ExpressionError",
    "categorize_error",
    "NodeContext",
    "NodeHandler",
]
