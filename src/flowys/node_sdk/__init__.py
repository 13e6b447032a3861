"""
Node SDK - Contracts shared by every node type.

This package provides:
- NodeHandler: Abstract base class for node type implementations
- NodeContext: Per-node execution context
- Error hierarchy with failure categories
- HttpClient: timeout-bounded HTTP for api and webhook nodes
- Expression: sandboxed evaluator for logic nodes
"""

from .basenode import (
    ErrorCategory,
    ExpressionError,
    NodeApiError,
    NodeConfigError,
    NodeContext,
    NodeHandler,
    NodeOperationError,
    NodeTimeoutError,
    NodeType,
    OutputSchemaError,
    TemplateError,
    categorize_error,
)
from .expressions import Expression, evaluate
from .http import HttpClient, HttpResponse
from .items import find_list, get_path, to_text

__all__ = [
    # Types
    "NodeType",
    "ErrorCategory",
    # Context
    "NodeContext",
    # Base class
    "NodeHandler",
    # Errors
    "NodeOperationError",
    "NodeConfigError",
    "NodeApiError",
    "NodeTimeoutError",
    "OutputSchemaError",
    "TemplateError",
    "ExpressionError",
    "categorize_error",
    # HTTP
    "HttpClient",
    "HttpResponse",
    # Expressions
    "Expression",
    "evaluate",
    # Items
    "find_list",
    "get_path",
    "to_text",
]
