"""
Node Config Validator - one pydantic model per node type.

Configs are validated after template resolution, right before the node's
handler runs. Field names accept the editor's camelCase keys.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from flowys.node_sdk.basenode import NodeConfigError, NodeType


HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH"]
JSON_SCHEMA_TYPES = ("string", "number", "integer", "boolean", "array", "object")


class NodeConfig(BaseModel):
    """Base for node config models."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)


def _http_url(value: str) -> str:
    stripped = value.strip()
    if not stripped.lower().startswith(("http://", "https://")):
        raise ValueError("must be an http:// or https:// URL")
    return stripped


def _upper_method(value: Any) -> Any:
    return value.upper() if isinstance(value, str) else value


# ==============================================================================
# input
# ==============================================================================

class InputField(BaseModel):
    """A declared field of the workflow input."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = Field(..., min_length=1)
    type: Literal["string", "number", "boolean", "json"] = "string"
    required: bool = False
    default: Any = None
    description: Optional[str] = None


class InputConfig(NodeConfig):
    fields: List[InputField] = Field(default_factory=list)


# ==============================================================================
# api
# ==============================================================================

class ApiConfig(NodeConfig):
    url: str = Field(..., min_length=1)
    method: HttpMethod = "GET"
    headers: Dict[str, Any] = Field(default_factory=dict)
    body: Optional[Union[str, Dict[str, Any], List[Any]]] = None
    response_mapping: Optional[Dict[str, str]] = Field(None, alias="responseMapping")
    timeout: Optional[float] = Field(None, gt=0, description="Seconds")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """URL must be absolute http(s)."""
        return _http_url(v)

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: Any) -> Any:
        """Accept lowercase method names."""
        return _upper_method(v)


# ==============================================================================
# ai
# ==============================================================================

class OutputSchema(BaseModel):
    """JSON object schema an ai node's response must satisfy."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: Literal["object"] = "object"
    properties: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)

    @field_validator("properties")
    @classmethod
    def validate_property_types(cls, v: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        """Property types must be JSON schema primitive names."""
        for name, prop in v.items():
            prop_type = prop.get("type")
            if prop_type is not None and prop_type not in JSON_SCHEMA_TYPES:
                raise ValueError(
                    f"property '{name}' has unsupported type '{prop_type}'"
                )
        return v


class AiConfig(NodeConfig):
    provider: Literal["openai", "anthropic"]
    model: str = Field(..., min_length=1)
    system_prompt: Optional[str] = Field(None, alias="systemPrompt")
    user_prompt_template: str = Field(..., min_length=1, alias="userPromptTemplate")
    temperature: float = Field(0.7, ge=0, le=2)
    max_tokens: Optional[int] = Field(None, ge=1, le=100000, alias="maxTokens")
    output_schema: Optional[OutputSchema] = Field(None, alias="outputSchema")


# ==============================================================================
# logic
# ==============================================================================

LogicOperation = Literal[
    "filter", "map", "reduce", "condition", "transform", "passthrough", "sort", "slice",
]


class LogicConfig(NodeConfig):
    operation: LogicOperation = "passthrough"
    condition: Optional[str] = None
    expression: Optional[str] = None
    mappings: Optional[Dict[str, str]] = None


# ==============================================================================
# output
# ==============================================================================

class OutputConfig(NodeConfig):
    format: Literal["json", "text", "markdown"] = "json"
    template: Optional[str] = None
    fields: Optional[List[str]] = None


# ==============================================================================
# webhook
# ==============================================================================

class WebhookConfig(NodeConfig):
    url: str = Field(..., min_length=1)
    method: HttpMethod = "POST"
    headers: Dict[str, Any] = Field(default_factory=dict)
    header_mappings: Dict[str, str] = Field(default_factory=dict, alias="headerMappings")
    payload_template: Optional[Union[Dict[str, Any], List[Any], str]] = Field(
        None, alias="payloadTemplate"
    )
    secret: Optional[str] = None
    timeout: int = Field(30000, ge=1000, le=120000, description="Milliseconds")
    continue_on_error: bool = Field(False, alias="continueOnError")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """URL must be absolute http(s)."""
        return _http_url(v)

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: Any) -> Any:
        """Accept lowercase method names."""
        return _upper_method(v)


# ==============================================================================
# integration
# ==============================================================================

class IntegrationConfig(NodeConfig):
    integration_id: str = Field(..., min_length=1, alias="integrationId")
    action_id: str = Field(..., min_length=1, alias="actionId")
    connection_id: str = Field(..., min_length=1, alias="connectionId")
    input: Dict[str, Any] = Field(default_factory=dict)


CONFIG_MODELS: Mapping[NodeType, Type[NodeConfig]] = {
    NodeType.INPUT: InputConfig,
    NodeType.API: ApiConfig,
    NodeType.AI: AiConfig,
    NodeType.LOGIC: LogicConfig,
    NodeType.OUTPUT: OutputConfig,
    NodeType.WEBHOOK: WebhookConfig,
    NodeType.INTEGRATION: IntegrationConfig,
}

if set(CONFIG_MODELS) != set(NodeType):
    raise RuntimeError(
        f"Node types without a config model: {sorted(t.value for t in set(NodeType) - set(CONFIG_MODELS))}"
    )


def format_validation_errors(error: ValidationError) -> List[str]:
    """Human-readable messages from a pydantic ValidationError."""
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        message = item.get("msg", "invalid value")
        messages.append(f"{location}: {message}" if location else message)
    return messages


def parse_node_config(node_type: NodeType | str, config: Optional[Mapping[str, Any]]) -> NodeConfig:
    """
    Validate a node config into its typed model.

    Raises:
        NodeConfigError: With one message per problem found
    """
    model = CONFIG_MODELS[NodeType(node_type)]
    try:
        return model.model_validate(dict(config or {}))
    except ValidationError as e:
        errors = format_validation_errors(e)
        raise NodeConfigError(
            f"Invalid {NodeType(node_type).value} node configuration: " + "; ".join(errors),
            errors=errors,
        ) from e


def validate_node_config(node_type: NodeType | str, config: Optional[Mapping[str, Any]]) -> List[str]:
    """Validation errors for a node config (empty when valid)."""
    try:
        parse_node_config(node_type, config)
    except NodeConfigError as e:
        return e.errors
    return []


def describe_config_schemas() -> Dict[str, Dict[str, Any]]:
    """JSON schema of every node type's config, keyed by type."""
    return {
        node_type.value: model.model_json_schema(by_alias=True)
        for node_type, model in CONFIG_MODELS.items()
    }
