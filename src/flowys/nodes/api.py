"""
API Node - issues an HTTP request and shapes the response.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from flowys.node_sdk.basenode import NodeContext, NodeHandler, NodeType
from flowys.node_sdk.items import get_path, to_text

from .config import ApiConfig


BODY_METHODS = ("POST", "PUT", "PATCH")


class ApiNode(NodeHandler):
    """
    API Request - call an HTTP endpoint.

    Output shaping:
    - responseMapping: {key: dot-path into the response body}
    - dict body: the body itself
    - list body: {"data": body, "count": len(body)}
    - text body: {"response": text}
    """

    node_type = NodeType.API
    config_model = ApiConfig
    display_name = "API Request"
    description = "Makes an HTTP request to an external API"
    text_fields = ("url", "headers")

    def execute(self, config: ApiConfig, context: NodeContext) -> Any:
        headers = {key: to_text(value) for key, value in config.headers.items()}
        json_body, raw_body = self._prepare_body(config, headers)
        timeout = config.timeout or context.settings.http_timeout_s

        self.logger.debug(f"{config.method} {config.url}")
        client = context.http_client(timeout=timeout)
        response = client.request(
            config.method,
            config.url,
            json=json_body,
            data=raw_body,
            headers=headers,
        )
        response.raise_for_status()
        return self._shape(response.body(), config.response_mapping)

    def _prepare_body(self, config: ApiConfig, headers: Dict[str, str]) -> tuple[Any, Optional[str]]:
        """Returns (json_body, raw_body); at most one is set."""
        if config.body is None or config.body == "" or config.method not in BODY_METHODS:
            return None, None
        if isinstance(config.body, str):
            if not any(key.lower() == "content-type" for key in headers):
                headers["Content-Type"] = "application/json"
            return None, config.body
        return config.body, None

    def _shape(self, data: Any, mapping: Optional[Dict[str, str]]) -> Any:
        if mapping and isinstance(data, (dict, list)):
            return {key: get_path(data, path, None) for key, path in mapping.items()}
        if isinstance(data, list):
            return {"data": data, "count": len(data)}
        if isinstance(data, dict):
            return data
        return {"response": data}
