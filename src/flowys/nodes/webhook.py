"""
Webhook Node - sends a signed JSON request to an external endpoint.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from typing import Any, Dict

from flowys.node_sdk.basenode import NodeApiError, NodeContext, NodeHandler, NodeType
from flowys.node_sdk.http import ERROR_BODY_LIMIT, HttpResponse
from flowys.node_sdk.items import MISSING, get_path, to_text

from .config import WebhookConfig


SIGNATURE_HEADER = "X-Webhook-Signature"


def sign_payload(body: str, secret: str) -> str:
    """`sha256=<hex HMAC-SHA256 of body>`."""
    digest = hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"sha256={digest}"


class WebhookNode(NodeHandler):
    """
    Webhook - POST (by default) a JSON document to a URL.

    The document is `payloadTemplate` when set, otherwise the node's
    payload plus a `_meta` block. With a `secret`, the exact body sent is
    signed with HMAC-SHA256 in the X-Webhook-Signature header.

    Non-2xx responses fail the node unless `continueOnError` is set, in
    which case the node succeeds with {"success": false, ...}.
    """

    node_type = NodeType.WEBHOOK
    config_model = WebhookConfig
    display_name = "Webhook"
    description = "Sends data to an external webhook URL"
    text_fields = ("url", "headers")

    def execute(self, config: WebhookConfig, context: NodeContext) -> Any:
        document = self._document(config, context)
        body = json.dumps(document, default=str)
        headers = self._headers(config, context)
        if config.secret:
            headers[SIGNATURE_HEADER] = sign_payload(body, config.secret)

        timeout_s = config.timeout / 1000
        client = context.http_client(timeout=timeout_s)
        started = time.monotonic()
        response = client.request(
            config.method,
            config.url,
            data=body if config.method != "GET" else None,
            headers=headers,
        )
        duration_ms = round((time.monotonic() - started) * 1000)
        response_data = self._response_data(response)

        if not response.ok:
            if config.continue_on_error:
                self.logger.warning(
                    f"Webhook returned {response.status_code}, continuing"
                )
                return {
                    "success": False,
                    "statusCode": response.status_code,
                    "statusText": response.reason,
                    "response": response_data,
                    "duration": duration_ms,
                    "url": config.url,
                }
            raise NodeApiError(
                f"Webhook failed with status {response.status_code}: {response.reason}",
                status_code=response.status_code,
                response_body=response.text[:ERROR_BODY_LIMIT],
            )

        return {
            "success": True,
            "statusCode": response.status_code,
            "response": response_data,
            "duration": duration_ms,
            "url": config.url,
        }

    def _document(self, config: WebhookConfig, context: NodeContext) -> Any:
        if config.payload_template not in (None, "", {}, []):
            return config.payload_template
        payload = context.payload
        document: Dict[str, Any] = dict(payload) if isinstance(payload, dict) else {"data": payload}
        document["_meta"] = {
            "runId": context.run_id,
            "nodeId": context.node_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return document

    def _headers(self, config: WebhookConfig, context: NodeContext) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": context.settings.webhook_user_agent,
        }
        headers.update({key: to_text(value) for key, value in config.headers.items()})
        for header, path in config.header_mappings.items():
            value = get_path(context.payload, path)
            if value is not MISSING and value is not None:
                headers[header] = to_text(value)
        return headers

    def _response_data(self, response: HttpResponse) -> Any:
        try:
            return response.body()
        except NodeApiError:
            return response.text
