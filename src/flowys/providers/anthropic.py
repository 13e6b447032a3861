"""Anthropic Messages API provider."""
from typing import Any

from flowys.node_sdk.basenode import NodeApiError, NodeConfigError

from .base import LLMProvider, LLMResponse, LLMUsage, PromptMessage


class AnthropicProvider(LLMProvider):
    """Calls POST {anthropic_base_url}/v1/messages."""

    name = "anthropic"

    def complete(
        self,
        messages: list[PromptMessage],
        model: str,
        temperature: float,
        max_tokens: int,
        output_schema: dict[str, Any] | None = None,
    ) -> LLMResponse:
        """Run one completion; system messages become the `system` field."""
        settings = self._settings
        if settings.anthropic_api_key is None:
            raise NodeConfigError(
                "Anthropic API key is not configured (set FLOWYS_ANTHROPIC_API_KEY)"
            )

        system_parts = [m.content for m in messages if m.role == "system"]
        request_body: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            # The Messages API caps temperature at 1
            "temperature": min(temperature, 1.0),
            "messages": [
                {"role": m.role, "content": m.content}
                for m in messages
                if m.role != "system"
            ],
        }
        if system_parts:
            request_body["system"] = "\n\n".join(system_parts)

        headers = {
            "x-api-key": settings.anthropic_api_key.get_secret_value(),
            "anthropic-version": settings.anthropic_version,
            "content-type": "application/json",
        }

        data = self._post_json(
            f"{settings.anthropic_base_url.rstrip('/')}/v1/messages",
            request_body,
            headers,
            extra={"provider": self.name, "model": model},
        )

        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        if not text:
            raise NodeApiError("No response content from Anthropic")

        usage = data.get("usage") or {}
        return LLMResponse(
            content=text,
            model=data.get("model", model),
            usage=LLMUsage(
                input_tokens=usage.get("input_tokens"),
                output_tokens=usage.get("output_tokens"),
            ),
        )
