"""OpenAI Chat Completions provider."""
import json
from typing import Any

from flowys.node_sdk.basenode import NodeApiError, NodeConfigError

from .base import LLMProvider, LLMResponse, LLMUsage, PromptMessage

# Model prefixes that accept response_format={"type": "json_object"}
JSON_OBJECT_MODELS = (
    "gpt-4o",
    "gpt-4.1",
    "gpt-4-turbo",
    "gpt-4-1106",
    "gpt-4-0125",
    "gpt-3.5-turbo-1106",
    "gpt-3.5-turbo-0125",
)


def supports_json_object(model: str) -> bool:
    return model.lower().startswith(JSON_OBJECT_MODELS)


class OpenAIProvider(LLMProvider):
    """Calls POST {openai_base_url}/v1/chat/completions."""

    name = "openai"

    def complete(
        self,
        messages: list[PromptMessage],
        model: str,
        temperature: float,
        max_tokens: int,
        output_schema: dict[str, Any] | None = None,
    ) -> LLMResponse:
        """Run one completion, in JSON mode when a schema is given."""
        settings = self._settings
        if settings.openai_api_key is None:
            raise NodeConfigError(
                "OpenAI API key is not configured (set FLOWYS_OPENAI_API_KEY)"
            )

        chat_messages = [{"role": m.role, "content": m.content} for m in messages]
        request_body: dict[str, Any] = {
            "model": model,
            "messages": chat_messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        if output_schema is not None:
            instruction = (
                "\n\nIMPORTANT: You must respond with valid JSON only, no other text. "
                f"The JSON must match this schema:\n{json.dumps(output_schema, indent=2)}"
            )
            system = next((m for m in chat_messages if m["role"] == "system"), None)
            if system is not None:
                system["content"] += instruction
            else:
                chat_messages.insert(
                    0,
                    {
                        "role": "system",
                        "content": "You are a helpful assistant. Respond only with "
                        "valid JSON, no other text." + instruction,
                    },
                )
            if supports_json_object(model):
                request_body["response_format"] = {"type": "json_object"}

        headers = {
            "Authorization": f"Bearer {settings.openai_api_key.get_secret_value()}",
            "Content-Type": "application/json",
        }

        data = self._post_json(
            f"{settings.openai_base_url.rstrip('/')}/v1/chat/completions",
            request_body,
            headers,
            extra={"provider": self.name, "model": model},
        )

        choices = data.get("choices") or []
        content = choices[0].get("message", {}).get("content") if choices else None
        if not content:
            raise NodeApiError("No response content from OpenAI")

        usage = data.get("usage") or {}
        return LLMResponse(
            content=content,
            model=data.get("model", model),
            usage=LLMUsage(
                input_tokens=usage.get("prompt_tokens"),
                output_tokens=usage.get("completion_tokens"),
            ),
        )
