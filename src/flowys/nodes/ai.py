"""
AI Node - prompts an LLM provider and enforces an optional output schema.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List

from flowys.node_sdk.basenode import NodeConfigError, NodeContext, NodeHandler, NodeType, OutputSchemaError
from flowys.providers.base import LLMProvider, PromptMessage
from flowys.providers.parsing import extract_json, looks_like_json, parse_with_schema

from .config import AiConfig


DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

FILTERED = "[FILTERED]"

# Prompt-injection phrases replaced before anything reaches the model
_INJECTION_PATTERNS = [
    re.compile(r"ignore\s+(all\s+)?(previous|above|prior)\s+instructions?", re.IGNORECASE),
    re.compile(r"disregard\s+(all\s+)?(previous|above|prior)\s+instructions?", re.IGNORECASE),
    re.compile(r"forget\s+(all\s+)?(previous|above|prior)\s+instructions?", re.IGNORECASE),
    re.compile(r"you\s+are\s+now\s+a\s+different", re.IGNORECASE),
    re.compile(r"new\s+instructions?:", re.IGNORECASE),
    re.compile(r"system\s*:\s*you\s+are", re.IGNORECASE),
]

JSON_INSTRUCTIONS = """

CRITICAL INSTRUCTIONS FOR YOUR RESPONSE:
- Respond with valid JSON only - no markdown, no explanations
- Keep ALL string values SHORT (under 150 characters each)
- Complete the entire JSON structure - do not truncate"""


def sanitize_prompt(prompt: str) -> str:
    """Replace known prompt-injection phrases with [FILTERED]."""
    for pattern in _INJECTION_PATTERNS:
        prompt = pattern.sub(FILTERED, prompt)
    return prompt


class AiNode(NodeHandler):
    """
    AI - one chat completion per run.

    With outputSchema the response must be a JSON object with every
    required property present and typed as declared. A non-conforming
    answer is retried with a corrective message, then fails with
    OutputSchemaError. Without a schema, JSON-looking answers are parsed
    and anything else is returned as {"response", "text"}.
    """

    node_type = NodeType.AI
    config_model = AiConfig
    display_name = "AI"
    description = "Runs a prompt through an LLM provider"
    text_fields = ("systemPrompt", "userPromptTemplate")

    def execute(self, config: AiConfig, context: NodeContext) -> Any:
        provider = self._provider(config.provider, context)
        schema = config.output_schema.model_dump(exclude_none=True) if config.output_schema else None
        messages = self._build_messages(config, schema is not None)
        max_tokens = config.max_tokens or context.settings.ai_default_max_tokens

        if schema is None:
            response = provider.complete(messages, config.model, config.temperature, max_tokens)
            return self._free_text(response.content)

        retries = context.settings.ai_schema_retries
        for attempt in range(retries + 1):
            response = provider.complete(
                messages, config.model, config.temperature, max_tokens, output_schema=schema,
            )
            try:
                return parse_with_schema(response.content, schema)
            except OutputSchemaError as e:
                if attempt >= retries or context.cancelled:
                    raise
                self.logger.warning(
                    f"Response did not match output schema (attempt {attempt + 1}): {e.errors}"
                )
                messages = messages + self._corrective_messages(response.content, e, schema)

        raise OutputSchemaError("Response does not match output schema")

    def _provider(self, name: str, context: NodeContext) -> LLMProvider:
        provider = context.providers.get(name)
        if provider is None:
            raise NodeConfigError(f"AI provider '{name}' is not available")
        return provider

    def _build_messages(self, config: AiConfig, wants_json: bool) -> List[PromptMessage]:
        system = sanitize_prompt(config.system_prompt) if config.system_prompt else DEFAULT_SYSTEM_PROMPT
        if wants_json:
            system += JSON_INSTRUCTIONS
        return [
            PromptMessage(role="system", content=system),
            PromptMessage(role="user", content=sanitize_prompt(config.user_prompt_template)),
        ]

    def _corrective_messages(
        self,
        previous: str,
        error: OutputSchemaError,
        schema: Dict[str, Any],
    ) -> List[PromptMessage]:
        problems = "; ".join(error.errors) or error.message
        return [
            PromptMessage(role="assistant", content=previous or "(empty response)"),
            PromptMessage(
                role="user",
                content=(
                    f"Your previous response was invalid: {problems}. "
                    "Respond again with only a JSON object matching this schema:\n"
                    f"{json.dumps(schema, indent=2)}"
                ),
            ),
        ]

    def _free_text(self, content: str) -> Any:
        if looks_like_json(content):
            try:
                return extract_json(content)
            except OutputSchemaError:
                pass
        return {"response": content, "text": content}
