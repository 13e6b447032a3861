"""LLM provider contract and the shared httpx transport."""
import time
from abc import ABC, abstractmethod
from typing import Any, Literal

import httpx
from pydantic import BaseModel, Field

from flowys.config import Settings, get_settings
from flowys.node_sdk.basenode import NodeApiError, NodeTimeoutError
from flowys.observability import get_logger

logger = get_logger(__name__)


class PromptMessage(BaseModel):
    """Chat message sent to a provider."""

    role: Literal["system", "user", "assistant"] = Field(..., description="Message role")
    content: str = Field(..., description="Message content")


class LLMUsage(BaseModel):
    """Token usage information."""

    input_tokens: int | None = None
    output_tokens: int | None = None


class LLMResponse(BaseModel):
    """Text returned by a provider."""

    content: str = Field(..., description="Generated text")
    model: str = Field(..., description="Model used")
    usage: LLMUsage = Field(default_factory=LLMUsage)


class LLMProvider(ABC):
    """A chat-completion backend used by ai nodes."""

    name: str = "base"

    def __init__(self, settings: Settings | None = None, max_retries: int = 2) -> None:
        self._settings = settings or get_settings()
        self.max_retries = max_retries

    @abstractmethod
    def complete(
        self,
        messages: list[PromptMessage],
        model: str,
        temperature: float,
        max_tokens: int,
        output_schema: dict[str, Any] | None = None,
    ) -> LLMResponse:
        """
        Run one chat completion.

        Args:
            messages: System, user and assistant messages in order
            model: Provider model name
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            output_schema: JSON schema the answer should follow, if any

        Returns:
            LLMResponse with the generated text

        Raises:
            NodeConfigError: If the provider is not configured
            NodeApiError: On HTTP errors
            NodeTimeoutError: On timeouts
        """

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=5.0,
            read=self._settings.ai_timeout_s,
            write=5.0,
            pool=5.0,
        )

    def _post_json(
        self,
        url: str,
        body: dict[str, Any],
        headers: dict[str, str],
        extra: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        POST a JSON body, retrying rate limits, server errors and timeouts.

        Returns:
            Parsed JSON response
        """
        extra = extra or {}
        for attempt in range(self.max_retries + 1):
            retry_reason = None
            try:
                with httpx.Client(timeout=self._timeout()) as client:
                    response = client.post(url, json=body, headers=headers)

                    if response.status_code == 429 or 500 <= response.status_code < 600:
                        retry_reason = f"status {response.status_code}"
                        if attempt >= self.max_retries:
                            raise NodeApiError(
                                f"{self.name} API error {response.status_code}: "
                                f"{response.text[:200]}",
                                status_code=response.status_code,
                                response_body=response.text[:200],
                            )
                    elif response.status_code >= 400:
                        # Client errors other than 429 are not retried
                        raise NodeApiError(
                            f"{self.name} API error {response.status_code}: "
                            f"{response.text[:200]}",
                            status_code=response.status_code,
                            response_body=response.text[:200],
                        )
                    else:
                        try:
                            return response.json()
                        except ValueError as e:
                            raise NodeApiError(
                                f"{self.name} API returned invalid JSON"
                            ) from e

            except httpx.TimeoutException as e:
                if attempt >= self.max_retries:
                    raise NodeTimeoutError(
                        f"{self.name} request timed out: {e}",
                        timeout=self._settings.ai_timeout_s,
                        url=url,
                    ) from e
                retry_reason = "timeout"

            except httpx.HTTPError as e:
                raise NodeApiError(f"{self.name} HTTP error: {e}") from e

            wait_time = 0.5 * (2**attempt)
            logger.warning(
                f"{self.name} call failed ({retry_reason}), retrying in {wait_time}s",
                extra=extra,
            )
            time.sleep(wait_time)

        raise NodeApiError(f"{self.name} API: max retries exceeded")
