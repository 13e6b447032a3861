"""
HTTP Client - Timeout-bounded HTTP requests for nodes.

Every outbound call made by api and webhook nodes goes through HttpClient,
which always sends an explicit timeout and converts transport failures into
node errors.
"""

from __future__ import annotations

import json as jsonlib
import logging
from typing import Any, Dict, Optional, Union

import requests
from requests.exceptions import RequestException, Timeout

from .basenode import NodeApiError, NodeTimeoutError


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30

# Error bodies are truncated to this many characters in node errors
ERROR_BODY_LIMIT = 200


class HttpResponse:
    """
    Wrapper for HTTP response with convenient accessors.
    """

    def __init__(self, response: requests.Response):
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._response.headers)

    @property
    def content_type(self) -> str:
        return self._response.headers.get("Content-Type", "")

    @property
    def text(self) -> str:
        return self._response.text

    @property
    def reason(self) -> str:
        return self._response.reason or ""

    @property
    def url(self) -> str:
        return str(self._response.url)

    def json(self) -> Any:
        """Parse response as JSON."""
        return self._response.json()

    def body(self) -> Any:
        """
        Parsed body: JSON for JSON content types (or JSON-looking text),
        otherwise the raw text.

        Raises:
            NodeApiError: If a JSON content type carries an invalid body
        """
        if "json" in self.content_type.lower():
            try:
                return self.json()
            except ValueError as e:
                raise NodeApiError(
                    f"Invalid JSON in response body: {e}",
                    status_code=self.status_code,
                    response_body=self.text[:ERROR_BODY_LIMIT],
                ) from e
        text = self.text
        stripped = text.strip()
        if stripped[:1] in ("{", "["):
            try:
                return jsonlib.loads(stripped)
            except ValueError:
                return text
        return text

    @property
    def ok(self) -> bool:
        """True if status code is 2xx."""
        return 200 <= self.status_code < 300

    def raise_for_status(self) -> None:
        """Raise NodeApiError if status code is not 2xx."""
        if not self.ok:
            body = self.text[:ERROR_BODY_LIMIT] if self.text else ""
            raise NodeApiError(
                f"HTTP {self.status_code}: {self.reason or 'request failed'}"
                + (f" - {body}" if body else ""),
                status_code=self.status_code,
                response_body=body or None,
            )


class HttpClient:
    """
    HTTP client with timeout enforcement.

    Usage:
        client = HttpClient(timeout=10)
        response = client.request("GET", "https://api.example.com/users")
        data = response.body()
    """

    def __init__(
        self,
        default_headers: Optional[Dict[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize HTTP client.

        Args:
            default_headers: Headers to include in all requests
            timeout: Default timeout in seconds
        """
        self.timeout = timeout
        self.headers: Dict[str, str] = dict(default_headers or {})

    def request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        data: Optional[Union[str, bytes]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        """
        Make HTTP request with timeout enforcement.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, PATCH)
            url: Absolute request URL
            params: Query parameters
            json: JSON body (auto-serialized)
            data: Raw body
            headers: Additional headers (merged with defaults)
            timeout: Override default timeout

        Returns:
            HttpResponse wrapper

        Raises:
            NodeTimeoutError: If request times out
            NodeApiError: If the request could not be completed
        """
        request_headers = {**self.headers, **(headers or {})}
        request_timeout = timeout or self.timeout

        try:
            response = requests.request(
                method=method,
                url=url,
                params=params,
                json=json,
                data=data,
                headers=request_headers,
                timeout=request_timeout,
            )
            return HttpResponse(response)

        except Timeout as e:
            raise NodeTimeoutError(
                f"Request to {url} timed out after {request_timeout}s",
                timeout=request_timeout,
                url=url,
            ) from e

        except RequestException as e:
            raise NodeApiError(f"Request to {url} failed: {e}") from e
