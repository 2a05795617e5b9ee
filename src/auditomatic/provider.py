"""Provider client: one chat-completion HTTP call per task.

``CallProvider`` is the contract the scheduler depends on. ``ProviderClient``
implements it over ``httpx.AsyncClient`` for OpenAI-compatible endpoints,
normalizing the response (or failure) into :class:`ProviderResponse` /
:class:`ProviderError`.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel

from auditomatic.config import ProviderDescriptor, settings
from auditomatic.types import AuditomaticError, Usage

_log = logging.getLogger(__name__)

# Provider error bodies can be large HTML pages; keep messages readable.
_MAX_ERROR_BODY = 500


class ProviderError(AuditomaticError):
    """Raised when a provider call fails.

    Args:
        message: Human-readable error description.
        status_code: HTTP status, when the provider answered at all.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ProviderRequest(BaseModel):
    """Everything needed to issue one chat-completion call."""

    model_config = {"frozen": True}

    provider: ProviderDescriptor
    api_key: str | None = None
    model: str
    prompt: str
    temperature: float = 1.0
    max_tokens: int | None = None
    cors_proxy: str | None = None


class ProviderResponse(BaseModel):
    """Normalized provider answer."""

    model_config = {"frozen": True}

    text: str
    usage: Usage | None = None


@runtime_checkable
class CallProvider(Protocol):
    """Anything that can turn a :class:`ProviderRequest` into a response."""

    async def complete(self, request: ProviderRequest) -> ProviderResponse: ...


# ---------------------------------------------------------------------------
# Request shaping
# ---------------------------------------------------------------------------


def build_url(provider: ProviderDescriptor, cors_proxy: str | None = None) -> str:
    """Return ``{base_url}{endpoint}``, routed through *cors_proxy* when set."""
    endpoint = provider.endpoint or "/chat/completions"
    if not endpoint.startswith("/"):
        endpoint = f"/{endpoint}"
    url = f"{provider.base_url}{endpoint}"
    if cors_proxy:
        url = f"{cors_proxy.rstrip('/')}/{url}"
    return url


def build_headers(provider: ProviderDescriptor, api_key: str | None) -> dict[str, str]:
    """Return request headers with credentials placed per ``auth_type``."""
    headers = {"Content-Type": "application/json"}
    if api_key and provider.auth_type == "bearer":
        headers[provider.auth_header] = f"{provider.auth_prefix} {api_key}"
    elif api_key and provider.auth_type == "header":
        headers[provider.auth_header] = api_key
    return headers


def build_payload(request: ProviderRequest) -> dict[str, Any]:
    """Return the JSON body for a single-user-message chat completion."""
    payload: dict[str, Any] = {
        "model": request.model,
        "messages": [{"role": "user", "content": request.prompt}],
        "temperature": request.temperature,
    }
    if request.max_tokens is not None:
        payload["max_tokens"] = request.max_tokens
    return payload


def parse_response(data: Any) -> ProviderResponse:
    """Extract text and usage from a chat-completion response body.

    Raises:
        ProviderError: If the body has no usable ``choices``.
    """
    if not isinstance(data, dict):
        raise ProviderError(f"Malformed response: expected JSON object, got {type(data).__name__}")
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ProviderError("No choices in response")
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    if not isinstance(message, dict):
        raise ProviderError("Malformed response: choices[0].message missing")
    return ProviderResponse(
        text=message.get("content") or "",
        usage=Usage.from_wire(data.get("usage")),
    )


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


class ProviderClient:
    """HTTP client for OpenAI-compatible chat-completion endpoints.

    Makes exactly one attempt per call; there is no retry.

    Args:
        http: Shared ``httpx.AsyncClient``. One is created (and owned) when
            omitted.
        timeout: Request timeout in seconds for an owned client.
    """

    __slots__ = ("_http", "_owns_http")

    def __init__(self, http: httpx.AsyncClient | None = None, *, timeout: float | None = None) -> None:
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout or settings.request_timeout)

    async def complete(self, request: ProviderRequest) -> ProviderResponse:
        """Send *request* and return the normalized response.

        Raises:
            ProviderError: On transport errors, non-2xx status, a body that
                is not JSON, or a response without choices.
        """
        url = build_url(request.provider, request.cors_proxy)
        _log.debug("POST %s model=%s", url, request.model)
        try:
            resp = await self._http.post(
                url,
                headers=build_headers(request.provider, request.api_key),
                json=build_payload(request),
            )
        except httpx.HTTPError as exc:
            raise ProviderError(f"Request failed: {exc}") from exc

        if not resp.is_success:
            body = resp.text[:_MAX_ERROR_BODY]
            raise ProviderError(f"API error: {resp.status_code} - {body}", status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError(f"Malformed response: invalid JSON ({exc})") from exc
        return parse_response(data)

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> ProviderClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"ProviderClient(owns_http={self._owns_http})"
