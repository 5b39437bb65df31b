"""Shared provider-adapter contract and HTTP transport.

Architectural role:
    Every backend family implements `build_payload` (request -> wire call) and
    `parse_response` (wire response -> `ResponsePayload`). This base class runs the
    call, logs usage, and classifies every failure into an `AttemptResult` so the
    fallback controller never sees raw transport exceptions.

Model invocation flow:
    `FallbackController` -> `adapter.attempt(spec, model)` -> `build_payload` ->
    `invoke` (httpx POST) -> `parse_response` -> `Success | <failure kind>`.

Retry behavior:
    None here. Each `attempt` performs exactly one HTTP call; retry and candidate
    advancement are decided by `core.fallback`.

Failure classification:
    - Status codes in `RATE_LIMIT_STATUSES` -> `RateLimited` with the backend hint.
    - Status codes in `OVERLOAD_STATUSES`, timeouts, transport errors ->
      `TransientOverload`.
    - JSON parse failures -> `MalformedOutput`.
    - Everything else -> `Fatal`.
"""

import logging
from dataclasses import dataclass, field

import httpx

from aitask.core import errors
from aitask.core.errors import MalformedOutputError, ProviderError
from aitask.core.types import (
    CompiledSchema,
    Fatal,
    MalformedOutput,
    RateLimited,
    RequestSpec,
    ResponsePayload,
    Success,
    TransientOverload,
)
from aitask.llm.parsing import parse_json_text
from aitask.llm.provider_config import HTTP_TIMEOUT_SECONDS


logger = logging.getLogger(__name__)

ERROR_BODY_PREVIEW_CHARS = 300


@dataclass
class WireRequest:
    """One prepared backend call."""

    url: str
    headers: dict
    body: dict
    model: str | None = None
    return_whole_message: bool = False
    extra: dict = field(default_factory=dict)


class ProviderAdapter:
    """Base class for backend adapters.

    Args:
        timeout: Per-request transport timeout in seconds.
        transport: Optional `httpx` transport, for example `httpx.MockTransport`.
    """

    provider_id = ""
    supports_schema = False
    RATE_LIMIT_STATUSES = (429,)
    OVERLOAD_STATUSES = (503,)

    def __init__(self, timeout: float = HTTP_TIMEOUT_SECONDS, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.timeout = timeout
        self.transport = transport

    # ---------------------------------------------------------
    # Contract
    # ---------------------------------------------------------

    def build_payload(self, spec: RequestSpec, model: str | None) -> WireRequest:
        raise NotImplementedError

    def parse_response(self, spec: RequestSpec, data: dict, wire: WireRequest) -> ResponsePayload:
        raise NotImplementedError

    def retry_hint(self, response: httpx.Response) -> float | None:
        """Extract the backend's retry-after hint in seconds."""
        value = response.headers.get("retry-after")
        if not value:
            return None
        try:
            return float(value)
        except ValueError:
            return None

    # ---------------------------------------------------------
    # Execution
    # ---------------------------------------------------------

    async def attempt(self, spec: RequestSpec, model: str | None):
        """Run one backend call and classify its outcome.

        Returns:
            `Success` or one of the failure variants. Never raises.
        """
        try:
            wire = self.build_payload(spec, model)
            data = await self.invoke(wire)
            payload = self.parse_response(spec, data, wire)
        except Exception as exc:
            return self.classify_error(exc)

        self._log_usage(wire.model, payload.usage)
        return Success(payload)

    async def invoke(self, wire: WireRequest) -> dict:
        """POST the wire request and return the decoded JSON body.

        Raises:
            httpx.HTTPStatusError: Non-2xx responses.
            httpx.RequestError: Transport failures and timeouts.
            ProviderError: Non-JSON response bodies.
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(wire.url, headers=wire.headers, json=wire.body)

        response.raise_for_status()

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(f"Non-JSON response from {self.provider_id}", status_code=response.status_code) from exc

        if not isinstance(data, dict):
            raise ProviderError(f"Unexpected response shape from {self.provider_id}")
        return data

    def classify_error(self, exc: Exception):
        """Map an exception onto the attempt-outcome taxonomy."""
        label = self.provider_id.upper() or "PROVIDER"

        if isinstance(exc, ProviderError):
            return _from_kind(exc.kind, f"{label}: {exc.detail}", exc.retry_after)

        if isinstance(exc, MalformedOutputError):
            return MalformedOutput(detail=f"{label}: {exc}")

        if isinstance(exc, httpx.HTTPStatusError):
            response = exc.response
            status = response.status_code
            if status in self.RATE_LIMIT_STATUSES:
                return RateLimited(retry_after=self.retry_hint(response), detail=f"{label} HTTP ERROR ({status})")
            if status in self.OVERLOAD_STATUSES:
                return TransientOverload(detail=f"{label} HTTP ERROR ({status})")
            preview = response.text[:ERROR_BODY_PREVIEW_CHARS] if response.text else ""
            return Fatal(detail=f"{label} HTTP ERROR ({status}) {preview}".strip())

        if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
            return TransientOverload(detail=f"{label} REQUEST FAILED: {type(exc).__name__}")

        if isinstance(exc, (errors.SchemaCompileError, errors.ImagePreprocessError)):
            return Fatal(detail=f"{label}: {exc}")

        logger.exception("Unexpected %s adapter failure", self.provider_id)
        return Fatal(detail=f"{label} REQUEST FAILED: {type(exc).__name__}")

    # ---------------------------------------------------------
    # Helpers for subclasses
    # ---------------------------------------------------------

    def enforce_schema(self, spec: RequestSpec) -> bool:
        return self.supports_schema and spec.is_json and isinstance(spec.outputs, CompiledSchema)

    def finish_value(self, spec: RequestSpec, text, usage: dict | None) -> ResponsePayload:
        """Parse `text` per the output format and attach usage when requested."""
        value = parse_json_text(text) if spec.is_json else text

        if spec.include_metadata and usage and isinstance(value, dict):
            value = {**value, "usageMetadata": usage}

        return ResponsePayload(value=value, usage=usage)

    def require_key(self, key):
        if not key:
            raise ProviderError(f"{self.provider_id.upper()} KEY NOT CONFIGURED")
        return key

    def _log_usage(self, model: str | None, usage: dict | None) -> None:
        tokens_in, tokens_out = self.usage_counts(usage or {})
        logger.info(
            "[%s] %s response received. tokens in: %s, out: %s",
            self.provider_id,
            model,
            tokens_in,
            tokens_out,
        )

    def usage_counts(self, usage: dict):
        return usage.get("prompt_tokens"), usage.get("completion_tokens")


def _from_kind(kind: str, detail: str, retry_after: float | None = None):
    if kind == errors.RATE_LIMITED:
        return RateLimited(retry_after=retry_after, detail=detail)
    if kind == errors.TRANSIENT_OVERLOAD:
        return TransientOverload(detail=detail)
    if kind == errors.MALFORMED_OUTPUT:
        return MalformedOutput(detail=detail)
    return Fatal(detail=detail)
