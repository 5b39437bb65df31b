"""OpenAI-compatible chat-completions adapter.

Architectural role:
    Serves OpenAI directly and any OpenAI-compatible aggregator through base-URL and
    key substitution; `openrouter_adapter()` builds the OpenRouter variant used for
    every namespaced model id (`vendor/model`).

Payload mapping:
    - Messages from `prompting.message_builder` with OpenAI content parts.
    - `response_format`: `json_schema` for compiled object/array schemas, otherwise
      `json_object` or `text`.
    - Optional `reasoning` option, defaulted for OpenRouter.

Failure classification:
    - 429 -> rate limited (`Retry-After` header hint).
    - 500/502/503/504 -> transient overload.
    - HTTP 200 bodies carrying an `error` object (OpenRouter upstream failures) are
      classified by their embedded code.
"""

from aitask.core import errors
from aitask.core.errors import ProviderError
from aitask.core.types import RequestSpec, ResponsePayload
from aitask.llm.adapters.base import ProviderAdapter, WireRequest
from aitask.llm.provider_config import (
    OPENAI,
    OPENROUTER,
    OPENROUTER_REASONING,
    PROVIDERS,
    default_model,
    provider_key,
)
from aitask.prompting.message_builder import IMAGE_STYLE_CONTENT_PARTS, build_messages


class OpenAICompatibleAdapter(ProviderAdapter):
    """Adapter for `/chat/completions` style backends.

    Args:
        provider_id: Provider label used for keys, defaults and logging.
        base_url: API base URL (`.../v1`).
        api_key: Explicit credential; falls back to `provider_key(provider_id)`.
        model: Default model when the candidate names none.
        default_reasoning: `reasoning` value sent when the request has none.
    """

    supports_schema = True
    OVERLOAD_STATUSES = (500, 502, 503, 504)

    def __init__(
        self,
        provider_id: str = OPENAI,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        default_reasoning: dict | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.provider_id = provider_id
        self.base_url = base_url or PROVIDERS[provider_id]["url"]
        self.api_key = api_key
        self.model = model
        self.default_reasoning = default_reasoning

    def build_payload(self, spec: RequestSpec, model: str | None) -> WireRequest:
        model = model or self.model or default_model(self.provider_id)
        if not model:
            raise ProviderError(f"No model configured for {self.provider_id}")

        api_key = self.require_key(self.api_key or provider_key(self.provider_id))

        enforce = self.enforce_schema(spec)
        built = build_messages(
            spec.role,
            spec.task,
            spec.inputs,
            spec.outputs,
            spec.output_format,
            enforce_schema=enforce,
            image_style=IMAGE_STYLE_CONTENT_PARTS,
            compress=spec.compress_inputs,
        )

        if enforce:
            response_format = {
                "type": "json_schema",
                "json_schema": {"name": "Schema", "schema": spec.outputs.schema},
            }
        else:
            response_format = {"type": "json_object" if spec.is_json else "text"}

        body = {
            "model": model,
            "messages": built.messages,
            "response_format": response_format,
            "temperature": spec.temperature,
        }

        reasoning = spec.options.get("reasoning", self.default_reasoning)
        if reasoning:
            body["reasoning"] = reasoning

        return WireRequest(
            url=self.base_url.rstrip("/") + "/chat/completions",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            body=body,
            model=model,
            return_whole_message=built.return_whole_message,
        )

    def parse_response(self, spec: RequestSpec, data: dict, wire: WireRequest) -> ResponsePayload:
        choices = data.get("choices") or []

        if not choices:
            error = data.get("error") or {}
            raise _embedded_error(error)

        message = choices[0].get("message") or {}
        usage = data.get("usage")

        if wire.return_whole_message:
            return ResponsePayload(value=message, usage=usage, raw_message=True)

        return self.finish_value(spec, message.get("content"), usage)


def _embedded_error(error: dict) -> ProviderError:
    code = error.get("code")
    detail = str(error.get("message") or "empty choices")

    if code == 429:
        return ProviderError(detail, kind=errors.RATE_LIMITED, status_code=code)
    if code in (500, 502, 503, 504):
        return ProviderError(detail, kind=errors.TRANSIENT_OVERLOAD, status_code=code)
    return ProviderError(detail, status_code=code if isinstance(code, int) else None)


def openrouter_adapter(**kwargs) -> OpenAICompatibleAdapter:
    """OpenAI-compatible adapter pointed at OpenRouter."""
    return OpenAICompatibleAdapter(
        provider_id=OPENROUTER,
        base_url=PROVIDERS[OPENROUTER]["url"],
        default_reasoning=OPENROUTER_REASONING,
        **kwargs,
    )
