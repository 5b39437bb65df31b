"""Local Ollama `/api/chat` adapter.

Uses `/api/chat` so the role can travel as a system turn. Images ride on the last
user turn as the native `images` list. Structured output uses `format`: the
compiled schema when one is given, otherwise `"json"` in JSON mode.

No credentials are needed. When the request supplied raw `messages`, the backend's
whole `message` object is returned instead of the parsed content.
"""

from aitask.core.types import RequestSpec, ResponsePayload
from aitask.llm.adapters.base import ProviderAdapter, WireRequest
from aitask.llm.provider_config import OLLAMA, OLLAMA_NUM_CTX, PROVIDERS, default_model
from aitask.prompting.message_builder import IMAGE_STYLE_IMAGE_LIST, build_messages


class OllamaAdapter(ProviderAdapter):
    provider_id = OLLAMA
    supports_schema = True

    def __init__(self, base_url: str | None = None, num_ctx: int = OLLAMA_NUM_CTX, **kwargs) -> None:
        super().__init__(**kwargs)
        self.base_url = base_url or PROVIDERS[OLLAMA]["url"]
        self.num_ctx = num_ctx

    def build_payload(self, spec: RequestSpec, model: str | None) -> WireRequest:
        model = model or default_model(OLLAMA)

        enforce = self.enforce_schema(spec)
        built = build_messages(
            spec.role,
            spec.task,
            spec.inputs,
            spec.outputs,
            spec.output_format,
            enforce_schema=enforce,
            image_style=IMAGE_STYLE_IMAGE_LIST,
            compress=spec.compress_inputs,
        )

        body = {
            "model": model,
            "messages": built.messages,
            "stream": False,
            "options": {
                "temperature": spec.temperature,
                "num_ctx": self.num_ctx,
            },
        }
        if enforce:
            body["format"] = spec.outputs.schema
        elif spec.is_json:
            body["format"] = "json"

        return WireRequest(
            url=self.base_url.rstrip("/") + "/api/chat",
            headers={"Content-Type": "application/json"},
            body=body,
            model=model,
            return_whole_message=built.return_whole_message,
        )

    def parse_response(self, spec: RequestSpec, data: dict, wire: WireRequest) -> ResponsePayload:
        message = data.get("message") or {}
        usage = {
            key: data[key]
            for key in ("prompt_eval_count", "eval_count")
            if key in data
        }

        if wire.return_whole_message:
            return ResponsePayload(value=message, usage=usage or None, raw_message=True)

        return self.finish_value(spec, message.get("content"), usage or None)

    def usage_counts(self, usage: dict):
        return usage.get("prompt_eval_count"), usage.get("eval_count")
