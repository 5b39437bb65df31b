"""Gemini `generateContent` adapter (schema-enforcing backend).

Payload mapping:
    - Role -> `systemInstruction`, except for `gemma*` models which do not support
      one; there the role is folded into the task as `ROLE:<role>`.
    - Conversation turns -> `contents` (`assistant` -> `model`, everything else
      -> `user`); Base64 images -> `inline_data` parts.
    - `generationConfig`: temperature, response MIME type and, for compiled
      object/array schemas, `responseJsonSchema`.

Failure classification:
    - 429 -> rate limited, hint read from the `google.rpc.RetryInfo` error detail.
    - 499 (client closed) and 503 (unavailable) -> transient overload.
"""

import httpx

from aitask.core.errors import ProviderError
from aitask.core.types import OUTPUT_FORMAT_JSON, RequestSpec, ResponsePayload
from aitask.llm.adapters.base import ProviderAdapter, WireRequest
from aitask.llm.provider_config import GEMINI, PROVIDERS, default_model, provider_key
from aitask.prompting.message_builder import IMAGE_STYLE_IMAGE_LIST, build_messages


RETRY_INFO_TYPE = "type.googleapis.com/google.rpc.RetryInfo"


class GeminiAdapter(ProviderAdapter):
    provider_id = GEMINI
    supports_schema = True
    OVERLOAD_STATUSES = (499, 503)

    def __init__(self, api_key: str | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key

    def build_payload(self, spec: RequestSpec, model: str | None) -> WireRequest:
        model = model or default_model(GEMINI)
        api_key = self.require_key(self.api_key or provider_key(GEMINI))

        role = spec.role
        task = spec.task
        supports_system_instruction = not model.startswith("gemma")
        if role and not supports_system_instruction:
            task = f"ROLE:{role}\n\n{task}"

        enforce = self.enforce_schema(spec)
        built = build_messages(
            None,
            task,
            spec.inputs,
            spec.outputs,
            spec.output_format,
            enforce_schema=enforce,
            image_style=IMAGE_STYLE_IMAGE_LIST,
            compress=spec.compress_inputs,
        )

        generation_config = {
            "temperature": spec.temperature,
            "responseMimeType": "application/json" if spec.output_format == OUTPUT_FORMAT_JSON else "text/plain",
        }
        if enforce:
            generation_config["responseJsonSchema"] = spec.outputs.schema

        body = {
            "contents": to_gemini_contents(built.messages),
            "generationConfig": generation_config,
        }
        if role and supports_system_instruction:
            body["systemInstruction"] = {"parts": [{"text": role}]}

        return WireRequest(
            url=PROVIDERS[GEMINI]["url"].format(model=model),
            headers={
                "x-goog-api-key": api_key,
                "Content-Type": "application/json",
            },
            body=body,
            model=model,
            return_whole_message=built.return_whole_message,
        )

    def parse_response(self, spec: RequestSpec, data: dict, wire: WireRequest) -> ResponsePayload:
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback") or {}
            reason = feedback.get("blockReason", "no candidates")
            raise ProviderError(f"Gemini returned no candidates ({reason})")

        content = candidates[0].get("content") or {}
        usage = data.get("usageMetadata")

        if wire.return_whole_message:
            return ResponsePayload(value=content, usage=usage, raw_message=True)

        text = "".join(part.get("text", "") for part in content.get("parts", []))
        return self.finish_value(spec, text, usage)

    def retry_hint(self, response: httpx.Response) -> float | None:
        try:
            details = response.json().get("error", {}).get("details", [])
        except (ValueError, AttributeError):
            details = []

        for detail in details:
            if detail.get("@type") == RETRY_INFO_TYPE and detail.get("retryDelay"):
                try:
                    return float(str(detail["retryDelay"]).rstrip("s"))
                except ValueError:
                    break

        return super().retry_hint(response)

    def usage_counts(self, usage: dict):
        return usage.get("promptTokenCount"), usage.get("candidatesTokenCount")


def to_gemini_contents(messages: list) -> list:
    """Convert role/content turns into Gemini `contents` entries.

    Edge cases:
        - Entries already carrying `parts` are passed through unchanged.
        - Empty turns are dropped.
    """
    contents = []

    for msg in messages:
        if not isinstance(msg, dict):
            continue

        if "parts" in msg:
            contents.append(msg)
            continue

        role = "model" if msg.get("role") == "assistant" else "user"
        content = msg.get("content", "")

        if isinstance(content, list):
            parts = [{"text": item.get("text", "")} for item in content if isinstance(item, dict) and item.get("type") == "text"]
        elif content:
            parts = [{"text": str(content)}]
        else:
            parts = []

        for encoded in msg.get("images", []):
            parts.append({"inline_data": {"mime_type": "image/jpeg", "data": encoded}})

        if parts:
            contents.append({"role": role, "parts": parts})

    return contents

