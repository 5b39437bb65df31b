"""Conversation assembly for task requests.

This module is intentionally narrow: it only turns an already normalized request
into role-tagged conversation turns. Provider selection, retries, response parsing
and caching happen outside this module.

Design constraints:
    - Deterministic construction for identical inputs.
    - Fixed ordering of prompt blocks: task, expected output, input payload.
    - Empty blocks are omitted, never emitted as empty fences.
    - The caller's `inputs` mapping is never mutated.

Image attachment:
    Images listed under the reserved `images` input key are encoded through
    `image.preprocess.encode_image` and attached to the final user turn, either as
    OpenAI-style content parts or as a plain `images` list (Ollama native form,
    translated to `inline_data` parts by the Gemini adapter).
"""

import json
from dataclasses import dataclass, field

from aitask.core.types import (
    IMAGES_KEY,
    MESSAGES_KEY,
    OUTPUT_FORMAT_JSON,
    CompiledSchema,
    Descriptor,
    OutputSpec,
    PlainText,
)
from aitask.image.preprocess import encode_image
from aitask.prompting.data_compressor import compress_data


IMAGE_STYLE_CONTENT_PARTS = "content_parts"
IMAGE_STYLE_IMAGE_LIST = "image_list"

FENCE = "```"


@dataclass
class BuiltMessages:
    """Message builder result.

    Attributes:
        messages: Ordered role-tagged turns.
        return_whole_message: Caller supplied raw messages and expects the backend's
            raw message object back.
    """

    messages: list = field(default_factory=list)
    return_whole_message: bool = False


# =========================================================
# PROMPT TEXT
# =========================================================
# Block order:
#   1) TASK
#   2) OUTPUT WITH FOLLOWING [JSON] FORMAT
#   3) INPUT (JSON-serialized payload)

def build_prompt(task: str, inputs, outputs_text: str = "", is_json: bool = False) -> str:
    """Assemble the synthesized user prompt from its optional blocks.

    Args:
        task: Instruction text.
        inputs: Input payload; serialized as indented JSON.
        outputs_text: Expected-output description.
        is_json: Label the output block as JSON.

    Returns:
        Prompt text, stripped. Empty when every block is empty.
    """
    blocks = []

    if task:
        blocks.append(f"TASK:\n{FENCE}\n{task}\n{FENCE}")

    if outputs_text:
        label = "OUTPUT WITH FOLLOWING JSON FORMAT:" if is_json else "OUTPUT WITH FOLLOWING FORMAT:"
        blocks.append(f"{label}\n{FENCE}\n{outputs_text}\n{FENCE}")

    if inputs:
        payload = json.dumps(inputs, indent=2, ensure_ascii=False, default=str)
        blocks.append(f"INPUT:\n{FENCE}\n{payload}\n{FENCE}")

    return "\n\n".join(blocks).strip()


def describe_outputs(outputs: OutputSpec, enforce_schema: bool = False, is_json: bool = True) -> str:
    """Render the expected-output block text.

    When the backend enforces the schema itself, or the output is plain text, a
    compact field list is enough; otherwise the full descriptor is embedded.
    """
    if isinstance(outputs, PlainText):
        return outputs.text

    if isinstance(outputs, CompiledSchema):
        value = outputs.schema
        fields = value.get("properties") or value.get("items") or value
    elif isinstance(outputs, Descriptor):
        value = outputs.value
        fields = value
    else:
        return ""

    if enforce_schema or not is_json:
        if isinstance(fields, dict):
            lines = [f"{key}: {json.dumps(item, indent=2, ensure_ascii=False)}" for key, item in fields.items()]
            return "JSON " + "\n".join(lines)
        return "JSON " + json.dumps(fields, indent=2, ensure_ascii=False)

    return json.dumps(value, indent=2, ensure_ascii=False)


# =========================================================
# IMAGE TURNS
# =========================================================

def content_parts_message(text: str, images: list) -> dict:
    """User turn with OpenAI-style content parts and JPEG data URLs."""
    return {
        "role": "user",
        "content": [
            {"type": "text", "text": text},
            *[
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:image/jpeg;base64,{encoded}"},
                }
                for encoded in images
            ],
        ],
    }


def image_list_message(text: str, images: list) -> dict:
    """User turn with a plain `images` list of Base64 strings."""
    message = {"role": "user", "content": text}
    if images:
        message["images"] = list(images)
    return message


def _attach_images(message: dict, images: list, image_style: str) -> dict:
    if not images:
        return message

    if image_style == IMAGE_STYLE_IMAGE_LIST:
        updated = dict(message)
        updated["images"] = list(message.get("images", [])) + list(images)
        return updated

    content = message.get("content", "")
    if isinstance(content, list):
        parts = list(content)
    else:
        parts = [{"type": "text", "text": str(content)}]

    updated = dict(message)
    updated["content"] = parts + content_parts_message("", images)["content"][1:]
    return updated


# =========================================================
# MESSAGE LIST
# =========================================================

def build_messages(
    role: str | None,
    task: str,
    inputs: dict | None,
    outputs: OutputSpec,
    output_format: str = OUTPUT_FORMAT_JSON,
    enforce_schema: bool = False,
    image_style: str = IMAGE_STYLE_CONTENT_PARTS,
    compress=False,
) -> BuiltMessages:
    """Build the ordered message list for one request.

    Args:
        role: Optional system role, emitted as the leading `system` turn.
        task: Instruction text.
        inputs: Input payload, possibly carrying `images` or `messages`.
        outputs: Normalized output description.
        output_format: `json_object` or `text`.
        enforce_schema: Backend receives the schema as a constraint.
        image_style: `content_parts` or `image_list`.
        compress: `True` or `compress_data` options applied to the input payload.

    Returns:
        `BuiltMessages` with the turns and the raw-message flag.

    Edge cases:
        - Raw `messages` input: string entries become user turns, mapping entries
          pass through unchanged, images go on the last turn.
        - No role, no blocks: a single user turn with empty text is still emitted
          so the backend receives a well-formed conversation.
    """
    payload = dict(inputs or {})
    images = [encode_image(image) for image in payload.pop(IMAGES_KEY, None) or []]

    messages = [{"role": "system", "content": role}] if role else []

    raw_messages = payload.get(MESSAGES_KEY)
    if isinstance(raw_messages, list):
        for message in raw_messages:
            if isinstance(message, str):
                messages.append({"role": "user", "content": message})
            elif message:
                messages.append(message)

        if messages and images:
            messages[-1] = _attach_images(messages[-1], images, image_style)

        return BuiltMessages(messages=messages, return_whole_message=True)

    if compress:
        options = compress if isinstance(compress, dict) else {}
        payload = compress_data(payload, **options)

    is_json = output_format == OUTPUT_FORMAT_JSON
    prompt = build_prompt(
        task,
        payload,
        describe_outputs(outputs, enforce_schema=enforce_schema, is_json=is_json),
        is_json,
    )

    if image_style == IMAGE_STYLE_IMAGE_LIST:
        messages.append(image_list_message(prompt, images))
    else:
        messages.append(content_parts_message(prompt, images))

    return BuiltMessages(messages=messages)
