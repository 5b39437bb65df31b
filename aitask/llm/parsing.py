"""Response-text parsing shared by provider adapters."""

import json
import re

from aitask.core.errors import MalformedOutputError


# Leading ```json / ``` and trailing ``` wrappers some models add despite JSON mode.
_FENCE_OPEN_RE = re.compile(r"^\s*```(?:json|JSON)?\s*")
_FENCE_CLOSE_RE = re.compile(r"\s*```\s*$")


def strip_code_fence(text: str) -> str:
    """Remove one leading and one trailing Markdown code-fence marker."""
    text = _FENCE_OPEN_RE.sub("", text, count=1)
    return _FENCE_CLOSE_RE.sub("", text, count=1)


def parse_json_text(text):
    """Parse model output as JSON, retrying once without code-fence wrappers.

    Args:
        text: Raw model output.

    Returns:
        Parsed JSON value.

    Raises:
        MalformedOutputError: When neither the raw nor the unwrapped text parses.
    """
    if text is None:
        raise MalformedOutputError("Empty model output", raw_text="")

    try:
        return json.loads(text)
    except (TypeError, ValueError):
        pass

    try:
        return json.loads(strip_code_fence(str(text)))
    except (TypeError, ValueError) as exc:
        raise MalformedOutputError(f"JSON parse error: {exc}", raw_text=str(text)) from exc
