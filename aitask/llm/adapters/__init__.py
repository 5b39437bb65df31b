"""Provider adapters.

Module split:
    - `base`: shared contract, HTTP transport and failure classification.
    - `gemini`: schema-enforcing Gemini backend.
    - `openai_compat`: OpenAI and OpenRouter (OpenAI-compatible) backends.
    - `ollama`: local backend.
    - `callback`: caller-supplied provider callables.
"""

from aitask.llm.adapters.base import ProviderAdapter, WireRequest
from aitask.llm.adapters.callback import CallbackAdapter
from aitask.llm.adapters.gemini import GeminiAdapter
from aitask.llm.adapters.ollama import OllamaAdapter
from aitask.llm.adapters.openai_compat import OpenAICompatibleAdapter, openrouter_adapter
from aitask.llm.provider_config import GEMINI, OLLAMA, OPENAI, OPENROUTER


def build_default_adapters(**kwargs) -> dict:
    """Create one adapter per configured backend.

    Args:
        **kwargs: Forwarded to every adapter (for example `transport`, `timeout`).

    Returns:
        Mapping of provider id to adapter instance.
    """
    return {
        GEMINI: GeminiAdapter(**kwargs),
        OPENAI: OpenAICompatibleAdapter(provider_id=OPENAI, **kwargs),
        OPENROUTER: openrouter_adapter(**kwargs),
        OLLAMA: OllamaAdapter(**kwargs),
    }


__all__ = [
    "CallbackAdapter",
    "GeminiAdapter",
    "OllamaAdapter",
    "OpenAICompatibleAdapter",
    "ProviderAdapter",
    "WireRequest",
    "build_default_adapters",
    "openrouter_adapter",
]
