"""Provider/runtime configuration for the LLM layer.

Architectural role:
    Centralizes backend endpoints, default models, credential lookup and retry
    policy for `llm.adapters` and `core.fallback`.

Model call flow integration:
    - `core.fallback` reads `DEFAULT_PROVIDER`, `GEMINI_MODEL_PRIORITY`,
      `GEMINI_BEST_MODEL` and `RetryPolicy` to build and walk candidate queues.
    - Adapters read `PROVIDERS` for URLs and resolve credentials with `load_key`.

Determinism:
    Deterministic for a fixed process environment and key files. Values are resolved
    at import time (plus runtime key-file reads in `load_key`).

Failure behavior:
    Missing key material is represented as `None`; adapters report it as a fatal
    attempt without contacting the backend.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


GEMINI = "gemini"
OPENAI = "openai"
OPENROUTER = "openrouter"
OLLAMA = "ollama"
CALLBACK = "callback"


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# Default provider used when a request names neither provider nor model.
DEFAULT_PROVIDER = os.getenv("AITASK_DEFAULT_PROVIDER", GEMINI)

# Cheapest/fastest first. Walked front-to-back with the persistent rate-limit cursor.
GEMINI_MODEL_PRIORITY = _env_list(
    "GEMINI_MODEL_PRIORITY",
    "gemini-2.5-flash-lite,gemini-2.5-flash,gemini-3-flash",
)
GEMINI_BEST_MODEL = os.getenv("GEMINI_BEST_MODEL", "gemini-2.5-flash")

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.2")
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://127.0.0.1:11434")
OLLAMA_NUM_CTX = int(os.getenv("OLLAMA_NUM_CTX", "4096"))

HTTP_TIMEOUT_SECONDS = float(os.getenv("AITASK_HTTP_TIMEOUT_SECONDS", "120"))

OPENROUTER_REASONING = {"effort": "none", "enabled": False}


# Endpoint map. `url` is a base URL except for Gemini, where `{model}` is filled in.
PROVIDERS = {

    GEMINI: {
        "url": (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            "{model}:generateContent"
        ),
        "key_file": "config/gemini.key",
        "key_env": ("GEMINI_KEY",),
        "default_model": GEMINI_BEST_MODEL,
    },

    OPENAI: {
        "url": os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        "key_file": "config/openai.key",
        "key_env": (),
        "default_model": OPENAI_MODEL,
    },

    OPENROUTER: {
        "url": "https://openrouter.ai/api/v1",
        "key_file": "config/openrouter.key",
        "key_env": ("OPENROUTER_KEY",),
        "default_model": None,
    },

    OLLAMA: {
        "url": OLLAMA_BASE_URL,
        "key_file": None,
        "key_env": (),
        "default_model": OLLAMA_MODEL,
    },

}


def load_key(path, env_names=()):
    """Load API key from environment override or key file.

    Resolution order:
        1. Explicit environment variable names in `env_names`.
        2. Environment variable inferred from file stem (for example
           `config/openai.key` -> `OPENAI_API_KEY`).
        3. Raw file contents at `path`.

    Args:
        path: Configured key file path or `None`.
        env_names: Additional environment variable names checked first.

    Returns:
        Key string or `None` when not available.

    Edge cases:
        - `None` path with no matching env name returns `None`.
        - Missing file returns `None`.
    """
    for name in env_names:
        env_value = os.getenv(name)
        if env_value:
            return env_value
    if not path:
        return None
    key_name = os.path.splitext(os.path.basename(path))[0].upper() + "_API_KEY"
    env_value = os.getenv(key_name)
    if env_value:
        return env_value
    if not os.path.exists(path):
        return None
    with open(path, "r") as f:
        return f.read().strip()


def provider_key(provider_id: str):
    """Resolve the credential configured for `provider_id`."""
    config = PROVIDERS.get(provider_id) or {}
    return load_key(config.get("key_file"), config.get("key_env", ()))


def default_model(provider_id: str):
    config = PROVIDERS.get(provider_id) or {}
    return config.get("default_model")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry/backoff bounds applied by `core.fallback.FallbackController`.

    Fields are read from environment variables at import time.

    Relevant environment variables:
        - `RATE_LIMIT_MIN_WAIT_SECONDS`
        - `RATE_LIMIT_JITTER_SECONDS`
        - `MAX_RATE_LIMIT_RETRIES` (0 means unbounded)
        - `OVERLOAD_BASE_DELAY_SECONDS`
        - `MAX_OVERLOAD_RETRIES`
        - `MAX_MALFORMED_ATTEMPTS`
    """

    rate_limit_min_wait: float = float(os.getenv("RATE_LIMIT_MIN_WAIT_SECONDS", "30"))
    rate_limit_jitter: float = float(os.getenv("RATE_LIMIT_JITTER_SECONDS", "0.25"))
    max_rate_limit_retries: int = int(os.getenv("MAX_RATE_LIMIT_RETRIES", "0"))
    overload_base_delay: float = float(os.getenv("OVERLOAD_BASE_DELAY_SECONDS", "10"))
    max_overload_retries: int = int(os.getenv("MAX_OVERLOAD_RETRIES", "5"))
    max_malformed_attempts: int = int(os.getenv("MAX_MALFORMED_ATTEMPTS", "4"))

    def rate_limit_wait(self, retry_after: float | None) -> float:
        """Delay before retrying a pinned, rate-limited candidate."""
        hint = retry_after if retry_after is not None else 0.0
        return max(hint, self.rate_limit_min_wait) + self.rate_limit_jitter

    def overload_wait(self, attempt: int) -> float:
        """Linear backoff for the `attempt`-th consecutive overload."""
        return attempt * self.overload_base_delay
