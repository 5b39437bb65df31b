"""Exception types shared across the task pipeline.

Architectural role:
    Gives adapters, collaborators and callback providers a common vocabulary for
    failures. None of these exceptions cross the public `ai_task` boundary: the
    dispatcher converts them into logged diagnostics and a `None` result.

Taxonomy mapping:
    - `ProviderError.kind` selects the attempt outcome a callback provider wants
      (`rate_limited`, `transient_overload`, `malformed_output`, `fatal`).
    - `MalformedOutputError` is raised by the response parser and classified as a
      malformed-output attempt.
    - `SchemaCompileError` and `ImagePreprocessError` are raised by collaborators
      before any backend call happens and are treated as fatal.
"""

RATE_LIMITED = "rate_limited"
TRANSIENT_OVERLOAD = "transient_overload"
MALFORMED_OUTPUT = "malformed_output"
FATAL = "fatal"

# Terminal kinds reported by the dispatcher.
PROVIDER_FATAL = "provider_fatal"
EXHAUSTED_CANDIDATES = "exhausted_candidates"
INTERNAL_ERROR = "internal_error"


class AITaskError(RuntimeError):
    """Base class for pipeline errors."""


class ProviderError(AITaskError):
    """Backend failure carrying enough detail to classify it.

    Args:
        detail: Human-readable failure description.
        kind: One of the attempt kinds defined in this module.
        status_code: HTTP status reported by the backend, if any.
        retry_after: Backend retry hint in seconds, if any.
    """

    def __init__(
        self,
        detail: str,
        kind: str = FATAL,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(detail)
        self.detail = detail
        self.kind = kind
        self.status_code = status_code
        self.retry_after = retry_after


class MalformedOutputError(AITaskError):
    """Structured output could not be parsed as JSON."""

    def __init__(self, detail: str, raw_text: str = "") -> None:
        super().__init__(detail)
        self.raw_text = raw_text


class SchemaCompileError(ValueError):
    """Output descriptor cannot be compiled into a JSON Schema."""


class ImagePreprocessError(AITaskError):
    """Image input could not be decoded or re-encoded."""
