"""Data contracts for the task dispatch pipeline.

Architectural role:
    Defines the request, candidate, attempt-outcome and response shapes exchanged by
    `core.dispatcher`, `core.fallback` and the provider adapters in `llm.adapters`.

Tagged variants:
    - `ProviderSelector`: `Explicit | Callback | FromModelString | Default`, derived
      once from the request so no later stage sniffs runtime types.
    - `OutputSpec`: `Descriptor | CompiledSchema | PlainText`, normalized once at the
      dispatcher boundary.
    - `AttemptResult`: `Success | RateLimited | TransientOverload | MalformedOutput |
      Fatal`, returned by adapters and consumed by the fallback controller.

Determinism:
    All classes are structural. `RequestSpec.from_call` is a pure mapping from the
    public call arguments to a spec; it never mutates caller-owned inputs.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar

from aitask.core import errors
from aitask.schema.compiler import is_compiled_schema


OUTPUT_FORMAT_JSON = "json_object"
OUTPUT_FORMAT_TEXT = "text"

# Reserved input keys consumed by the message builder.
IMAGES_KEY = "images"
MESSAGES_KEY = "messages"

NAMESPACE_SEPARATOR = "/"


# =========================================================
# PROVIDER SELECTION
# =========================================================

@dataclass(frozen=True)
class ProviderSelector:
    """Base of the provider-selection variant."""


@dataclass(frozen=True)
class Explicit(ProviderSelector):
    provider_id: str


@dataclass(frozen=True)
class Callback(ProviderSelector):
    fn: Callable[..., Any]


@dataclass(frozen=True)
class FromModelString(ProviderSelector):
    """Model id carrying a namespace (`vendor/model`), routed to the aggregator."""

    model: str


@dataclass(frozen=True)
class Default(ProviderSelector):
    pass


# =========================================================
# OUTPUT DESCRIPTION
# =========================================================

@dataclass(frozen=True)
class OutputSpec:
    """Base of the output-description variant."""

    def canonical(self) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class Descriptor(OutputSpec):
    """Plain descriptor object, sent to the model as textual guidance."""

    value: Any

    def canonical(self) -> Any:
        return {"descriptor": self.value}


@dataclass(frozen=True)
class CompiledSchema(OutputSpec):
    """JSON Schema with an object/array root, enforced where the backend allows."""

    schema: dict

    def canonical(self) -> Any:
        return {"schema": self.schema}


@dataclass(frozen=True)
class PlainText(OutputSpec):
    """Free-text output description. Empty text means no description."""

    text: str = ""

    def canonical(self) -> Any:
        return self.text


def normalize_outputs(outputs: Any) -> OutputSpec:
    """Map the loosely typed `outputs` argument onto an `OutputSpec`.

    Args:
        outputs: `None`, text, a descriptor object/list, a compiled schema, or an
            existing `OutputSpec`.

    Returns:
        The matching `OutputSpec` variant.
    """
    if isinstance(outputs, OutputSpec):
        return outputs
    if outputs is None:
        return PlainText("")
    if isinstance(outputs, str):
        return PlainText(outputs)
    if is_compiled_schema(outputs):
        return CompiledSchema(outputs)
    return Descriptor(outputs)


# =========================================================
# REQUEST
# =========================================================

# Accepted camelCase spellings in config mappings.
_FIELD_ALIASES = {
    "outputFormat": "output_format",
    "localOnly": "local_only",
    "bestModel": "best_model",
    "includeMetadata": "include_metadata",
    "compressInputs": "compress_inputs",
}


@dataclass
class RequestSpec:
    """One structured request, built per call and discarded afterwards.

    Attributes:
        task: Instruction text.
        role: Optional system role text.
        inputs: Input payload. May carry the reserved `images` or `messages` keys.
        outputs: Normalized output description.
        output_format: `json_object` or `text`.
        provider: Provider id, a callback, or `None`.
        model: Model id, ordered list of model ids, or `None`.
        temperature: Sampling temperature forwarded to the backend.
        local_only: Pin the local backend.
        best_model: Pin the default provider's best model.
        include_metadata: Attach usage metadata to object payloads.
        compress_inputs: `True` or compressor options to compact `inputs`.
        options: Any other explicit option (for example `reasoning`).
    """

    task: str = ""
    role: str | None = None
    inputs: dict = field(default_factory=dict)
    outputs: OutputSpec = field(default_factory=PlainText)
    output_format: str = OUTPUT_FORMAT_JSON
    provider: str | Callable[..., Any] | None = None
    model: str | list[str] | None = None
    temperature: float = 0.7
    local_only: bool = False
    best_model: bool = False
    include_metadata: bool = False
    compress_inputs: bool | dict = False
    options: dict = field(default_factory=dict)

    @classmethod
    def from_call(
        cls,
        config_or_role: Any = None,
        task: str = "",
        inputs: dict | None = None,
        outputs: Any = None,
        output_format: str = OUTPUT_FORMAT_JSON,
        local_only: bool = False,
    ) -> "RequestSpec":
        """Build a spec from the public call signature.

        Args:
            config_or_role: Role text, or a mapping of spec fields that overrides
                the positional arguments.
            task: Instruction text.
            inputs: Input payload.
            outputs: Output description in any accepted shape.
            output_format: `json_object` or `text`.
            local_only: Pin the local backend.

        Returns:
            New `RequestSpec`.

        Edge cases:
            - Unknown mapping keys are kept in `options`.
            - A list-valued `model` is copied, never consumed in place.
        """
        values: dict[str, Any] = {
            "role": config_or_role if isinstance(config_or_role, str) else None,
            "task": task or "",
            "inputs": inputs,
            "outputs": outputs,
            "output_format": output_format,
            "local_only": local_only,
        }
        options: dict[str, Any] = {}

        if isinstance(config_or_role, dict):
            known = set(cls.__dataclass_fields__)
            for key, value in config_or_role.items():
                name = _FIELD_ALIASES.get(key, key)
                if name == "options" and isinstance(value, dict):
                    options.update(value)
                elif name in known:
                    values[name] = value
                else:
                    options[key] = value

        model = values.get("model")
        if isinstance(model, (list, tuple)):
            values["model"] = list(model)

        values["inputs"] = dict(values["inputs"] or {})
        values["outputs"] = normalize_outputs(values["outputs"])
        values["options"] = options

        return cls(**values)

    @property
    def is_json(self) -> bool:
        return self.output_format == OUTPUT_FORMAT_JSON

    @property
    def model_list(self) -> list[str] | None:
        return self.model if isinstance(self.model, list) else None

    def provider_selector(self) -> ProviderSelector:
        """Resolve the provider selection variant for this request.

        Priority:
            1. `local_only` pins the local backend.
            2. A callback provider.
            3. A scalar model containing `/` (aggregator routing wins over hints).
            4. A provider id.
            5. The default provider.
        """
        from aitask.llm.provider_config import OLLAMA

        if self.local_only:
            return Explicit(OLLAMA)
        if callable(self.provider):
            return Callback(self.provider)
        if isinstance(self.model, str) and NAMESPACE_SEPARATOR in self.model:
            return FromModelString(self.model)
        if isinstance(self.provider, str) and self.provider:
            return Explicit(self.provider)
        return Default()


# =========================================================
# CANDIDATES AND OUTCOMES
# =========================================================

@dataclass(frozen=True)
class Candidate:
    """One (provider, model) pair eligible for an attempt."""

    provider_id: str
    model: str | None = None
    callback: Callable[..., Any] | None = field(default=None, compare=False)

    def label(self) -> str:
        return f"{self.provider_id}:{self.model or 'default'}"


@dataclass
class ResponsePayload:
    """Parsed structured value or raw text plus optional usage metadata."""

    value: Any
    usage: dict | None = None
    raw_message: bool = False


@dataclass(frozen=True)
class AttemptResult:
    kind: ClassVar[str] = ""


@dataclass(frozen=True)
class Success(AttemptResult):
    kind: ClassVar[str] = "success"
    payload: ResponsePayload = None


@dataclass(frozen=True)
class RateLimited(AttemptResult):
    kind: ClassVar[str] = errors.RATE_LIMITED
    retry_after: float | None = None
    detail: str = ""


@dataclass(frozen=True)
class TransientOverload(AttemptResult):
    kind: ClassVar[str] = errors.TRANSIENT_OVERLOAD
    detail: str = ""


@dataclass(frozen=True)
class MalformedOutput(AttemptResult):
    kind: ClassVar[str] = errors.MALFORMED_OUTPUT
    detail: str = ""


@dataclass(frozen=True)
class Fatal(AttemptResult):
    kind: ClassVar[str] = errors.FATAL
    detail: str = ""


@dataclass
class TaskOutcome:
    """Discriminated result of one dispatch.

    `error_kind` is `None` on success, otherwise one of `provider_fatal`,
    `exhausted_candidates`, `internal_error`.
    """

    ok: bool
    payload: Any = None
    error_kind: str | None = None
    detail: str = ""
    attempts: int = 0
    cache_hit: bool = False
    candidate: str | None = None
    fingerprint: str | None = None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "payload": self.payload,
            "error_kind": self.error_kind,
            "detail": self.detail,
            "attempts": self.attempts,
            "cache_hit": self.cache_hit,
            "candidate": self.candidate,
            "fingerprint": self.fingerprint,
        }
