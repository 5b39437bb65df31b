"""Request dispatch entrypoint.

Architectural role:
    Top-level orchestration between the public call surface, the response cache and
    the fallback controller.

Dispatch lifecycle (`Dispatcher.run_detailed`):
    1. Compute the request fingerprint over a canonical, key-sorted serialization.
    2. Cache hit -> return the stored payload without contacting any backend.
    3. Cache miss -> `FallbackController.run`.
    4. Success -> store the payload, persist the cache, return it.
    5. Any other outcome -> log kind and detail at ERROR, return a failed outcome.

Failure boundary:
    Nothing raised below this module crosses `run` / `run_detailed`. Unexpected
    exceptions are logged with traceback and reported as `internal_error`.

Public call surface:
    `ai_task` and the convenience wrappers below build a `RequestSpec` and dispatch
    through the module-default `Dispatcher` (replaceable with `set_dispatcher`).
    Every async function has a `*_sync` twin for callers without an event loop.
"""

import asyncio
import hashlib
import json
import logging
import os
from typing import Any

from aitask.core import errors
from aitask.core.fallback import FallbackController
from aitask.core.types import (
    OUTPUT_FORMAT_JSON,
    OUTPUT_FORMAT_TEXT,
    CompiledSchema,
    RequestSpec,
    TaskOutcome,
)
from aitask.llm.adapters import build_default_adapters
from aitask.memory.response_cache import ResponseCache
from aitask.schema.compiler import compile_schema


logger = logging.getLogger(__name__)


JSON_OUTPUT_PREFIX = "Output should be a JSON object with the requested structure.\n"


# =========================================================
# FINGERPRINT
# =========================================================

def _stream_digest(stream) -> str:
    if hasattr(stream, "getvalue"):
        content = stream.getvalue()
    else:
        position = stream.tell()
        content = stream.read()
        stream.seek(position)
    if isinstance(content, str):
        content = content.encode("utf-8")
    return "bytes:" + hashlib.sha256(content).hexdigest()


def _canonical_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "bytes:" + hashlib.sha256(bytes(value)).hexdigest()
    if callable(value):
        return None
    if isinstance(value, (set, frozenset)):
        return sorted(str(item) for item in value)
    if isinstance(value, os.PathLike):
        return os.fspath(value)
    if hasattr(value, "read") and (hasattr(value, "getvalue") or hasattr(value, "seek")):
        return _stream_digest(value)
    raise TypeError(f"Cannot fingerprint value of type {type(value).__name__}")


def fingerprint(spec: RequestSpec) -> str:
    """Return the cache key for `spec`.

    Args:
        spec: Normalized request.

    Returns:
        Hex SHA-256 digest of the key-sorted JSON serialization of every recognized
        request field.

    Edge cases:
        - Mapping key order never changes the digest.
        - Binary inputs and file-like buffers hash by content.
        - Callback providers are left out, so requests differing only in the
          callback share a key.
        - Values with no stable serialization raise `TypeError`.
    """
    document = {
        "role": spec.role,
        "task": spec.task,
        "inputs": spec.inputs,
        "outputs": spec.outputs.canonical(),
        "outputFormat": spec.output_format,
        "model": spec.model,
        "provider": None if callable(spec.provider) else spec.provider,
        "temperature": spec.temperature,
        "localOnly": spec.local_only,
        "bestModel": spec.best_model,
        "includeMetadata": spec.include_metadata,
        "compressInputs": spec.compress_inputs,
        "options": spec.options,
    }
    encoded = json.dumps(
        document,
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        default=_canonical_default,
    )
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


# =========================================================
# DISPATCHER
# =========================================================

class Dispatcher:
    """Cache-aware front door to the fallback controller.

    Args:
        cache: Response cache; defaults to the file-backed cache at
            `AITASK_CACHE_PATH`.
        adapters: Provider id -> adapter mapping; defaults to every configured
            backend.
        controller: Prebuilt controller; overrides `adapters`.
        save_on_write: Persist the cache after every new entry.
    """

    def __init__(
        self,
        cache: ResponseCache | None = None,
        adapters: dict | None = None,
        controller: FallbackController | None = None,
        save_on_write: bool = True,
    ) -> None:
        self.cache = cache if cache is not None else ResponseCache()
        self.controller = controller or FallbackController(
            adapters if adapters is not None else build_default_adapters()
        )
        self.save_on_write = save_on_write

    async def run(self, spec: RequestSpec) -> Any:
        """Dispatch `spec` and return the payload value, or `None` on failure."""
        outcome = await self.run_detailed(spec)
        return outcome.payload if outcome.ok else None

    async def run_detailed(self, spec: RequestSpec) -> TaskOutcome:
        """Dispatch `spec` and return a discriminated outcome.

        Returns:
            `TaskOutcome` with `ok=True` and the payload value, or `ok=False` with
            `error_kind` and `detail`. Never raises.
        """
        key = None
        try:
            key = fingerprint(spec)

            cached = self.cache.get(key)
            if cached is not None:
                logger.info("Using cache")
                return TaskOutcome(ok=True, payload=cached.value, cache_hit=True, fingerprint=key)

            result = await self.controller.run(spec)

            if not result.ok:
                logger.error("Task failed (%s): %s", result.error_kind, result.detail)
                return TaskOutcome(
                    ok=False,
                    error_kind=result.error_kind,
                    detail=result.detail,
                    attempts=result.attempts,
                    candidate=result.candidate,
                    fingerprint=key,
                )

            self.cache.set(key, result.payload)
            if self.save_on_write:
                await asyncio.to_thread(self.cache.save)

            return TaskOutcome(
                ok=True,
                payload=result.payload.value,
                attempts=result.attempts,
                candidate=result.candidate,
                fingerprint=key,
            )
        except Exception as exc:
            logger.exception("Unexpected failure while dispatching task")
            return TaskOutcome(
                ok=False,
                error_kind=errors.INTERNAL_ERROR,
                detail=f"{type(exc).__name__}: {exc}",
                fingerprint=key,
            )


_DEFAULT_DISPATCHER: Dispatcher | None = None


def set_dispatcher(dispatcher: Dispatcher | None) -> None:
    """Override or clear the module-default dispatcher.

    Passing `None` makes the next call build a fresh default dispatcher.
    """
    global _DEFAULT_DISPATCHER
    _DEFAULT_DISPATCHER = dispatcher


def get_dispatcher() -> Dispatcher:
    """Return the module-default dispatcher, creating it on first use."""
    global _DEFAULT_DISPATCHER
    if _DEFAULT_DISPATCHER is None:
        _DEFAULT_DISPATCHER = Dispatcher()
    return _DEFAULT_DISPATCHER


# =========================================================
# PUBLIC CALL SURFACE
# =========================================================

async def ai_task(
    config_or_role: Any = None,
    task: str = "",
    inputs: dict | None = None,
    outputs: Any = None,
    output_format: str = OUTPUT_FORMAT_JSON,
    local_only: bool = False,
) -> Any:
    """Run one structured request.

    Args:
        config_or_role: Role text, or a mapping of request fields (`model`,
            `provider`, `temperature`, `bestModel`, ...).
        task: Instruction text.
        inputs: Input payload; may carry `images` or raw `messages`.
        outputs: Descriptor, compiled schema or free text describing the answer.
        output_format: `json_object` or `text`.
        local_only: Pin the local backend.

    Returns:
        Parsed JSON value, raw text, or `None` when every recovery path failed.
    """
    spec = RequestSpec.from_call(config_or_role, task, inputs, outputs, output_format, local_only)
    return await get_dispatcher().run(spec)


async def ai_task_json(config_or_role: Any = None, task: str = "", inputs: dict | None = None, outputs: Any = None, local_only: bool = False) -> Any:
    """JSON request whose outputs are sent as a pretty-printed structure hint."""
    hint = JSON_OUTPUT_PREFIX + json.dumps(outputs, indent=2, ensure_ascii=False)
    return await ai_task(config_or_role, task, inputs, hint, OUTPUT_FORMAT_JSON, local_only)


async def ai_task_json_local(config_or_role: Any = None, task: str = "", inputs: dict | None = None, outputs: Any = None) -> Any:
    return await ai_task(config_or_role, task, inputs, outputs, OUTPUT_FORMAT_JSON, True)


async def ai_task_text(config_or_role: Any = None, task: str = "", inputs: dict | None = None, outputs: Any = None) -> Any:
    return await ai_task(config_or_role, task, inputs, outputs, OUTPUT_FORMAT_TEXT)


async def ai_task_schema(config_or_role: Any = None, task: str = "", inputs: dict | None = None, outputs: Any = None, local_only: bool = False) -> Any:
    """JSON request whose descriptor is compiled and enforced as a JSON Schema.

    Raises:
        SchemaCompileError: Descriptor cannot be compiled (raised before dispatch).
    """
    schema = CompiledSchema(compile_schema(outputs))
    return await ai_task(config_or_role, task, inputs, schema, OUTPUT_FORMAT_JSON, local_only)


def ai_task_sync(*args, **kwargs) -> Any:
    return asyncio.run(ai_task(*args, **kwargs))


def ai_task_json_sync(*args, **kwargs) -> Any:
    return asyncio.run(ai_task_json(*args, **kwargs))


def ai_task_json_local_sync(*args, **kwargs) -> Any:
    return asyncio.run(ai_task_json_local(*args, **kwargs))


def ai_task_text_sync(*args, **kwargs) -> Any:
    return asyncio.run(ai_task_text(*args, **kwargs))


def ai_task_schema_sync(*args, **kwargs) -> Any:
    return asyncio.run(ai_task_schema(*args, **kwargs))
