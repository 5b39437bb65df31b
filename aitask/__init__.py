"""aitask: one structured-request call over several LLM backends.

Public surface:
    - `ai_task` and the `ai_task_json`, `ai_task_json_local`, `ai_task_text`,
      `ai_task_schema` wrappers (async), each with a `*_sync` twin.
    - `Dispatcher`, `RequestSpec`, `TaskOutcome` for callers that manage their own
      cache, adapters or diagnostics.
    - `compile_schema`, `compress_data`, `encode_image` helpers.
"""

from aitask.core.dispatcher import (
    Dispatcher,
    ai_task,
    ai_task_json,
    ai_task_json_local,
    ai_task_json_local_sync,
    ai_task_json_sync,
    ai_task_schema,
    ai_task_schema_sync,
    ai_task_sync,
    ai_task_text,
    ai_task_text_sync,
    fingerprint,
    get_dispatcher,
    set_dispatcher,
)
from aitask.core.errors import AITaskError, MalformedOutputError, ProviderError, SchemaCompileError
from aitask.core.fallback import FallbackContext, FallbackController
from aitask.core.types import RequestSpec, TaskOutcome
from aitask.image.preprocess import encode_image
from aitask.prompting.data_compressor import compress_data
from aitask.schema.compiler import compile_schema


__all__ = [
    "AITaskError",
    "Dispatcher",
    "FallbackContext",
    "FallbackController",
    "MalformedOutputError",
    "ProviderError",
    "RequestSpec",
    "SchemaCompileError",
    "TaskOutcome",
    "ai_task",
    "ai_task_json",
    "ai_task_json_local",
    "ai_task_json_local_sync",
    "ai_task_json_sync",
    "ai_task_schema",
    "ai_task_schema_sync",
    "ai_task_sync",
    "ai_task_text",
    "ai_task_text_sync",
    "compile_schema",
    "compress_data",
    "encode_image",
    "fingerprint",
    "get_dispatcher",
    "set_dispatcher",
]
