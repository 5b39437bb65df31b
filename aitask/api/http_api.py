"""
HTTP API adapter for the aitask dispatcher.

Architectural role:
- Expose task dispatch over HTTP for callers outside the Python process.
- Validate request bodies with pydantic.
- Delegate all orchestration to `aitask.core.dispatcher.Dispatcher.run_detailed`.

Endpoint responsibilities:
- `POST /v1/tasks`: build a `RequestSpec` from the body, dispatch it, return the
  `TaskOutcome` as JSON.
- `GET /v1/providers`: list configured backends, their default models and whether a
  credential is present, plus the default priority list.

Error handling strategy:
- Body validation failures follow FastAPI's default HTTP 422 handling.
- Failed dispatches return HTTP 502 with `error_kind` and `detail`.
- The dispatcher never raises, so no global exception wrapping is needed here.

Side effects:
- Loads environment variables at import time via `load_dotenv()`.
- Uses the module-default dispatcher (file-backed cache) unless one is set with
  `aitask.core.dispatcher.set_dispatcher`.
"""

from dotenv import load_dotenv

load_dotenv()

import logging
import os
from typing import Any

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from aitask.core.dispatcher import get_dispatcher
from aitask.core.types import OUTPUT_FORMAT_JSON, RequestSpec
from aitask.llm.provider_config import (
    DEFAULT_PROVIDER,
    GEMINI_BEST_MODEL,
    GEMINI_MODEL_PRIORITY,
    PROVIDERS,
    default_model,
    provider_key,
)


logging.basicConfig(level=os.getenv("AITASK_LOG_LEVEL", "WARNING").upper())
logger = logging.getLogger(__name__)

app = FastAPI(title="aitask")


# ============================================================
# Request Schema
# ============================================================

class TaskRequest(BaseModel):
    """
    Body of `POST /v1/tasks`.

    Mirrors the `RequestSpec` fields. Callback providers are not expressible over
    HTTP; `provider` is a provider id only.
    """
    task: str = ""
    role: str | None = None
    inputs: dict[str, Any] = Field(default_factory=dict)
    outputs: Any = None
    output_format: str = OUTPUT_FORMAT_JSON
    provider: str | None = None
    model: str | list[str] | None = None
    temperature: float = 0.7
    local_only: bool = False
    best_model: bool = False
    include_metadata: bool = False
    compress_inputs: bool | dict[str, Any] = False
    options: dict[str, Any] = Field(default_factory=dict)

    def to_spec(self) -> RequestSpec:
        config = self.model_dump(exclude={"task", "inputs", "outputs", "output_format", "local_only"})
        return RequestSpec.from_call(
            config,
            self.task,
            self.inputs,
            self.outputs,
            self.output_format,
            self.local_only,
        )


# ============================================================
# Provider Listing
# ============================================================

@app.get("/v1/providers")
def list_providers():
    """
    Return configured backends and the default candidate list.

    Response formatting:
    - `default_provider`, `default_models`, `best_model`
    - `data[]` entries with `id`, `default_model`, `configured`
    """
    return {
        "object": "list",
        "default_provider": DEFAULT_PROVIDER,
        "default_models": list(GEMINI_MODEL_PRIORITY),
        "best_model": GEMINI_BEST_MODEL,
        "data": [
            {
                "id": provider_id,
                "default_model": default_model(provider_id),
                "configured": config["key_file"] is None or provider_key(provider_id) is not None,
            }
            for provider_id, config in PROVIDERS.items()
        ],
    }


# ============================================================
# Task Dispatch
# ============================================================

@app.post("/v1/tasks")
async def run_task(request: TaskRequest):
    """
    Dispatch one structured request.

    Returns:
    - HTTP 200 with the `TaskOutcome` JSON on success.
    - HTTP 502 with the same shape (`ok: false`, `error_kind`, `detail`) when every
      recovery path failed.
    """
    outcome = await get_dispatcher().run_detailed(request.to_spec())

    if not outcome.ok:
        logger.warning("Task request failed: %s", outcome.error_kind)
        return JSONResponse(status_code=502, content=outcome.to_dict())

    return outcome.to_dict()
