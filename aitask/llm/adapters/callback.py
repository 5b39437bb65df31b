"""Adapter wrapping a caller-supplied provider callable.

The callable receives the `RequestSpec` (with `model` set to the candidate's
model) and returns the final value, sync or async. `None` means no answer.
Raising `ProviderError` with a `kind` opts into rate-limit/overload/malformed
handling; any other exception is fatal.
"""

import dataclasses
import inspect
import logging

from aitask.core.errors import ProviderError
from aitask.core.types import Fatal, RequestSpec, ResponsePayload, Success
from aitask.llm.adapters.base import ProviderAdapter
from aitask.llm.provider_config import CALLBACK


logger = logging.getLogger(__name__)


class CallbackAdapter(ProviderAdapter):
    provider_id = CALLBACK

    def __init__(self, fn, **kwargs) -> None:
        super().__init__(**kwargs)
        self.fn = fn

    async def attempt(self, spec: RequestSpec, model: str | None):
        call_spec = dataclasses.replace(spec, provider=None, model=model or spec.model)

        try:
            result = self.fn(call_spec)
            if inspect.isawaitable(result):
                result = await result
        except ProviderError as exc:
            return self.classify_error(exc)
        except Exception as exc:
            logger.exception("Provider callback failed")
            return Fatal(detail=f"CALLBACK REQUEST FAILED: {type(exc).__name__}: {exc}")

        if result is None:
            return Fatal(detail="Could not generate answer")

        if isinstance(result, ResponsePayload):
            return Success(result)
        return Success(ResponsePayload(value=result))
