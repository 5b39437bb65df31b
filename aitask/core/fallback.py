"""Candidate queue construction and failure recovery.

Architectural role:
    Receives a cache miss from `core.dispatcher`, builds the ordered candidate queue
    for the request, and walks it strictly front-to-back through the provider
    adapters until one attempt succeeds or the queue can no longer make progress.

Queue modes:
    - `explicit`: the request's model list, verbatim, one candidate per entry.
    - `pinned`: a scalar model, a provider hint, a callback, `local_only` or
      `best_model`; exactly one candidate, no alternates.
    - `default`: the default provider's priority list (cheapest first), entered at
      the persistent rate-limit cursor held by `FallbackContext`.

Recovery policy per candidate:
    - Rate limited: pinned -> sleep `max(hint, floor) + jitter` and retry the same
      candidate; otherwise advance. In `default` mode the cursor moves past the
      rate-limited entry for later requests in this process.
    - Transient overload: sleep `n * base_delay` and retry the same candidate, up to
      `max_overload_retries`; then the candidate is exhausted and the queue advances.
    - Malformed output: retry the same candidate until `max_malformed_attempts`
      attempts were made, then treat it as fatal.
    - Fatal: advance inside an explicit list, otherwise escalate.

Concurrency:
    Candidates are never tried in parallel. The shared `FallbackContext` is read and
    written without locking; racing requests may skip or revisit a cheap model.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from aitask.core import errors
from aitask.core.types import (
    Callback,
    Candidate,
    Explicit,
    Fatal,
    FromModelString,
    MalformedOutput,
    NAMESPACE_SEPARATOR,
    RateLimited,
    RequestSpec,
    ResponsePayload,
    Success,
    TransientOverload,
)
from aitask.llm.adapters import CallbackAdapter
from aitask.llm.provider_config import (
    CALLBACK,
    DEFAULT_PROVIDER,
    GEMINI,
    GEMINI_BEST_MODEL,
    GEMINI_MODEL_PRIORITY,
    OLLAMA,
    OPENROUTER,
    RetryPolicy,
    default_model,
)


logger = logging.getLogger(__name__)


QUEUE_EXPLICIT = "explicit"
QUEUE_PINNED = "pinned"
QUEUE_DEFAULT = "default"


@dataclass
class FallbackContext:
    """Cross-request fallback state.

    Attributes:
        rate_limit_cursor: Index into the default priority list where the next
            default-mode request starts.
    """

    rate_limit_cursor: int = 0


# Process-wide instance shared by every dispatcher that does not supply its own.
DEFAULT_CONTEXT = FallbackContext()


@dataclass
class CandidateQueue:
    mode: str
    candidates: list = field(default_factory=list)
    start: int = 0


@dataclass
class FallbackResult:
    """Terminal outcome of one controller run."""

    ok: bool
    payload: ResponsePayload | None = None
    error_kind: str | None = None
    detail: str = ""
    attempts: int = 0
    candidate: str | None = None


@dataclass
class _CandidateRun:
    result: object
    attempts: int
    advance: bool = False
    rate_limited: bool = False


# =========================================================
# QUEUE CONSTRUCTION
# =========================================================

def build_candidate_queue(
    spec: RequestSpec,
    context: FallbackContext = DEFAULT_CONTEXT,
    default_provider: str = DEFAULT_PROVIDER,
    priority: list | None = None,
    best_model: str = GEMINI_BEST_MODEL,
) -> CandidateQueue:
    """Derive the candidate queue for `spec`.

    Args:
        spec: Normalized request.
        context: Holder of the persistent rate-limit cursor.
        default_provider: Provider used when the request names none.
        priority: Default priority list; defaults to the Gemini list when the default
            provider is Gemini, otherwise that provider's default model.
        best_model: Model pinned by `best_model`.

    Returns:
        `CandidateQueue` in `explicit`, `pinned` or `default` mode.

    Edge cases:
        - An empty model list behaves like an absent model.
        - A cursor past the end of the priority list wraps to the first entry.
    """
    selector = spec.provider_selector()
    models = spec.model_list

    if models:
        candidates = [_candidate_for(model, spec, selector, default_provider) for model in models]
        return CandidateQueue(QUEUE_EXPLICIT, candidates)

    scalar_model = spec.model if isinstance(spec.model, str) and spec.model else None

    if isinstance(selector, Callback):
        return CandidateQueue(QUEUE_PINNED, [Candidate(CALLBACK, scalar_model, callback=selector.fn)])
    if isinstance(selector, Explicit):
        return CandidateQueue(QUEUE_PINNED, [Candidate(selector.provider_id, scalar_model)])
    if isinstance(selector, FromModelString):
        return CandidateQueue(QUEUE_PINNED, [Candidate(OPENROUTER, selector.model)])
    if scalar_model:
        return CandidateQueue(QUEUE_PINNED, [Candidate(default_provider, scalar_model)])
    if spec.best_model:
        model = best_model if default_provider == GEMINI else default_model(default_provider)
        return CandidateQueue(QUEUE_PINNED, [Candidate(default_provider, model)])

    if priority is None:
        priority = GEMINI_MODEL_PRIORITY if default_provider == GEMINI else [default_model(default_provider)]

    candidates = [Candidate(default_provider, model) for model in priority]

    start = context.rate_limit_cursor
    if start >= len(candidates):
        if start:
            logger.warning("All default models were rate limited earlier; restarting at the first model.")
        start = 0
        context.rate_limit_cursor = 0

    return CandidateQueue(QUEUE_DEFAULT, candidates, start=start)


def _candidate_for(model: str, spec: RequestSpec, selector, default_provider: str) -> Candidate:
    if spec.local_only:
        return Candidate(OLLAMA, model)
    if isinstance(selector, Callback):
        return Candidate(CALLBACK, model, callback=selector.fn)
    if NAMESPACE_SEPARATOR in model:
        return Candidate(OPENROUTER, model)
    if isinstance(selector, Explicit):
        return Candidate(selector.provider_id, model)
    return Candidate(default_provider, model)


# =========================================================
# CONTROLLER
# =========================================================

class FallbackController:
    """Walks a candidate queue through provider adapters.

    Args:
        adapters: Mapping of provider id to adapter.
        policy: Retry/backoff bounds.
        context: Cross-request state; defaults to the process-wide instance.
        sleep: Awaitable sleep used for every backoff (injectable for tests).
        default_provider: Provider used when the request names none.
    """

    def __init__(
        self,
        adapters: dict,
        policy: RetryPolicy | None = None,
        context: FallbackContext | None = None,
        sleep=asyncio.sleep,
        default_provider: str = DEFAULT_PROVIDER,
    ) -> None:
        self.adapters = adapters
        self.policy = policy or RetryPolicy()
        self.context = context if context is not None else DEFAULT_CONTEXT
        self.sleep = sleep
        self.default_provider = default_provider

    def adapter_for(self, candidate: Candidate):
        if candidate.provider_id == CALLBACK:
            return CallbackAdapter(candidate.callback)
        return self.adapters.get(candidate.provider_id)

    async def run(self, spec: RequestSpec) -> FallbackResult:
        """Try candidates in order until one succeeds.

        Returns:
            `FallbackResult`; `error_kind` is `provider_fatal` for escalated
            failures and `exhausted_candidates` when the queue drained.
        """
        queue = build_candidate_queue(spec, self.context, default_provider=self.default_provider)
        attempts = 0
        last_detail = "no candidates"

        index = queue.start
        while index < len(queue.candidates):
            candidate = queue.candidates[index]
            adapter = self.adapter_for(candidate)

            if adapter is None:
                run = _CandidateRun(Fatal(detail=f"Unknown provider: {candidate.provider_id}"), 0)
            else:
                run = await self._run_candidate(spec, candidate, adapter, queue.mode)

            attempts += run.attempts

            if isinstance(run.result, Success):
                return FallbackResult(
                    ok=True,
                    payload=run.result.payload,
                    attempts=attempts,
                    candidate=candidate.label(),
                )

            last_detail = getattr(run.result, "detail", "") or run.result.kind

            if run.advance or queue.mode == QUEUE_EXPLICIT:
                if queue.mode == QUEUE_DEFAULT and run.rate_limited:
                    self.context.rate_limit_cursor = index + 1
                logger.warning("Candidate %s failed (%s); trying next candidate.", candidate.label(), run.result.kind)
                index += 1
                continue

            return FallbackResult(
                ok=False,
                error_kind=errors.PROVIDER_FATAL,
                detail=last_detail,
                attempts=attempts,
                candidate=candidate.label(),
            )

        return FallbackResult(
            ok=False,
            error_kind=errors.EXHAUSTED_CANDIDATES,
            detail=last_detail,
            attempts=attempts,
        )

    async def _run_candidate(self, spec: RequestSpec, candidate: Candidate, adapter, mode: str) -> _CandidateRun:
        """Retry one candidate per the recovery policy.

        Returns:
            `_CandidateRun` whose `advance` flag tells the caller to move on rather
            than escalate.
        """
        policy = self.policy
        attempts = 0
        rate_limits = 0
        overloads = 0
        malformed = 0

        while True:
            attempts += 1
            result = await adapter.attempt(spec, candidate.model)

            if isinstance(result, Success):
                return _CandidateRun(result, attempts)

            if isinstance(result, RateLimited):
                if mode != QUEUE_PINNED:
                    logger.warning("Rate limit hit for model %s. Trying next model.", candidate.label())
                    return _CandidateRun(result, attempts, advance=True, rate_limited=True)

                rate_limits += 1
                if policy.max_rate_limit_retries and rate_limits > policy.max_rate_limit_retries:
                    return _CandidateRun(result, attempts, advance=True, rate_limited=True)

                delay = policy.rate_limit_wait(result.retry_after)
                logger.warning("Rate limit hit for %s, retrying in %.2f seconds.", candidate.label(), delay)
                await self.sleep(delay)
                continue

            if isinstance(result, TransientOverload):
                overloads += 1
                if overloads > policy.max_overload_retries:
                    logger.error("Overload retries exhausted for %s: %s", candidate.label(), result.detail)
                    return _CandidateRun(result, attempts, advance=True)

                delay = policy.overload_wait(overloads)
                logger.warning("%s overloaded (%s). Waiting %.2f seconds.", candidate.label(), result.detail, delay)
                await self.sleep(delay)
                continue

            if isinstance(result, MalformedOutput):
                malformed += 1
                if malformed >= policy.max_malformed_attempts:
                    logger.error("Malformed output from %s after %s attempts: %s", candidate.label(), malformed, result.detail)
                    return _CandidateRun(Fatal(detail=result.detail), attempts)

                logger.warning("Malformed output from %s, retrying (%s/%s).", candidate.label(), malformed, policy.max_malformed_attempts)
                continue

            logger.error("Provider error from %s: %s", candidate.label(), getattr(result, "detail", ""))
            return _CandidateRun(result, attempts)
