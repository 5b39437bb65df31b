"""Tests for fingerprinting, caching and the public call surface."""

import io
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from aitask.core import errors
from aitask.core.dispatcher import (
    JSON_OUTPUT_PREFIX,
    Dispatcher,
    ai_task,
    ai_task_json,
    ai_task_json_local,
    ai_task_schema,
    ai_task_sync,
    ai_task_text,
    fingerprint,
    set_dispatcher,
)
from aitask.core.fallback import FallbackController
from aitask.core.types import (
    OUTPUT_FORMAT_TEXT,
    CompiledSchema,
    Fatal,
    PlainText,
    RequestSpec,
    ResponsePayload,
    Success,
)
from aitask.llm.adapters import GeminiAdapter
from aitask.llm.provider_config import GEMINI, OLLAMA, RetryPolicy
from aitask.memory.response_cache import ResponseCache

from conftest import StubAdapter


OK = Success(ResponsePayload(value={"result": 3}))


def _dispatcher(adapters, cache, context, sleep):
    controller = FallbackController(
        adapters,
        policy=RetryPolicy(),
        context=context,
        sleep=sleep,
        default_provider=GEMINI,
    )
    return Dispatcher(cache=cache, controller=controller)


@pytest.fixture
def installed_dispatcher():
    """Install a dispatcher as the module default for the duration of a test."""
    def install(dispatcher):
        set_dispatcher(dispatcher)
        return dispatcher

    yield install
    set_dispatcher(None)


class TestFingerprint:

    def test_key_order_does_not_matter(self):
        first = RequestSpec.from_call({"role": "r", "temperature": 0.2}, "t", {"a": 1, "b": {"x": 1, "y": 2}}, {"p": "String | p", "q": "Number | q"})
        second = RequestSpec.from_call({"temperature": 0.2, "role": "r"}, "t", {"b": {"y": 2, "x": 1}, "a": 1}, {"q": "Number | q", "p": "String | p"})

        assert fingerprint(first) == fingerprint(second)

    def test_any_field_changes_the_key(self):
        base = RequestSpec.from_call("r", "t", {"a": 1})
        variants = [
            RequestSpec.from_call("other", "t", {"a": 1}),
            RequestSpec.from_call("r", "t2", {"a": 1}),
            RequestSpec.from_call("r", "t", {"a": 2}),
            RequestSpec.from_call("r", "t", {"a": 1}, "outputs"),
            RequestSpec.from_call("r", "t", {"a": 1}, None, OUTPUT_FORMAT_TEXT),
            RequestSpec.from_call({"role": "r", "model": "m"}, "t", {"a": 1}),
            RequestSpec.from_call({"role": "r", "temperature": 0.1}, "t", {"a": 1}),
            RequestSpec.from_call({"role": "r", "reasoning": {"effort": "high"}}, "t", {"a": 1}),
        ]

        keys = {fingerprint(spec) for spec in variants}

        assert fingerprint(base) not in keys
        assert len(keys) == len(variants)

    def test_binary_inputs_hash_by_content(self):
        spec = RequestSpec.from_call(None, "t", {"images": [b"\x00\x01"]})

        assert fingerprint(spec) == fingerprint(RequestSpec.from_call(None, "t", {"images": [b"\x00\x01"]}))
        assert fingerprint(spec) != fingerprint(RequestSpec.from_call(None, "t", {"images": [b"\x00\x02"]}))

    def test_file_like_inputs_hash_by_content(self):
        first = io.BytesIO(b"\xff\xd8image")
        second = io.BytesIO(b"\xff\xd8image")
        second.seek(3)

        key = fingerprint(RequestSpec.from_call(None, "t", {"images": [first]}))

        assert key == fingerprint(RequestSpec.from_call(None, "t", {"images": [second]}))
        assert key == fingerprint(RequestSpec.from_call(None, "t", {"images": [b"\xff\xd8image"]}))
        assert key != fingerprint(RequestSpec.from_call(None, "t", {"images": [io.BytesIO(b"other")]}))
        assert second.tell() == 3

    def test_callback_provider_is_not_part_of_the_key(self):
        def first(spec):
            return None

        def second(spec):
            return {"other": True}

        a = RequestSpec.from_call({"provider": first}, "t", {"a": 1})
        b = RequestSpec.from_call({"provider": second}, "t", {"a": 1})

        assert fingerprint(a) == fingerprint(b)

    def test_unserializable_input_raises(self):
        with pytest.raises(TypeError):
            fingerprint(RequestSpec.from_call(None, "t", {"a": object()}))


class TestDispatcher:

    @pytest.mark.asyncio
    async def test_cache_hit_skips_backends(self, memory_cache, fallback_context, recorded_sleep):
        adapter = StubAdapter(GEMINI, [OK])
        dispatcher = _dispatcher({GEMINI: adapter}, memory_cache, fallback_context, recorded_sleep)
        spec = RequestSpec.from_call(None, "t", {"a": 1})
        memory_cache.set(fingerprint(spec), ResponsePayload(value={"cached": True}))

        outcome = await dispatcher.run_detailed(spec)

        assert outcome.ok
        assert outcome.cache_hit
        assert outcome.payload == {"cached": True}
        assert adapter.calls == []

    @pytest.mark.asyncio
    async def test_success_is_cached(self, memory_cache, fallback_context, recorded_sleep):
        adapter = StubAdapter(GEMINI, [OK])
        dispatcher = _dispatcher({GEMINI: adapter}, memory_cache, fallback_context, recorded_sleep)
        spec = RequestSpec.from_call({"model": "A"}, "t")

        assert await dispatcher.run(spec) == {"result": 3}
        assert await dispatcher.run(spec) == {"result": 3}

        assert adapter.calls == ["A"]
        assert len(memory_cache) == 1

    @pytest.mark.asyncio
    async def test_failure_returns_none_and_is_not_cached(self, memory_cache, fallback_context, recorded_sleep):
        adapter = StubAdapter(GEMINI, [Fatal(detail="HTTP 400")])
        dispatcher = _dispatcher({GEMINI: adapter}, memory_cache, fallback_context, recorded_sleep)
        spec = RequestSpec.from_call({"model": "A"}, "t")

        assert await dispatcher.run(spec) is None

        outcome = await dispatcher.run_detailed(spec)
        assert not outcome.ok
        assert outcome.error_kind == errors.PROVIDER_FATAL
        assert outcome.detail == "HTTP 400"
        assert len(memory_cache) == 0

    @pytest.mark.asyncio
    async def test_unexpected_exception_does_not_escape(self, memory_cache):
        controller = MagicMock()
        controller.run = AsyncMock(side_effect=RuntimeError("boom"))
        dispatcher = Dispatcher(cache=memory_cache, controller=controller)

        outcome = await dispatcher.run_detailed(RequestSpec.from_call(None, "t"))

        assert not outcome.ok
        assert outcome.error_kind == errors.INTERNAL_ERROR
        assert "boom" in outcome.detail

    @pytest.mark.asyncio
    async def test_end_to_end_sum(self, cache_path, fallback_context, recorded_sleep):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return httpx.Response(200, json={
                "candidates": [{"content": {"role": "model", "parts": [{"text": '{"result": 3}'}]}}],
                "usageMetadata": {"promptTokenCount": 10, "candidatesTokenCount": 3},
            })

        gemini = GeminiAdapter(api_key="test-key", transport=httpx.MockTransport(handler))
        dispatcher = _dispatcher({GEMINI: gemini}, ResponseCache(cache_path), fallback_context, recorded_sleep)

        def make_spec():
            return RequestSpec.from_call(None, "sum", {"a": 1, "b": 2}, {"result": "Number | sum"})

        assert await dispatcher.run(make_spec()) == {"result": 3}
        assert await dispatcher.run(make_spec()) == {"result": 3}

        assert len(requests) == 1
        prompt = requests[0]["contents"][0]["parts"][0]["text"]
        assert prompt.startswith("TASK:\n```\nsum\n```")
        assert '"a": 1' in prompt
        assert len(ResponseCache(cache_path)) == 1


class TestPublicFunctions:

    @pytest.mark.asyncio
    async def test_ai_task_uses_default_dispatcher(self, installed_dispatcher, memory_cache, fallback_context, recorded_sleep):
        adapter = StubAdapter(GEMINI, [OK])
        installed_dispatcher(_dispatcher({GEMINI: adapter}, memory_cache, fallback_context, recorded_sleep))

        result = await ai_task({"model": "A"}, "sum", {"a": 1, "b": 2}, {"result": "Number | sum"})

        assert result == {"result": 3}

    @pytest.mark.asyncio
    async def test_wrappers_shape_the_request(self, installed_dispatcher, memory_cache, fallback_context, recorded_sleep):
        seen = []

        def provider(spec):
            seen.append(spec)
            return {"ok": True}

        installed_dispatcher(_dispatcher({}, memory_cache, fallback_context, recorded_sleep))
        outputs = {"name": "String | the name"}

        await ai_task_json({"provider": provider}, "t", {}, outputs)
        await ai_task_schema({"provider": provider}, "t", {}, outputs)
        await ai_task_text({"provider": provider}, "t", {}, "a haiku")

        json_spec, schema_spec, text_spec = seen
        assert json_spec.outputs == PlainText(JSON_OUTPUT_PREFIX + json.dumps(outputs, indent=2))
        assert json_spec.is_json
        assert isinstance(schema_spec.outputs, CompiledSchema)
        assert schema_spec.outputs.schema["properties"]["name"]["type"] == "string"
        assert text_spec.output_format == OUTPUT_FORMAT_TEXT

    @pytest.mark.asyncio
    async def test_json_local_pins_local_backend(self, installed_dispatcher, memory_cache, fallback_context, recorded_sleep):
        ollama = StubAdapter(OLLAMA, [OK])
        gemini = StubAdapter(GEMINI, [OK])
        installed_dispatcher(_dispatcher({GEMINI: gemini, OLLAMA: ollama}, memory_cache, fallback_context, recorded_sleep))

        result = await ai_task_json_local("role", "t", {"a": 1}, {"result": "Number | sum"})

        assert result == {"result": 3}
        assert ollama.calls == [None]
        assert gemini.calls == []

    def test_sync_twin(self, installed_dispatcher, memory_cache, fallback_context, recorded_sleep):
        adapter = StubAdapter(GEMINI, [OK])
        installed_dispatcher(_dispatcher({GEMINI: adapter}, memory_cache, fallback_context, recorded_sleep))

        assert ai_task_sync({"model": "A"}, "t") == {"result": 3}
