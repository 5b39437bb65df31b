"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add project root to sys.path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from aitask.core.fallback import FallbackContext
from aitask.core.types import Success, ResponsePayload
from aitask.memory.response_cache import ResponseCache


class StubAdapter:
    """Adapter double returning scripted attempt results.

    The last scripted result repeats once the script is used up.
    """

    def __init__(self, provider_id, results):
        self.provider_id = provider_id
        self.results = list(results)
        self.calls = []

    async def attempt(self, spec, model):
        self.calls.append(model)
        index = min(len(self.calls) - 1, len(self.results) - 1)
        return self.results[index]


class ModelScriptedAdapter:
    """Adapter double whose result depends on the requested model."""

    def __init__(self, provider_id, by_model, default=None):
        self.provider_id = provider_id
        self.by_model = by_model
        self.default = default or Success(ResponsePayload(value={"ok": True}))
        self.calls = []

    async def attempt(self, spec, model):
        self.calls.append(model)
        return self.by_model.get(model, self.default)


class RecordedSleep:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def recorded_sleep():
    return RecordedSleep()


@pytest.fixture
def fallback_context():
    return FallbackContext()


@pytest.fixture
def memory_cache():
    return ResponseCache(path=None)


@pytest.fixture
def cache_path(tmp_path):
    return str(tmp_path / "cache" / "responses.json")
