"""Tests for the persistent response cache."""

import json
import os

from aitask.core.types import ResponsePayload
from aitask.memory.response_cache import ResponseCache


class TestResponseCache:

    def test_missing_file_starts_empty(self, cache_path):
        cache = ResponseCache(cache_path)

        assert len(cache) == 0
        assert cache.get("abc") is None

    def test_save_and_reload(self, cache_path):
        cache = ResponseCache(cache_path)
        cache.set("abc", ResponsePayload(value={"result": 3}, usage={"prompt_tokens": 1}))
        cache.save()

        reloaded = ResponseCache(cache_path)

        assert "abc" in reloaded
        payload = reloaded.get("abc")
        assert payload.value == {"result": 3}
        assert payload.usage == {"prompt_tokens": 1}
        assert payload.raw_message is False
        assert not os.path.exists(cache_path + ".tmp")

    def test_last_write_wins(self, cache_path):
        cache = ResponseCache(cache_path)
        cache.set("abc", ResponsePayload(value=1))
        cache.set("abc", ResponsePayload(value=2))

        assert cache.get("abc").value == 2
        assert len(cache) == 1

    def test_corrupt_file_is_treated_as_empty(self, cache_path):
        os.makedirs(os.path.dirname(cache_path))
        with open(cache_path, "w", encoding="utf-8") as f:
            f.write("{not json")

        cache = ResponseCache(cache_path)

        assert len(cache) == 0

        cache.set("abc", ResponsePayload(value="x"))
        cache.save()
        with open(cache_path, "r", encoding="utf-8") as f:
            assert json.load(f)["abc"]["value"] == "x"

    def test_malformed_entry_is_a_miss(self, cache_path):
        os.makedirs(os.path.dirname(cache_path))
        with open(cache_path, "w", encoding="utf-8") as f:
            json.dump({"abc": "not an entry", "def": {"value": 1}}, f)

        cache = ResponseCache(cache_path)

        assert cache.get("abc") is None
        assert cache.get("def").value == 1

    def test_memory_only_cache(self):
        cache = ResponseCache(path=None)
        cache.set("abc", ResponsePayload(value="x"))
        cache.save()

        assert cache.get("abc").value == "x"
