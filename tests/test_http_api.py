"""Tests for the HTTP surface."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from aitask.api.http_api import app
from aitask.core import errors
from aitask.core.dispatcher import set_dispatcher
from aitask.core.types import TaskOutcome
from aitask.llm.provider_config import GEMINI, OLLAMA


@pytest.fixture
def stub_dispatcher():
    dispatcher = MagicMock()
    dispatcher.run_detailed = AsyncMock(return_value=TaskOutcome(ok=True, payload={"result": 3}, attempts=1))
    set_dispatcher(dispatcher)
    yield dispatcher
    set_dispatcher(None)


@pytest.fixture
def client():
    return TestClient(app)


class TestTasksEndpoint:

    def test_success(self, client, stub_dispatcher):
        response = client.post("/v1/tasks", json={
            "task": "sum",
            "inputs": {"a": 1, "b": 2},
            "outputs": {"result": "Number | sum"},
            "model": ["m1", "m2"],
            "temperature": 0.2,
        })

        assert response.status_code == 200
        assert response.json()["payload"] == {"result": 3}

        spec = stub_dispatcher.run_detailed.call_args.args[0]
        assert spec.task == "sum"
        assert spec.inputs == {"a": 1, "b": 2}
        assert spec.model == ["m1", "m2"]
        assert spec.temperature == 0.2
        assert spec.is_json

    def test_failure_maps_to_bad_gateway(self, client, stub_dispatcher):
        stub_dispatcher.run_detailed.return_value = TaskOutcome(
            ok=False,
            error_kind=errors.EXHAUSTED_CANDIDATES,
            detail="all candidates failed",
        )

        response = client.post("/v1/tasks", json={"task": "t"})

        assert response.status_code == 502
        assert response.json()["error_kind"] == errors.EXHAUSTED_CANDIDATES
        assert response.json()["detail"] == "all candidates failed"

    def test_invalid_body(self, client, stub_dispatcher):
        response = client.post("/v1/tasks", json={"temperature": "hot"})

        assert response.status_code == 422
        stub_dispatcher.run_detailed.assert_not_called()


class TestProvidersEndpoint:

    def test_lists_backends(self, client):
        response = client.get("/v1/providers")

        assert response.status_code == 200
        data = response.json()
        ids = {item["id"] for item in data["data"]}
        assert {GEMINI, OLLAMA} <= ids
        assert isinstance(data["default_models"], list)
        local = next(item for item in data["data"] if item["id"] == OLLAMA)
        assert local["configured"] is True
