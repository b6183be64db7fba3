import json
from unittest.mock import patch
from uuid import uuid4

from typer.testing import CliRunner

from cognition.config import Settings
from cognition.main import app, build_service
from cognition.models import LLMResponse

runner = CliRunner()


class FakeProvider:
    requests = []

    def __init__(self, settings):  # noqa: ANN001
        self.settings = settings

    async def complete(self, request):  # noqa: ANN001, ANN201
        FakeProvider.requests.append(request)
        return LLMResponse(content=json.dumps({"title": "Water plants", "status": "ToDo", "priority": "Low"}))

    async def stream(self, request):  # noqa: ANN001, ANN201
        FakeProvider.requests.append(request)
        for text in ("Hi", " there"):
            yield {"choices": [{"index": 0, "delta": {"content": text}, "finish_reason": None}]}
        yield {"choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]}


def _settings(tmp_path) -> Settings:  # noqa: ANN001
    return Settings(LLM_API_KEY="k", LLM_MODEL_NAME="test-model", DATABASE_PATH=tmp_path / "cli.db")


def test_chat_command_streams_reply(tmp_path):
    FakeProvider.requests = []
    with (
        patch("cognition.main.load_settings", return_value=_settings(tmp_path)),
        patch("cognition.main.OpenAICompatibleProvider", FakeProvider),
    ):
        result = runner.invoke(app, ["chat", "hello", "--member", str(uuid4())])

    assert result.exit_code == 0, result.output
    assert "Hi there" in result.output
    request = FakeProvider.requests[0]
    assert request.model == "test-model"
    assert [tool["function"]["name"] for tool in request.tools] == ["create_task"]


def test_suggest_command_prints_suggestion(tmp_path):
    with (
        patch("cognition.main.load_settings", return_value=_settings(tmp_path)),
        patch("cognition.main.OpenAICompatibleProvider", FakeProvider),
    ):
        result = runner.invoke(app, ["suggest"])

    assert result.exit_code == 0, result.output
    assert "Water plants [ToDo/Low]" in result.output


def test_build_service_initializes_database(tmp_path):
    build_service(_settings(tmp_path))
    assert (tmp_path / "cli.db").exists()
