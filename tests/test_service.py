import json
from uuid import uuid4

import pytest

from cognition.chat_engine import ChatEngine
from cognition.db import Database
from cognition.errors import EmptyStream, InvalidSuggestion, UnsupportedRole
from cognition.fingerprints import SUGGEST_PLACEHOLDER, calculate_task_fingerprint
from cognition.models import (
    ChatResponseInput,
    CreateChatInput,
    LLMResponse,
    SubdivideTaskInput,
    TaskPriority,
    TaskStatus,
    TaskSuggestionInput,
)
from cognition.service import CognitionService


class FakeProvider:
    def __init__(self, turns=None, completions=None):  # noqa: ANN001
        self.turns = list(turns or [])
        self.completions = list(completions or [])
        self.requests = []
        self.closed = 0

    async def complete(self, request):  # noqa: ANN001, ANN201
        self.requests.append(request)
        return LLMResponse(content=self.completions.pop(0))

    async def stream(self, request):  # noqa: ANN001, ANN201
        self.requests.append(request)
        try:
            for text in self.turns.pop(0):
                yield {"choices": [{"index": 0, "delta": {"content": text}, "finish_reason": None}]}
            yield {"choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]}
        finally:
            self.closed += 1


def _service(tmp_path, provider):  # noqa: ANN001, ANN202
    db = Database(tmp_path / "cognition.db")
    db.initialize()
    engine = ChatEngine(provider=provider, model_name="test-model")
    return db, CognitionService(db=db, engine=engine, system_prompt="You are helpful.", suggestion_context_tasks=2)


def test_create_chat_stamps_member_as_owner(tmp_path):
    db, service = _service(tmp_path, FakeProvider())
    member = uuid4()

    chat = service.create_chat(CreateChatInput(owner_id=uuid4(), title="Plans"), member)

    assert chat.owner_id == member
    assert db.get_chat(chat.id).owner_id == member


@pytest.mark.asyncio
async def test_chat_returns_final_chunk_and_stores_turn(tmp_path):
    provider = FakeProvider(turns=[["Sure", ", ", "I can help."]])
    db, service = _service(tmp_path, provider)
    chat = service.create_chat(CreateChatInput(), uuid4())

    chunk = await service.chat(ChatResponseInput(chat_id=chat.id, message="Help me plan"))

    assert chunk.delta == "I can help."
    assert chunk.message == "Sure, I can help."
    messages = db.get_messages(chat.id)
    assert [m.role for m in messages] == ["user", "assistant"]
    assert json.loads(messages[0].content) == {"role": "user", "content": "Help me plan"}
    assert json.loads(messages[1].content) == {"role": "assistant", "content": "Sure, I can help."}
    assert messages[1].id == chunk.message_id


@pytest.mark.asyncio
async def test_history_is_replayed_on_next_turn(tmp_path):
    provider = FakeProvider(turns=[["Hello!"], ["Of course."]])
    _, service = _service(tmp_path, provider)
    chat = service.create_chat(CreateChatInput(), uuid4())

    await service.chat(ChatResponseInput(chat_id=chat.id, message="hi"))
    await service.chat(ChatResponseInput(chat_id=chat.id, message="can you help?"))

    assert provider.requests[1].messages == [
        {"role": "system", "content": "You are helpful."},
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "Hello!"},
        {"role": "user", "content": "can you help?"},
    ]


@pytest.mark.asyncio
async def test_chat_with_empty_stream_raises(tmp_path):
    provider = FakeProvider(turns=[[]])
    db, service = _service(tmp_path, provider)
    chat = service.create_chat(CreateChatInput(), uuid4())

    with pytest.raises(EmptyStream):
        await service.chat(ChatResponseInput(chat_id=chat.id, message="hi"))

    assert [m.role for m in db.get_messages(chat.id)] == ["user"]


@pytest.mark.asyncio
async def test_subscription_forwards_chunks(tmp_path):
    provider = FakeProvider(turns=[["a", "b", "c"]])
    _, service = _service(tmp_path, provider)
    chat = service.create_chat(CreateChatInput(), uuid4())

    chunks = [c async for c in service.subscribe_chat(ChatResponseInput(chat_id=chat.id, message="go"))]

    assert [c.message for c in chunks] == ["a", "ab", "abc"]


@pytest.mark.asyncio
async def test_cancelled_subscription_stores_no_reply(tmp_path):
    provider = FakeProvider(turns=[["a", "b", "c"]])
    db, service = _service(tmp_path, provider)
    chat = service.create_chat(CreateChatInput(), uuid4())

    chunks = service.subscribe_chat(ChatResponseInput(chat_id=chat.id, message="go"))
    await chunks.__anext__()
    await chunks.__anext__()
    await chunks.aclose()

    assert provider.closed == 1
    assert [m.role for m in db.get_messages(chat.id)] == ["user"]


def test_malformed_history_leaves_chat_untouched(tmp_path):
    provider = FakeProvider(turns=[["never"]])
    db, service = _service(tmp_path, provider)
    chat = service.create_chat(CreateChatInput(), uuid4())
    db.add_message(chat.id, "tool", json.dumps({"role": "tool", "content": "{}", "tool_call_id": "c1"}))

    with pytest.raises(UnsupportedRole):
        service.get_chat_response(ChatResponseInput(chat_id=chat.id, message="hi"))

    assert len(db.get_messages(chat.id)) == 1
    assert provider.requests == []


def test_unknown_chat_raises(tmp_path):
    _, service = _service(tmp_path, FakeProvider())
    with pytest.raises(KeyError):
        service.get_chat_response(ChatResponseInput(chat_id=uuid4(), message="hi"))


@pytest.mark.asyncio
async def test_suggest_next_task_uses_fingerprints_and_template(tmp_path):
    reply = json.dumps(
        {
            "title": "ignored",
            "description": "Compare prices first",
            "status": "ToDo",
            "priority": "Medium",
            "due_date": "2024-06-01T09:00:00Z",
        }
    )
    provider = FakeProvider(completions=[reply])
    db, service = _service(tmp_path, provider)
    owner = uuid4()
    project = uuid4()
    known = db.create_task("Buy milk", owner, project_id=project)
    db.create_task("Other project", owner, project_id=uuid4())

    suggestion = await service.suggest_next_task(TaskSuggestionInput(title="Buy bread", project_id=project))

    assert suggestion.title == "Buy bread"
    assert suggestion.description == "Compare prices first"
    assert suggestion.status is TaskStatus.TO_DO
    assert suggestion.priority is TaskPriority.MEDIUM
    assert suggestion.due_date.year == 2024

    prompt = provider.requests[0].messages[1]["content"]
    assert calculate_task_fingerprint(known) in prompt
    assert "Other project" not in prompt
    assert "Task Title: Buy bread" in prompt
    assert f"Task Description: {SUGGEST_PLACEHOLDER}" in prompt


@pytest.mark.asyncio
async def test_suggest_next_task_accepts_fenced_json(tmp_path):
    provider = FakeProvider(completions=['```json\n{"title": "Water plants"}\n```'])
    _, service = _service(tmp_path, provider)

    suggestion = await service.suggest_next_task(TaskSuggestionInput())

    assert suggestion.title == "Water plants"
    assert suggestion.status is TaskStatus.BACKLOG


@pytest.mark.asyncio
async def test_suggest_next_task_keeps_fixed_fields_the_reply_omits(tmp_path):
    provider = FakeProvider(completions=['{"description": "Whole wheat", "status": "ToDo"}'])
    _, service = _service(tmp_path, provider)

    suggestion = await service.suggest_next_task(
        TaskSuggestionInput(title="Fixed", priority=TaskPriority.HIGH)
    )

    assert suggestion.title == "Fixed"
    assert suggestion.description == "Whole wheat"
    assert suggestion.status is TaskStatus.TO_DO
    assert suggestion.priority is TaskPriority.HIGH


@pytest.mark.asyncio
async def test_suggest_next_task_rejects_non_object_reply(tmp_path):
    provider = FakeProvider(completions=['["Buy milk"]'])
    _, service = _service(tmp_path, provider)

    with pytest.raises(InvalidSuggestion):
        await service.suggest_next_task(TaskSuggestionInput(title="Fixed"))


@pytest.mark.asyncio
async def test_suggest_next_task_rejects_unparseable_reply(tmp_path):
    provider = FakeProvider(completions=["I think you should buy milk."])
    _, service = _service(tmp_path, provider)

    with pytest.raises(InvalidSuggestion):
        await service.suggest_next_task(TaskSuggestionInput())


@pytest.mark.asyncio
async def test_suggest_next_task_rejects_unknown_status(tmp_path):
    provider = FakeProvider(completions=['{"title": "x", "status": "Someday"}'])
    _, service = _service(tmp_path, provider)

    with pytest.raises(InvalidSuggestion):
        await service.suggest_next_task(TaskSuggestionInput())


@pytest.mark.asyncio
async def test_subdivide_task_lists_existing_subtasks(tmp_path):
    reply = json.dumps([{"title": "Draft"}, {"title": "Review"}, {"title": "Publish"}])
    provider = FakeProvider(completions=[reply])
    db, service = _service(tmp_path, provider)
    owner = uuid4()
    parent = db.create_task("Write blog post", owner)
    existing = db.create_task("Pick topic", owner, parent_id=parent.id)

    suggestions = await service.subdivide_task(SubdivideTaskInput(task_id=parent.id, subtasks=2))

    assert [s.title for s in suggestions] == ["Draft", "Review"]
    prompt = provider.requests[0].messages[1]["content"]
    assert calculate_task_fingerprint(existing) in prompt
    assert "generate 2 subtasks" in prompt


@pytest.mark.asyncio
async def test_subdivide_unknown_task_raises(tmp_path):
    _, service = _service(tmp_path, FakeProvider())
    with pytest.raises(KeyError):
        await service.subdivide_task(SubdivideTaskInput(task_id=uuid4()))
