"""Application entrypoint."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated, Optional
from uuid import UUID

import typer

from cognition.chat_engine import ChatEngine
from cognition.config import Settings, load_settings
from cognition.db import Database
from cognition.llm.openai_compatible import OpenAICompatibleProvider
from cognition.models import ChatResponseInput, CreateChatInput, TaskSuggestionInput
from cognition.service import CognitionService
from cognition.tools.create_task import CreateTaskFunction
from cognition.tools.registry import FunctionRegistry

logging.basicConfig(level=logging.INFO)
LOGGER = logging.getLogger(__name__)

app = typer.Typer(name="cognition", help="Chat and task suggestions backed by an LLM.", add_completion=False)


def build_service(settings: Settings) -> CognitionService:
    """Wire store, provider and engine from settings."""

    db = Database(settings.database_path)
    db.initialize()

    functions = FunctionRegistry()
    functions.register(CreateTaskFunction())

    engine = ChatEngine(
        provider=OpenAICompatibleProvider(settings),
        model_name=settings.llm_model_name,
        max_tokens=settings.llm_max_tokens,
        functions=functions,
    )
    return CognitionService(
        db=db,
        engine=engine,
        system_prompt=settings.chat_system_prompt,
        suggestion_context_tasks=settings.suggestion_context_tasks,
    )


async def _run_chat(service: CognitionService, chat_id: UUID, message: str) -> None:
    async for chunk in service.subscribe_chat(ChatResponseInput(chat_id=chat_id, message=message)):
        typer.echo(chunk.delta, nl=False)
        for tool_call in chunk.tool_calls or []:
            typer.echo(f"\n[tool call] {tool_call.function.name}: {tool_call.function.arguments}")
    typer.echo()


@app.command("chat")
def chat_cmd(
    message: Annotated[str, typer.Argument(help="Message to send.")],
    member_id: Annotated[UUID, typer.Option("--member", help="Member that owns the chat.")],
    chat_id: Annotated[Optional[UUID], typer.Option("--chat", help="Continue an existing chat.")] = None,
) -> None:
    """Send a message and stream the reply."""

    service = build_service(load_settings())
    if chat_id is None:
        chat = service.create_chat(CreateChatInput(title=message[:60]), member_id)
        chat_id = chat.id
        LOGGER.info("Created chat %s for member %s", chat_id, member_id)
        typer.echo(f"chat {chat_id}")
    asyncio.run(_run_chat(service, chat_id, message))


@app.command("suggest")
def suggest_cmd(
    title: Annotated[Optional[str], typer.Option("--title", help="Fixed task title.")] = None,
    project_id: Annotated[Optional[UUID], typer.Option("--project", help="Project scope.")] = None,
) -> None:
    """Suggest the next task."""

    service = build_service(load_settings())
    suggestion = asyncio.run(
        service.suggest_next_task(TaskSuggestionInput(title=title, project_id=project_id))
    )
    typer.echo(f"{suggestion.title} [{suggestion.status.value}/{suggestion.priority.value}]")
    if suggestion.description:
        typer.echo(suggestion.description)


def main() -> None:
    """Console script entrypoint."""

    app()


if __name__ == "__main__":
    main()
