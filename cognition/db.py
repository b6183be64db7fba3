"""SQLite persistence layer for chats, messages and tasks."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator
from uuid import UUID, uuid4

from cognition.models import Chat, CreateChatInput, Message, Task, TaskFilter, TaskPriority, TaskStatus

SCHEMA_VERSION = 1

_TASK_COLUMNS = """
    t.id, t.created_at, t.updated_at, t.title, t.description, t.status, t.priority,
    t.due_date, t.project_id, t.lead_id, t.owner_id, t.parent_id,
    (SELECT COUNT(*) FROM tasks c WHERE c.parent_id = t.id) AS subtask_count
"""


class Database:
    """Small SQLite wrapper with explicit schema management."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create or migrate schema."""

        with self._connect() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                self._create_schema(conn)
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            elif row["version"] != SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported schema version {row['version']} (expected {SCHEMA_VERSION})"
                )

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS chats (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                title TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS messages (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                chat_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY(chat_id) REFERENCES chats(id)
            );

            CREATE TABLE IF NOT EXISTS tasks (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                status TEXT NOT NULL,
                priority TEXT NOT NULL,
                due_date TEXT,
                project_id TEXT,
                lead_id TEXT,
                owner_id TEXT NOT NULL,
                parent_id TEXT
            );
            """
        )

    def create_chat(self, chat_input: CreateChatInput) -> Chat:
        if chat_input.owner_id is None:
            raise ValueError("Chat owner is required")
        now = _utc_now_iso()
        chat_id = uuid4()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO chats(id, owner_id, title, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (str(chat_id), str(chat_input.owner_id), chat_input.title, now, now),
            )
        return Chat(
            id=chat_id,
            owner_id=chat_input.owner_id,
            title=chat_input.title,
            created_at=datetime.fromisoformat(now),
            updated_at=datetime.fromisoformat(now),
        )

    def get_chat(self, chat_id: UUID) -> Chat | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM chats WHERE id = ?", (str(chat_id),)).fetchone()
        if row is None:
            return None
        return Chat(
            id=UUID(row["id"]),
            owner_id=UUID(row["owner_id"]),
            title=row["title"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def add_message(self, chat_id: UUID, role: str, content: str, message_id: UUID | None = None) -> Message:
        now = _utc_now_iso()
        message_id = message_id or uuid4()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO messages(id, chat_id, role, content, created_at) VALUES (?, ?, ?, ?, ?)",
                (str(message_id), str(chat_id), role, content, now),
            )
            conn.execute("UPDATE chats SET updated_at = ? WHERE id = ?", (now, str(chat_id)))
        return Message(
            id=message_id,
            chat_id=chat_id,
            role=role,
            content=content,
            created_at=datetime.fromisoformat(now),
        )

    def get_messages(self, chat_id: UUID) -> list[Message]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, chat_id, role, content, created_at FROM messages WHERE chat_id = ? ORDER BY seq ASC",
                (str(chat_id),),
            ).fetchall()
        return [
            Message(
                id=UUID(row["id"]),
                chat_id=UUID(row["chat_id"]),
                role=row["role"],
                content=row["content"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    def create_task(
        self,
        title: str,
        owner_id: UUID,
        description: str | None = None,
        status: TaskStatus = TaskStatus.BACKLOG,
        priority: TaskPriority = TaskPriority.NONE,
        due_date: datetime | None = None,
        project_id: UUID | None = None,
        lead_id: UUID | None = None,
        parent_id: UUID | None = None,
    ) -> Task:
        now = _utc_now_iso()
        task_id = uuid4()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO tasks(
                    id, created_at, updated_at, title, description, status, priority,
                    due_date, project_id, lead_id, owner_id, parent_id
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(task_id),
                    now,
                    now,
                    title,
                    description,
                    status.value,
                    priority.value,
                    due_date.isoformat() if due_date else None,
                    _optional_str(project_id),
                    _optional_str(lead_id),
                    str(owner_id),
                    _optional_str(parent_id),
                ),
            )
        return Task(
            id=task_id,
            created_at=datetime.fromisoformat(now),
            updated_at=datetime.fromisoformat(now),
            title=title,
            description=description,
            status=status,
            priority=priority,
            due_date=due_date,
            project_id=project_id,
            lead_id=lead_id,
            owner_id=owner_id,
            count=0,
            parent_id=parent_id,
        )

    def get_task(self, task_id: UUID) -> Task | None:
        with self._connect() as conn:
            row = conn.execute(f"SELECT {_TASK_COLUMNS} FROM tasks t WHERE t.id = ?", (str(task_id),)).fetchone()
        return _row_to_task(row) if row else None

    def get_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        """Return tasks, most recently updated first."""

        task_filter = task_filter or TaskFilter()
        clauses: list[str] = []
        params: list[object] = []
        if task_filter.project_id is not None:
            clauses.append("t.project_id = ?")
            params.append(str(task_filter.project_id))
        if task_filter.parent_id is not None:
            clauses.append("t.parent_id = ?")
            params.append(str(task_filter.parent_id))

        query = f"SELECT {_TASK_COLUMNS} FROM tasks t"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY t.updated_at DESC, t.seq DESC"
        if task_filter.limit is not None:
            query += " LIMIT ?"
            params.append(task_filter.limit)

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_task(row) for row in rows]


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=UUID(row["id"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
        title=row["title"],
        description=row["description"],
        status=TaskStatus(row["status"]),
        priority=TaskPriority(row["priority"]),
        due_date=datetime.fromisoformat(row["due_date"]) if row["due_date"] else None,
        project_id=_optional_uuid(row["project_id"]),
        lead_id=_optional_uuid(row["lead_id"]),
        owner_id=UUID(row["owner_id"]),
        count=int(row["subtask_count"]),
        parent_id=_optional_uuid(row["parent_id"]),
    )


def _optional_str(value: UUID | None) -> str | None:
    return str(value) if value is not None else None


def _optional_uuid(value: str | None) -> UUID | None:
    return UUID(value) if value else None


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
