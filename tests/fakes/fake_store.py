"""Fake in-memory entry store and text generator for pipeline behavioral testing."""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List

from serendipity.core.connection_merge import pair_key
from serendipity.core.schemas_connections import Entry

OWNER_ID = "user-1"
OTHER_USER_ID = "user-2"
PROJECT_ID = "project-1"

_BASE_TIME = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_entry(
    entry_id: str,
    content: str | None = "Observation text",
    tags: list[str] | None = None,
    project_id: str = PROJECT_ID,
    minutes: int = 0,
    entry_type: str = "observation",
) -> Entry:
    """Build an Entry; larger `minutes` means more recent."""
    return Entry(
        id=entry_id,
        content=content,
        entry_type=entry_type,
        tags=tags or [],
        project_id=project_id,
        created_at=_BASE_TIME + timedelta(minutes=minutes),
    )


def connection_json(*connections: Dict[str, Any], fenced: bool = False) -> str:
    """Render a model response carrying the given connection dicts."""
    body = json.dumps({"connections": list(connections)})
    return f"```json\n{body}\n```" if fenced else body


def conn(source: str, target: str, confidence: float = 0.8, type: str = "pattern", **extra: Any) -> Dict[str, Any]:
    return {
        "source_entry_id": source,
        "target_entry_id": target,
        "type": type,
        "reasoning": f"{source} relates to {target}",
        "confidence": confidence,
        **extra,
    }


class FakeEntryStore:
    """In-memory EntryStore implementation for testing."""

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset all stores to initial state."""
        self.entries: Dict[str, Entry] = {}
        self.projects: Dict[str, Dict[str, Any]] = {
            PROJECT_ID: {"id": PROJECT_ID, "owner_id": OWNER_ID, "name": "Cell culture"},
        }
        self.connections: List[Dict[str, Any]] = []
        self.insert_calls: List[List[Dict[str, Any]]] = []
        self.fail_inserts = False

    def add_entries(self, *entries: Entry) -> None:
        for entry in entries:
            self.entries[entry.id] = entry

    def add_connection(self, source: str, target: str, **fields: Any) -> None:
        self.connections.append(
            {"source_entry_id": source, "target_entry_id": target, "status": "pending", **fields}
        )

    def pair_keys(self) -> List[str]:
        return [pair_key(c["source_entry_id"], c["target_entry_id"]) for c in self.connections]

    # EntryStore protocol
    async def get_entry(self, entry_id: str) -> Entry | None:
        return self.entries.get(entry_id)

    async def get_owned_project(self, project_id: str, owner_id: str) -> Dict[str, Any] | None:
        project = self.projects.get(project_id)
        if project and project["owner_id"] == owner_id:
            return project
        return None

    async def list_project_entries(
        self, project_id: str, limit: int, exclude_entry_id: str | None = None
    ) -> List[Entry]:
        entries = [
            e for e in self.entries.values()
            if e.project_id == project_id and e.id != exclude_entry_id
        ]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit]

    async def list_connections_between(self, pairs: List[tuple]) -> List[Dict[str, Any]]:
        wanted = {pair_key(a, b) for a, b in pairs}
        return [
            c for c in self.connections
            if pair_key(c["source_entry_id"], c["target_entry_id"]) in wanted
        ]

    async def list_connections_touching(self, entry_ids: List[str]) -> List[Dict[str, Any]]:
        ids = set(entry_ids)
        return [
            c for c in self.connections
            if c["source_entry_id"] in ids or c["target_entry_id"] in ids
        ]

    async def insert_connections(self, rows: List[Dict[str, Any]]) -> int:
        from serendipity.core.errors import StoreWriteError

        self.insert_calls.append(rows)
        if self.fail_inserts:
            raise StoreWriteError("insert failed")
        self.connections.extend(dict(row) for row in rows)
        return len(rows)


Responder = Callable[[str], str]


class FakeTextGenerator:
    """Scripted TextGenerator.

    `responder` receives the user prompt and returns the model text, or raises
    to simulate a provider failure.
    """

    def __init__(self, responder: Responder | str = '{"connections": []}', chunks: List[str] | None = None):
        self._responder = responder if callable(responder) else (lambda _prompt: responder)
        self._chunks = chunks
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, system: str, prompt: str, max_tokens: int) -> str:
        self.calls.append({"system": system, "prompt": prompt, "max_tokens": max_tokens})
        return self._responder(prompt)

    async def stream(self, system: str, prompt: str, max_tokens: int):
        self.calls.append({"system": system, "prompt": prompt, "max_tokens": max_tokens})
        chunks = self._chunks if self._chunks is not None else [self._responder(prompt)]
        for chunk in chunks:
            yield chunk


def make_settings(**overrides: Any):
    """Settings with test credentials and optional overrides."""
    from serendipity.core.config import Settings

    values = {
        "SUPABASE_URL": "https://test.supabase.co",
        "SUPABASE_SERVICE_ROLE_KEY": "test-key",
        "ANTHROPIC_API_KEY": None,
        "OPENAI_API_KEY": None,
        **overrides,
    }
    return Settings(**values)
