"""Workspace-backed store: JSONL message logs plus JSON side files."""

import json
import time
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any

from companion.logging import get_logger
from companion.store.models import (
    CalendarEvent,
    ConversationProfile,
    Message,
    MemoryFragment,
    ScheduledMessage,
)
from companion.utils.helpers import atomic_write_text, ensure_dir, safe_filename

logger = get_logger(__name__)


class ConversationStore:
    """
    Persists conversations under a workspace directory.

    Layout::

        conversations/<id>.jsonl   metadata line + one message per line
        memory/<id>.json           memory fragments (append-only list)
        scheduled.json             pending scheduled messages
        calendar.json              calendar events
        state.json                 store-wide message id counter

    Message ids are unique across the whole store and strictly increasing.
    """

    def __init__(self, workspace: Path):
        self.workspace = workspace
        self.conversations_dir = ensure_dir(workspace / "conversations")
        self.memory_dir = ensure_dir(workspace / "memory")
        self.state_file = workspace / "state.json"
        self.scheduled_file = workspace / "scheduled.json"
        self.calendar_file = workspace / "calendar.json"
        self._cache: dict[str, list[Message]] = {}
        self._next_id = self._load_next_id()

    # -- messages ---------------------------------------------------------

    def _conversation_path(self, conversation_id: str) -> Path:
        safe_key = safe_filename(conversation_id.replace(":", "_"))
        return self.conversations_dir / f"{safe_key}.jsonl"

    def _load_next_id(self) -> int:
        if not self.state_file.exists():
            return 1
        try:
            data = json.loads(self.state_file.read_text(encoding="utf-8"))
            return int(data.get("next_message_id", 1))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("store_state_unreadable", path=str(self.state_file), error=str(e))
            return self._recover_next_id()

    def _recover_next_id(self) -> int:
        highest = 0
        for path in self.conversations_dir.glob("*.jsonl"):
            for msg in self._read_messages(path):
                highest = max(highest, msg.id or 0)
        return highest + 1

    def _allocate_id(self) -> int:
        message_id = self._next_id
        self._next_id += 1
        atomic_write_text(self.state_file, json.dumps({"next_message_id": self._next_id}))
        return message_id

    @staticmethod
    def _read_messages(path: Path) -> list[Message]:
        messages: list[Message] = []
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                if data.get("_type") == "metadata":
                    continue
                messages.append(Message.from_dict(data))
        return messages

    def _load(self, conversation_id: str) -> list[Message]:
        if conversation_id in self._cache:
            return self._cache[conversation_id]
        path = self._conversation_path(conversation_id)
        messages = self._read_messages(path) if path.exists() else []
        self._cache[conversation_id] = messages
        return messages

    def _write(self, conversation_id: str) -> None:
        started = time.perf_counter()
        path = self._conversation_path(conversation_id)
        messages = self._cache.get(conversation_id, [])
        metadata_line = {
            "_type": "metadata",
            "conversation_id": conversation_id,
            "updated_at": datetime.now().isoformat(),
        }
        lines = [json.dumps(metadata_line, ensure_ascii=False)]
        lines.extend(json.dumps(m.to_dict(), ensure_ascii=False) for m in messages)
        atomic_write_text(path, "\n".join(lines) + "\n")
        logger.debug(
            "conversation_saved",
            conversation_id=conversation_id,
            message_count=len(messages),
            elapsed_ms=round((time.perf_counter() - started) * 1000, 3),
        )

    def insert_message(self, message: Message) -> Message:
        messages = self._load(message.conversation_id)
        message.id = self._allocate_id()
        messages.append(message)
        self._write(message.conversation_id)
        return message

    def update_message(self, message_id: int, content: str) -> None:
        for conversation_id in self.list_conversations():
            for msg in self._load(conversation_id):
                if msg.id == message_id:
                    msg.content = content
                    self._write(conversation_id)
                    return
        raise KeyError(f"Message {message_id} not found")

    def delete_messages(self, ids: list[int]) -> None:
        doomed = set(ids)
        for conversation_id in self.list_conversations():
            messages = self._load(conversation_id)
            kept = [m for m in messages if m.id not in doomed]
            if len(kept) != len(messages):
                self._cache[conversation_id] = kept
                self._write(conversation_id)

    def clear_messages(self, conversation_id: str) -> None:
        self._cache[conversation_id] = []
        self._write(conversation_id)

    def fetch_history(self, conversation_id: str) -> list[Message]:
        return list(self._load(conversation_id))

    def list_conversations(self) -> list[str]:
        ids: list[str] = []
        for path in sorted(self.conversations_dir.glob("*.jsonl")):
            with open(path, encoding="utf-8") as f:
                first_line = f.readline().strip()
            data = json.loads(first_line) if first_line else {}
            ids.append(data.get("conversation_id") or path.stem)
        return ids

    # -- memory fragments -------------------------------------------------

    def _fragments_path(self, conversation_id: str) -> Path:
        return self.memory_dir / f"{safe_filename(conversation_id.replace(':', '_'))}.json"

    def list_fragments(self, conversation_id: str) -> list[MemoryFragment]:
        path = self._fragments_path(conversation_id)
        if not path.exists():
            return []
        return [MemoryFragment(**item) for item in json.loads(path.read_text(encoding="utf-8"))]

    def append_fragments(self, conversation_id: str, fragments: list[MemoryFragment]) -> None:
        combined = self.list_fragments(conversation_id) + list(fragments)
        payload = json.dumps([f.to_dict() for f in combined], ensure_ascii=False, indent=2)
        atomic_write_text(self._fragments_path(conversation_id), payload)

    # -- scheduled messages & calendar ------------------------------------

    def _read_json_list(self, path: Path) -> list[dict[str, Any]]:
        if not path.exists():
            return []
        return json.loads(path.read_text(encoding="utf-8"))

    def _write_json_list(self, path: Path, items: list[dict[str, Any]]) -> None:
        atomic_write_text(path, json.dumps(items, ensure_ascii=False, indent=2))

    def save_scheduled_message(self, scheduled: ScheduledMessage) -> None:
        items = [i for i in self._read_json_list(self.scheduled_file) if i.get("id") != scheduled.id]
        items.append(scheduled.to_dict())
        self._write_json_list(self.scheduled_file, items)

    def due_scheduled_messages(self, conversation_id: str, now: datetime) -> list[ScheduledMessage]:
        pending = [ScheduledMessage.from_dict(i) for i in self._read_json_list(self.scheduled_file)]
        due = [s for s in pending if s.conversation_id == conversation_id and s.due_at <= now]
        return sorted(due, key=lambda s: s.due_at)

    def delete_scheduled_message(self, scheduled_id: str) -> None:
        items = [i for i in self._read_json_list(self.scheduled_file) if i.get("id") != scheduled_id]
        self._write_json_list(self.scheduled_file, items)

    def save_calendar_event(self, event: CalendarEvent) -> None:
        items = [i for i in self._read_json_list(self.calendar_file) if i.get("id") != event.id]
        items.append(event.to_dict())
        self._write_json_list(self.calendar_file, items)

    def list_calendar_events(self, conversation_id: str | None = None) -> list[CalendarEvent]:
        events = [CalendarEvent(**i) for i in self._read_json_list(self.calendar_file)]
        if conversation_id is None:
            return events
        return [e for e in events if e.conversation_id == conversation_id]

    # -- profiles ---------------------------------------------------------

    def _profile_path(self, conversation_id: str) -> Path:
        return ensure_dir(self.workspace / "profiles") / f"{safe_filename(conversation_id.replace(':', '_'))}.json"

    def load_profile(self, conversation_id: str) -> ConversationProfile | None:
        path = self._profile_path(conversation_id)
        if not path.exists():
            return None
        return ConversationProfile(**json.loads(path.read_text(encoding="utf-8")))

    def save_profile(self, profile: ConversationProfile) -> None:
        payload = json.dumps(asdict(profile), ensure_ascii=False, indent=2)
        atomic_write_text(self._profile_path(profile.conversation_id), payload)
