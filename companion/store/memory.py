"""In-process store implementing every capability protocol."""

from __future__ import annotations

import itertools
from dataclasses import replace
from datetime import datetime

from companion.store.models import (
    CalendarEvent,
    Message,
    MemoryFragment,
    ScheduledMessage,
)


class InMemoryStore:
    """Dict-backed store for tests and embedding."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.messages: dict[str, list[Message]] = {}
        self.fragments: dict[str, list[MemoryFragment]] = {}
        self.scheduled: dict[str, ScheduledMessage] = {}
        self.events: list[CalendarEvent] = []

    def insert_message(self, message: Message) -> Message:
        stored = replace(message, id=next(self._ids))
        self.messages.setdefault(stored.conversation_id, []).append(stored)
        return stored

    def update_message(self, message_id: int, content: str) -> None:
        for conv_messages in self.messages.values():
            for idx, msg in enumerate(conv_messages):
                if msg.id == message_id:
                    conv_messages[idx] = replace(msg, content=content)
                    return
        raise KeyError(f"Message {message_id} not found")

    def delete_messages(self, ids: list[int]) -> None:
        doomed = set(ids)
        for key, conv_messages in self.messages.items():
            self.messages[key] = [m for m in conv_messages if m.id not in doomed]

    def clear_messages(self, conversation_id: str) -> None:
        self.messages.pop(conversation_id, None)

    def fetch_history(self, conversation_id: str) -> list[Message]:
        return list(self.messages.get(conversation_id, []))

    def list_fragments(self, conversation_id: str) -> list[MemoryFragment]:
        return list(self.fragments.get(conversation_id, []))

    def append_fragments(self, conversation_id: str, fragments: list[MemoryFragment]) -> None:
        self.fragments.setdefault(conversation_id, []).extend(fragments)

    def save_scheduled_message(self, scheduled: ScheduledMessage) -> None:
        self.scheduled[scheduled.id] = scheduled

    def save_calendar_event(self, event: CalendarEvent) -> None:
        self.events = [e for e in self.events if e.id != event.id]
        self.events.append(event)

    def due_scheduled_messages(self, conversation_id: str, now: datetime) -> list[ScheduledMessage]:
        due = [
            s for s in self.scheduled.values()
            if s.conversation_id == conversation_id and s.due_at <= now
        ]
        return sorted(due, key=lambda s: s.due_at)

    def delete_scheduled_message(self, scheduled_id: str) -> None:
        self.scheduled.pop(scheduled_id, None)
