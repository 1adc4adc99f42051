"""Narrow capability interfaces the pipeline depends on."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from companion.store.models import (
    CalendarEvent,
    Message,
    MemoryFragment,
    ScheduledMessage,
)


class MessageSink(Protocol):
    def insert_message(self, message: Message) -> Message: ...
    def delete_messages(self, ids: list[int]) -> None: ...


class HistorySource(Protocol):
    def fetch_history(self, conversation_id: str) -> list[Message]: ...


class FragmentStore(Protocol):
    def list_fragments(self, conversation_id: str) -> list[MemoryFragment]: ...
    def append_fragments(self, conversation_id: str, fragments: list[MemoryFragment]) -> None: ...


class TaskStore(Protocol):
    def save_scheduled_message(self, scheduled: ScheduledMessage) -> None: ...
    def save_calendar_event(self, event: CalendarEvent) -> None: ...
    def due_scheduled_messages(self, conversation_id: str, now: datetime) -> list[ScheduledMessage]: ...
    def delete_scheduled_message(self, scheduled_id: str) -> None: ...


class ChatStore(MessageSink, HistorySource, FragmentStore, TaskStore, Protocol):
    """Everything a full chat turn touches."""


class Notifier(Protocol):
    """Host notification service; calls are best-effort."""

    def schedule_alert(self, title: str, body: str, fire_at: datetime) -> None: ...
