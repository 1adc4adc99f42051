"""Deliver scheduled messages once they fall due."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Protocol

from companion.agent.delivery import PublishCallback
from companion.logging import get_logger
from companion.store.models import Message, MessageRole, MessageType
from companion.store.protocols import MessageSink, TaskStore

logger = get_logger(__name__)


class ScheduledStore(MessageSink, TaskStore, Protocol):
    """Store capabilities scheduled dispatch needs."""


class ScheduledMessageDispatcher:
    """Turn due ``ScheduledMessage`` records into assistant messages."""

    def __init__(
        self,
        store: ScheduledStore,
        *,
        clock: Callable[[], datetime] = datetime.now,
        publish: PublishCallback | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.publish = publish

    def dispatch_due(self, conversation_id: str) -> list[Message]:
        """Persist every due message in due order and delete its schedule record."""
        delivered: list[Message] = []
        for scheduled in self.store.due_scheduled_messages(conversation_id, self.clock()):
            stored = self.store.insert_message(Message(
                conversation_id=conversation_id,
                role=MessageRole.ASSISTANT,
                type=MessageType.TEXT,
                content=scheduled.content,
            ))
            self.store.delete_scheduled_message(scheduled.id)
            if self.publish is not None:
                self.publish(stored)
            delivered.append(stored)
            logger.info("scheduled_message_delivered", scheduled_id=scheduled.id, due_at=scheduled.due_at.isoformat())
        return delivered
