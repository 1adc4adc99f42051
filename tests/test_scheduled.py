from datetime import datetime

from companion.agent.scheduled import ScheduledMessageDispatcher
from companion.store.models import MessageRole, MessageType, ScheduledMessage


def _schedule(store, sid: str, content: str, due: datetime) -> None:
    store.save_scheduled_message(ScheduledMessage(
        id=sid,
        conversation_id="conv-1",
        content=content,
        due_at=due,
        created_at=datetime(2024, 3, 1, 8, 0),
    ))


def test_dispatch_due_delivers_and_deletes(store, fixed_now) -> None:
    _schedule(store, "s-late", "second", datetime(2024, 3, 1, 8, 45))
    _schedule(store, "s-early", "first", datetime(2024, 3, 1, 8, 30))
    _schedule(store, "s-future", "later", datetime(2024, 3, 1, 10, 0))
    published = []
    dispatcher = ScheduledMessageDispatcher(store, clock=lambda: fixed_now, publish=published.append)

    delivered = dispatcher.dispatch_due("conv-1")

    assert [m.content for m in delivered] == ["first", "second"]
    assert all(m.role is MessageRole.ASSISTANT and m.type is MessageType.TEXT for m in delivered)
    assert published == delivered
    assert list(store.scheduled) == ["s-future"]


def test_dispatch_due_with_nothing_due(store, fixed_now) -> None:
    _schedule(store, "s-future", "later", datetime(2024, 3, 2, 8, 0))
    assert ScheduledMessageDispatcher(store, clock=lambda: fixed_now).dispatch_due("conv-1") == []
    assert store.fetch_history("conv-1") == []
