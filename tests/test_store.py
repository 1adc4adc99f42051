import json
from datetime import datetime
from pathlib import Path

import pytest

from companion.store.jsonl import ConversationStore
from companion.store.memory import InMemoryStore
from companion.store.models import (
    CalendarEvent,
    ConversationProfile,
    MemoryFragment,
    Message,
    MessageRole,
    MessageType,
    ReplyRef,
    ScheduledMessage,
)


def _msg(conversation_id: str, content: str, **kwargs) -> Message:
    return Message(conversation_id=conversation_id, role=MessageRole.USER, content=content, **kwargs)


@pytest.fixture(params=["memory", "jsonl"])
def any_store(request, tmp_path: Path):
    if request.param == "memory":
        return InMemoryStore()
    return ConversationStore(tmp_path / "ws")


def test_ids_are_unique_and_increasing_across_conversations(any_store) -> None:
    a = any_store.insert_message(_msg("a", "1"))
    b = any_store.insert_message(_msg("b", "2"))
    c = any_store.insert_message(_msg("a", "3"))
    assert a.id < b.id < c.id


def test_update_delete_and_clear(any_store) -> None:
    first = any_store.insert_message(_msg("a", "one"))
    second = any_store.insert_message(_msg("a", "two"))
    other = any_store.insert_message(_msg("b", "three"))

    any_store.update_message(first.id, "uno")
    any_store.delete_messages([second.id])
    assert [m.content for m in any_store.fetch_history("a")] == ["uno"]

    any_store.clear_messages("a")
    assert any_store.fetch_history("a") == []
    assert [m.id for m in any_store.fetch_history("b")] == [other.id]


def test_update_missing_message_raises(any_store) -> None:
    with pytest.raises(KeyError):
        any_store.update_message(999, "x")


def test_fragments_append_only(any_store) -> None:
    any_store.append_fragments("a", [MemoryFragment(id="1", date="2024-03-01", summary="x")])
    any_store.append_fragments("a", [MemoryFragment(id="2", date="2024-03-02", summary="y")])
    assert [f.id for f in any_store.list_fragments("a")] == ["1", "2"]
    assert any_store.list_fragments("b") == []


def test_due_scheduled_messages(any_store) -> None:
    now = datetime(2024, 3, 1, 12, 0)
    late = ScheduledMessage("s2", "a", "later", datetime(2024, 3, 1, 11, 0), now)
    early = ScheduledMessage("s1", "a", "first", datetime(2024, 3, 1, 10, 0), now)
    future = ScheduledMessage("s3", "a", "future", datetime(2024, 3, 2, 10, 0), now)
    elsewhere = ScheduledMessage("s4", "b", "other", datetime(2024, 3, 1, 10, 0), now)
    for s in (late, early, future, elsewhere):
        any_store.save_scheduled_message(s)

    assert [s.id for s in any_store.due_scheduled_messages("a", now)] == ["s1", "s2"]

    any_store.delete_scheduled_message("s1")
    assert [s.id for s in any_store.due_scheduled_messages("a", now)] == ["s2"]


class TestConversationStore:
    def test_messages_survive_reload(self, tmp_path: Path) -> None:
        ws = tmp_path / "ws"
        store = ConversationStore(ws)
        question = store.insert_message(_msg("chat:1", "are you there?"))
        store.insert_message(Message(
            conversation_id="chat:1",
            role=MessageRole.ASSISTANT,
            type=MessageType.TRANSFER,
            content="[transfer]",
            metadata={"amount": "500"},
            reply_to=ReplyRef(id=question.id, content="are you there?", name="Sam"),
        ))

        reloaded = ConversationStore(ws)
        history = reloaded.fetch_history("chat:1")
        assert [m.content for m in history] == ["are you there?", "[transfer]"]
        assert history[1].metadata == {"amount": "500"}
        assert history[1].reply_to == ReplyRef(id=question.id, content="are you there?", name="Sam")
        assert reloaded.list_conversations() == ["chat:1"]

        next_msg = reloaded.insert_message(_msg("chat:1", "again"))
        assert next_msg.id == history[-1].id + 1

    def test_file_starts_with_metadata_line(self, tmp_path: Path) -> None:
        store = ConversationStore(tmp_path)
        store.insert_message(_msg("a", "hi"))
        lines = (tmp_path / "conversations" / "a.jsonl").read_text(encoding="utf-8").splitlines()
        assert json.loads(lines[0])["_type"] == "metadata"
        assert json.loads(lines[1])["content"] == "hi"

    def test_corrupt_state_recovers_from_logs(self, tmp_path: Path) -> None:
        store = ConversationStore(tmp_path)
        store.insert_message(_msg("a", "1"))
        last = store.insert_message(_msg("a", "2"))
        (tmp_path / "state.json").write_text("{not json", encoding="utf-8")

        recovered = ConversationStore(tmp_path)
        assert recovered.insert_message(_msg("a", "3")).id == last.id + 1

    def test_calendar_events_and_profiles(self, tmp_path: Path) -> None:
        store = ConversationStore(tmp_path)
        store.save_calendar_event(CalendarEvent("e1", "a", "Movie", "2024-03-08"))
        store.save_calendar_event(CalendarEvent("e2", "b", "Trip", "2024-04-01"))
        assert [e.title for e in store.list_calendar_events("a")] == ["Movie"]
        assert len(store.list_calendar_events()) == 2

        assert store.load_profile("a") is None
        profile = ConversationProfile(conversation_id="a", character_name="Aria", hide_before_id=3)
        store.save_profile(profile)
        assert ConversationStore(tmp_path).load_profile("a") == profile
