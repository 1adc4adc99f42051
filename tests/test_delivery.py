import random

import pytest

from companion.agent.delivery import (
    DeliveryScheduler,
    find_quote_target,
    text_delay_seconds,
)
from companion.agent.segmenter import DeliveryUnit, UnitKind
from companion.config.schema import DeliveryConfig
from companion.store.models import Message, MessageRole, MessageType, ReplyRef


def _text(payload: str) -> DeliveryUnit:
    return DeliveryUnit(UnitKind.TEXT, payload)


def _user_message(store, content: str) -> Message:
    return store.insert_message(Message(conversation_id="conv-1", role=MessageRole.USER, content=content))


class TestTextDelay:
    def test_single_char_gets_minimum(self):
        config = DeliveryConfig(ms_per_char=50, min_delay_ms=500, max_delay_ms=2000)
        assert text_delay_seconds("好", config) == pytest.approx(0.5)

    def test_long_chunk_is_capped(self):
        config = DeliveryConfig(ms_per_char=50, min_delay_ms=500, max_delay_ms=2000)
        assert text_delay_seconds("x" * 10_000, config) == pytest.approx(2.0)

    def test_mid_length_is_proportional(self):
        config = DeliveryConfig(ms_per_char=50, min_delay_ms=500, max_delay_ms=2000)
        assert text_delay_seconds("x" * 20, config) == pytest.approx(1.0)


class TestFindQuoteTarget:
    def test_latest_user_message_wins(self, store):
        _user_message(store, "I like tea")
        latest = _user_message(store, "tea again")
        history = store.fetch_history("conv-1")

        target = find_quote_target("tea", history, "Sam")

        assert target == ReplyRef(id=latest.id, content="tea again", name="Sam")

    def test_assistant_messages_are_never_targets(self, store):
        store.insert_message(Message(conversation_id="conv-1", role=MessageRole.ASSISTANT, content="tea time"))
        assert find_quote_target("tea", store.fetch_history("conv-1"), "Sam") is None

    def test_blank_snippet(self, store):
        _user_message(store, "anything")
        assert find_quote_target("  ", store.fetch_history("conv-1"), "Sam") is None


class TestDeliveryScheduler:
    @pytest.mark.asyncio
    async def test_units_persisted_in_order_after_their_delays(self, store, sleep):
        published: list[Message] = []
        scheduler = DeliveryScheduler(
            store,
            DeliveryConfig(),
            sleep=sleep,
            rng=random.Random(7),
            publish=published.append,
        )

        delivered = await scheduler.deliver(
            [_text("早上好"), DeliveryUnit(UnitKind.EMOJI, "https://img/smile.png"), _text("x" * 100)],
            conversation_id="conv-1",
            history=[],
            user_name="Sam",
        )

        assert [m.type for m in delivered] == [MessageType.TEXT, MessageType.EMOJI, MessageType.TEXT]
        assert [m.content for m in delivered] == ["早上好", "https://img/smile.png", "x" * 100]
        assert published == delivered
        assert store.fetch_history("conv-1") == delivered
        assert sleep.delays[0] == pytest.approx(0.5)
        assert 0.3 <= sleep.delays[1] <= 0.8
        assert sleep.delays[2] == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_each_unit_persisted_before_next_delay(self, store):
        seen: list[int] = []

        async def _sleep(seconds: float) -> None:
            seen.append(len(store.fetch_history("conv-1")))

        scheduler = DeliveryScheduler(store, sleep=_sleep)
        await scheduler.deliver(
            [_text("a"), _text("b"), _text("c")],
            conversation_id="conv-1",
            history=[],
            user_name="Sam",
        )

        assert seen == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_chunk_quote_wins_over_turn_quote(self, store, sleep):
        first = _user_message(store, "do you like cats")
        second = _user_message(store, "what about dogs")
        history = store.fetch_history("conv-1")
        scheduler = DeliveryScheduler(store, sleep=sleep)

        delivered = await scheduler.deliver(
            [_text("[[QUOTE: dogs]]dogs are great"), _text("also")],
            conversation_id="conv-1",
            history=history,
            user_name="Sam",
            source_text="[[QUOTE: cats]] [[QUOTE: dogs]]dogs are great also",
        )

        assert delivered[0].content == "dogs are great"
        assert delivered[0].reply_to is not None
        assert delivered[0].reply_to.id == second.id
        assert delivered[1].reply_to is None
        assert first.id != second.id

    @pytest.mark.asyncio
    async def test_turn_quote_attaches_to_first_text_chunk(self, store, sleep):
        target = _user_message(store, "are you awake?")
        history = store.fetch_history("conv-1")
        scheduler = DeliveryScheduler(store, sleep=sleep)

        delivered = await scheduler.deliver(
            [DeliveryUnit(UnitKind.EMOJI, "https://img/yawn.png"), _text("barely."), _text("why?")],
            conversation_id="conv-1",
            history=history,
            user_name="Sam",
            source_text="[[QUOTE: awake]]",
        )

        assert delivered[0].reply_to is None
        assert delivered[1].reply_to == ReplyRef(id=target.id, content="are you awake?", name="Sam")
        assert delivered[2].reply_to is None

    @pytest.mark.asyncio
    async def test_unresolved_quote_degrades_to_plain_message(self, store, sleep):
        scheduler = DeliveryScheduler(store, sleep=sleep)

        delivered = await scheduler.deliver(
            [_text("[[QUOTE: never said]]hmm")],
            conversation_id="conv-1",
            history=store.fetch_history("conv-1"),
            user_name="Sam",
        )

        assert delivered[0].content == "hmm"
        assert delivered[0].reply_to is None

    @pytest.mark.asyncio
    async def test_chunk_empty_after_quote_strip_is_skipped(self, store, sleep):
        scheduler = DeliveryScheduler(store, sleep=sleep)

        delivered = await scheduler.deliver(
            [_text("[[QUOTE: x]]"), _text("real")],
            conversation_id="conv-1",
            history=[],
            user_name="Sam",
        )

        assert [m.content for m in delivered] == ["real"]
        assert len(sleep.delays) == 1
