"""Tests for the chat orchestrator: turn bookkeeping, streaming accumulation, failures."""

import asyncio
from contextlib import aclosing

import pytest

from tests.conftest import FakeModelClient, collect
from wander_chat.conversations.store import ANONYMOUS_USER_ID, ConversationStore
from wander_chat.models import MeasurementSystem, RequestContext
from wander_chat.orchestrator import ChatOrchestrator


class UpstreamError(RuntimeError):
    pass


class TestRespond:
    async def test_records_user_and_assistant_turns(self, store, make_orchestrator):
        orchestrator, model = make_orchestrator(reply="Pack a light jacket.")

        reply = await orchestrator.respond("alice", "What should I pack for Oslo?")

        assert reply == "Pack a light jacket."
        assert store.format_history("alice") == (
            "user: What should I pack for Oslo?\nassistant: Pack a light jacket.\n"
        )

    async def test_model_receives_system_prompt_and_full_history(self, store, make_orchestrator):
        store.append_message("alice", "user", "Hi")
        store.append_message("alice", "assistant", "Hello!")
        orchestrator, model = make_orchestrator(reply="ok")
        context = RequestContext(measurement_system=MeasurementSystem.METRIC)

        await orchestrator.respond("alice", "Weather in Rome?", context)

        turns = model.calls[0]
        assert turns[0]["role"] == "system"
        assert "Preferred units: metric" in turns[0]["content"]
        assert [t["content"] for t in turns[1:]] == ["Hi", "Hello!", "Weather in Rome?"]

    async def test_weather_tool_is_offered(self, make_orchestrator):
        orchestrator, model = make_orchestrator(reply="ok")

        await orchestrator.respond("alice", "hi")

        assert model.tool_policies[0].names == ("get_weather",)

    async def test_missing_content_becomes_empty_reply(self, store, make_orchestrator):
        orchestrator, _ = make_orchestrator(reply=None)

        reply = await orchestrator.respond("alice", "hi")

        assert reply == ""
        assert store.format_history("alice") == "user: hi\nassistant: \n"

    @pytest.mark.parametrize("user_id", [None, ""])
    async def test_anonymous_fallback_shares_one_conversation(self, store, make_orchestrator, user_id):
        orchestrator, _ = make_orchestrator(reply="hey")

        await orchestrator.respond(user_id, "first")
        await orchestrator.respond(ANONYMOUS_USER_ID, "second")

        assert store.format_history(ANONYMOUS_USER_ID) == (
            "user: first\nassistant: hey\nuser: second\nassistant: hey\n"
        )
        assert len(store) == 1

    async def test_failure_keeps_user_message_only(self, store, make_orchestrator):
        orchestrator, _ = make_orchestrator(error=UpstreamError("quota exceeded"))

        with pytest.raises(UpstreamError):
            await orchestrator.respond("alice", "hi")

        assert store.format_history("alice") == "user: hi\n"


class TestRespondStreaming:
    async def test_streamed_text_matches_stored_reply(self, store, make_orchestrator):
        orchestrator, _ = make_orchestrator(fragments=["Hel", "lo, ", "world"])

        fragments = await collect(orchestrator.respond_streaming("alice", "greet me"))

        assert fragments == ["Hel", "lo, ", "world"]
        assert store.format_history("alice") == "user: greet me\nassistant: Hello, world\n"
        assert [m.role for m in store.messages("alice")].count("assistant") == 1

    async def test_empty_fragments_are_filtered(self, store, make_orchestrator):
        orchestrator, _ = make_orchestrator(fragments=["", "A", "", "B"])

        fragments = await collect(orchestrator.respond_streaming("alice", "letters"))

        assert fragments == ["A", "B"]
        assert store.messages("alice")[-1].content == "AB"

    async def test_mid_stream_failure_stores_partial_reply(self, store, make_orchestrator):
        orchestrator, _ = make_orchestrator(fragments=["Par", "tial"], error=UpstreamError("connection reset"))
        received = []

        with pytest.raises(UpstreamError):
            async for fragment in orchestrator.respond_streaming("alice", "tell me"):
                received.append(fragment)

        assert received == ["Par", "tial"]
        last = store.messages("alice")[-1]
        assert (last.role, last.content) == ("assistant", "Partial")

    async def test_failure_before_first_fragment_stores_no_reply(self, store, make_orchestrator):
        orchestrator, _ = make_orchestrator(error=UpstreamError("unauthorized"))

        with pytest.raises(UpstreamError):
            await collect(orchestrator.respond_streaming("alice", "hi"))

        assert store.format_history("alice") == "user: hi\n"

    async def test_empty_stream_stores_no_reply(self, store, make_orchestrator):
        orchestrator, _ = make_orchestrator(fragments=["", ""])

        assert await collect(orchestrator.respond_streaming("alice", "hi")) == []
        assert store.format_history("alice") == "user: hi\n"

    async def test_early_close_flushes_what_the_consumer_saw(self, store, make_orchestrator):
        orchestrator, model = make_orchestrator(fragments=["One ", "two ", "three"])
        stream = orchestrator.respond_streaming("alice", "count")

        assert await stream.__anext__() == "One "
        assert await stream.__anext__() == "two "
        await stream.aclose()

        assert model.stream_closed
        assert model.fragments_pulled == 2
        assert store.messages("alice")[-1].content == "One two "

    async def test_cancellation_flushes_and_closes_upstream(self, store, make_orchestrator):
        orchestrator, model = make_orchestrator(fragments=["Hi", " there"])
        first_seen = asyncio.Event()

        async def consume():
            async with aclosing(orchestrator.respond_streaming("alice", "hello")) as stream:
                async for _ in stream:
                    first_seen.set()
                    await asyncio.sleep(10)

        task = asyncio.create_task(consume())
        await first_seen.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert model.stream_closed
        assert store.messages("alice")[-1].content == "Hi"

    async def test_streaming_turns_accumulate_history(self, store, make_orchestrator):
        orchestrator, model = make_orchestrator(fragments=["Sure."])

        await collect(orchestrator.respond_streaming("alice", "first"))
        await collect(orchestrator.respond_streaming("alice", "second"))

        assert [t["content"] for t in model.calls[1][1:]] == ["first", "Sure.", "second"]


class CrowdingModelClient(FakeModelClient):
    """Registers another user's conversation while the model call is in flight."""

    def __init__(self, store, **kwargs):
        super().__init__(**kwargs)
        self.store = store

    async def complete_once(self, turns, tools=None):
        self.store.append_message("bob", "user", "hello")
        return await super().complete_once(turns, tools)

    async def complete_streaming(self, turns, tools=None):
        self.store.append_message("bob", "user", "hello")
        async for fragment in super().complete_streaming(turns, tools):
            yield fragment


class TestEvictionDuringTurn:
    async def test_reply_does_not_resurrect_evicted_conversation(self):
        store = ConversationStore(max_conversations=1)
        orchestrator = ChatOrchestrator(store, CrowdingModelClient(store, reply="reply"))

        assert await orchestrator.respond("alice", "hi") == "reply"

        assert "alice" not in store
        assert store.format_history("alice") == ""
        assert store.format_history("bob") == "user: hello\n"

    async def test_streamed_reply_does_not_resurrect_evicted_conversation(self):
        store = ConversationStore(max_conversations=1)
        orchestrator = ChatOrchestrator(store, CrowdingModelClient(store, fragments=["Hi", "!"]))

        assert await collect(orchestrator.respond_streaming("alice", "hi")) == ["Hi", "!"]

        assert "alice" not in store
        assert store.format_history("alice") == ""
        assert len(store) == 1
