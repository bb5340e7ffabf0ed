"""Shared fixtures: a scripted model client and a fresh conversation store per test."""

import os

# Settings are read at import time by the app and the weather tool.
os.environ.setdefault("WEATHER_API_KEY", "test-weather-key")
os.environ.setdefault("GOOGLE_API_KEY", "test-google-key")
os.environ.setdefault("WEATHER_BASE_URL", "https://weather.test/timeline")

import pytest

from wander_chat.conversations.store import ConversationStore
from wander_chat.orchestrator import ChatOrchestrator
from wander_chat.tools.policy import default_tool_policy


class FakeModelClient:
    """Scripted stand-in for the hosted model."""

    def __init__(self, reply=None, fragments=(), error=None):
        self.reply = reply
        self.fragments = list(fragments)
        self.error = error
        self.calls = []
        self.tool_policies = []
        self.stream_closed = False
        self.fragments_pulled = 0

    async def complete_once(self, turns, tools=None):
        self.calls.append(list(turns))
        self.tool_policies.append(tools)
        if self.error is not None:
            raise self.error
        return self.reply

    async def complete_streaming(self, turns, tools=None):
        self.calls.append(list(turns))
        self.tool_policies.append(tools)
        try:
            for fragment in self.fragments:
                self.fragments_pulled += 1
                yield fragment
            if self.error is not None:
                raise self.error
        finally:
            self.stream_closed = True


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def make_orchestrator(store):
    def _make(**kwargs):
        model = FakeModelClient(**kwargs)
        return ChatOrchestrator(store, model, default_tool_policy()), model

    return _make


async def collect(aiter):
    return [item async for item in aiter]
