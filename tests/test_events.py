"""Tests for the event emitter."""

import pytest

from ember.events import MEMORY_CREATED, EventEmitter


def test_emit_calls_listeners_with_payload():
    events = EventEmitter()
    received = []
    events.on(MEMORY_CREATED, received.append)

    events.emit(MEMORY_CREATED, {"type": "messages"})

    assert received == [{"type": "messages"}]


def test_unsubscribe_removes_listener():
    events = EventEmitter()
    received = []
    unsubscribe = events.on("ping", received.append)

    unsubscribe()
    events.emit("ping", 1)

    assert received == []
    assert events.listener_count("ping") == 0


def test_failing_listener_does_not_stop_others():
    events = EventEmitter()
    received = []

    def broken(payload):
        raise RuntimeError("boom")

    events.on("ping", broken)
    events.on("ping", received.append)

    events.emit("ping", 42)

    assert received == [42]


def test_emit_unknown_event_is_noop():
    events = EventEmitter()
    events.emit("nothing", None)
    assert events.listener_count("nothing") == 0


@pytest.mark.asyncio
async def test_async_listener_runs_after_drain():
    events = EventEmitter()
    received = []

    async def listener(payload):
        received.append(payload)

    events.on("ping", listener)
    events.emit("ping", "hello")
    await events.drain()

    assert received == ["hello"]


@pytest.mark.asyncio
async def test_failing_async_listener_is_contained():
    events = EventEmitter()

    async def listener(payload):
        raise ValueError("bad")

    events.on("ping", listener)
    events.emit("ping", None)

    # Must not raise
    await events.drain()


def test_async_listener_without_loop_is_dropped():
    events = EventEmitter()

    async def listener(payload):
        raise AssertionError("should never run")

    events.on("ping", listener)
    events.emit("ping", None)
