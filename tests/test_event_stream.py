"""
Unit tests for the event sink and event builder.
"""

import asyncio
import json

import pytest

from openagent.core.agents.event_stream import EventBuilder, EventSink, format_sse, stream_events


class TestEventBuilder:
    """Test event construction."""

    def test_events_carry_type_and_timestamp(self):
        event = EventBuilder().thinking("Analyzing...", iteration=2)

        assert event["type"] == "thinking"
        assert event["status"] == "Analyzing..."
        assert event["iteration"] == 2
        assert "timestamp" in event
        assert "sessionId" not in event

    def test_session_id_is_attached(self):
        event = EventBuilder("conv-1").token("hi")

        assert event["sessionId"] == "conv-1"

    def test_tool_complete_mirrors_result(self):
        event = EventBuilder().tool_complete(
            "read_file", "call_1", {"success": False, "executionTime": 7}, iteration=0,
        )

        assert event["success"] is False
        assert event["executionTime"] == 7

    def test_tasks_event_counts(self):
        event = EventBuilder().tasks([{"id": 1}, {"id": 2}])

        assert event["count"] == 2

    def test_format_sse(self):
        text = format_sse({"type": "token", "content": "ü"})

        assert text.startswith("data: ")
        assert text.endswith("\n\n")
        assert json.loads(text[len("data: "):]) == {"type": "token", "content": "ü"}


class TestEventSink:
    """Test ordering and closing."""

    @pytest.mark.asyncio
    async def test_events_arrive_in_emission_order(self):
        sink = EventSink()
        for i in range(5):
            sink.emit({"type": "token", "content": str(i)})
        sink.close()

        received = [event["content"] async for event in sink]

        assert received == ["0", "1", "2", "3", "4"]
        assert [e["content"] for e in sink.history] == received

    @pytest.mark.asyncio
    async def test_emit_after_close_raises(self):
        sink = EventSink()
        sink.close()

        assert sink.closed
        with pytest.raises(RuntimeError):
            sink.emit({"type": "token"})

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        sink = EventSink()
        sink.close()
        sink.close()

        assert [e async for e in sink] == []


class TestStreamEvents:
    """Test running a producer behind an async generator."""

    @pytest.mark.asyncio
    async def test_yields_events_while_producer_runs(self):
        builder = EventBuilder()

        async def producer(sink):
            sink.emit(builder.phase("one"))
            await asyncio.sleep(0.01)
            sink.emit(builder.phase("two"))

        events = [e async for e in stream_events(producer, builder)]

        assert [e["phase"] for e in events] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_producer_failure_becomes_error_event(self):
        builder = EventBuilder()

        async def producer(sink):
            sink.emit(builder.phase("started"))
            raise RuntimeError("broken")

        events = [e async for e in stream_events(producer, builder)]

        assert [e["type"] for e in events] == ["phase", "error"]
        assert "broken" in events[-1]["message"]
