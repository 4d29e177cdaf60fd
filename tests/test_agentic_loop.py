"""
Unit tests for the single-agent tool-calling loop.
"""

import json

import pytest

from openagent.core.agents.agentic_loop import AgenticLoop, build_system_prompt
from openagent.core.agents.conversation import Conversation
from openagent.core.agents.errors import ModelError
from openagent.core.agents.event_stream import EventSink
from openagent.core.ai_engine import ChatResponse

from conftest import ScriptedProvider, event_types, tool_call, tool_response


def _loop(provider, dispatcher, registry, **kwargs):
    return AgenticLoop(provider, dispatcher, registry, model="test-model", **kwargs)


class TestDirectReply:
    """Test turns that need no capability."""

    @pytest.mark.asyncio
    async def test_streams_tokens_then_completes(self, dispatcher, registry):
        provider = ScriptedProvider(["Hello there."], stream_tokens=["Hel", "lo ", "there."])
        sink = EventSink()

        outcome = await _loop(provider, dispatcher, registry).run("hi", sink)

        types = event_types(sink.history)
        assert types == [
            "phase", "thinking",
            "phase", "thinking", "token", "token", "token",
            "message", "phase", "complete",
        ]
        assert outcome.content == "Hello there."
        assert outcome.iterations == 0
        assert sink.history[-1]["maxIterationsReached"] is False

    @pytest.mark.asyncio
    async def test_atomic_reply_when_nothing_streams(self, dispatcher, registry):
        provider = ScriptedProvider(["Just this."])
        sink = EventSink()

        outcome = await _loop(provider, dispatcher, registry).run("hi", sink)

        tokens = [e["content"] for e in sink.history if e["type"] == "token"]
        assert tokens == ["Just this."]
        assert outcome.content == "Just this."

    @pytest.mark.asyncio
    async def test_streaming_disabled(self, dispatcher, registry):
        provider = ScriptedProvider(["Plain."], stream_tokens=["ignored"])

        outcome = await _loop(provider, dispatcher, registry, stream_final=False).run("hi", EventSink())

        assert outcome.content == "Plain."
        assert provider.stream_calls == 0

    @pytest.mark.asyncio
    async def test_system_prompt_and_catalog_are_sent(self, dispatcher, registry):
        provider = ScriptedProvider(["ok"])

        await _loop(provider, dispatcher, registry).run("hi", EventSink())

        call = provider.calls[0]
        assert call["messages"][0] == {"role": "system", "content": build_system_prompt(registry)}
        assert call["messages"][-1] == {"role": "user", "content": "hi"}
        assert {t["name"] for t in call["tools"]} == set(registry.get_names())


class TestToolRounds:
    """Test dispatching the model's invocation requests."""

    @pytest.mark.asyncio
    async def test_tool_call_round_trip(self, dispatcher, registry, tmp_path):
        target = tmp_path / "hello.txt"
        target.write_text("file body")
        provider = ScriptedProvider([
            tool_response(tool_call("read_file", {"path": str(target)}, "call_a")),
            "The file says: file body",
        ])
        sink = EventSink()

        outcome = await _loop(provider, dispatcher, registry).run("read it", sink)

        types = event_types(sink.history)
        assert types.index("tool_start") < types.index("tool_complete")
        complete = next(e for e in sink.history if e["type"] == "tool_complete")
        assert complete["success"] is True
        assert complete["result"]["content"] == "file body"
        assert outcome.iterations == 1
        assert [inv.name for inv in outcome.invocations] == ["read_file"]

        second = provider.calls[1]["messages"]
        assert second[-2]["role"] == "assistant"
        assert second[-2]["tool_calls"][0]["id"] == "call_a"
        assert second[-1]["role"] == "tool"
        assert second[-1]["tool_call_id"] == "call_a"
        assert json.loads(second[-1]["content"])["success"] is True

    @pytest.mark.asyncio
    async def test_failed_tool_is_reported_to_model(self, dispatcher, registry, tmp_path):
        provider = ScriptedProvider([
            tool_response(tool_call("read_file", {"path": str(tmp_path / "missing.txt")})),
            "That file does not exist.",
        ])
        sink = EventSink()

        outcome = await _loop(provider, dispatcher, registry).run("read it", sink)

        complete = next(e for e in sink.history if e["type"] == "tool_complete")
        assert complete["success"] is False
        assert complete["result"]["errorKind"] == "not_found"
        assert outcome.succeeded

    @pytest.mark.asyncio
    async def test_unparseable_arguments(self, dispatcher, registry):
        provider = ScriptedProvider([
            tool_response(tool_call("read_file", '{"path": ')),
            "Sorry.",
        ])
        sink = EventSink()

        await _loop(provider, dispatcher, registry).run("read it", sink)

        complete = next(e for e in sink.history if e["type"] == "tool_complete")
        assert complete["result"]["errorKind"] == "invalid_argument"

    @pytest.mark.asyncio
    async def test_several_calls_in_one_round_run_in_order(self, dispatcher, registry, tmp_path):
        provider = ScriptedProvider([
            tool_response(
                tool_call("create_directory", {"path": str(tmp_path / "d")}, "c1"),
                tool_call("write_file", {"path": str(tmp_path / "d" / "f.txt"), "content": "x"}, "c2"),
            ),
            "Done.",
        ])
        sink = EventSink()

        outcome = await _loop(provider, dispatcher, registry).run("make it", sink)

        ids = [e["callId"] for e in sink.history if e["type"] in ("tool_start", "tool_complete")]
        assert ids == ["c1", "c1", "c2", "c2"]
        assert outcome.iterations == 1
        assert (tmp_path / "d" / "f.txt").read_text() == "x"


class TestIterationCap:
    """Test the bounded number of dispatch rounds."""

    @pytest.mark.asyncio
    async def test_stops_at_max_iterations_with_final_message(self, dispatcher, registry, tmp_path):
        def always_call(messages, tools):
            if tools is None:
                return ChatResponse(content="")
            return tool_response(tool_call("list_directory", {"path": str(tmp_path)}))

        provider = ScriptedProvider(default=always_call)
        sink = EventSink()

        outcome = await _loop(provider, dispatcher, registry, max_iterations=3).run("loop forever", sink)

        assert outcome.iterations == 3
        assert outcome.max_iterations_reached is True
        assert len(outcome.invocations) == 3
        assert outcome.content.strip()
        assert provider.calls[-1]["tools"] is None
        assert sink.history[-1]["maxIterationsReached"] is True
        message = next(e for e in sink.history if e["type"] == "message")
        assert message["content"] == outcome.content

    def test_max_iterations_must_be_positive(self, dispatcher, registry):
        with pytest.raises(ValueError):
            _loop(ScriptedProvider(), dispatcher, registry, max_iterations=0)


class TestModelFailure:
    """Test fatal model errors."""

    @pytest.mark.asyncio
    async def test_error_event_ends_turn(self, dispatcher, registry):
        provider = ScriptedProvider([ModelError("connection refused")])
        sink = EventSink()

        outcome = await _loop(provider, dispatcher, registry).run("hi", sink)

        assert event_types(sink.history)[-1] == "error"
        assert "complete" not in event_types(sink.history)
        assert "connection refused" in sink.history[-1]["message"]
        assert outcome.succeeded is False

    @pytest.mark.asyncio
    async def test_error_while_streaming(self, dispatcher, registry):
        provider = ScriptedProvider(["Hi"], stream_tokens=["H", ModelError("dropped")])
        sink = EventSink()

        outcome = await _loop(provider, dispatcher, registry).run("hi", sink)

        assert outcome.error == "dropped"
        assert event_types(sink.history)[-1] == "error"


class TestConversation:
    """Test conversation bookkeeping across turns."""

    @pytest.mark.asyncio
    async def test_title_and_history(self, dispatcher, registry):
        conversation = Conversation(id="c1")
        provider = ScriptedProvider(["First answer.", "Second answer."])
        loop = _loop(provider, dispatcher, registry)

        await loop.run("x" * 60, EventSink(), conversation)
        await loop.run("follow up", EventSink(), conversation)

        assert conversation.title == "x" * 50 + "..."
        assert [m.role for m in conversation.messages] == ["user", "assistant", "user", "assistant"]
        sent = provider.calls[1]["messages"]
        assert [m["role"] for m in sent] == ["system", "user", "assistant", "user"]
        assert sent[2]["content"] == "First answer."

    @pytest.mark.asyncio
    async def test_invocations_are_kept_on_assistant_message(self, dispatcher, registry, tmp_path):
        conversation = Conversation(id="c2")
        provider = ScriptedProvider([
            tool_response(tool_call("list_directory", {"path": str(tmp_path)})),
            "Listed.",
        ])

        await _loop(provider, dispatcher, registry).run("list", EventSink(), conversation)

        data = conversation.messages[-1].to_dict()
        assert data["toolCalls"][0]["name"] == "list_directory"
        assert data["toolCalls"][0]["result"]["success"] is True


class TestStreamingApis:
    """Test the stream() and run_sync() wrappers."""

    @pytest.mark.asyncio
    async def test_stream_yields_events(self, dispatcher, registry):
        loop = _loop(ScriptedProvider(["ok"]), dispatcher, registry)

        events = [e async for e in loop.stream("hi", session_id="s-9")]

        assert events[-1]["type"] == "complete"
        assert all(e["sessionId"] == "s-9" for e in events)

    @pytest.mark.asyncio
    async def test_run_sync(self, dispatcher, registry):
        loop = _loop(ScriptedProvider(["ok"]), dispatcher, registry)

        data = await loop.run_sync("hi")

        assert data["success"] is True
        assert data["content"] == "ok"
        assert data["events"][-1]["type"] == "complete"
