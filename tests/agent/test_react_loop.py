"""Tests for the ReAct loop driving a scripted model client."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from agent.config import AgentConfig
from agent.context import AgentContext, RunStatus
from agent.react_loop import (
    ReactLoop,
    extract_text_content,
    normalize_content_blocks,
    normalize_response,
)
from tests.fakes import make_response, text_block, tool_use_block
from tools.tool import Tool


def _client(*responses):
    client = MagicMock()
    client.messages.create.side_effect = list(responses)
    return client


def _echo_tool() -> Tool:
    return Tool(
        name="echo",
        description="Echo text back",
        input_schema={"properties": {"text": {"type": "string"}}, "required": ["text"]},
        handler=lambda args: f"echo: {args.get('text', '')}",
    )


def _context(task="Do the thing", tools=None, **config):
    return AgentContext(task, tools=tools if tools is not None else [_echo_tool()], config=AgentConfig(**config))


# ── Response helpers ─────────────────────────────────────────────────────────

class TestResponseHelpers:
    def test_normalize_object_response(self):
        class _Response:
            def model_dump(self):
                return {"content": [text_block("hi")], "stop_reason": "end_turn",
                        "usage": {"input_tokens": 1, "output_tokens": 2}}

        response = normalize_response(_Response())
        assert response["content"] == [text_block("hi")]
        assert response["usage"] == {"input_tokens": 1, "output_tokens": 2}

    def test_missing_stop_reason_defaults_to_end_turn(self):
        assert normalize_response({"content": "plain"})["stop_reason"] == "end_turn"

    def test_string_content_becomes_text_block(self):
        assert normalize_response({"content": "plain"})["content"] == [text_block("plain")]

    def test_empty_tool_input_normalized_to_dict(self):
        blocks = normalize_content_blocks([
            tool_use_block("t1", "echo", []),
            tool_use_block("t2", "echo", None),
            tool_use_block("t3", "echo", {"text": "x"}),
        ])
        assert [b["input"] for b in blocks] == [{}, {}, {"text": "x"}]

    def test_text_joined_with_newline(self):
        content = [text_block("first"), tool_use_block("t", "echo", {}), text_block("second")]
        assert extract_text_content(content) == "first\nsecond"


# ── Completion ───────────────────────────────────────────────────────────────

class TestCompletion:
    @pytest.mark.asyncio
    async def test_end_turn_completes_with_text(self):
        client = _client(make_response([text_block("The answer"), text_block("is 42")]))
        context = _context()

        await ReactLoop(client).execute(context)

        assert context.status is RunStatus.COMPLETED
        assert context.answer == "The answer\nis 42"
        assert context.iteration == 1
        assert context.message_count == 2

    @pytest.mark.asyncio
    async def test_request_carries_config_messages_and_tools(self):
        client = _client(make_response([text_block("ok")]))
        context = _context(model="test-model", max_tokens=123, system="Be brief", temperature=0.2)

        await ReactLoop(client).execute(context)

        params = client.messages.create.call_args.kwargs
        assert params["model"] == "test-model"
        assert params["max_tokens"] == 123
        assert params["system"] == "Be brief"
        assert params["temperature"] == 0.2
        assert params["messages"] == [{"role": "user", "content": "Do the thing"}]
        assert [t["name"] for t in params["tools"]] == ["echo"]

    @pytest.mark.asyncio
    async def test_token_usage_accumulates(self):
        client = _client(
            make_response([tool_use_block("t1", "echo", {"text": "a"})], "tool_use", 100, 20),
            make_response([text_block("done")], "end_turn", 150, 30),
        )
        context = _context()

        await ReactLoop(client).execute(context)

        assert context.get_token_usage() == {"input": 250, "output": 50, "total": 300}

    @pytest.mark.asyncio
    async def test_async_client(self):
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=make_response([text_block("async ok")]))
        context = _context()

        await ReactLoop(client).execute(context)

        assert context.answer == "async ok"


# ── Tool use ─────────────────────────────────────────────────────────────────

class TestToolUse:
    @pytest.mark.asyncio
    async def test_tool_results_follow_tool_use_order(self):
        client = _client(
            make_response([
                text_block("Let me check"),
                tool_use_block("toolu_a", "echo", {"text": "one"}),
                tool_use_block("toolu_b", "echo", {"text": "two"}),
                tool_use_block("toolu_c", "echo", {"text": "three"}),
            ], "tool_use"),
            make_response([text_block("done")]),
        )
        context = _context()

        await ReactLoop(client).execute(context)

        messages = context.get_messages()
        assert [m["role"] for m in messages] == ["user", "assistant", "user", "assistant"]
        tool_results = messages[2]["content"]
        assert [r["tool_use_id"] for r in tool_results] == ["toolu_a", "toolu_b", "toolu_c"]
        assert [r["content"] for r in tool_results] == ["echo: one", "echo: two", "echo: three"]
        assert all(r["type"] == "tool_result" and "is_error" not in r for r in tool_results)
        assert [c["input"]["text"] for c in context.get_tool_calls()] == ["one", "two", "three"]

    @pytest.mark.asyncio
    async def test_unknown_tool_is_reported_to_model(self):
        client = _client(
            make_response([tool_use_block("toolu_x", "nonexistent", {})], "tool_use"),
            make_response([text_block("sorry")]),
        )
        context = _context()

        await ReactLoop(client).execute(context)

        result_block = context.get_messages()[2]["content"][0]
        assert result_block["is_error"] is True
        assert result_block["content"] == "Unknown tool: nonexistent"
        assert context.status is RunStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_handler_error_does_not_abort_siblings(self):
        def _explode(args):
            raise RuntimeError("kaboom")

        tools = [_echo_tool(), Tool(name="explode", handler=_explode)]
        client = _client(
            make_response([
                tool_use_block("t1", "explode", {}),
                tool_use_block("t2", "echo", {"text": "still here"}),
            ], "tool_use"),
            make_response([text_block("handled")]),
        )
        context = _context(tools=tools)

        await ReactLoop(client).execute(context)

        first, second = context.get_messages()[2]["content"]
        assert first["is_error"] is True
        assert first["content"] == "Error: kaboom"
        assert second["content"] == "echo: still here"
        assert context.answer == "handled"

    @pytest.mark.asyncio
    async def test_empty_tool_input_sent_back_as_object(self):
        seen = []
        tool = Tool(name="noargs", handler=lambda args: seen.append(args) or "ok")
        client = _client(
            make_response([tool_use_block("t1", "noargs", [])], "tool_use"),
            make_response([text_block("done")]),
        )
        context = _context(tools=[tool])

        await ReactLoop(client).execute(context)

        assert seen == [{}]
        assert context.get_messages()[1]["content"][0]["input"] == {}

    @pytest.mark.asyncio
    async def test_tool_use_executed_even_when_truncated(self):
        """A max_tokens turn that still holds a complete tool_use gets its result."""
        client = _client(
            make_response([tool_use_block("t1", "echo", {"text": "cut"})], "max_tokens"),
            make_response([text_block("done")]),
        )
        context = _context()

        await ReactLoop(client).execute(context)

        assert context.get_messages()[2]["content"][0]["tool_use_id"] == "t1"
        assert context.answer == "done"

    @pytest.mark.asyncio
    async def test_out_of_order_completion_keeps_request_order(self):
        """Later calls finish first; results still follow the tool_use order and the window holds."""
        in_flight = 0
        peak = 0

        async def _handler(args):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(args["delay"])
            in_flight -= 1
            return f"finished {args['label']}"

        tool = Tool(name="wait", handler=_handler)
        delays = [0.04, 0.03, 0.02, 0.01]
        client = _client(
            make_response([
                tool_use_block(f"t{i}", "wait", {"delay": delay, "label": i})
                for i, delay in enumerate(delays)
            ], "tool_use"),
            make_response([text_block("done")]),
        )
        context = _context(tools=[tool], tool_concurrency=2)

        await ReactLoop(client).execute(context)

        tool_results = context.get_messages()[2]["content"]
        assert [r["tool_use_id"] for r in tool_results] == ["t0", "t1", "t2", "t3"]
        assert [r["content"] for r in tool_results] == [f"finished {i}" for i in range(4)]
        assert [c["input"]["label"] for c in context.get_tool_calls()] == [0, 1, 2, 3]
        assert peak == 2


# ── Termination ──────────────────────────────────────────────────────────────

class TestTermination:
    @pytest.mark.asyncio
    async def test_max_iterations(self):
        client = MagicMock()
        client.messages.create.return_value = make_response(
            [tool_use_block("t", "echo", {"text": "again"})], "tool_use"
        )
        context = _context(max_iterations=2)

        await ReactLoop(client).execute(context)

        assert context.has_failed()
        assert context.error == "Maximum iterations (2) reached without completion"
        assert context.iteration == 2
        assert client.messages.create.call_count == 2
        assert context.message_count == 5

    @pytest.mark.asyncio
    async def test_zero_iterations_fails_without_calling_model(self):
        client = MagicMock()
        context = _context(max_iterations=0)

        await ReactLoop(client).execute(context)

        assert context.has_failed()
        client.messages.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_other_stop_reason_without_tools_continues(self):
        client = _client(
            make_response([text_block("partial")], "max_tokens"),
            make_response([text_block("final")], "end_turn"),
        )
        context = _context()

        await ReactLoop(client).execute(context)

        assert context.iteration == 2
        assert context.answer == "final"

    @pytest.mark.asyncio
    async def test_transport_error_fails_run(self):
        client = _client(
            make_response([tool_use_block("t", "echo", {"text": "x"})], "tool_use"),
            ConnectionError("connection reset"),
        )
        context = _context()

        await ReactLoop(client).execute(context)

        assert context.has_failed()
        assert context.error == "connection reset"
        assert context.iteration == 2
        result = context.to_result()
        assert not result.success
        assert len(result.tool_calls) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("usage", [
        {"input_tokens": -1, "output_tokens": 5},
        {"input_tokens": "many", "output_tokens": 5},
    ])
    async def test_malformed_usage_fails_run(self, usage):
        """Bad usage counts end the run with an error instead of escaping execute()."""
        response = make_response([text_block("ok")])
        response["usage"] = usage
        context = _context()

        await ReactLoop(client=_client(response)).execute(context)

        assert context.status is RunStatus.FAILED
        assert context.error.startswith("Malformed model response")
        assert context.get_token_usage()["total"] == 0
        assert not context.to_result().success


# ── Observer hooks ───────────────────────────────────────────────────────────

class TestHooks:
    @pytest.mark.asyncio
    async def test_hooks_receive_iterations_and_tool_calls(self):
        first = make_response([tool_use_block("t1", "echo", {"text": "hook"})], "tool_use")
        client = _client(first, make_response([text_block("done")]))
        iterations = []
        tool_calls = []

        loop = (
            ReactLoop(client)
            .on_iteration(lambda i, response, ctx: iterations.append((i, response)))
            .on_tool_execution(lambda name, args, result: tool_calls.append((name, args, result.content)))
        )
        await loop.execute(_context())

        assert [i for i, _ in iterations] == [1, 2]
        assert iterations[0][1] is first
        assert tool_calls == [("echo", {"text": "hook"}, "echo: hook")]

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_break_run(self):
        def _bad_hook(*args):
            raise RuntimeError("observer bug")

        client = _client(
            make_response([tool_use_block("t1", "echo", {"text": "x"})], "tool_use"),
            make_response([text_block("done")]),
        )
        context = _context()

        await ReactLoop(client).on_iteration(_bad_hook).on_tool_execution(_bad_hook).execute(context)

        assert context.answer == "done"

    @pytest.mark.asyncio
    async def test_hook_cannot_mutate_message_log(self):
        def _tamper(iteration, response, ctx):
            ctx.get_messages()[0]["content"] = "tampered"

        client = _client(make_response([text_block("ok")]))
        context = _context()

        await ReactLoop(client).on_iteration(_tamper).execute(context)

        assert context.get_messages()[0]["content"] == "Do the thing"


# ── Sync wrapper ─────────────────────────────────────────────────────────────

class TestRun:
    def test_run_blocks_until_done(self):
        client = _client(make_response([text_block("sync")]))
        context = ReactLoop(client).run(_context())
        assert context.answer == "sync"
