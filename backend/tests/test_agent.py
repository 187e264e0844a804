"""
Agent runtime: model routing, prompt rewriting and the provider
tool-calling loops, with the LLM clients replaced by mocks.
"""
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from webpilot.agent import (
    AgentRunner, ModelRoute, anthropic_tool_loop, execute_tool_call,
    openai_tool_loop, parse_arguments, resolve_model, rewrite_prompt,
)
from webpilot.errors import AgentError, MaxTurnsExceeded
from webpilot.session import SessionRegistry
from webpilot.tools import ToolPolicy, get_tools_for_openai, init_tools

OPENAI = ModelRoute("openai", "gpt-4o", "OPENAI_API_KEY")
ANTHROPIC = ModelRoute("anthropic", "claude-haiku", "ANTHROPIC_API_KEY")


# ── Response builders ────────────────────────────────────────────────────
def openai_tool_call(call_id, name, args):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=json.dumps(args)))


def openai_response(content=None, tool_calls=None):
    message = MagicMock()
    message.content = content
    message.tool_calls = tool_calls
    message.model_dump.return_value = {"role": "assistant", "content": content}
    choice = SimpleNamespace(message=message, finish_reason="tool_calls" if tool_calls else "stop")
    return SimpleNamespace(choices=[choice])


def anthropic_response(*blocks, stop_reason="end_turn"):
    return SimpleNamespace(content=list(blocks), stop_reason=stop_reason)


def text_block(text):
    return SimpleNamespace(type="text", text=text)


def tool_use_block(block_id, name, args):
    return SimpleNamespace(type="tool_use", id=block_id, name=name, input=args)


def openai_client(*responses):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=list(responses))
    return client


def anthropic_client(*responses):
    client = MagicMock()
    client.messages.create = AsyncMock(side_effect=list(responses))
    return client


class TestResolveModel:
    def test_aliases(self):
        assert resolve_model("openai/gpt-4o") == ("openai", "gpt-4o", "OPENAI_API_KEY")
        assert resolve_model("anthropic/claude-sonnet").provider == "anthropic"

    def test_provider_prefix(self):
        assert resolve_model("anthropic/claude-3-opus") == ("anthropic", "claude-3-opus", "ANTHROPIC_API_KEY")
        assert resolve_model("OpenAI/gpt-4-turbo") == ("openai", "gpt-4-turbo", "OPENAI_API_KEY")

    def test_bare_names(self):
        assert resolve_model("gpt-4") == ("openai", "gpt-4", "OPENAI_API_KEY")
        assert resolve_model("claude-3-haiku").provider == "anthropic"

    def test_unknown_provider_falls_back(self):
        assert resolve_model("mistral/large") == ("openai", "gpt-4o", "OPENAI_API_KEY")


class TestParseArguments:
    def test_valid_object(self):
        assert parse_arguments('{"url": "https://example.com"}') == {"url": "https://example.com"}

    @pytest.mark.parametrize("raw", [None, "", "not json", "[1, 2]"])
    def test_unusable_input_becomes_empty(self, raw):
        assert parse_arguments(raw) == {}


class TestRewritePrompt:
    """The rewrite is best-effort: any failure keeps the original prompt"""

    @pytest.mark.asyncio
    async def test_rewrite_success(self):
        client = openai_client(openai_response("  1. open_browser\n2. visit_url  "))

        result = await rewrite_prompt(OPENAI, client, "go to example.com")

        assert result == "1. open_browser\n2. visit_url"
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["temperature"] == 0.3
        assert kwargs["messages"][1] == {"role": "user", "content": "go to example.com"}

    @pytest.mark.asyncio
    async def test_rewrite_failure_returns_original(self):
        client = openai_client(RuntimeError("rate limited"))
        assert await rewrite_prompt(OPENAI, client, "go to example.com") == "go to example.com"

    @pytest.mark.asyncio
    async def test_empty_rewrite_returns_original(self):
        client = openai_client(openai_response(""))
        assert await rewrite_prompt(OPENAI, client, "search for shoes") == "search for shoes"

    @pytest.mark.asyncio
    async def test_anthropic_rewrite(self):
        client = anthropic_client(anthropic_response(text_block("Step 1: open_browser")))

        result = await rewrite_prompt(ANTHROPIC, client, "open a browser")

        assert result == "Step 1: open_browser"
        assert client.messages.create.await_args.kwargs["temperature"] == 0.3


class TestExecuteToolCall:
    @pytest.mark.asyncio
    async def test_unknown_tool(self, ctx):
        init_tools()
        result = await execute_tool_call(ctx, "fly_to_moon", {})
        assert not result.ok
        assert result.kind == "validation"
        assert "Unknown tool" in result.message

    @pytest.mark.asyncio
    async def test_disallowed_tool(self, ctx, driver):
        init_tools()
        result = await execute_tool_call(ctx, "open_browser", {}, ToolPolicy(["visit_url"]))
        assert not result.ok
        assert "not allowed" in result.message
        assert driver.starts == 0


class TestOpenAILoop:
    @pytest.mark.asyncio
    async def test_tool_call_then_answer(self, ctx):
        init_tools()
        client = openai_client(
            openai_response(tool_calls=[openai_tool_call("call_1", "open_browser", {})]),
            openai_response("✅ Browser opened"),
        )
        messages = [{"role": "user", "content": "open a browser"}]

        text, calls = await openai_tool_loop(
            client, "gpt-4o", "system", messages, get_tools_for_openai(), ctx, max_turns=5,
        )

        assert text == "✅ Browser opened"
        assert calls == [{"tool": "open_browser", "args": {}, "ok": True, "result": "Browser opened successfully"}]
        assert messages[-1] == {
            "role": "tool", "tool_call_id": "call_1", "content": "✅ Browser opened successfully",
        }
        first_request = client.chat.completions.create.await_args_list[0].kwargs
        assert first_request["messages"][0] == {"role": "system", "content": "system"}
        assert len(first_request["tools"]) == 11

    @pytest.mark.asyncio
    async def test_failed_tool_result_goes_back_to_model(self, ctx):
        init_tools()
        client = openai_client(
            openai_response(tool_calls=[openai_tool_call("call_1", "click_element", {})]),
            openai_response("I could not click it"),
        )
        messages = [{"role": "user", "content": "click"}]

        _, calls = await openai_tool_loop(client, "gpt-4o", "system", messages, [], ctx, max_turns=5)

        assert calls[0]["ok"] is False
        assert messages[-1]["content"].startswith("❌ Invalid arguments for click_element")

    @pytest.mark.asyncio
    async def test_max_turns(self, ctx):
        init_tools()
        client = openai_client(*[
            openai_response(tool_calls=[openai_tool_call(f"call_{i}", "check_browser_status", {})])
            for i in range(2)
        ])

        with pytest.raises(MaxTurnsExceeded, match=r"Max turns \(2\) exceeded"):
            await openai_tool_loop(client, "gpt-4o", "system", [], [], ctx, max_turns=2)


class TestAnthropicLoop:
    @pytest.mark.asyncio
    async def test_tool_use_then_answer(self, ctx):
        init_tools()
        client = anthropic_client(
            anthropic_response(
                text_block("Checking first."),
                tool_use_block("tu_1", "check_browser_status", {}),
                stop_reason="tool_use",
            ),
            anthropic_response(text_block("The browser is closed.")),
        )
        messages = [{"role": "user", "content": "is the browser open?"}]

        text, calls = await anthropic_tool_loop(client, "claude", "system", messages, [], ctx, max_turns=5)

        assert text == "The browser is closed."
        assert calls[0]["tool"] == "check_browser_status"
        assert messages[1]["content"][1]["type"] == "tool_use"
        result_block = messages[2]["content"][0]
        assert result_block["tool_use_id"] == "tu_1"
        assert result_block["is_error"] is True
        assert result_block["content"] == "❌ Browser is not open"


class TestAgentRunner:
    @pytest.fixture
    def runner(self, config, driver):
        return AgentRunner(config, SessionRegistry(config.browser, driver.factory))

    @pytest.mark.asyncio
    async def test_missing_api_key(self, runner, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(AgentError, match="OPENAI_API_KEY"):
            await runner.run("open a browser")

    @pytest.mark.asyncio
    async def test_empty_answer_is_an_error(self, runner, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        runner.config.agent.rewrite_prompt = False
        client = openai_client(openai_response(""))

        with patch("webpilot.agent.AsyncOpenAI", return_value=client), \
                pytest.raises(AgentError, match="No result received from agent"):
            await runner.run("open a browser")

    @pytest.mark.asyncio
    async def test_rewritten_prompt_drives_the_loop(self, runner, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        client = openai_client(
            openai_response("1. Call open_browser"),
            openai_response("✅ Done"),
        )

        with patch("webpilot.agent.AsyncOpenAI", return_value=client) as client_cls:
            text, calls = await runner.run("open a browser", session_id="s1")

        client_cls.assert_called_once_with(api_key="sk-test")
        assert text == "✅ Done"
        assert calls == []
        loop_request = client.chat.completions.create.await_args_list[1].kwargs
        assert loop_request["messages"][1] == {"role": "user", "content": "1. Call open_browser"}
        assert "s1" in {s["session_id"] for s in runner.sessions.list_sessions()}

    @pytest.mark.asyncio
    async def test_anthropic_route(self, runner, monkeypatch):
        init_tools()
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
        runner.config.agent.model = "anthropic/claude-haiku"
        runner.config.agent.rewrite_prompt = False
        client = anthropic_client(anthropic_response(text_block("All done")))

        with patch("webpilot.agent.AsyncAnthropic", return_value=client):
            text, _ = await runner.run("check the browser")

        assert text == "All done"
        assert "input_schema" in client.messages.create.await_args.kwargs["tools"][0]
