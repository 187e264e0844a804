"""
Agent Runtime
Turns one natural-language instruction into a sequence of browser tool calls.

The instruction is first restated as explicit browser steps (best effort),
then handed to a tool-calling loop against OpenAI or Anthropic. The loop ends
when the model answers in plain text or the turn budget is spent.
"""
import os
import json
import logging
from typing import NamedTuple, Optional

from openai import AsyncOpenAI
from anthropic import AsyncAnthropic

from webpilot.agents_config import REWRITE_PROMPT
from webpilot.config_schema import AssistantConfig
from webpilot.errors import AgentError, MaxTurnsExceeded
from webpilot.session import DEFAULT_SESSION_ID, SessionRegistry
from webpilot.tools import (
    ToolContext, ToolPolicy, ToolResult,
    get_tool, get_tools_for_anthropic, get_tools_for_openai,
)

logger = logging.getLogger("webpilot.agent")


# ── Model routing ────────────────────────────────────────────────────────
class ModelRoute(NamedTuple):
    provider: str
    model_id: str
    key_env: str


KEY_ENV = {"openai": "OPENAI_API_KEY", "anthropic": "ANTHROPIC_API_KEY"}

MODEL_ALIASES = {
    "openai/gpt-4o": ModelRoute("openai", "gpt-4o", KEY_ENV["openai"]),
    "openai/gpt-4.1": ModelRoute("openai", "gpt-4.1", KEY_ENV["openai"]),
    "openai/gpt-4.1-mini": ModelRoute("openai", "gpt-4.1-mini", KEY_ENV["openai"]),
    "anthropic/claude-sonnet": ModelRoute("anthropic", "claude-sonnet-4-5-20250929", KEY_ENV["anthropic"]),
    "anthropic/claude-haiku": ModelRoute("anthropic", "claude-haiku-4-5-20251001", KEY_ENV["anthropic"]),
}

DEFAULT_MODEL = "openai/gpt-4o"


def resolve_model(name: str) -> ModelRoute:
    """Map `provider/model`, an alias or a bare model name to a route."""
    if name in MODEL_ALIASES:
        return MODEL_ALIASES[name]

    provider, sep, model_id = name.partition("/")
    if sep:
        provider = provider.lower()
        if provider in KEY_ENV:
            return ModelRoute(provider, model_id, KEY_ENV[provider])
        logger.warning(f"Unknown provider in '{name}', falling back to {DEFAULT_MODEL}")
        return MODEL_ALIASES[DEFAULT_MODEL]

    provider = "anthropic" if "claude" in name.lower() else "openai"
    return ModelRoute(provider, name, KEY_ENV[provider])


def api_key_for(route: ModelRoute) -> str:
    key = os.environ.get(route.key_env, "")
    if not key:
        raise AgentError(f"API key not found: {route.key_env}. Set it in .env")
    return key


def make_client(route: ModelRoute, api_key: str):
    if route.provider == "anthropic":
        return AsyncAnthropic(api_key=api_key)
    return AsyncOpenAI(api_key=api_key)


# ── Prompt rewriting ─────────────────────────────────────────────────────
async def rewrite_prompt(route: ModelRoute, client, prompt: str, temperature: float = 0.3) -> str:
    """Restate the prompt as explicit browser steps; the original on any failure."""
    try:
        if route.provider == "anthropic":
            response = await client.messages.create(
                model=route.model_id,
                max_tokens=1024,
                system=REWRITE_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
            )
            rewritten = "".join(b.text for b in response.content if b.type == "text")
        else:
            response = await client.chat.completions.create(
                model=route.model_id,
                messages=[
                    {"role": "system", "content": REWRITE_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=temperature,
            )
            rewritten = response.choices[0].message.content
    except Exception as e:
        logger.warning(f"Prompt rewrite failed, keeping the original: {e}")
        return prompt

    rewritten = (rewritten or "").strip()
    if not rewritten:
        logger.info("Prompt rewrite came back empty, keeping the original")
        return prompt
    return rewritten


# ── Tool dispatch ────────────────────────────────────────────────────────
async def execute_tool_call(ctx: ToolContext, name: str, arguments: dict,
                            policy: Optional[ToolPolicy] = None) -> ToolResult:
    tool = get_tool(name)
    if tool is None:
        return ToolResult.failure(f"Unknown tool '{name}'", kind="validation")
    if policy is not None and not policy.is_allowed(name):
        return ToolResult.failure(f"Tool '{name}' is not allowed", kind="validation")
    logger.info(f"Tool call: {name}({json.dumps(arguments)[:100]})")
    result = await tool.run(ctx, arguments)
    if not result.ok:
        logger.info(f"Tool {name} reported failure: {result.message[:200]}")
    return result


def parse_arguments(raw: Optional[str]) -> dict:
    """Model-provided JSON arguments; anything unparseable becomes {} and fails validation."""
    try:
        parsed = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _record(name: str, args: dict, result: ToolResult) -> dict:
    return {"tool": name, "args": args, "ok": result.ok, "result": result.message[:500]}


# ── OpenAI loop ──────────────────────────────────────────────────────────
async def openai_tool_loop(
    client,
    model_id: str,
    system_prompt: str,
    messages: list[dict],
    tools: list[dict],
    ctx: ToolContext,
    max_turns: int,
    policy: Optional[ToolPolicy] = None,
) -> tuple[str, list[dict]]:
    """Chat-completions tool loop. Returns (final_text, tool_calls_made)."""
    calls = []
    for turn in range(1, max_turns + 1):
        request = {
            "model": model_id,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
        }
        if tools:
            request["tools"] = tools

        choice = (await client.chat.completions.create(**request)).choices[0]
        tool_calls = choice.message.tool_calls
        if choice.finish_reason != "tool_calls" or not tool_calls:
            logger.debug(f"OpenAI loop finished after {turn} turn(s)")
            return choice.message.content or "", calls

        messages.append(choice.message.model_dump(exclude_none=True))
        for call in tool_calls:
            args = parse_arguments(call.function.arguments)
            result = await execute_tool_call(ctx, call.function.name, args, policy)
            calls.append(_record(call.function.name, args, result))
            messages.append({"role": "tool", "tool_call_id": call.id, "content": result.render()})

    raise MaxTurnsExceeded(max_turns)


# ── Anthropic loop ───────────────────────────────────────────────────────
def _assistant_blocks(content) -> list[dict]:
    blocks = []
    for block in content:
        if block.type == "text":
            blocks.append({"type": "text", "text": block.text})
        elif block.type == "tool_use":
            blocks.append({"type": "tool_use", "id": block.id, "name": block.name, "input": block.input})
    return blocks


async def anthropic_tool_loop(
    client,
    model_id: str,
    system_prompt: str,
    messages: list[dict],
    tools: list[dict],
    ctx: ToolContext,
    max_turns: int,
    policy: Optional[ToolPolicy] = None,
) -> tuple[str, list[dict]]:
    """Messages-API tool loop. Tool failures are sent back with is_error set."""
    calls = []
    for turn in range(1, max_turns + 1):
        request = {
            "model": model_id,
            "max_tokens": 4096,
            "system": system_prompt,
            "messages": messages,
        }
        if tools:
            request["tools"] = tools

        response = await client.messages.create(**request)
        uses = [b for b in response.content if b.type == "tool_use"]
        if response.stop_reason != "tool_use" or not uses:
            logger.debug(f"Anthropic loop finished after {turn} turn(s)")
            return " ".join(b.text for b in response.content if b.type == "text"), calls

        messages.append({"role": "assistant", "content": _assistant_blocks(response.content)})
        results = []
        for use in uses:
            args = use.input or {}
            result = await execute_tool_call(ctx, use.name, args, policy)
            calls.append(_record(use.name, args, result))
            results.append({
                "type": "tool_result",
                "tool_use_id": use.id,
                "content": result.render(),
                "is_error": not result.ok,
            })
        messages.append({"role": "user", "content": results})

    raise MaxTurnsExceeded(max_turns)


# ── Runner ───────────────────────────────────────────────────────────────
class AgentRunner:
    """Runs instructions against the browser sessions of one registry."""

    def __init__(self, config: AssistantConfig, sessions: SessionRegistry):
        self.config = config
        self.sessions = sessions

    async def run(self, prompt: str, session_id: str = DEFAULT_SESSION_ID) -> tuple[str, list[dict]]:
        """
        Run one instruction to completion.
        Returns (response_text, tool_calls). Raises AgentError, including
        MaxTurnsExceeded, when no answer is produced.
        """
        settings = self.config.agent
        route = resolve_model(settings.model)
        client = make_client(route, api_key_for(route))

        instruction = prompt
        if settings.rewrite_prompt:
            instruction = await rewrite_prompt(route, client, prompt, settings.rewrite_temperature)
            logger.info(f"Rewritten prompt: {instruction[:200]}")

        ctx = ToolContext(self.sessions.get(session_id), self.config)
        policy = ToolPolicy(settings.tools_allowed)
        messages = [{"role": "user", "content": instruction}]
        logger.info(
            f"Agent run: session={session_id} model={route.provider}/{route.model_id} "
            f"max_turns={settings.max_turns}"
        )

        if route.provider == "anthropic":
            loop, tools = anthropic_tool_loop, get_tools_for_anthropic()
        else:
            loop, tools = openai_tool_loop, get_tools_for_openai()
        text, calls = await loop(
            client, route.model_id, settings.instructions, messages,
            policy.filter_tools(tools), ctx, settings.max_turns, policy,
        )

        if not text.strip():
            raise AgentError("No result received from agent")
        logger.info(f"Agent run complete: session={session_id} tools={len(calls)} response_len={len(text)}")
        return text, calls
