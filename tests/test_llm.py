"""Tests for the litellm adapter and token estimation."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from taskcrew.errors import WorkerError
from taskcrew.llm import (
    LLMAdapter,
    _decode_arguments,
    build_system_prompt,
    tool_choice_for,
)
from taskcrew.tokenizer import estimate_message_tokens, estimate_tokens


def _completion(content=None, tool_calls=None, usage=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=usage)


def _tool_call(id, name, arguments):
    return SimpleNamespace(id=id, function=SimpleNamespace(name=name, arguments=arguments))


TOOLS = [{"type": "function", "function": {"name": "write_file", "parameters": {}}}]


class TestHelpers:

    def test_tool_choice(self):
        assert tool_choice_for(None) == "auto"
        assert tool_choice_for("generate_project") == {
            "type": "function", "function": {"name": "generate_project"},
        }

    @pytest.mark.parametrize("raw,expected", [
        ('{"path": "a.ts"}', {"path": "a.ts"}),
        ({"path": "a.ts"}, {"path": "a.ts"}),
        ("", {}),
        (None, {}),
        ("{path: ", {"_raw": "{path: "}),
        ("[1, 2]", {"_raw": "[1, 2]"}),
    ])
    def test_decode_arguments(self, raw, expected):
        assert _decode_arguments(raw) == expected

    def test_system_prompt(self):
        prompt = build_system_prompt("qa", "Run the tests.")
        assert prompt.startswith("You are a qa on")
        assert prompt.endswith("## Role instructions:\nRun the tests.")
        assert "Role instructions" not in build_system_prompt("dev")


class TestLLMAdapter:

    @pytest.mark.asyncio
    async def test_chat_with_forced_tool(self):
        llm = LLMAdapter("openai/gpt-4o-mini", api_key="sk", api_base="http://proxy")
        raw = _completion(
            tool_calls=[_tool_call("c1", "write_file", '{"path": "a.ts", "content": "x"}')],
            usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        )
        with patch("taskcrew.llm.litellm.acompletion", new=AsyncMock(return_value=raw)) as acomp:
            response = await llm.chat([{"role": "user", "content": "go"}], TOOLS,
                                      forced="write_file")

        kwargs = acomp.call_args.kwargs
        assert kwargs["tool_choice"] == {"type": "function", "function": {"name": "write_file"}}
        assert kwargs["api_key"] == "sk"
        assert kwargs["api_base"] == "http://proxy"
        assert response.has_tool_calls()
        assert response.tool_calls[0].arguments == {"path": "a.ts", "content": "x"}
        assert response.usage["total_tokens"] == 15

    @pytest.mark.asyncio
    async def test_no_tools_means_no_tool_choice(self):
        llm = LLMAdapter("openai/model")
        with patch("taskcrew.llm.litellm.acompletion",
                   new=AsyncMock(return_value=_completion(content="hi"))) as acomp:
            response = await llm.chat([{"role": "user", "content": "hello"}])

        assert "tool_choice" not in acomp.call_args.kwargs
        assert "api_key" not in acomp.call_args.kwargs
        assert response.content == "hi"
        assert not response.has_tool_calls()
        assert response.usage is None

    @pytest.mark.asyncio
    async def test_transport_errors_become_worker_errors(self):
        llm = LLMAdapter("openai/model")
        with patch("taskcrew.llm.litellm.acompletion",
                   new=AsyncMock(side_effect=RuntimeError("socket closed"))):
            with pytest.raises(WorkerError, match="LLM error: RuntimeError: socket closed"):
                await llm.chat([{"role": "user", "content": "hello"}], TOOLS)


class TestTokenizer:

    def test_heuristic_without_model(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd" * 10) == 10
        assert estimate_tokens("a") == 1

    def test_message_overhead(self):
        assert estimate_message_tokens({"role": "user", "content": "abcd" * 10}) == 14
        assert estimate_message_tokens({"role": "assistant", "content": None}) == 4
