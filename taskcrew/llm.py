"""Async LLM adapter via litellm."""

import json
from typing import List, Dict, Any, Optional
from dataclasses import dataclass

import litellm

from .errors import WorkerError
from .logger import get_logger

litellm.suppress_debug_info = True

_log = get_logger(__name__)


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: Dict[str, Any]


@dataclass
class LLMResponse:
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    usage: Optional[Dict] = None

    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


BASE_SYSTEM_PROMPT = """\
You are a {role} on an autonomous software delivery team.
You complete the task you are given by calling the capabilities available to you.

## Rules:
- Act, do not narrate. Describing a change is not making it.
- All paths are relative to the project root.
- After acting, report concretely what you did: which files you wrote, which commands you ran
  and what they printed.
- If something fails, say so plainly and include the error text.
"""


def build_system_prompt(role: str, instructions: Optional[str] = None) -> str:
    prompt = BASE_SYSTEM_PROMPT.format(role=role)
    if instructions:
        prompt += f"\n\n## Role instructions:\n{instructions}"
    return prompt


def tool_choice_for(forced: Optional[str]) -> Any:
    """``"auto"``, or the provider form that pins the next call to ``forced``."""
    if not forced:
        return "auto"
    return {"type": "function", "function": {"name": forced}}


def _decode_arguments(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        args = json.loads(raw or "{}")
    except (json.JSONDecodeError, TypeError):
        return {"_raw": raw}
    return args if isinstance(args, dict) else {"_raw": raw}


class LLMAdapter:
    """Unified async LLM interface. Passes api_key/api_base directly to litellm,
    so several workers on different providers can share one process."""

    def __init__(self, model: str, temperature: float = 0.0,
                 max_tokens: int = 4096, api_base: Optional[str] = None,
                 api_key: Optional[str] = None, context_window: int = 128000):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_base = api_base
        self.api_key = api_key
        self.context_window = context_window

    async def chat(self, messages: List[Dict[str, Any]],
                   tools: Optional[List[Dict]] = None,
                   forced: Optional[str] = None) -> LLMResponse:
        kwargs: Dict[str, Any] = {
            "model": self.model, "messages": messages,
            "temperature": self.temperature, "max_tokens": self.max_tokens,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = tool_choice_for(forced)
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.api_key:
            kwargs["api_key"] = self.api_key

        try:
            response = await litellm.acompletion(**kwargs)
        except litellm.exceptions.AuthenticationError as e:
            raise WorkerError(f"Auth failed. Check API key. {e}") from e
        except litellm.exceptions.APIConnectionError as e:
            raise WorkerError(
                f"Cannot connect: model={self.model}, base={self.api_base or 'default'}: {e}"
            ) from e
        except Exception as e:
            raise WorkerError(f"LLM error: {type(e).__name__}: {e}") from e

        msg = response.choices[0].message

        tool_calls = None
        if msg.tool_calls:
            tool_calls = [
                ToolCall(id=tc.id, name=tc.function.name,
                         arguments=_decode_arguments(tc.function.arguments))
                for tc in msg.tool_calls
            ]

        usage = None
        if getattr(response, "usage", None):
            usage = {"prompt_tokens": response.usage.prompt_tokens,
                     "completion_tokens": response.usage.completion_tokens,
                     "total_tokens": response.usage.total_tokens}
            _log.debug("LLM usage (%s): %s", self.model, usage)

        return LLMResponse(content=msg.content, tool_calls=tool_calls, usage=usage)
