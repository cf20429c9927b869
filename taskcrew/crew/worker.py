"""Worker: one role-bound model conversation with bounded capability rounds."""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..llm import LLMAdapter, LLMResponse, build_system_prompt
from ..logger import get_logger
from ..tokenizer import estimate_message_tokens, estimate_tokens
from ..tools.registry import CapabilityRegistry
from .tasks import InvocationRecord

_log = get_logger(__name__)


@dataclass
class WorkerReply:
    output: str
    record: InvocationRecord = field(default_factory=InvocationRecord)
    rounds: int = 0


class Worker:
    """Prompt in, free text plus an invocation record out.

    Each ``invoke`` starts a fresh conversation, so counters never leak between
    attempts. ``WorkerError`` from the transport propagates to the caller.
    """

    MAX_TOOL_RESULT_CHARS = 12000

    def __init__(self, name: str, role: str, llm: LLMAdapter,
                 capabilities: CapabilityRegistry, instructions: str = "",
                 max_rounds: int = 10):
        self.name = name
        self.role = role
        self.llm = llm
        self.capabilities = capabilities
        self.instructions = instructions
        self.max_rounds = max_rounds
        self.total_tokens = 0

    @property
    def capability_names(self) -> List[str]:
        return self.capabilities.names

    async def invoke(self, prompt: str, forced_capability: Optional[str] = None,
                     max_rounds: Optional[int] = None) -> WorkerReply:
        record = InvocationRecord()
        system = build_system_prompt(self.role, self.instructions)
        conversation: List[Dict[str, Any]] = [{"role": "user", "content": prompt}]
        rounds = max_rounds or self.max_rounds
        schemas = self.capabilities.schemas or None

        forced = forced_capability if forced_capability in self.capabilities else None
        if forced_capability and forced is None:
            _log.debug("%s: cannot force %s, not held", self.name, forced_capability)

        last_text = ""
        for round_no in range(1, rounds + 1):
            response = await self.llm.chat(
                self._prepare_messages(system, conversation), tools=schemas, forced=forced,
            )
            forced = None  # forcing applies to the first exchange only
            if response.usage:
                self.total_tokens += response.usage.get("total_tokens", 0)
            if response.content:
                last_text = response.content

            if not response.has_tool_calls():
                return WorkerReply(response.content or "", record, round_no)

            await self._handle_tool_calls(response, conversation, record)

        _log.info("%s: stopped after %d rounds", self.name, rounds)
        return WorkerReply(
            last_text or f"Stopped after {rounds} rounds without a final report.",
            record, rounds,
        )

    async def _handle_tool_calls(self, response: LLMResponse, conversation: list,
                                 record: InvocationRecord) -> None:
        conversation.append({
            "role": "assistant",
            "content": response.content,
            "tool_calls": [
                {"id": tc.id, "type": "function",
                 "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)}}
                for tc in response.tool_calls
            ],
        })
        for tc in response.tool_calls:
            result = await self.capabilities.execute(tc.name, tc.arguments, role=self.role)
            record.record(tc.name, result.success)
            if not result.success:
                _log.info("%s: %s failed: %s", self.name, tc.name, result.error)
            conversation.append({
                "role": "tool", "tool_call_id": tc.id,
                "content": self._truncate_tool_result(result.as_message()),
            })

    def _truncate_tool_result(self, result: str) -> str:
        if len(result) <= self.MAX_TOOL_RESULT_CHARS:
            return result
        half = self.MAX_TOOL_RESULT_CHARS // 2
        return result[:half] + f"\n\n... [truncated {len(result):,} chars] ...\n\n" + result[-half:]

    def _prepare_messages(self, system_prompt: str, conversation: list) -> list:
        """System prompt, the task prompt, then as many recent messages as fit."""
        budget = self.llm.context_window - self.llm.max_tokens - 1000
        model = self.llm.model
        head = conversation[0]
        available = (budget - estimate_tokens(system_prompt, model) - 4
                     - estimate_message_tokens(head, model))

        kept: List[Dict[str, Any]] = []
        used = 0
        for msg in reversed(conversation[1:]):
            cost = estimate_message_tokens(msg, model)
            if used + cost > available:
                break
            kept.insert(0, msg)
            used += cost

        # A tool result must follow the assistant message that requested it.
        while kept and kept[0]["role"] == "tool":
            kept.pop(0)
        dropped = len(conversation) - 1 - len(kept)
        if dropped:
            _log.debug("%s: trimmed %d messages to fit context window", self.name, dropped)
        return [{"role": "system", "content": system_prompt}, head] + kept
