"""Token estimation for bounding worker conversations."""

import json
import re
from typing import Optional

import tiktoken

_encoder_cache = {}

_CJK_RE = re.compile(r'[\u4e00-\u9fff\u3040-\u309f\u30a0-\u30ff\uac00-\ud7af]')


def _get_encoder(model: str):
    """Get tiktoken encoder for model, with caching."""
    if model in _encoder_cache:
        return _encoder_cache[model]
    try:
        enc = tiktoken.encoding_for_model(model)
    except KeyError:
        # Unknown to tiktoken (most non-OpenAI providers)
        enc = tiktoken.get_encoding("cl100k_base")
    _encoder_cache[model] = enc
    return enc


def estimate_tokens(text: str, model: Optional[str] = None) -> int:
    """Estimate token count for text.

    Uses tiktoken when a model name is given, otherwise a character heuristic.
    """
    if not text:
        return 0
    if model:
        return len(_get_encoder(model).encode(text, disallowed_special=()))
    return _heuristic_estimate(text)


def _heuristic_estimate(text: str) -> int:
    cjk_chars = len(_CJK_RE.findall(text))
    non_cjk = _CJK_RE.sub(' ', text)
    # English ~4 chars per token, CJK ~1.5
    return max(1, int(len(non_cjk) / 4 + cjk_chars / 1.5))


def estimate_message_tokens(msg: dict, model: Optional[str] = None) -> int:
    """Estimate tokens for a conversation message."""
    tokens = 4  # per-message overhead
    tokens += estimate_tokens(msg.get("content", "") or "", model)
    if "tool_calls" in msg:
        tokens += estimate_tokens(json.dumps(msg["tool_calls"]), model)
    return tokens
