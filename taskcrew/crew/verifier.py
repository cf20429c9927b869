"""Response verifier: judge from free text whether a worker actually did the work.

Workers report only in prose, and prose lies easily: a worker that narrates a
plan reads much like one that executed it. The verdict is therefore driven by
evidence of action (capability invocations, concrete write/creation mentions)
and explicit failure markers, never by success-sounding words alone.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .tasks import InvocationRecord

HARD_FAILURE_PHRASES = (
    "error:",
    "exception:",
    "failed to write",
    "permission denied",
    "enoent",
    "eacces",
    "syntax error",
    "compilation failed",
    "build failed",
    "deployment failed",
)

SOFT_FAILURE_PHRASES = (
    "failed to",
    "could not",
    "unable to",
    "cannot complete",
    "blocked by",
)

TOOL_USAGE_PHRASES = (
    "tool_call",
    "tool_result",
    "wrote to",
    "file created",
    "file updated",
    "files created",
    "files written",
    "generated project",
    "project created at",
    "scaffolded",
    "contents of",
    "i created",
    "i wrote",
    "dockerfile created",
    "image built",
    "container running",
)

SUCCESS_PHRASES = (
    "completed",
    "created",
    "implemented",
    "wrote",
    "updated",
    "successfully",
    "passed",
)

NO_EVIDENCE_REASON = "No evidence of actual work performed"


@dataclass(frozen=True)
class VerificationVerdict:
    success: bool
    reason: str
    has_hard_failure: bool = False
    has_soft_failure: bool = False
    has_tool_usage: bool = False
    has_success_language: bool = False


def _find(text: str, phrases) -> Optional[str]:
    for phrase in phrases:
        if phrase in text:
            return phrase
    return None


def verify(output: str, record: Optional[InvocationRecord] = None) -> VerificationVerdict:
    """Classify worker output as success, soft failure or hard failure."""
    text = (output or "").lower()
    hard = _find(text, HARD_FAILURE_PHRASES)
    soft = _find(text, SOFT_FAILURE_PHRASES)
    usage = _find(text, TOOL_USAGE_PHRASES)
    success_words = _find(text, SUCCESS_PHRASES)
    flags = dict(
        has_hard_failure=hard is not None,
        has_soft_failure=soft is not None,
        has_tool_usage=usage is not None or bool(record and record.successful),
        has_success_language=success_words is not None,
    )

    if record is not None and record.successful > 0:
        if hard is None:
            return VerificationVerdict(
                True, f"{record.successful} successful capability calls", **flags
            )
        return VerificationVerdict(
            False, f"Hard failure detected despite capability calls: '{hard}'", **flags
        )

    if hard is not None:
        return VerificationVerdict(False, f"Hard failure detected: '{hard}'", **flags)

    if soft is not None:
        return VerificationVerdict(False, f"Soft failure detected: '{soft}'", **flags)

    if usage is not None:
        return VerificationVerdict(True, f"Tool usage evidence: '{usage}'", **flags)

    # Success language without evidence of action is not enough.
    return VerificationVerdict(False, NO_EVIDENCE_REASON, **flags)


_WRITE_PATTERNS = (
    re.compile(r"wrote\s+to\s+['\"]?([\w./-]+)['\"]?", re.IGNORECASE),
    re.compile(r"created\s+['\"]?([^\s'\">\n]+\.[a-z]+)['\"]?", re.IGNORECASE),
    re.compile(r"file:\s*['\"]?([\w./-]+\.[a-z]+)['\"]?", re.IGNORECASE),
    re.compile(r"writing\s+to\s+['\"]?([\w./-]+)['\"]?", re.IGNORECASE),
)

_ERROR_PATTERNS = (
    re.compile(r"error:\s*([^\n]+)", re.IGNORECASE),
    re.compile(r"failed\s+to\s+([^\n.]+)", re.IGNORECASE),
)


def extract_modified_files(output: str) -> List[str]:
    """Artifact paths mentioned as written or created, in first-seen order."""
    files: List[str] = []
    for pattern in _WRITE_PATTERNS:
        for match in pattern.finditer(output or ""):
            path = match.group(1).rstrip(".,;")
            if path and path not in files:
                files.append(path)
    return files


def extract_errors(output: str) -> List[str]:
    errors: List[str] = []
    for pattern in _ERROR_PATTERNS:
        for match in pattern.finditer(output or ""):
            fragment = match.group(1).strip()
            if fragment and fragment not in errors:
                errors.append(fragment)
    return errors


_PASS_COUNT_RE = re.compile(r"(\d+)\s+pass(?:ed|ing)?", re.IGNORECASE)
_FAIL_COUNT_RE = re.compile(r"(\d+)\s+fail(?:ed|ing|ures?)?", re.IGNORECASE)
_TOTAL_RE = re.compile(r"tests?:?\s+(\d+)", re.IGNORECASE)


def parse_test_results(output: str) -> Tuple[Optional[int], Optional[int], int]:
    """Extract ``(tests_run, tests_passed, tests_failed)`` from runner output.

    Counts come from the last occurrence of each pattern, which is where
    test runners print their summary. Unknown counts are ``None``; the
    failure count defaults to 0.
    """
    text = output or ""
    passed = _last_int(_PASS_COUNT_RE, text)
    failed = _last_int(_FAIL_COUNT_RE, text) or 0
    total = _last_int(_TOTAL_RE, text)
    if passed is not None and (total is None or total < passed + failed):
        total = passed + failed
    elif total is None and failed:
        total = failed
    return total, passed, failed


def _last_int(pattern: re.Pattern, text: str) -> Optional[int]:
    matches = pattern.findall(text)
    return int(matches[-1]) if matches else None
