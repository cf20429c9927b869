"""Shell command execution with safety guards."""

import os
import re
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from ..errors import CommandBlockedError
from ..logger import get_logger

_log = get_logger(__name__)


class ShellExecutor:
    """Run shell commands in the project root, refusing destructive payloads."""

    DANGEROUS_PATTERNS = [
        r"\brm\b\s+-[^\s;|&]*r[^\s;|&]*f[^\s;|&]*\b",
        r"\b(?:mkfs(?:\.[a-z0-9_+\-]+)?|fdisk|parted|sfdisk|wipefs|format)\b",
        r"\bdd\b[^\n;|&]*\bif\s*=",
        r"\bchmod\b\s+(?:-[^\s]+\s+)?0?777\b",
        r":\s*\(\s*\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:",
        r"(?:>|>>)\s*/dev/sd[a-z]\d*",
        r"\bcurl\b[^\n;|&]*\|\s*(?:sh|bash|zsh|ksh)\b",
        r"\bwget\b[^\n;|&]*\|\s*(?:sh|bash|zsh|ksh)\b",
        r"\beval\b\s+",
        r"\bbase64\b[^\n;|&]*-(?:d|decode)\b[^\n;|&]*\|\s*(?:sh|bash|zsh|ksh)\b",
    ]

    MAX_STDOUT = 8000
    MAX_STDERR = 4000

    def __init__(self, project_root: str, blocked_commands: Optional[List[str]] = None,
                 timeout: int = 120):
        self.project_root = Path(project_root).resolve()
        self.timeout = timeout
        self.blocked = [b.strip() for b in (blocked_commands or []) if b.strip()]
        self._dangerous_regexes = [
            re.compile(pattern, re.IGNORECASE) for pattern in self.DANGEROUS_PATTERNS
        ]

    @staticmethod
    def _canonicalize_command(command: str) -> str:
        """Normalize quoting and whitespace so trivially obfuscated variants still match."""
        normalized = command.lower().replace("\\\n", " ")
        normalized = re.sub(r"\$\{?\s*ifs\s*\}?", " ", normalized)
        normalized = re.sub(r"[\'\"`\\]", "", normalized)
        normalized = re.sub(r"\s+", " ", normalized)
        return normalized.strip()

    def block_reason(self, command: str) -> Optional[str]:
        canonical = self._canonicalize_command(command)
        for blocked in self.blocked:
            if self._canonicalize_command(blocked) in canonical:
                return f"matches blocked command '{blocked}'"
        for pattern in self._dangerous_regexes:
            if pattern.search(command) or pattern.search(canonical):
                return f"matches dangerous pattern '{pattern.pattern}'"
        return None

    @staticmethod
    def _clip(text: str, limit: int) -> str:
        if len(text) <= limit:
            return text
        half = limit // 2
        return text[:half] + "\n...(truncated)...\n" + text[-half:]

    def run(self, command: str) -> Tuple[str, int]:
        """Execute ``command`` and return ``(output, exit_code)``.

        Raises CommandBlockedError before anything runs if the guards refuse it.
        """
        reason = self.block_reason(command)
        if reason:
            _log.warning("Command blocked: %s", reason)
            raise CommandBlockedError(reason)

        _log.debug("Executing command: %s", command[:100])
        try:
            result = subprocess.run(
                ["bash", "-c", command],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                cwd=str(self.project_root),
                env={**os.environ, "TERM": "dumb"},
            )
        except subprocess.TimeoutExpired:
            return f"Timed out after {self.timeout}s", 124

        parts = []
        if result.stdout:
            parts.append(self._clip(result.stdout, self.MAX_STDOUT))
        if result.stderr:
            parts.append(f"[stderr]\n{self._clip(result.stderr, self.MAX_STDERR)}")
        if result.returncode != 0:
            parts.append(f"[exit code: {result.returncode}]")

        output = "\n".join(parts).strip()
        return (output if output else "(no output)"), result.returncode
