"""Git integration for workers: status and commit of generated work."""
import fnmatch
import subprocess
from pathlib import Path
from typing import List, Optional

from ..logger import get_logger

_log = get_logger(__name__)


class GitOps:
    SENSITIVE_PATTERNS = [
        ".env*", "*.key", "*.pem", "*.p12", "*.pfx",
        "*credentials*", "*secret*", "id_rsa*", "id_ed25519*",
    ]

    def __init__(self, project_root: str, commit_prefix: str = "taskcrew: "):
        self.root = Path(project_root).resolve()
        self.prefix = commit_prefix

    @property
    def available(self) -> bool:
        return (self.root / ".git").exists()

    def _run(self, *args) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["git"] + list(args), capture_output=True, text=True,
            cwd=str(self.root), timeout=15,
        )

    def status_short(self) -> str:
        if not self.available:
            return "(not a git repo)"
        return self._run("status", "--short").stdout.strip() or "(clean)"

    def _is_sensitive_path(self, path: str) -> bool:
        normalized = path.lower()
        filename = Path(path).name.lower()
        return any(
            fnmatch.fnmatch(normalized, pattern) or fnmatch.fnmatch(filename, pattern)
            for pattern in self.SENSITIVE_PATTERNS
        )

    def stage_changed_files(self) -> List[str]:
        """Stage non-sensitive modified and untracked files."""
        modified = self._run("diff", "--name-only").stdout.splitlines()
        untracked = self._run("ls-files", "--others", "--exclude-standard").stdout.splitlines()
        candidates = list(dict.fromkeys([*modified, *untracked]))
        stageable = [p for p in candidates if p and not self._is_sensitive_path(p)]
        if stageable and self._run("add", "--", *stageable).returncode != 0:
            return []
        return stageable

    def commit(self, message: str) -> Optional[str]:
        """Commit staged work; returns the short hash, or None when nothing was committed."""
        if not self.available:
            return None
        staged = self.stage_changed_files()
        if not staged:
            return None
        r = self._run("commit", "-m", f"{self.prefix}{message}", "--", *staged)
        if r.returncode != 0:
            _log.warning("git commit failed: %s", r.stderr.strip())
            return None
        return self._run("rev-parse", "--short", "HEAD").stdout.strip()
