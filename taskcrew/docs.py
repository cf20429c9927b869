"""File-backed Markdown documentation store.

Layout under the store root::

    project/           project-level docs
    designs/           design records written by planners
    tasks/completed/   completion log
    decisions/         architecture decision records
    context/           current working context
    executive/         company and router logs

Pages are addressed by slash-separated paths without the ``.md`` suffix.
Writes overwrite, appends concatenate; there is no locking.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .errors import DocsPathError
from .logger import get_logger

_log = get_logger(__name__)

DEFAULT_SECTIONS = ("project", "designs", "tasks/completed", "decisions", "context")

_H1_RE = re.compile(r"^#\s+(.+)$", re.MULTILINE)


@dataclass
class DocPage:
    path: str
    title: str
    content: str


@dataclass
class SearchHit:
    path: str
    title: str
    snippet: str
    line_number: int


class DocsStore:
    def __init__(self, root: str):
        self.root = Path(root).expanduser().resolve()

    def initialize(self) -> None:
        for section in DEFAULT_SECTIONS:
            (self.root / section).mkdir(parents=True, exist_ok=True)
        if not self.exists("project/overview"):
            self.write_page(
                "project/overview",
                "This store holds project knowledge and documentation.\n",
                title="Project Overview",
            )

    def _resolve(self, page_path: str) -> Path:
        normalized = page_path.replace("\\", "/").strip()
        if not normalized or normalized.startswith("/"):
            raise DocsPathError(page_path)
        if not normalized.endswith(".md"):
            normalized += ".md"
        resolved = (self.root / normalized).resolve()
        try:
            resolved.relative_to(self.root)
        except ValueError:
            raise DocsPathError(page_path)
        return resolved

    @staticmethod
    def _title_for(content: str, page_path: str) -> str:
        match = _H1_RE.search(content)
        if match:
            return match.group(1).strip()
        stem = page_path.rstrip("/").split("/")[-1]
        if stem.endswith(".md"):
            stem = stem[:-3]
        return " ".join(word.capitalize() for word in stem.split("-"))

    def read_page(self, page_path: str) -> Optional[DocPage]:
        fp = self._resolve(page_path)
        if not fp.is_file():
            return None
        content = fp.read_text(encoding="utf-8")
        return DocPage(page_path, self._title_for(content, page_path), content)

    def write_page(self, page_path: str, content: str, title: Optional[str] = None) -> DocPage:
        fp = self._resolve(page_path)
        if title and not content.startswith("# "):
            content = f"# {title}\n\n{content}"
        fp.parent.mkdir(parents=True, exist_ok=True)
        fp.write_text(content, encoding="utf-8")
        _log.debug("Wrote docs page %s", page_path)
        return DocPage(page_path, title or self._title_for(content, page_path), content)

    def append_page(self, page_path: str, content: str) -> DocPage:
        existing = self.read_page(page_path)
        if existing is None:
            return self.write_page(page_path, content)
        return self.write_page(page_path, existing.content.rstrip() + "\n\n" + content)

    def delete_page(self, page_path: str) -> bool:
        fp = self._resolve(page_path)
        if not fp.is_file():
            return False
        fp.unlink()
        return True

    def exists(self, page_path: str) -> bool:
        return self._resolve(page_path).is_file()

    def list_pages(self, directory: str = "") -> List[str]:
        base = (self.root / directory).resolve() if directory else self.root
        try:
            base.relative_to(self.root)
        except ValueError:
            raise DocsPathError(directory)
        if not base.is_dir():
            return []
        return sorted(p.relative_to(self.root).as_posix() for p in base.rglob("*.md"))

    def search(self, query: str, directory: str = "") -> List[SearchHit]:
        """Case-insensitive substring search; at most one hit per page."""
        needle = query.lower()
        hits: List[SearchHit] = []
        for page_path in self.list_pages(directory):
            page = self.read_page(page_path)
            if page is None:
                continue
            lines = page.content.split("\n")
            for i, line in enumerate(lines):
                if needle in line.lower():
                    snippet = "\n".join(lines[max(0, i - 1):i + 2])
                    hits.append(SearchHit(page_path, page.title, snippet, i + 1))
                    break
        return hits
