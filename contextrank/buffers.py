"""Buffer content providers.

A *buffer* is whatever the host editor or tool considers an open document.
The retrieval core only talks to buffers through :class:`BufferProvider`,
so hosts supply their own implementation.  Two are shipped here:

- :class:`InMemoryBufferProvider` keeps name / filetype / text in a dict
  and is what embedding hosts and the test suite use.
- :class:`FileBufferProvider` treats paths on disk as buffers and derives
  the filetype from the file extension.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .models import BufferHandle

logger = logging.getLogger(__name__)

# File extension -> filetype, using editor filetype names.
FILETYPE_MAP: Dict[str, str] = {
    ".py": "python",
    ".rb": "ruby",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascriptreact",
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".c": "c",
    ".cpp": "cpp",
    ".cs": "cs",
    ".lua": "lua",
    ".md": "markdown",
    ".txt": "text",
}


def filetype_for_path(path: Path) -> str:
    """Return the filetype for *path*, or ``""`` when the extension is unknown."""
    return FILETYPE_MAP.get(path.suffix.lower(), "")


def split_lines(text: str) -> List[str]:
    """Split on ``\\n`` only, matching tree-sitter row numbering.

    A trailing newline does not start another line.
    """
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


class BufferProvider(ABC):
    """Abstract read-only view of the host's open buffers."""

    @abstractmethod
    def get_text(self, buffer: BufferHandle) -> str:
        """Return the full text of *buffer*."""
        ...

    @abstractmethod
    def get_name(self, buffer: BufferHandle) -> str:
        ...

    @abstractmethod
    def get_filetype(self, buffer: BufferHandle) -> str:
        ...

    @abstractmethod
    def list_candidate_buffers(self) -> List[BufferHandle]:
        """Return the loaded and listed buffers, in the host's order."""
        ...


@dataclass
class _Buffer:
    name: str
    filetype: str
    text: str
    listed: bool = True


class InMemoryBufferProvider(BufferProvider):
    """Dict-backed buffers keyed by an arbitrary hashable handle."""

    def __init__(self) -> None:
        self._buffers: Dict[BufferHandle, _Buffer] = {}

    def add(
        self,
        handle: BufferHandle,
        text: str,
        name: Optional[str] = None,
        filetype: str = "",
        listed: bool = True,
    ) -> BufferHandle:
        self._buffers[handle] = _Buffer(
            name=name if name is not None else str(handle),
            filetype=filetype,
            text=text,
            listed=listed,
        )
        return handle

    def _get(self, buffer: BufferHandle) -> _Buffer:
        try:
            return self._buffers[buffer]
        except KeyError:
            raise KeyError(f"Unknown buffer: {buffer!r}") from None

    def get_text(self, buffer: BufferHandle) -> str:
        return self._get(buffer).text

    def get_name(self, buffer: BufferHandle) -> str:
        return self._get(buffer).name

    def get_filetype(self, buffer: BufferHandle) -> str:
        return self._get(buffer).filetype

    def list_candidate_buffers(self) -> List[BufferHandle]:
        return [handle for handle, buf in self._buffers.items() if buf.listed]


class FileBufferProvider(BufferProvider):
    """Files on disk exposed as buffers; the handle is the resolved path."""

    def __init__(self, paths: Iterable[Path]) -> None:
        self._paths: List[Path] = []
        for path in paths:
            resolved = Path(path).resolve()
            if resolved not in self._paths:
                self._paths.append(resolved)

    def get_text(self, buffer: BufferHandle) -> str:
        return Path(buffer).read_text(encoding="utf-8", errors="ignore")

    def get_name(self, buffer: BufferHandle) -> str:
        return str(buffer)

    def get_filetype(self, buffer: BufferHandle) -> str:
        return filetype_for_path(Path(buffer))

    def list_candidate_buffers(self) -> List[BufferHandle]:
        existing = [p for p in self._paths if p.is_file()]
        skipped = len(self._paths) - len(existing)
        if skipped:
            logger.debug("Skipping %d buffer path(s) that are not files", skipped)
        return list(existing)
