"""Core data models shared by outline extraction, collection, and ranking."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Hashable, List, Optional

Embedding = List[float]
BufferHandle = Hashable


class Scope(str, Enum):
    """Which buffers a retrieval request considers."""

    BUFFER = "buffer"
    BUFFERS = "buffers"

    @classmethod
    def parse(cls, value: str) -> "Scope":
        aliases = {"single": cls.BUFFER, "all": cls.BUFFERS}
        key = value.lower().strip()
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError:
            raise ValueError(
                f"Unknown scope: '{value}'. Use one of: buffer, buffers, single, all"
            ) from None


class CaptureKind(str, Enum):
    MODULE = "module"
    CLASS = "class"
    METHOD = "method"


@dataclass(frozen=True)
class Span:
    """Zero-based, end-exclusive line range."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"Span start {self.start} is after end {self.end}")


@dataclass(frozen=True)
class DefinitionCapture:
    name: str
    kind: CaptureKind
    span: Span


@dataclass
class ContextItem:
    content: str
    filename: str
    filetype: str


@dataclass
class Query:
    prompt: str
    filename: str
    filetype: str
    content: Optional[str] = None


@dataclass
class EmbeddedItem:
    item: ContextItem
    embedding: Embedding


@dataclass
class ScoredItem:
    item: ContextItem
    embedding: Embedding
    score: float

    @property
    def filename(self) -> str:
        return self.item.filename

    @property
    def content(self) -> str:
        return self.item.content


@dataclass
class RetrievalRequest:
    """Everything ``find_for_query`` needs to know about one request."""

    scope: Scope
    prompt: str
    filename: str
    filetype: str
    active_buffer: BufferHandle
    selection: Optional[str] = None

    def to_query(self) -> Query:
        return Query(
            prompt=self.prompt,
            content=self.selection,
            filename=self.filename,
            filetype=self.filetype,
        )
