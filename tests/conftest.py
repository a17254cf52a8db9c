"""Pytest configuration and fixtures for contextrank tests."""

import re
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator, List, Optional, Sequence

import pytest

from contextrank.buffers import InMemoryBufferProvider
from contextrank.embeddings import Embedder, EmbeddingError
from contextrank.models import CaptureKind, DefinitionCapture, Span
from contextrank.outline import QueryRegistry


@pytest.fixture(autouse=True)
def _isolated_config_home(tmp_path: Path, monkeypatch):
    """Point the config directory at a temp dir so tests never touch ~/.contextrank."""
    home = tmp_path / "contextrank_home"
    monkeypatch.setattr("contextrank.config.BASE_DIR", home)
    return home


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


# ---------------------------------------------------------------------------
# Structural queries without tree-sitter
# ---------------------------------------------------------------------------

class LineRuleQuery:
    """Regex stand-in for a tree-sitter tag query.

    Lines starting (after indentation) with ``module``, ``class`` or
    ``def`` become captures of the matching kind.
    """

    _RULES = [
        (re.compile(r"^\s*module\s+(\w+)"), CaptureKind.MODULE),
        (re.compile(r"^\s*class\s+(\w+)"), CaptureKind.CLASS),
        (re.compile(r"^\s*def\s+([\w.]+)"), CaptureKind.METHOD),
    ]

    def captures(self, text: str) -> List[DefinitionCapture]:
        found = []
        for row, line in enumerate(text.split("\n")):
            for pattern, kind in self._RULES:
                match = pattern.match(line)
                if match:
                    found.append(DefinitionCapture(match.group(1), kind, Span(row, row + 1)))
        return found


@pytest.fixture
def line_registry() -> QueryRegistry:
    """Registry that understands ruby and python via :class:`LineRuleQuery`."""
    return QueryRegistry({"ruby": LineRuleQuery(), "python": LineRuleQuery()})


# ---------------------------------------------------------------------------
# Embedders
# ---------------------------------------------------------------------------

class ScriptedEmbedder(Embedder):
    """Embedder whose per-item vectors come from a callback.

    ``vector_for(item)`` returns an embedding or ``None``.  ``fail_on``
    lists the (zero-based) call numbers that raise ``EmbeddingError``.
    """

    model_key = "scripted"

    def __init__(
        self,
        vector_for: Callable[[object], Optional[List[float]]],
        fail_on: Sequence[int] = (),
    ) -> None:
        self.vector_for = vector_for
        self.fail_on = set(fail_on)
        self.calls: List[list] = []

    async def embed(self, items):
        call_number = len(self.calls)
        self.calls.append(list(items))
        if call_number in self.fail_on:
            raise EmbeddingError(f"transport failure on call {call_number}")
        return [self.vector_for(item) for item in items]


@pytest.fixture
def scripted_embedder() -> Callable[..., ScriptedEmbedder]:
    return ScriptedEmbedder


# ---------------------------------------------------------------------------
# Sample sources
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_ruby_code() -> str:
    return '''require 'json'

module Greetings
  class Greeter
    def initialize(name)
      @name = name
    end

    def hello
      "Hello, #{@name}"
    end

    def self.build(name)
      new(name)
    end
  end
end
'''


@pytest.fixture
def sample_python_code() -> str:
    return '''import os

class Calculator:
    def add(self, a, b):
        return a + b

    def sub(self, a, b):
        return a - b


def main():
    print(Calculator().add(1, 2))
'''


@pytest.fixture
def workspace(sample_ruby_code: str, sample_python_code: str) -> InMemoryBufferProvider:
    """Three listed buffers: active ruby, outlinable python, unsupported markdown."""
    buffers = InMemoryBufferProvider()
    buffers.add(1, "def foo(); end\n", name="/work/active.rb", filetype="ruby")
    buffers.add(2, sample_python_code, name="/work/calc.py", filetype="python")
    buffers.add(3, "# Notes\n\nSome prose.\n", name="/work/NOTES.md", filetype="markdown")
    return buffers
