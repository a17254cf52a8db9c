"""Structural outlines built from Tree-sitter definition queries.

An outline compresses a source buffer into the lines that start a named
definition (module, class, method), with an elision marker wherever lines
were skipped::

    ⋮...
    │class Greeter
    │  def hello(name)
    ⋮...

Each supported language has one compiled tag query.  Queries live in an
immutable :class:`QueryRegistry` built once by :func:`default_registry`
from whichever ``tree-sitter-<lang>`` grammar packages are installed.
Languages without a grammar are simply absent from the registry, which
makes :func:`build_outline` return ``None`` for their buffers.
"""

from __future__ import annotations

import importlib
import logging
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from .buffers import BufferProvider, split_lines
from .config import OUTLINE_LINE_PREFIX, OUTLINE_MARKER
from .models import BufferHandle, CaptureKind, DefinitionCapture, Span

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Tag queries, following Aider's repo-map queries
# ---------------------------------------------------------------------------
QUERY_SOURCES: Dict[str, str] = {
    "ruby": """
        (module
          name: (constant) @name.definition.module) @definition.module

        [
          (class
            name: (constant) @name.definition.class) @definition.class
          (singleton_class
            value: (constant) @name.definition.class) @definition.class
        ]

        [
          (method
            name: (_) @name.definition.method) @definition.method
          (singleton_method
            name: (_) @name.definition.method) @definition.method
        ]
    """,
    "python": """
        (class_definition
          name: (identifier) @name.definition.class) @definition.class

        (function_definition
          name: (identifier) @name.definition.method) @definition.method
    """,
    "javascript": """
        (class_declaration
          name: (identifier) @name.definition.class) @definition.class

        (method_definition
          name: (property_identifier) @name.definition.method) @definition.method

        (function_declaration
          name: (identifier) @name.definition.method) @definition.method
    """,
}

# Map language name -> module that provides the tree-sitter Language
_GRAMMAR_MODULES: Dict[str, str] = {
    "ruby": "tree_sitter_ruby",
    "python": "tree_sitter_python",
    "javascript": "tree_sitter_javascript",
}

_DEFINITION_PREFIX = "definition."
_NAME_PREFIX = "name.definition."
_KEPT_KINDS = {kind.value: kind for kind in CaptureKind}


# ===================================================================
# Structural queries
# ===================================================================

class StructuralQuery:
    """A parser plus compiled tag query for one language."""

    def __init__(self, language_name: str, ts_language: Any, source: str) -> None:
        from tree_sitter import Parser as TSParser, Query  # type: ignore[import-untyped]

        self.language_name = language_name
        self._parser = TSParser(ts_language)
        self._query = Query(ts_language, source)

    def captures(self, text: str) -> Iterator[DefinitionCapture]:
        """Yield module / class / method definitions found in *text*."""
        from tree_sitter import QueryCursor  # type: ignore[import-untyped]

        tree = self._parser.parse(text.encode("utf-8"))
        for _pattern_index, captured in QueryCursor(self._query).matches(tree.root_node):
            for capture_name, nodes in captured.items():
                if not capture_name.startswith(_DEFINITION_PREFIX):
                    continue
                kind = _KEPT_KINDS.get(capture_name[len(_DEFINITION_PREFIX):])
                if kind is None:
                    continue
                name_nodes = _as_list(captured.get(_NAME_PREFIX + kind.value, []))
                name = name_nodes[0].text.decode("utf-8") if name_nodes else ""
                for node in _as_list(nodes):
                    yield DefinitionCapture(
                        name=name,
                        kind=kind,
                        span=Span(node.start_point[0], node.end_point[0] + 1),
                    )


def _as_list(nodes: Any) -> List[Any]:
    return nodes if isinstance(nodes, list) else [nodes]


class QueryRegistry(Mapping[str, StructuralQuery]):
    """Immutable mapping of language name -> :class:`StructuralQuery`."""

    def __init__(self, queries: Optional[Mapping[str, StructuralQuery]] = None) -> None:
        self._queries = MappingProxyType(dict(queries or {}))

    def __getitem__(self, language: str) -> StructuralQuery:
        return self._queries[language]

    def __iter__(self) -> Iterator[str]:
        return iter(self._queries)

    def __len__(self) -> int:
        return len(self._queries)

    def resolve(self, filetype: str) -> Optional[StructuralQuery]:
        """Look up the query for *filetype*.

        Falls back to the filetype with ``react`` removed, so
        ``javascriptreact`` uses the ``javascript`` query.
        """
        if not filetype:
            return None
        query = self._queries.get(filetype)
        if query is None:
            query = self._queries.get(filetype.replace("react", ""))
        return query


def load_registry(languages: Optional[Iterable[str]] = None) -> QueryRegistry:
    """Compile tag queries for every requested language whose grammar is installed."""
    queries: Dict[str, StructuralQuery] = {}
    try:
        from tree_sitter import Language  # type: ignore[import-untyped]
    except ImportError:
        logger.warning(
            "tree-sitter is not installed -- outlines unavailable. "
            "Install with: pip install tree-sitter"
        )
        return QueryRegistry()

    for lang in languages or QUERY_SOURCES:
        mod_name = _GRAMMAR_MODULES.get(lang)
        source = QUERY_SOURCES.get(lang)
        if mod_name is None or source is None:
            logger.warning("No tag query defined for language '%s'", lang)
            continue
        try:
            mod = importlib.import_module(mod_name)
        except ImportError:
            logger.warning(
                "Grammar package '%s' not installed for language '%s'. "
                "Install with: pip install %s",
                mod_name, lang, mod_name.replace("_", "-"),
            )
            continue
        try:
            queries[lang] = StructuralQuery(lang, Language(mod.language()), source)
        except ValueError as exc:
            logger.warning("Could not compile tag query for %s: %s", lang, exc)
            continue
        logger.debug("Loaded tag query for %s", lang)

    return QueryRegistry(queries)


@lru_cache(maxsize=1)
def default_registry() -> QueryRegistry:
    """Process-wide registry for every shipped language, built on first use."""
    return load_registry()


# ===================================================================
# Outline construction
# ===================================================================

def outline_from_captures(
    lines: List[str],
    captures: Iterable[DefinitionCapture],
) -> Optional[str]:
    """Render *captures* over the buffer *lines* as an outline string.

    Returns ``None`` when no capture is kept.
    """
    outline: List[str] = []
    previous_start_row = -1

    for capture in sorted(captures, key=lambda c: c.span.start):
        start_row = capture.span.start
        line_text = lines[start_row] if start_row < len(lines) else ""

        # Repeated rows continue the run; only a real gap gets a marker.
        if previous_start_row != start_row and previous_start_row + 1 != start_row:
            outline.append(OUTLINE_MARKER)

        outline.append(OUTLINE_LINE_PREFIX + line_text)
        previous_start_row = start_row

    if not outline:
        return None

    if previous_start_row != len(lines) - 1:
        outline.append(OUTLINE_MARKER)

    return "\n".join(outline)


def build_outline(
    buffer: BufferHandle,
    buffers: BufferProvider,
    registry: Optional[QueryRegistry] = None,
) -> Optional[str]:
    """Build the outline for *buffer*, or ``None`` if its language has no query."""
    registry = default_registry() if registry is None else registry
    filetype = buffers.get_filetype(buffer)
    query = registry.resolve(filetype)
    if query is None:
        logger.debug("No tag query for filetype '%s' (%s)", filetype, buffers.get_name(buffer))
        return None

    text = buffers.get_text(buffer)
    return outline_from_captures(split_lines(text), query.captures(text))
