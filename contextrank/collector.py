"""Candidate collection: which buffers become context items, and how."""

from __future__ import annotations

import logging
from typing import List, Optional

from .buffers import BufferProvider
from .models import BufferHandle, ContextItem, Scope
from .outline import QueryRegistry, build_outline

logger = logging.getLogger(__name__)


def _context_item(
    buffer: BufferHandle,
    active_buffer: BufferHandle,
    buffers: BufferProvider,
    registry: Optional[QueryRegistry],
) -> Optional[ContextItem]:
    if buffer == active_buffer:
        content: Optional[str] = buffers.get_text(buffer)
    else:
        content = build_outline(buffer, buffers, registry)

    if content is None:
        return None

    return ContextItem(
        content=content,
        filename=buffers.get_name(buffer),
        filetype=buffers.get_filetype(buffer),
    )


def collect(
    scope: Scope,
    active_buffer: BufferHandle,
    buffers: BufferProvider,
    registry: Optional[QueryRegistry] = None,
) -> List[ContextItem]:
    """Return the context items for *scope*.

    The active buffer always contributes its full text.  In ``buffers``
    scope every other listed buffer contributes its outline, and buffers
    without one are left out rather than sent in full.
    """
    if scope is Scope.BUFFER:
        candidates = [active_buffer]
    else:
        candidates = buffers.list_candidate_buffers()

    items: List[ContextItem] = []
    for buffer in candidates:
        item = _context_item(buffer, active_buffer, buffers, registry)
        if item is None:
            logger.debug("Dropping %s: no outline available", buffers.get_name(buffer))
            continue
        items.append(item)

    logger.debug("Collected %d candidate(s) for scope '%s'", len(items), scope.value)
    return items
