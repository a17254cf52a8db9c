"""Query orchestration: collect, embed candidates, embed query, rank.

Each call to :meth:`QueryOrchestrator.run` drives a fresh
:class:`RetrievalRun` through these states::

    IDLE -> COLLECTING_CANDIDATES -> EMBEDDING_CANDIDATES
         -> EMBEDDING_QUERY -> RANKING -> DONE
                                       \\-> FAILED

The candidate batch and the query batch are two separate embedding calls,
and the query batch is only submitted once the candidate batch has
completed.  An :class:`~contextrank.embeddings.EmbeddingError` from either
batch ends the run in ``FAILED`` and is re-raised unchanged; nothing is
ranked from partial data.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List, Optional

from . import config
from .buffers import BufferProvider
from .collector import collect
from .embeddings import Embedder, EmbeddingError
from .models import EmbeddedItem, Embedding, RetrievalRequest, ScoredItem
from .outline import QueryRegistry
from .ranking import rank

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    COLLECTING_CANDIDATES = "collecting_candidates"
    EMBEDDING_CANDIDATES = "embedding_candidates"
    EMBEDDING_QUERY = "embedding_query"
    RANKING = "ranking"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    RunState.IDLE: {RunState.COLLECTING_CANDIDATES},
    RunState.COLLECTING_CANDIDATES: {RunState.EMBEDDING_CANDIDATES, RunState.DONE},
    RunState.EMBEDDING_CANDIDATES: {RunState.EMBEDDING_QUERY, RunState.DONE, RunState.FAILED},
    RunState.EMBEDDING_QUERY: {RunState.RANKING, RunState.DONE, RunState.FAILED},
    RunState.RANKING: {RunState.DONE},
    RunState.DONE: set(),
    RunState.FAILED: set(),
}


class RetrievalRun:
    """State for a single retrieval request; discarded when it finishes."""

    def __init__(self, request: RetrievalRequest) -> None:
        self.request = request
        self.state = RunState.IDLE
        self.history: List[RunState] = [RunState.IDLE]

    def advance(self, state: RunState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid transition {self.state.value} -> {state.value}")
        logger.debug("Retrieval run: %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    @property
    def finished(self) -> bool:
        return self.state in (RunState.DONE, RunState.FAILED)


class QueryOrchestrator:
    """Sequences candidate collection, both embedding phases, and ranking."""

    def __init__(
        self,
        buffers: BufferProvider,
        embedder: Embedder,
        registry: Optional[QueryRegistry] = None,
        top_n: Optional[int] = None,
    ) -> None:
        self.buffers = buffers
        self.embedder = embedder
        self.registry = registry
        self.top_n = config.TOP_N if top_n is None else top_n

    async def run(self, request: RetrievalRequest) -> List[ScoredItem]:
        return await self.execute(RetrievalRun(request))

    async def execute(self, run: RetrievalRun) -> List[ScoredItem]:
        request = run.request

        run.advance(RunState.COLLECTING_CANDIDATES)
        candidates = collect(request.scope, request.active_buffer, self.buffers, self.registry)
        if not candidates:
            run.advance(RunState.DONE)
            return []

        run.advance(RunState.EMBEDDING_CANDIDATES)
        embeddings = await self._embed_batch(run, candidates)

        corpus = [
            EmbeddedItem(item=item, embedding=embedding)
            for item, embedding in zip(candidates, embeddings)
            if embedding is not None
        ]
        if len(corpus) < len(candidates):
            logger.debug("Dropped %d candidate(s) without embeddings", len(candidates) - len(corpus))
        if not corpus:
            run.advance(RunState.DONE)
            return []
        logger.debug("Got %d embeddings", len(corpus))

        run.advance(RunState.EMBEDDING_QUERY)
        query = request.to_query()
        query_embedding = (await self._embed_batch(run, [query]))[0]
        if query_embedding is None:
            logger.debug("Query could not be embedded; returning no results")
            run.advance(RunState.DONE)
            return []
        logger.debug("Prompt: %s", query.prompt)
        logger.debug("Content: %s", query.content)

        run.advance(RunState.RANKING)
        results = rank(query_embedding, corpus, self.top_n)
        logger.debug("Ranked data: %d", len(results))
        for i, scored in enumerate(results, 1):
            logger.debug("%d: %s - %s", i, scored.score, scored.filename)

        run.advance(RunState.DONE)
        return results

    async def _embed_batch(self, run: RetrievalRun, items: list) -> List[Optional[Embedding]]:
        """Embed one batch; any failure, including a wrong-length reply, fails the run."""
        try:
            embeddings = await self.embedder.embed(items)
            if len(embeddings) != len(items):
                raise EmbeddingError(
                    f"Embedder returned {len(embeddings)} result(s) for {len(items)} item(s)"
                )
        except EmbeddingError:
            run.advance(RunState.FAILED)
            raise
        return embeddings


async def find_for_query(
    request: RetrievalRequest,
    *,
    buffers: BufferProvider,
    embedder: Embedder,
    on_done: Callable[[List[ScoredItem]], None],
    on_error: Optional[Callable[[EmbeddingError], None]] = None,
    registry: Optional[QueryRegistry] = None,
    top_n: Optional[int] = None,
) -> None:
    """Find the buffers most related to *request* and report them.

    Calls *on_done* once with the ranked items, or *on_error* once with
    the embedding failure.  Without *on_error* the failure propagates to
    the awaiting caller.
    """
    orchestrator = QueryOrchestrator(buffers, embedder, registry=registry, top_n=top_n)
    try:
        results = await orchestrator.run(request)
    except EmbeddingError as exc:
        if on_error is None:
            raise
        on_error(exc)
        return
    on_done(results)
