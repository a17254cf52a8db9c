"""Batched embedding clients.

Every embedder implements one coroutine::

    await embedder.embed(items) -> List[Optional[Embedding]]

The result has the same length and order as *items*; ``None`` marks an
item that could not be embedded (for example, one with no content).
Failures that affect the whole batch (connection errors, HTTP errors,
malformed responses) raise :class:`EmbeddingError` instead.

Supported backends (configure via ``contextrank config set-embedding``):

========== ============================================== ====================
Key        Backend                                        Notes
========== ============================================== ====================
hash       :class:`HashEmbeddingModel`                    Local, keyword-level
remote     :class:`RemoteEmbeddingClient`                 OpenAI-compatible API
========== ============================================== ====================
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
from abc import ABC, abstractmethod
from hashlib import blake2b
from typing import Any, Dict, List, Optional, Sequence, Union

import requests

from . import config
from .models import ContextItem, Embedding, Query

logger = logging.getLogger(__name__)

Embeddable = Union[ContextItem, Query]

_TOKEN_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


EMBEDDING_MODELS: Dict[str, Dict[str, Any]] = {
    "hash": {
        "name": "Hash Embedding",
        "description": "Local token hashing, no network, keyword-level only",
    },
    "remote": {
        "name": "Remote Embedding API",
        "description": "OpenAI-compatible /embeddings endpoint",
    },
}

DEFAULT_MODEL = "hash"


class EmbeddingError(RuntimeError):
    """A whole embedding batch failed (transport or protocol error)."""


# ===================================================================
# Input formatting
# ===================================================================

def _body(item: Embeddable) -> str:
    if isinstance(item, Query):
        return "\n".join(part for part in (item.prompt, item.content) if part)
    return item.content


def format_embedding_input(item: Embeddable) -> str:
    """Return the text sent to the embedding backend for *item*."""
    if isinstance(item, Query):
        text = item.prompt
        if item.content:
            text += (
                f"\n\nSelection from `{item.filename}`:\n"
                f"```{item.filetype}\n{item.content}\n```"
            )
        return text
    return (
        f"File: `{item.filename}`\n"
        f"```{item.filetype}\n{item.content}\n```"
    )


def _embeddable_texts(items: Sequence[Embeddable]) -> List[Optional[str]]:
    """Formatted text per item, ``None`` for items with nothing to embed."""
    return [
        format_embedding_input(item) if _body(item).strip() else None
        for item in items
    ]


# ===================================================================
# Embedder interface
# ===================================================================

class Embedder(ABC):
    """Abstract batched embedding capability."""

    model_key: str = ""

    @abstractmethod
    async def embed(self, items: Sequence[Embeddable]) -> List[Optional[Embedding]]:
        """Embed *items* as one batch, preserving order."""
        ...


# ===================================================================
# HashEmbeddingModel
# ===================================================================

class HashEmbeddingModel(Embedder):
    """Deterministic token-hashing embedder with no network access.

    Provides basic keyword-level similarity.  Used as the default backend
    and throughout the test suite.
    """

    model_key = "hash"

    def __init__(self, dim: int = 256) -> None:
        self.dim = dim

    def embed_text(self, text: str) -> Optional[Embedding]:
        tokens = _TOKEN_RE.findall(text.lower())
        if not tokens:
            return None
        vec = [0.0] * self.dim
        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "big") % self.dim
            sign = 1.0 if (digest[4] & 1) == 0 else -1.0
            vec[idx] += sign
        return _l2_normalize(vec)

    async def embed(self, items: Sequence[Embeddable]) -> List[Optional[Embedding]]:
        return [
            self.embed_text(text) if text is not None else None
            for text in _embeddable_texts(items)
        ]


# ===================================================================
# RemoteEmbeddingClient
# ===================================================================

class RemoteEmbeddingClient(Embedder):
    """Client for an OpenAI-compatible ``/embeddings`` endpoint.

    Items are sent in chunks of *batch_size*, one request after another on
    a worker thread.  Any failed chunk fails the whole batch; there are no
    retries.
    """

    model_key = "remote"

    def __init__(
        self,
        endpoint: str,
        model: str,
        api_key: str = "",
        batch_size: int = 64,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.endpoint = endpoint
        self.model = model
        self.api_key = api_key
        self.batch_size = batch_size
        self.timeout = timeout
        self._session = session or requests.Session()

    async def embed(self, items: Sequence[Embeddable]) -> List[Optional[Embedding]]:
        texts = _embeddable_texts(items)
        return await asyncio.to_thread(self._embed_texts, texts)

    def _embed_texts(self, texts: List[Optional[str]]) -> List[Optional[Embedding]]:
        results: List[Optional[Embedding]] = [None] * len(texts)
        pending = [(idx, text) for idx, text in enumerate(texts) if text is not None]

        for start in range(0, len(pending), self.batch_size):
            chunk = pending[start : start + self.batch_size]
            vectors = self._post([text for _, text in chunk])
            for offset, (idx, _) in enumerate(chunk):
                results[idx] = vectors.get(offset)

        logger.debug(
            "Embedded %d/%d item(s) via %s",
            sum(1 for r in results if r is not None), len(texts), self.endpoint,
        )
        return results

    def _post(self, texts: List[str]) -> Dict[int, Embedding]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = self._session.post(
                self.endpoint,
                headers=headers,
                json={"model": self.model, "input": texts},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise EmbeddingError(f"Embedding request to {self.endpoint} failed: {exc}") from exc
        except ValueError as exc:
            raise EmbeddingError(f"Embedding response is not valid JSON: {exc}") from exc

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise EmbeddingError("Embedding response has no 'data' list")

        vectors: Dict[int, Embedding] = {}
        for position, entry in enumerate(data):
            if not isinstance(entry, dict):
                continue
            embedding = entry.get("embedding")
            if not isinstance(embedding, list) or not embedding:
                continue
            try:
                vectors[int(entry.get("index", position))] = [float(v) for v in embedding]
            except (TypeError, ValueError) as exc:
                raise EmbeddingError(
                    f"Embedding response entry {position} is malformed: {exc}"
                ) from exc
        return vectors


# ===================================================================
# Factory
# ===================================================================

def get_embedder(
    model_key: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> Embedder:
    """Return the configured embedder.

    Resolution order:

    1. Explicit ``model_key`` argument.
    2. ``[embeddings].model`` from ``~/.contextrank/config.toml``.
    3. ``"hash"``.
    """
    model_key = (model_key or config.EMBEDDING_MODEL or DEFAULT_MODEL).lower().strip()

    if model_key not in EMBEDDING_MODELS:
        raise ValueError(
            f"Unknown embedding model: '{model_key}'. "
            f"Available: {', '.join(EMBEDDING_MODELS.keys())}"
        )

    if model_key == "hash":
        return HashEmbeddingModel()

    if not config.EMBEDDING_API_KEY:
        logger.warning("No API key configured for remote embeddings (%s)", config.EMBEDDING_ENDPOINT)
    return RemoteEmbeddingClient(
        endpoint=config.EMBEDDING_ENDPOINT,
        model=config.EMBEDDING_REMOTE_MODEL,
        api_key=config.EMBEDDING_API_KEY,
        batch_size=config.EMBEDDING_BATCH_SIZE,
        timeout=config.EMBEDDING_TIMEOUT,
        session=session,
    )


# ===================================================================
# Utility
# ===================================================================

def _l2_normalize(vec: List[float]) -> List[float]:
    """L2-normalise *vec*.  Returns zero vector unchanged."""
    norm = math.sqrt(sum(v * v for v in vec))
    if norm < 1e-12:
        return vec
    return [v / norm for v in vec]
