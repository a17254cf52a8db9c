"""Tests for embedding clients."""

import asyncio

import pytest
import requests

from contextrank.embeddings import (
    EmbeddingError,
    HashEmbeddingModel,
    RemoteEmbeddingClient,
    format_embedding_input,
    get_embedder,
)
from contextrank.models import ContextItem, Query


class _FakeResponse:
    def __init__(self, payload=None, status_code=200, bad_json=False):
        self.payload = payload
        self.status_code = status_code
        self.bad_json = bad_json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self.bad_json:
            raise ValueError("Expecting value")
        return self.payload


class _FakeSession:
    """Records posted bodies and answers with one vector per input."""

    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.posts = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.posts.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        if self.responses:
            return self.responses.pop(0)
        data = [
            {"index": i, "embedding": [float(len(text)), 1.0]}
            for i, text in reversed(list(enumerate(json["input"])))
        ]
        return _FakeResponse({"data": data})


def _item(content: str, name: str = "a.py") -> ContextItem:
    return ContextItem(content=content, filename=name, filetype="python")


class TestFormatting:
    """Tests for the text sent to the backend."""

    def test_context_item_format(self):
        """Items carry their filename and a fenced block of content."""
        text = format_embedding_input(_item("def f(): pass"))

        assert "`a.py`" in text
        assert "```python\ndef f(): pass\n```" in text

    def test_query_with_selection(self):
        """Queries include the selection only when present."""
        bare = Query(prompt="explain", filename="a.py", filetype="python")
        selected = Query(prompt="explain", filename="a.py", filetype="python", content="x = 1")

        assert format_embedding_input(bare) == "explain"
        assert "x = 1" in format_embedding_input(selected)


class TestHashEmbeddingModel:
    """Tests for the local hash embedder."""

    def test_deterministic(self):
        """The same text always embeds to the same vector."""
        model = HashEmbeddingModel()
        assert model.embed_text("find foo") == model.embed_text("find foo")

    def test_batch_order_and_empty_items(self):
        """Empty items come back as None in their original position."""
        model = HashEmbeddingModel(dim=32)

        out = asyncio.run(model.embed([_item("def foo"), _item("   "), _item("class Bar")]))

        assert len(out) == 3
        assert out[1] is None
        assert len(out[0]) == 32 and len(out[2]) == 32

    def test_query_without_text(self):
        """A query with an empty prompt and no selection cannot be embedded."""
        out = asyncio.run(HashEmbeddingModel().embed([Query(prompt="", filename="a", filetype="")]))
        assert out == [None]


class TestRemoteEmbeddingClient:
    """Tests for the HTTP embedding client."""

    def test_order_follows_index_field(self):
        """Vectors are placed by the response's index, not list position."""
        session = _FakeSession()
        client = RemoteEmbeddingClient("http://emb/v1/embeddings", "m", api_key="k", session=session)

        out = asyncio.run(client.embed([_item("a"), _item("bbbb")]))

        assert out[0][0] < out[1][0]
        assert session.posts[0]["json"]["model"] == "m"
        assert session.posts[0]["headers"]["Authorization"] == "Bearer k"

    def test_empty_items_not_sent(self):
        """Items with no content are skipped and returned as None."""
        session = _FakeSession()
        client = RemoteEmbeddingClient("http://emb", "m", session=session)

        out = asyncio.run(client.embed([_item(""), _item("x")]))

        assert out[0] is None and out[1] is not None
        assert len(session.posts[0]["json"]["input"]) == 1
        assert "Authorization" not in session.posts[0]["headers"]

    def test_chunks_by_batch_size(self):
        """Large batches are split into sequential requests."""
        session = _FakeSession()
        client = RemoteEmbeddingClient("http://emb", "m", batch_size=2, session=session)

        out = asyncio.run(client.embed([_item(str(i)) for i in range(5)]))

        assert len(session.posts) == 3
        assert all(vec is not None for vec in out)

    def test_missing_entries_are_none(self):
        """Entries the backend leaves out become None."""
        response = _FakeResponse({"data": [{"index": 1, "embedding": [1.0, 0.0]}]})
        client = RemoteEmbeddingClient("http://emb", "m", session=_FakeSession([response]))

        out = asyncio.run(client.embed([_item("a"), _item("b")]))

        assert out == [None, [1.0, 0.0]]

    @pytest.mark.parametrize("session", [
        _FakeSession(error=requests.ConnectionError("refused")),
        _FakeSession([_FakeResponse(status_code=500)]),
        _FakeSession([_FakeResponse(bad_json=True)]),
        _FakeSession([_FakeResponse({"error": "nope"})]),
    ])
    def test_transport_failures_raise(self, session):
        """Any transport or protocol problem fails the whole batch."""
        client = RemoteEmbeddingClient("http://emb", "m", session=session)

        with pytest.raises(EmbeddingError):
            asyncio.run(client.embed([_item("a")]))

    @pytest.mark.parametrize("entry", [
        {"index": "zero", "embedding": [1.0]},
        {"index": 0, "embedding": ["x", 1.0]},
        {"index": 0, "embedding": [None, 1.0]},
    ])
    def test_malformed_entry_raises(self, entry):
        """A non-numeric index or component is a protocol error, not a crash."""
        session = _FakeSession([_FakeResponse({"data": [entry]})])
        client = RemoteEmbeddingClient("http://emb", "m", session=session)

        with pytest.raises(EmbeddingError, match="entry 0 is malformed"):
            asyncio.run(client.embed([_item("a")]))

    def test_invalid_batch_size(self):
        """batch_size must be positive."""
        with pytest.raises(ValueError):
            RemoteEmbeddingClient("http://emb", "m", batch_size=0)


class TestGetEmbedder:
    """Tests for embedder selection."""

    def test_default_is_hash(self, monkeypatch):
        monkeypatch.setattr("contextrank.config.EMBEDDING_MODEL", "hash")
        assert isinstance(get_embedder(), HashEmbeddingModel)

    def test_remote_uses_config(self, monkeypatch):
        monkeypatch.setattr("contextrank.config.EMBEDDING_ENDPOINT", "http://local/embeddings")
        monkeypatch.setattr("contextrank.config.EMBEDDING_BATCH_SIZE", 8)

        embedder = get_embedder("remote")

        assert isinstance(embedder, RemoteEmbeddingClient)
        assert embedder.endpoint == "http://local/embeddings"
        assert embedder.batch_size == 8

    def test_unknown_model(self):
        with pytest.raises(ValueError):
            get_embedder("word2vec")
