"""Configuration paths and defaults for contextrank."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("CONTEXTRANK_HOME", str(Path.home() / ".contextrank"))).expanduser()

# Outline sentinels
OUTLINE_MARKER = "⋮..."
OUTLINE_LINE_PREFIX = "│"

# Caps the number of ranked items handed to the downstream consumer.
DEFAULT_TOP_N = 20

from .config_manager import load_embedding_config, load_retrieval_config  # noqa: E402

_emb_config = load_embedding_config()
_retrieval_config = load_retrieval_config()

# Embedding backend, set via `contextrank config set-embedding`
EMBEDDING_MODEL: str = _emb_config["model"]
EMBEDDING_ENDPOINT: str = _emb_config["endpoint"]
EMBEDDING_REMOTE_MODEL: str = _emb_config["remote_model"]
EMBEDDING_API_KEY: str = os.environ.get("CONTEXTRANK_API_KEY", _emb_config["api_key"])
EMBEDDING_BATCH_SIZE: int = int(_emb_config["batch_size"])
EMBEDDING_TIMEOUT: float = float(_emb_config["timeout"])

TOP_N: int = int(_retrieval_config.get("top_n", DEFAULT_TOP_N))
