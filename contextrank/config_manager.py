"""Configuration manager for contextrank using TOML files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import toml

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.toml"

DEFAULT_EMBEDDING_CONFIG: Dict[str, Any] = {
    "model": "hash",
    "endpoint": "https://api.openai.com/v1/embeddings",
    "remote_model": "text-embedding-3-small",
    "api_key": "",
    "batch_size": 64,
    "timeout": 30,
}

DEFAULT_RETRIEVAL_CONFIG: Dict[str, Any] = {
    "top_n": 20,
}


def _config_file(base_dir: Optional[Path] = None) -> Path:
    # Resolved lazily so tests can repoint CONTEXTRANK_HOME.
    from . import config

    return (base_dir or config.BASE_DIR) / CONFIG_FILENAME


def load_full_config(base_dir: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    path = _config_file(base_dir)
    if not path.exists():
        return {}
    try:
        with open(path, "r") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}


def _save_full_config(config: Dict[str, Any], base_dir: Optional[Path] = None) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    path = _config_file(base_dir)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            toml.dump(config, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config file %s: %s", path, exc)
        return False


def load_embedding_config(base_dir: Optional[Path] = None) -> Dict[str, Any]:
    """Load the ``[embeddings]`` section merged over the defaults."""
    section = load_full_config(base_dir).get("embeddings", {})
    return {**DEFAULT_EMBEDDING_CONFIG, **section}


def load_retrieval_config(base_dir: Optional[Path] = None) -> Dict[str, Any]:
    """Load the ``[retrieval]`` section merged over the defaults."""
    section = load_full_config(base_dir).get("retrieval", {})
    return {**DEFAULT_RETRIEVAL_CONFIG, **section}


def save_embedding_config(
    model_key: str,
    endpoint: str = "",
    remote_model: str = "",
    api_key: str = "",
    base_dir: Optional[Path] = None,
) -> bool:
    """Save embedding settings to config TOML.

    Preserves ``[retrieval]`` and other sections. Empty arguments keep
    whatever value the file already had.

    Args:
        model_key: ``"hash"`` or ``"remote"``.
        endpoint: URL of an OpenAI-compatible ``/embeddings`` endpoint.
        remote_model: Model name sent with each remote request.
        api_key: Bearer token for the remote endpoint.

    Returns:
        True if saved successfully.
    """
    config = load_full_config(base_dir)
    section = dict(config.get("embeddings", {}))
    section["model"] = model_key
    if endpoint:
        section["endpoint"] = endpoint
    if remote_model:
        section["remote_model"] = remote_model
    if api_key:
        section["api_key"] = api_key
    config["embeddings"] = section
    return _save_full_config(config, base_dir)


def save_retrieval_config(top_n: int, base_dir: Optional[Path] = None) -> bool:
    """Save the ranking bound to the ``[retrieval]`` section."""
    if top_n < 0:
        raise ValueError(f"top_n must be >= 0, got {top_n}")
    config = load_full_config(base_dir)
    config["retrieval"] = {**config.get("retrieval", {}), "top_n": top_n}
    return _save_full_config(config, base_dir)


def clear_embedding_config(base_dir: Optional[Path] = None) -> bool:
    """Remove ``[embeddings]`` section from config, resetting to default."""
    config = load_full_config(base_dir)
    config.pop("embeddings", None)
    return _save_full_config(config, base_dir)
