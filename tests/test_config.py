"""Tests for TOML configuration handling."""

from pathlib import Path

import pytest

from contextrank import config_manager


def test_defaults_without_file():
    """Missing config file means default settings."""
    assert config_manager.load_embedding_config()["model"] == "hash"
    assert config_manager.load_retrieval_config()["top_n"] == 20


def test_malformed_file_falls_back(_isolated_config_home: Path, caplog):
    """A broken config file is ignored with a warning."""
    _isolated_config_home.mkdir(parents=True)
    (_isolated_config_home / "config.toml").write_text("[embeddings\nmodel = ")

    with caplog.at_level("WARNING"):
        cfg = config_manager.load_embedding_config()

    assert cfg["model"] == "hash"
    assert "Ignoring unreadable config file" in caplog.text


def test_save_keeps_existing_values():
    """Empty arguments do not clobber previously saved settings."""
    config_manager.save_embedding_config("remote", api_key="secret", remote_model="m1")
    config_manager.save_embedding_config("remote", remote_model="m2")

    cfg = config_manager.load_embedding_config()
    assert cfg["api_key"] == "secret"
    assert cfg["remote_model"] == "m2"


def test_clear_embedding_config():
    config_manager.save_embedding_config("remote")
    config_manager.save_retrieval_config(3)

    assert config_manager.clear_embedding_config()
    assert config_manager.load_embedding_config()["model"] == "hash"
    assert config_manager.load_retrieval_config()["top_n"] == 3


def test_negative_top_n_rejected():
    with pytest.raises(ValueError):
        config_manager.save_retrieval_config(-1)
