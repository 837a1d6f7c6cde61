"""
Unit tests for environment-driven configuration and logging setup.
"""

import logging
from pathlib import Path
from unittest.mock import patch

from imessage_engine.core.config import (
    DEFAULT_DB_PATH,
    DEFAULT_EMBEDDING_MODEL,
    EngineConfig,
    setup_logging,
)


class TestEngineConfig:

    def test_defaults(self, monkeypatch):
        for name in ("IMESSAGE_DB_PATH", "IMESSAGE_MAX_LIMIT", "OPENAI_API_KEY",
                     "IMESSAGE_EMBEDDING_MODEL", "IMESSAGE_CONTACT_CACHE_SIZE"):
            monkeypatch.delenv(name, raising=False)
        config = EngineConfig.from_env()
        assert config.db_path == DEFAULT_DB_PATH
        assert config.max_limit == 500
        assert config.contact_cache_size == 0
        assert config.embedding_model == DEFAULT_EMBEDDING_MODEL
        assert config.openai_api_key is None

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("IMESSAGE_DB_PATH", str(tmp_path / "chat.db"))
        monkeypatch.setenv("IMESSAGE_MAX_LIMIT", "2000")
        monkeypatch.setenv("IMESSAGE_CONTACT_CACHE_SIZE", "256")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        config = EngineConfig.from_env()
        assert config.db_path == tmp_path / "chat.db"
        assert config.max_limit == 2000
        assert config.contact_cache_size == 256
        assert config.openai_api_key == "sk-test"

    def test_bad_integer_falls_back(self, monkeypatch):
        monkeypatch.setenv("IMESSAGE_SEMANTIC_WINDOW", "lots")
        assert EngineConfig.from_env().semantic_window == 500

    def test_home_is_expanded(self, monkeypatch):
        monkeypatch.setenv("IMESSAGE_SCHEDULE_FILE", "~/sched.json")
        assert EngineConfig.from_env().schedule_file == Path.home() / "sched.json"


def test_setup_logging_configures_file_and_stream(tmp_path):
    with patch("logging.basicConfig") as basic_config:
        setup_logging(tmp_path / "logs", level=logging.DEBUG)

    kwargs = basic_config.call_args.kwargs
    assert kwargs["level"] == logging.DEBUG
    handler_types = [type(h) for h in kwargs["handlers"]]
    assert handler_types == [logging.FileHandler, logging.StreamHandler]
    assert kwargs["handlers"][0].baseFilename == str(tmp_path / "logs" / "engine.log")
    kwargs["handlers"][0].close()
