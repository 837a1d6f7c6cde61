"""
Configuration for the iMessage engine.

Settings come from environment variables so the engine behaves the same
no matter which working directory the host process was started from.
All paths are expanded (~) and resolved to absolute paths.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / "Library" / "Messages" / "chat.db"
DEFAULT_DATA_DIR = Path.home() / ".imessage_engine"
DEFAULT_SCHEDULE_FILE = DEFAULT_DATA_DIR / "scheduled_messages.json"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if not raw:
        return default
    return Path(raw).expanduser()


@dataclass
class EngineConfig:
    """Runtime settings shared by the engine components."""
    db_path: Path = DEFAULT_DB_PATH
    schedule_file: Path = DEFAULT_SCHEDULE_FILE
    max_limit: int = 500
    contact_cache_size: int = 0  # 0 = unbounded
    semantic_window: int = 500
    semantic_min_chars: int = 10
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embed_workers: int = 8
    applescript_timeout: int = 10
    openai_api_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """
        Build a config from environment variables.

        IMESSAGE_MAX_LIMIT can be raised for full-history analysis;
        OPENAI_API_KEY enables semantic search.
        """
        return cls(
            db_path=_env_path("IMESSAGE_DB_PATH", DEFAULT_DB_PATH),
            schedule_file=_env_path("IMESSAGE_SCHEDULE_FILE", DEFAULT_SCHEDULE_FILE),
            max_limit=_env_int("IMESSAGE_MAX_LIMIT", 500),
            contact_cache_size=_env_int("IMESSAGE_CONTACT_CACHE_SIZE", 0),
            semantic_window=_env_int("IMESSAGE_SEMANTIC_WINDOW", 500),
            semantic_min_chars=_env_int("IMESSAGE_SEMANTIC_MIN_CHARS", 10),
            embedding_model=os.getenv("IMESSAGE_EMBEDDING_MODEL") or DEFAULT_EMBEDDING_MODEL,
            embed_workers=_env_int("IMESSAGE_EMBED_WORKERS", 8),
            applescript_timeout=_env_int("IMESSAGE_APPLESCRIPT_TIMEOUT", 10),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        )


def setup_logging(log_dir: Optional[Path] = None, level: int = logging.INFO) -> None:
    """
    Configure root logging with a file handler and a stream handler.

    Args:
        log_dir: Directory for engine.log (default: ~/.imessage_engine/logs)
        level: Root log level
    """
    log_dir = Path(log_dir) if log_dir else DEFAULT_DATA_DIR / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_dir / 'engine.log'),
            logging.StreamHandler()
        ]
    )
