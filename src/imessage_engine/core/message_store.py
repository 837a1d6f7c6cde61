"""
Read-only access to the macOS Messages database (chat.db).

Each query opens its own short-lived read-only connection, so the
engine never holds a lock on the live database Messages.app writes to.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

from .config import DEFAULT_DB_PATH
from .errors import AccessDenied, FULL_DISK_ACCESS_HELP, is_permission_error

logger = logging.getLogger(__name__)


class MessagesDatabase:
    """
    Executes read-only queries against chat.db.

    Usage:
        store = MessagesDatabase()
        rows = store.query("SELECT ROWID AS id FROM message LIMIT ?", (5,))
    """

    def __init__(self, db_path: Union[str, Path] = DEFAULT_DB_PATH):
        self.db_path = Path(db_path).expanduser()
        logger.info(f"Initialized MessagesDatabase with DB: {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(f"file:{self.db_path}?mode=ro", uri=True)
        conn.row_factory = sqlite3.Row
        return conn

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """
        Run a SELECT and return rows as dicts.

        Args:
            sql: Query text; caller data only ever arrives through params
            params: Bound parameters

        Returns:
            List of row dicts. Empty on any non-permission failure.

        Raises:
            AccessDenied: If the database is missing or blocked by macOS privacy controls
        """
        if not self.db_path.exists():
            raise AccessDenied(
                f"Cannot access Messages database at {self.db_path}",
                FULL_DISK_ACCESS_HELP,
            )

        try:
            conn = self._connect()
        except sqlite3.Error as e:
            if is_permission_error(e):
                raise AccessDenied(f"Cannot access Messages database: {e}") from e
            logger.error(f"Database error opening {self.db_path}: {e}")
            return []

        try:
            cursor = conn.execute(sql, tuple(params))
            return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            if is_permission_error(e):
                raise AccessDenied(f"Cannot access Messages database: {e}") from e
            logger.error(f"Database error: {e}")
            return []
        finally:
            conn.close()

    def check_access(self) -> Dict[str, Any]:
        """
        Probe whether chat.db can be read.

        Returns:
            dict: {"messages_db_accessible": bool, "path": str, "error": Optional[str]}
        """
        try:
            self.query("SELECT 1 AS ok")
            return {"messages_db_accessible": True, "path": str(self.db_path), "error": None}
        except AccessDenied as e:
            logger.warning(f"Messages database not accessible: {self.db_path}")
            return {"messages_db_accessible": False, "path": str(self.db_path), "error": str(e)}
