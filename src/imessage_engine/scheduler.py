"""
Scheduled message delivery for the iMessage engine.

Supports scheduling messages to be sent at a future time with:
- ISO-8601 or natural language time parsing ("tomorrow at 9am", "in 2 hours")
- Status tracking (pending, sent, cancelled, failed)
- A sweep that sends everything due

The schedule is one JSON file holding every entry. Each mutation reads
the whole file, changes it in memory and atomically replaces it. All
mutations (sweeps included) run under one lock, so within a process
there is a single writer.
"""

import json
import logging
import os
import secrets
import string
import tempfile
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import dateparser

from .contacts_manager import validate_recipient
from .core.config import EngineConfig
from .core.errors import (
    InvalidState,
    NotFound,
    PersistenceError,
    ValidationError,
)
from .core.models import ScheduledDelivery, ScheduleStatus
from .core.validation import validate_message_body
from .transport import MessagingTransport

logger = logging.getLogger(__name__)

ID_PREFIX = "sched"
ID_SUFFIX_LENGTH = 6
_BASE36 = string.digits + string.ascii_lowercase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_utc(value: datetime) -> datetime:
    # Naive times are wall-clock local time
    if value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(timezone.utc)


def parse_time(time_str: str) -> Optional[datetime]:
    """
    Parse a time string into an aware UTC datetime.

    Supports:
    - ISO format: "2026-01-05T14:30:00", "2026-01-05T14:30:00Z"
    - Natural language: "tomorrow at 9am", "in 2 hours", "next monday 3pm"

    Returns:
        Parsed datetime, or None if unparseable
    """
    if not time_str or not time_str.strip():
        return None
    time_str = time_str.strip()

    try:
        return _to_utc(datetime.fromisoformat(time_str.replace("Z", "+00:00")))
    except ValueError:
        pass

    parsed = dateparser.parse(
        time_str,
        settings={
            'PREFER_DATES_FROM': 'future',
            'RETURN_AS_TIMEZONE_AWARE': True,
        }
    )
    if parsed is None:
        logger.debug(f"Could not parse schedule time: {time_str!r}")
        return None
    return _to_utc(parsed)


def generate_id(now: Optional[datetime] = None) -> str:
    """sched_<epoch-millis>_<random base36>. Unique in practice, not by construction."""
    millis = int(now.timestamp() * 1000) if now else int(time.time() * 1000)
    suffix = ''.join(secrets.choice(_BASE36) for _ in range(ID_SUFFIX_LENGTH))
    return f"{ID_PREFIX}_{millis}_{suffix}"


class ScheduleStore:
    """
    Manages scheduled deliveries persisted in a JSON file.

    Args:
        schedule_file: Path to the JSON log (default: config.schedule_file)
        transport: Object with send(recipient, body); raises on failure
            (default: MessagingTransport with config.applescript_timeout)
        clock: Returns the current aware datetime (default: UTC now)
        config: EngineConfig (default: EngineConfig.from_env())

    Usage:
        store = ScheduleStore()
        entry = store.schedule("+14155551234", "Happy birthday!", "tomorrow at 9am")
        store.sweep_due()
    """

    def __init__(
        self,
        schedule_file: Optional[Union[str, Path]] = None,
        transport: Optional[Any] = None,
        clock: Optional[Callable[[], datetime]] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.config = config or EngineConfig.from_env()
        self.schedule_file = Path(schedule_file or self.config.schedule_file).expanduser()
        self.transport = transport or MessagingTransport(timeout=self.config.applescript_timeout)
        self.clock = clock or _utcnow
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> List[ScheduledDelivery]:
        """Read the whole log. A missing or malformed file is an empty log."""
        if not self.schedule_file.exists():
            return []

        try:
            with open(self.schedule_file) as f:
                records = json.load(f)
            if not isinstance(records, list):
                raise ValueError(f"expected a list, got {type(records).__name__}")
            return [ScheduledDelivery.from_dict(record) for record in records]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Failed to load schedule log {self.schedule_file}: {e}. Starting fresh.")
            return []

    def _save(self, entries: List[ScheduledDelivery]) -> None:
        """
        Atomically replace the log with `entries`.

        Raises:
            PersistenceError: If the file could not be written
        """
        tmp_path = None
        try:
            self.schedule_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.schedule_file.parent,
                prefix=self.schedule_file.name,
                suffix=".tmp",
            )
            with os.fdopen(fd, "w") as f:
                json.dump([entry.to_dict() for entry in entries], f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.schedule_file)
            logger.debug(f"Saved {len(entries)} scheduled entries to {self.schedule_file}")
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            logger.error(f"Failed to save schedule log: {e}")
            raise PersistenceError(f"Could not write schedule log {self.schedule_file}: {e}") from e

    @staticmethod
    def _find(entries: List[ScheduledDelivery], entry_id: str) -> ScheduledDelivery:
        for entry in entries:
            if entry.id == entry_id:
                return entry
        raise NotFound(f"Scheduled message {entry_id} not found")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def schedule(
        self,
        recipient: str,
        body: str,
        when: Union[str, datetime],
    ) -> ScheduledDelivery:
        """
        Schedule a message for future delivery.

        Args:
            recipient: Phone number (10-15 digits) or email
            body: Message text
            when: Aware/naive datetime, ISO string or natural language

        Raises:
            ValidationError: Bad recipient, empty body, unparseable or non-future time
            PersistenceError: If the log could not be written
        """
        normalized, error = validate_recipient(recipient)
        if error:
            raise ValidationError(error)

        body, error = validate_message_body(body)
        if error:
            raise ValidationError(error)

        if isinstance(when, datetime):
            scheduled_time = _to_utc(when)
        elif isinstance(when, str):
            scheduled_time = parse_time(when)
            if scheduled_time is None:
                raise ValidationError(f"Could not parse time: {when!r}")
        else:
            raise ValidationError(
                f"Invalid when: must be a datetime or string, got {type(when).__name__}"
            )

        now = self.clock()
        if scheduled_time <= now:
            raise ValidationError(
                f"Scheduled time must be in the future, got {scheduled_time.isoformat()}"
            )

        entry = ScheduledDelivery(
            id=generate_id(now),
            recipient=normalized,
            body=body,
            scheduled_time=scheduled_time,
            created=now,
        )

        with self._lock:
            entries = self._load()
            entries.append(entry)
            self._save(entries)

        logger.info(f"Scheduled message {entry.id} to {normalized} at {scheduled_time.isoformat()}")
        return entry

    def cancel(self, entry_id: str) -> ScheduledDelivery:
        """
        Cancel a pending entry.

        Raises:
            NotFound: No entry has that id
            InvalidState: The entry is already sent, failed or cancelled
        """
        with self._lock:
            entries = self._load()
            entry = self._find(entries, entry_id)
            if entry.status is not ScheduleStatus.PENDING:
                raise InvalidState(
                    f"Cannot cancel {entry_id}: status is {entry.status.value}"
                )
            entry.status = ScheduleStatus.CANCELLED
            self._save(entries)

        logger.info(f"Cancelled scheduled message {entry_id}")
        return entry

    def get(self, entry_id: str) -> ScheduledDelivery:
        with self._lock:
            return self._find(self._load(), entry_id)

    def list(self, status: Optional[ScheduleStatus] = None) -> List[ScheduledDelivery]:
        """All entries in storage order, optionally only those with `status`."""
        with self._lock:
            entries = self._load()
        if status is None:
            return entries
        status = ScheduleStatus(status)
        return [entry for entry in entries if entry.status is status]

    def sweep_due(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Send every pending entry scheduled at or before `now`.

        The log is committed after each send, so a crash can re-send at
        most the one entry whose result was not yet written. Any exception
        from the transport marks that entry failed; the sweep carries on.

        Returns:
            dict: {"sent": int, "failed": int, "results": [{"id", "status", "error"}]}
        """
        now = _to_utc(now) if now is not None else self.clock()
        results = []

        with self._lock:
            entries = self._load()
            for entry in entries:
                if not entry.is_due(now):
                    continue

                try:
                    self.transport.send(entry.recipient, entry.body)
                    entry.status = ScheduleStatus.SENT
                    entry.error = None
                    logger.info(f"Sent scheduled message {entry.id}")
                except Exception as e:
                    entry.status = ScheduleStatus.FAILED
                    entry.error = str(e) or type(e).__name__
                    logger.error(f"Scheduled message {entry.id} failed: {e}")

                self._save(entries)
                results.append({"id": entry.id, "status": entry.status.value, "error": entry.error})

        sent = sum(1 for r in results if r["status"] == ScheduleStatus.SENT.value)
        return {"sent": sent, "failed": len(results) - sent, "results": results}
