"""
Shared fixtures: a real (temporary) Messages database and stub collaborators.
"""

import sqlite3
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from imessage_engine.contacts_manager import ContactCache, ContactResolver
from imessage_engine.core import timestamps
from imessage_engine.core.config import EngineConfig
from imessage_engine.messages_interface import MessagesInterface

T0 = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)

SCHEMA = """
CREATE TABLE handle (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL,
    service TEXT
);
CREATE TABLE chat (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    guid TEXT,
    chat_identifier TEXT,
    display_name TEXT,
    service_name TEXT
);
CREATE TABLE message (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    guid TEXT,
    text TEXT,
    attributedBody BLOB,
    handle_id INTEGER DEFAULT 0,
    service TEXT,
    date INTEGER DEFAULT 0,
    date_read INTEGER DEFAULT 0,
    date_delivered INTEGER DEFAULT 0,
    is_from_me INTEGER DEFAULT 0,
    is_read INTEGER DEFAULT 0,
    is_delivered INTEGER DEFAULT 0,
    cache_has_attachments INTEGER DEFAULT 0,
    associated_message_guid TEXT,
    associated_message_type INTEGER DEFAULT 0
);
CREATE TABLE chat_message_join (chat_id INTEGER, message_id INTEGER, message_date INTEGER DEFAULT 0);
CREATE TABLE chat_handle_join (chat_id INTEGER, handle_id INTEGER);
CREATE TABLE attachment (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    guid TEXT,
    filename TEXT,
    mime_type TEXT,
    total_bytes INTEGER DEFAULT 0,
    is_outgoing INTEGER DEFAULT 0,
    created_date INTEGER DEFAULT 0
);
CREATE TABLE message_attachment_join (message_id INTEGER, attachment_id INTEGER);
"""

# typedstream-encoded attributedBody whose NSString payload is "Recovered text"
STREAMTYPED_BODY = (
    b"\x04\x0bstreamtyped\x81\xe8\x03\x84\x01@\x84\x84\x84\x12NSAttributedString\x00"
    b"\x84\x84\x08NSObject\x00\x85\x92\x84\x84\x84\x08NSString\x01\x94\x84\x01+"
    b"\x0eRecovered text\x86\x84\x02iI\x01\x0e\x92\x84\x84\x84\x0cNSDictionary\x00"
)

# (rowid, chat, handle, minutes after T0, text, extra columns)
MESSAGES = [
    (1, 1, 1, 0, "Hey, are we still on for dinner?", {}),
    (2, 1, 1, 1, "Yes! 7pm at the usual place", {
        "is_from_me": 1, "is_delivered": 1, "is_read": 1,
        "date_delivered": T0 + timedelta(minutes=1, seconds=5),
        "date_read": T0 + timedelta(minutes=2),
    }),
    (3, 1, 1, 2, "Great, see you then", {}),
    (4, 1, 1, 3, "Running 10% late", {}),
    (5, 1, 1, 4, "ok", {}),
    (6, 1, 1, 4, "See you soon", {}),
    (7, 2, 2, 10, "Family dinner on Sunday", {"cache_has_attachments": 1}),
    (8, 2, 3, 11, "I'll bring dessert_pie", {}),
    (9, 3, 3, 20, "Your code is 123456", {"service": "SMS", "cache_has_attachments": 1}),
    (10, 1, 1, 30, "Liked “Yes! 7pm at the usual place”", {
        "associated_message_type": 2001, "associated_message_guid": "p:0/MSG-GUID-2",
    }),
    (11, 1, 1, 31, "Removed a like", {
        "associated_message_type": 3001, "associated_message_guid": "p:0/MSG-GUID-2",
    }),
    (12, 1, 1, 40, None, {"attributedBody": STREAMTYPED_BODY}),
]


def build_chat_db(path):
    conn = sqlite3.connect(path)
    conn.executescript(SCHEMA)

    conn.executemany(
        "INSERT INTO handle (ROWID, id, service) VALUES (?, ?, ?)",
        [(1, "+14155551234", "iMessage"), (2, "jane@example.com", "iMessage"),
         (3, "+14155559999", "SMS")],
    )
    conn.executemany(
        "INSERT INTO chat (ROWID, guid, chat_identifier, display_name, service_name) VALUES (?, ?, ?, ?, ?)",
        [(1, "iMessage;-;+14155551234", "+14155551234", None, "iMessage"),
         (2, "iMessage;+;chat123456789", "chat123456789", "Family", "iMessage"),
         (3, "SMS;-;+14155559999", "+14155559999", None, "SMS")],
    )
    # handle 2 joined twice to the group on purpose
    conn.executemany(
        "INSERT INTO chat_handle_join (chat_id, handle_id) VALUES (?, ?)",
        [(1, 1), (2, 1), (2, 2), (2, 3), (2, 2), (3, 3)],
    )

    for rowid, chat_id, handle_id, minutes, text, extra in MESSAGES:
        columns = {
            "ROWID": rowid,
            "guid": f"MSG-GUID-{rowid}",
            "text": text,
            "handle_id": handle_id,
            "service": "iMessage",
            "date": timestamps.encode(T0 + timedelta(minutes=minutes)),
        }
        for key, value in extra.items():
            columns[key] = timestamps.encode(value) if isinstance(value, datetime) else value
        names = ", ".join(columns)
        marks = ", ".join("?" for _ in columns)
        conn.execute(f"INSERT INTO message ({names}) VALUES ({marks})", tuple(columns.values()))
        conn.execute(
            "INSERT INTO chat_message_join (chat_id, message_id, message_date) VALUES (?, ?, ?)",
            (chat_id, rowid, columns["date"]),
        )

    conn.executemany(
        "INSERT INTO attachment (ROWID, guid, filename, mime_type, total_bytes, is_outgoing, created_date) "
        "VALUES (?, ?, ?, ?, ?, ?, ?)",
        [(1, "ATT-1", "~/Library/Messages/Attachments/IMG_0001.jpeg", "image/jpeg", 2048, 0,
          timestamps.encode(T0 + timedelta(minutes=10))),
         (2, "ATT-2", "~/Library/Messages/Attachments/statement.pdf", "application/pdf", 4096, 0,
          timestamps.encode(T0 + timedelta(minutes=20)))],
    )
    conn.executemany(
        "INSERT INTO message_attachment_join (message_id, attachment_id) VALUES (?, ?)",
        [(7, 1), (9, 2)],
    )
    conn.commit()
    conn.close()
    return path


class StubDirectory:
    """Directory collaborator with a fixed address book that counts lookups."""

    def __init__(self, names=None, fail_on=()):
        self.names = names if names is not None else {
            "+14155551234": "John Doe",
            "jane@example.com": "Jane Smith",
        }
        self.fail_on = set(fail_on)
        self.calls = []

    def lookup(self, identifier, by_email=False):
        self.calls.append(identifier)
        if identifier in self.fail_on:
            raise RuntimeError("Contacts got an error: not authorized")
        return self.names.get(identifier)


@pytest.fixture
def chat_db(tmp_path):
    return build_chat_db(tmp_path / "chat.db")


@pytest.fixture
def directory():
    return StubDirectory()


@pytest.fixture
def config(chat_db, tmp_path):
    return EngineConfig(db_path=chat_db, schedule_file=tmp_path / "scheduled.json")


@pytest.fixture
def interface(config, directory):
    return MessagesInterface(
        config=config,
        resolver=ContactResolver(directory, ContactCache()),
        transport=MagicMock(),
    )
