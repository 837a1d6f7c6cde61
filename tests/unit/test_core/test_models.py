"""
Unit tests for entity decoding and attributedBody recovery.
"""

import plistlib
from datetime import datetime, timedelta, timezone

import pytest

from imessage_engine.core import timestamps
from imessage_engine.core.attributed_body import extract_text
from imessage_engine.core.models import (
    Conversation,
    Message,
    Reaction,
    ScheduledDelivery,
    ScheduleStatus,
    is_group_chat_identifier,
)

from conftest import STREAMTYPED_BODY


class TestAttributedBody:

    def test_typedstream(self):
        assert extract_text(STREAMTYPED_BODY) == "Recovered text"

    def test_keyed_archive(self):
        blob = plistlib.dumps(
            {"$objects": ["$null", {"NS.string": "From the archive"}]},
            fmt=plistlib.FMT_BINARY,
        )
        assert extract_text(blob) == "From the archive"

    @pytest.mark.parametrize("blob", [None, b""])
    def test_empty(self, blob):
        assert extract_text(blob) is None


@pytest.mark.parametrize("identifier,expected", [
    ("chat152668864985555509", True),
    ("+14155551234,+14155559999", True),
    ("+14155551234", False),
    ("chatty@example.com", False),
    (None, False),
])
def test_is_group_chat_identifier(identifier, expected):
    assert is_group_chat_identifier(identifier) is expected


class TestMessage:

    def test_text_falls_back_to_attributed_body(self):
        message = Message.from_row({
            "id": 12, "text": None, "attributed_body": STREAMTYPED_BODY,
            "date": 0, "is_from_me": 0,
        })
        assert message.text == "Recovered text"
        assert message.date is None
        assert message.to_dict()["timestamp"] == timestamps.UNKNOWN

    def test_identifier_prefers_sender(self):
        message = Message(id=1, text="hi", date=None, is_from_me=False,
                          sender="+14155551234", chat_identifier="chat1")
        assert message.identifier == "+14155551234"


class TestConversation:

    def test_participants_are_deduplicated(self):
        conversation = Conversation.from_row({
            "id": 2, "chat_identifier": "chat123", "display_name": "Family",
            "service_name": "iMessage", "message_count": 3, "last_message_date": 0,
            "participants": "a@example.com|+14155551234|a@example.com",
        })
        assert conversation.participants == ["a@example.com", "+14155551234"]
        assert conversation.is_group


class TestReaction:

    def test_codes(self):
        love = Reaction(code=2000, is_from_me=False, sender=None, date=None)
        removed_laugh = Reaction(code=3003, is_from_me=True, sender=None, date=None)
        assert (love.kind, love.removed) == ("love", False)
        assert (removed_laugh.kind, removed_laugh.removed) == ("laugh", True)


class TestScheduledDelivery:

    def test_on_disk_layout(self):
        created = datetime(2026, 1, 1, tzinfo=timezone.utc)
        entry = ScheduledDelivery(
            id="sched_1_abc", recipient="+14155551234", body="hi",
            scheduled_time=created + timedelta(hours=1), created=created,
        )
        data = entry.to_dict()
        assert set(data) == {"id", "recipient", "body", "scheduledTime", "created", "status"}
        assert data["status"] == "pending"

    def test_from_dict_accepts_z_suffix(self):
        entry = ScheduledDelivery.from_dict({
            "id": "sched_1_abc", "recipient": "+14155551234", "body": "hi",
            "scheduledTime": "2026-01-01T10:00:00Z", "created": "2026-01-01T09:00:00",
            "status": "failed", "error": "boom",
        })
        assert entry.scheduled_time.tzinfo is not None
        assert entry.created.tzinfo is not None
        assert entry.status is ScheduleStatus.FAILED
        assert entry.error == "boom"

    def test_terminal_states(self):
        assert not ScheduleStatus.PENDING.is_terminal
        assert all(s.is_terminal for s in
                   (ScheduleStatus.SENT, ScheduleStatus.FAILED, ScheduleStatus.CANCELLED))
