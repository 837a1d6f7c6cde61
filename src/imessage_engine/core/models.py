"""
Typed entities for the iMessage engine.

Rows coming back from the Messages database are loosely typed dicts;
the `from_row` constructors here are the only place that touches them.
Everything past the store boundary works with these dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from . import timestamps
from .attributed_body import extract_text

# Tapback codes stored in message.associated_message_type
TAPBACK_TYPES = {
    2000: "love",
    2001: "like",
    2002: "dislike",
    2003: "laugh",
    2004: "emphasis",
    2005: "question",
}
TAPBACK_REMOVAL_OFFSET = 1000


def is_group_chat_identifier(chat_identifier: Optional[str]) -> bool:
    """
    Check if a chat_identifier indicates a group chat.

    Group chat identifiers look like 'chat152668864985555509' or hold
    several comma-separated handles.
    """
    if not chat_identifier:
        return False
    if chat_identifier.startswith('chat') and chat_identifier[4:].isdigit():
        return True
    return ',' in chat_identifier


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_instant(raw: str) -> datetime:
    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _split_participants(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    seen: Dict[str, None] = {}
    for handle in raw.split('|'):
        handle = handle.strip()
        if handle:
            seen.setdefault(handle, None)
    return list(seen)


@dataclass
class Message:
    """One stored message row."""
    id: int
    text: Optional[str]
    date: Optional[datetime]
    is_from_me: bool
    is_read: bool = False
    is_delivered: bool = False
    has_attachments: bool = False
    sender: Optional[str] = None
    chat_id: Optional[int] = None
    chat_identifier: Optional[str] = None
    chat_name: Optional[str] = None
    service: Optional[str] = None
    contact_name: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Message":
        text = row.get("text") or extract_text(row.get("attributed_body"))
        return cls(
            id=int(row["id"]),
            text=text,
            date=timestamps.decode(row.get("date")),
            is_from_me=bool(row.get("is_from_me")),
            is_read=bool(row.get("is_read")),
            is_delivered=bool(row.get("is_delivered")),
            has_attachments=bool(row.get("has_attachments")),
            sender=row.get("sender"),
            chat_id=row.get("chat_id"),
            chat_identifier=row.get("chat_identifier"),
            chat_name=row.get("chat_name"),
            service=row.get("service"),
        )

    @property
    def is_group_chat(self) -> bool:
        return is_group_chat_identifier(self.chat_identifier)

    @property
    def identifier(self) -> Optional[str]:
        """The handle used for contact resolution."""
        return self.sender or self.chat_identifier

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the message to a JSON-friendly dict."""
        return {
            "id": self.id,
            "text": self.text,
            "timestamp": _iso(self.date) or timestamps.UNKNOWN,
            "is_from_me": self.is_from_me,
            "is_read": self.is_read,
            "is_delivered": self.is_delivered,
            "has_attachments": self.has_attachments,
            "contact": self.sender or "Unknown",
            "contact_name": self.contact_name,
            "chat_id": self.chat_id,
            "chat_identifier": self.chat_identifier,
            "chat_name": self.chat_name or self.sender or "Unknown",
            "is_group_chat": self.is_group_chat,
        }


@dataclass
class Conversation:
    """A chat thread, one-to-one or group."""
    id: int
    identifier: str
    display_name: Optional[str]
    service: Optional[str]
    message_count: int
    last_message: Optional[datetime]
    participants: List[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Conversation":
        return cls(
            id=int(row["id"]),
            identifier=row.get("chat_identifier") or "",
            display_name=row.get("display_name") or None,
            service=row.get("service_name"),
            message_count=int(row.get("message_count") or 0),
            last_message=timestamps.decode(row.get("last_message_date")),
            participants=_split_participants(row.get("participants")),
        )

    @property
    def is_group(self) -> bool:
        return is_group_chat_identifier(self.identifier) or len(self.participants) > 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "identifier": self.identifier,
            "display_name": self.display_name or self.identifier,
            "service": self.service,
            "message_count": self.message_count,
            "last_message": _iso(self.last_message) or timestamps.UNKNOWN,
            "participants": self.participants,
            "is_group": self.is_group,
        }


@dataclass
class Contact:
    """A resolved external identity."""
    identifier: str
    name: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.name is not None

    def to_dict(self) -> Dict[str, Any]:
        return {"identifier": self.identifier, "name": self.name, "found": self.found}


@dataclass
class HandleSummary:
    """A handle the user has exchanged messages with."""
    identifier: str
    service: Optional[str]
    message_count: int
    sent_count: int
    received_count: int
    last_message: Optional[datetime]
    contact_name: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "HandleSummary":
        return cls(
            identifier=row.get("identifier") or "",
            service=row.get("service"),
            message_count=int(row.get("message_count") or 0),
            sent_count=int(row.get("sent_count") or 0),
            received_count=int(row.get("received_count") or 0),
            last_message=timestamps.decode(row.get("last_message_date")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "name": self.contact_name,
            "service": self.service,
            "message_count": self.message_count,
            "sent_count": self.sent_count,
            "received_count": self.received_count,
            "last_message": _iso(self.last_message) or timestamps.UNKNOWN,
        }


@dataclass
class Attachment:
    id: int
    filename: Optional[str]
    mime_type: Optional[str]
    total_bytes: int
    is_outgoing: bool
    created: Optional[datetime]
    message_id: Optional[int] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Attachment":
        return cls(
            id=int(row["id"]),
            filename=row.get("filename"),
            mime_type=row.get("mime_type"),
            total_bytes=int(row.get("total_bytes") or 0),
            is_outgoing=bool(row.get("is_outgoing")),
            created=timestamps.decode(row.get("created_date")),
            message_id=row.get("message_id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "mime_type": self.mime_type,
            "file_size": self.total_bytes,
            "is_outgoing": self.is_outgoing,
            "created": _iso(self.created) or timestamps.UNKNOWN,
            "message_id": self.message_id,
        }


@dataclass
class Reaction:
    """A tapback row targeting another message."""
    code: int
    is_from_me: bool
    sender: Optional[str]
    date: Optional[datetime]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Reaction":
        return cls(
            code=int(row.get("type") or 0),
            is_from_me=bool(row.get("is_from_me")),
            sender=row.get("sender"),
            date=timestamps.decode(row.get("date")),
        )

    @property
    def removed(self) -> bool:
        return self.code - TAPBACK_REMOVAL_OFFSET in TAPBACK_TYPES

    @property
    def kind(self) -> str:
        code = self.code - TAPBACK_REMOVAL_OFFSET if self.removed else self.code
        return TAPBACK_TYPES.get(code, "unknown")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "code": self.code,
            "removed": self.removed,
            "is_from_me": self.is_from_me,
            "contact": self.sender,
            "timestamp": _iso(self.date) or timestamps.UNKNOWN,
        }


@dataclass
class ReadReceipt:
    message_id: int
    is_read: bool
    is_delivered: bool
    read_at: Optional[datetime]
    delivered_at: Optional[datetime]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ReadReceipt":
        return cls(
            message_id=int(row["id"]),
            is_read=bool(row.get("is_read")),
            is_delivered=bool(row.get("is_delivered")),
            read_at=timestamps.decode(row.get("date_read")),
            delivered_at=timestamps.decode(row.get("date_delivered")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message_id": self.message_id,
            "is_read": self.is_read,
            "is_delivered": self.is_delivered,
            "read_at": _iso(self.read_at),
            "delivered_at": _iso(self.delivered_at),
        }


@dataclass
class SearchResult:
    """A ranked message. score is None in lexical mode."""
    message: Message
    score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.message.to_dict()
        if self.score is not None:
            data["similarity"] = round(self.score, 4)
        return data


class SearchMethod(Enum):
    LEXICAL = "lexical"
    SEMANTIC = "semantic"


@dataclass
class SearchResponse:
    """Search results plus the method that actually ran."""
    method: SearchMethod
    query: str
    results: List[SearchResult]
    fallback_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method.value,
            "query": self.query,
            "fallback_reason": self.fallback_reason,
            "results": [r.to_dict() for r in self.results],
        }


class ScheduleStatus(Enum):
    """Status of a scheduled delivery. Everything but PENDING is terminal."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not ScheduleStatus.PENDING


@dataclass
class ScheduledDelivery:
    """A deferred send request, as persisted in the schedule log."""
    id: str
    recipient: str
    body: str
    scheduled_time: datetime
    created: datetime
    status: ScheduleStatus = ScheduleStatus.PENDING
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the on-disk record layout."""
        data = {
            "id": self.id,
            "recipient": self.recipient,
            "body": self.body,
            "scheduledTime": self.scheduled_time.isoformat(),
            "created": self.created.isoformat(),
            "status": self.status.value,
        }
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduledDelivery":
        """
        Rebuild an entry from its on-disk record.

        Raises:
            KeyError, ValueError, TypeError: if the record is malformed
        """
        return cls(
            id=str(data["id"]),
            recipient=str(data["recipient"]),
            body=str(data["body"]),
            scheduled_time=_parse_instant(data["scheduledTime"]),
            created=_parse_instant(data["created"]),
            status=ScheduleStatus(data["status"]),
            error=data.get("error"),
        )

    def is_due(self, now: datetime) -> bool:
        """Pending and scheduled at or before `now`."""
        return self.status is ScheduleStatus.PENDING and self.scheduled_time <= now
