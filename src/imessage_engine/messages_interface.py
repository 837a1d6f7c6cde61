"""
Read and send operations over the macOS Messages database.

MessagesInterface is the entry point the rest of the engine (and any
tool layer built on top of it) calls into: it validates arguments,
composes queries with QueryBuilder, runs them against the read-only
store, decodes rows into typed entities and enriches them with contact
names.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .contacts_manager import (
    ContactCache,
    ContactResolver,
    MacContactsDirectory,
    validate_recipient,
)
from .core.config import EngineConfig
from .core.errors import NotFound, ValidationError
from .core.message_store import MessagesDatabase
from .core.models import (
    Attachment,
    Conversation,
    HandleSummary,
    Message,
    Reaction,
    ReadReceipt,
)
from .core.validation import (
    validate_limit,
    validate_message_body,
    validate_non_empty_string,
    validate_positive_int,
)
from .query_builder import (
    MESSAGE_GUID_SQL,
    READ_RECEIPT_SQL,
    SERVICE_SQL,
    MessageFilter,
    Query,
    QueryBuilder,
    attachments_query,
    conversations_query,
    handles_query,
    identifier_for_query,
    reactions_query,
)
from .transport import MessagingTransport

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_SIZE = 5
UNKNOWN_SERVICE = "unknown"


class MessagesInterface:
    """
    Query, enrich and send Messages data.

    Usage:
        interface = MessagesInterface()
        messages = interface.get_recent(limit=10, text="dinner")
        context = interface.get_context(messages[0].id, before=2, after=2)
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        store: Optional[MessagesDatabase] = None,
        resolver: Optional[ContactResolver] = None,
        transport: Optional[MessagingTransport] = None,
    ):
        self.config = config or EngineConfig.from_env()
        self.store = store or MessagesDatabase(self.config.db_path)
        self.resolver = resolver or ContactResolver(
            MacContactsDirectory(),
            ContactCache(max_size=self.config.contact_cache_size),
        )
        self.transport = transport or MessagingTransport(timeout=self.config.applescript_timeout)
        self.builder = QueryBuilder()

    # ------------------------------------------------------------------
    # Argument checks
    # ------------------------------------------------------------------

    def _limit(self, value: Any, default: int) -> int:
        limit, error = validate_limit(value, default=default, max_val=self.config.max_limit)
        if error:
            raise ValidationError(error)
        return limit

    def _message_id(self, value: Any) -> int:
        if value is None:
            raise ValidationError("Missing required parameter: message_id")
        message_id, error = validate_positive_int(
            value, "message_id", max_val=2**63 - 1
        )
        if error:
            raise ValidationError(error)
        return message_id

    def _window(self, value: Any, name: str) -> int:
        size, error = validate_positive_int(value, name, min_val=0, max_val=self.config.max_limit)
        if error:
            raise ValidationError(error)
        return DEFAULT_CONTEXT_SIZE if size is None else size

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def _run_messages(self, query: Query, enrich: bool = True) -> List[Message]:
        messages = [Message.from_row(row) for row in self.store.query(query.sql, query.params)]
        if enrich:
            self.resolver.enrich_with_names(messages)
        return messages

    def fetch_messages(self, filters: MessageFilter, enrich: bool = True) -> List[Message]:
        """Run an already-validated MessageFilter, newest first."""
        return self._run_messages(self.builder.messages(filters), enrich=enrich)

    def get_recent(
        self,
        limit: int = 20,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        contact: Optional[str] = None,
        chat: Optional[str] = None,
        text: Optional[str] = None,
    ) -> List[Message]:
        """
        Most recent messages across all conversations.

        Every filter is optional and narrows the result; they combine with AND.

        Raises:
            ValidationError: If limit is out of range
        """
        filters = MessageFilter(
            limit=self._limit(limit, 20),
            start=start,
            end=end,
            contact=contact,
            chat=chat,
            text=text,
        )
        return self.fetch_messages(filters)

    def get_chat(
        self,
        chat_id: str,
        limit: int = 50,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Message]:
        """Messages from one conversation, matched by chat identifier or handle."""
        chat_id, error = validate_non_empty_string(chat_id, "chat_id")
        if error:
            raise ValidationError(error)
        filters = MessageFilter(limit=self._limit(limit, 50), start=start, end=end, chat=chat_id)
        return self.fetch_messages(filters)

    def get_message(self, message_id: int) -> Message:
        """
        Raises:
            NotFound: If no message has that id
        """
        message_id = self._message_id(message_id)
        messages = self._run_messages(self.builder.message_by_id(message_id))
        if not messages:
            raise NotFound(f"Message {message_id} not found")
        return messages[0]

    def get_context(
        self,
        message_id: int,
        before: int = DEFAULT_CONTEXT_SIZE,
        after: int = DEFAULT_CONTEXT_SIZE,
    ) -> List[Message]:
        """
        A message with its surrounding conversation.

        Returns:
            [older messages oldest->newest, target, newer messages oldest->newest]

        Raises:
            NotFound: If the target message does not exist
        """
        before = self._window(before, "before")
        after = self._window(after, "after")
        target = self.get_message(message_id)

        if target.chat_id is None:
            logger.warning(f"Message {target.id} has no conversation; returning it alone")
            return [target]

        pivot_date = self.store.query(
            "SELECT date FROM message WHERE ROWID = ?", (target.id,)
        )
        raw_date = pivot_date[0]["date"] if pivot_date else 0
        older_q, newer_q = self.builder.context_queries(
            target.chat_id, raw_date or 0, target.id, before, after
        )

        older = self._run_messages(older_q) if before else []
        newer = self._run_messages(newer_q) if after else []
        older.reverse()
        return older + [target] + newer

    # ------------------------------------------------------------------
    # Conversations and handles
    # ------------------------------------------------------------------

    def get_conversations(self, limit: int = 50) -> List[Conversation]:
        """Conversations, most recently active first."""
        query = conversations_query(self._limit(limit, 50))
        return [Conversation.from_row(row) for row in self.store.query(query.sql, query.params)]

    def get_group_chats(self, limit: int = 50) -> List[Conversation]:
        """Only group conversations, with their participants."""
        query = conversations_query(self._limit(limit, 50), groups_only=True)
        return [Conversation.from_row(row) for row in self.store.query(query.sql, query.params)]

    def get_contacts(self, limit: int = 50) -> List[HandleSummary]:
        """Handles with message counts, enriched with contact names."""
        query = handles_query(self._limit(limit, 50))
        handles = [HandleSummary.from_row(row) for row in self.store.query(query.sql, query.params)]
        self.resolver.enrich_with_names(handles)
        return handles

    # ------------------------------------------------------------------
    # Attachments, reactions, receipts
    # ------------------------------------------------------------------

    def get_attachments(
        self,
        chat_id: Optional[str] = None,
        mime_type: Optional[str] = None,
        limit: int = 50,
    ) -> List[Attachment]:
        """Attachments, newest first. mime_type is a substring, e.g. "image"."""
        query = attachments_query(chat_id, mime_type, self._limit(limit, 50))
        return [Attachment.from_row(row) for row in self.store.query(query.sql, query.params)]

    def get_reactions(self, message_id: int) -> List[Reaction]:
        """
        Tapbacks targeting a message, oldest first. Removals are included.

        Raises:
            ValidationError: If message_id is missing
            NotFound: If the message does not exist
        """
        message_id = self._message_id(message_id)
        rows = self.store.query(MESSAGE_GUID_SQL, (message_id,))
        if not rows:
            raise NotFound(f"Message {message_id} not found")

        guid = rows[0].get("guid")
        if not guid:
            return []

        query = reactions_query(guid)
        return [Reaction.from_row(row) for row in self.store.query(query.sql, query.params)]

    def get_read_receipt(self, message_id: int) -> ReadReceipt:
        message_id = self._message_id(message_id)
        rows = self.store.query(READ_RECEIPT_SQL, (message_id,))
        if not rows:
            raise NotFound(f"Message {message_id} not found")
        return ReadReceipt.from_row(rows[0])

    def check_service(self, recipient: str) -> Dict[str, Any]:
        """
        Which service the recipient's most recent conversation used.

        Returns:
            dict: {"recipient", "identifier", "service": "iMessage" | "SMS" | "unknown"}
        """
        recipient, error = validate_non_empty_string(recipient, "recipient")
        if error:
            raise ValidationError(error)

        identifier = identifier_for_query(recipient)
        rows = self.store.query(SERVICE_SQL, (identifier,))
        service = rows[0].get("service_name") if rows else None
        return {
            "recipient": recipient,
            "identifier": identifier,
            "service": service or UNKNOWN_SERVICE,
        }

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send_message(self, recipient: str, body: str) -> Dict[str, Any]:
        """
        Validate, then send over iMessage with one SMS fallback.

        Returns:
            dict: {"success": True, "service": "iMessage" | "SMS"}

        Raises:
            ValidationError: If recipient or body is invalid
            TransportFailure: If both services fail
        """
        normalized, error = validate_recipient(recipient)
        if error:
            raise ValidationError(error)
        body, error = validate_message_body(body)
        if error:
            raise ValidationError(error)
        return self.transport.send(normalized, body)
