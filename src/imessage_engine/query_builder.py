"""
Composable message queries over chat.db.

Filters become a list of Predicate objects, each carrying its own SQL
fragment and bound parameters. Predicates are AND-ed together; caller
strings only ever reach SQLite as parameters, and LIKE patterns are
escaped so '%' and '_' in user input match literally.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Tuple

from .core import timestamps
from .core.validation import is_email
from .contacts_manager import looks_like_phone, normalize_phone

logger = logging.getLogger(__name__)

LIKE_ESCAPE = "\\"

MESSAGE_COLUMNS = """
    SELECT
        m.ROWID AS id,
        m.text AS text,
        m.attributedBody AS attributed_body,
        m.date AS date,
        m.is_from_me AS is_from_me,
        m.is_read AS is_read,
        m.is_delivered AS is_delivered,
        m.cache_has_attachments AS has_attachments,
        m.service AS service,
        h.id AS sender,
        c.ROWID AS chat_id,
        c.chat_identifier AS chat_identifier,
        c.display_name AS chat_name
    FROM message m
    LEFT JOIN handle h ON m.handle_id = h.ROWID
    LEFT JOIN chat_message_join cmj ON m.ROWID = cmj.message_id
    LEFT JOIN chat c ON cmj.chat_id = c.ROWID
"""

# Tapbacks are rows too; regular reads skip them
NOT_A_REACTION = "COALESCE(m.associated_message_type, 0) = 0"
HAS_CONTENT = "((m.text IS NOT NULL AND m.text != '') OR m.attributedBody IS NOT NULL)"


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so the value matches literally."""
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def contains_pattern(value: str) -> str:
    return f"%{escape_like(value)}%"


def identifier_for_query(identifier: str) -> str:
    """
    Prepare a handle or chat identifier for matching.

    Emails are used verbatim, phone-shaped strings are normalized, and
    anything else (e.g. 'chat1234' group keys) passes through stripped.
    """
    identifier = identifier.strip()
    if is_email(identifier):
        return identifier
    if looks_like_phone(identifier):
        return normalize_phone(identifier)
    return identifier


@dataclass(frozen=True)
class Predicate:
    sql: str
    params: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class Query:
    sql: str
    params: Tuple[Any, ...] = ()


@dataclass
class MessageFilter:
    """Independently optional filters for a message query."""
    limit: int = 20
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    text: Optional[str] = None
    contact: Optional[str] = None
    chat: Optional[str] = None
    chat_rowid: Optional[int] = None
    min_text_length: Optional[int] = None


def date_predicates(start: Optional[datetime], end: Optional[datetime]) -> List[Predicate]:
    predicates = []
    if start is not None:
        predicates.append(Predicate("m.date >= ?", (timestamps.encode(start),)))
    if end is not None:
        predicates.append(Predicate("m.date <= ?", (timestamps.encode(end),)))
    return predicates


def filter_predicates(filters: MessageFilter) -> List[Predicate]:
    """One predicate per present field, none for absent ones."""
    predicates = date_predicates(filters.start, filters.end)

    if filters.text:
        predicates.append(Predicate(
            "m.text LIKE ? ESCAPE '\\'",
            (contains_pattern(filters.text),),
        ))

    if filters.contact:
        predicates.append(Predicate(
            "h.id LIKE ? ESCAPE '\\'",
            (contains_pattern(identifier_for_query(filters.contact)),),
        ))

    if filters.chat:
        pattern = contains_pattern(identifier_for_query(filters.chat))
        predicates.append(Predicate(
            "(c.chat_identifier LIKE ? ESCAPE '\\' OR h.id LIKE ? ESCAPE '\\')",
            (pattern, pattern),
        ))

    if filters.chat_rowid is not None:
        predicates.append(Predicate("c.ROWID = ?", (int(filters.chat_rowid),)))

    if filters.min_text_length:
        predicates.append(Predicate("length(m.text) >= ?", (int(filters.min_text_length),)))

    return predicates


def compose(
    base_sql: str,
    predicates: List[Predicate],
    order_by: str,
    limit: Optional[int],
) -> Query:
    """AND the predicates onto base_sql and append ordering and LIMIT."""
    sql = base_sql
    params: List[Any] = []

    if predicates:
        sql += "\n    WHERE " + "\n      AND ".join(p.sql for p in predicates)
        for predicate in predicates:
            params.extend(predicate.params)

    sql += f"\n    ORDER BY {order_by}"
    if limit is not None:
        sql += "\n    LIMIT ?"
        params.append(int(limit))

    return Query(sql, tuple(params))


class QueryBuilder:
    """
    Builds message retrieval queries.

    Example:
        builder = QueryBuilder()
        query = builder.messages(MessageFilter(limit=10, text="dinner"))
        rows = store.query(query.sql, query.params)
    """

    def base_predicates(self) -> List[Predicate]:
        return [Predicate(NOT_A_REACTION), Predicate(HAS_CONTENT)]

    def messages(self, filters: MessageFilter) -> Query:
        """Newest-first messages matching every present filter."""
        predicates = self.base_predicates() + filter_predicates(filters)
        return compose(MESSAGE_COLUMNS, predicates, "m.date DESC, m.ROWID DESC", filters.limit)

    def message_by_id(self, message_id: int) -> Query:
        return compose(
            MESSAGE_COLUMNS,
            [Predicate("m.ROWID = ?", (int(message_id),))],
            "m.ROWID",
            1,
        )

    def context_queries(
        self,
        chat_rowid: int,
        pivot_date: int,
        pivot_id: int,
        before: int,
        after: int,
    ) -> Tuple[Query, Query]:
        """
        Two queries split around a pivot message in one conversation.

        Ordering is by (date, ROWID) so messages sharing the pivot's
        timestamp still land on a definite side. The "before" query runs
        newest-first so its LIMIT keeps the closest messages; callers
        reverse it.
        """
        scope = self.base_predicates() + [Predicate("c.ROWID = ?", (int(chat_rowid),))]

        older = compose(
            MESSAGE_COLUMNS,
            scope + [Predicate(
                "(m.date < ? OR (m.date = ? AND m.ROWID < ?))",
                (pivot_date, pivot_date, pivot_id),
            )],
            "m.date DESC, m.ROWID DESC",
            before,
        )
        newer = compose(
            MESSAGE_COLUMNS,
            scope + [Predicate(
                "(m.date > ? OR (m.date = ? AND m.ROWID > ?))",
                (pivot_date, pivot_date, pivot_id),
            )],
            "m.date ASC, m.ROWID ASC",
            after,
        )
        return older, newer


CONVERSATIONS_SQL = """
    SELECT
        c.ROWID AS id,
        c.chat_identifier AS chat_identifier,
        c.display_name AS display_name,
        c.service_name AS service_name,
        (SELECT COUNT(*) FROM chat_message_join WHERE chat_id = c.ROWID) AS message_count,
        (SELECT MAX(m.date) FROM message m
         JOIN chat_message_join cmj ON m.ROWID = cmj.message_id
         WHERE cmj.chat_id = c.ROWID) AS last_message_date,
        (SELECT GROUP_CONCAT(h.id, '|') FROM chat_handle_join chj
         JOIN handle h ON chj.handle_id = h.ROWID
         WHERE chj.chat_id = c.ROWID) AS participants
    FROM chat c
"""

HANDLES_SQL = """
    SELECT
        h.id AS identifier,
        h.service AS service,
        COUNT(m.ROWID) AS message_count,
        SUM(CASE WHEN m.is_from_me = 1 THEN 1 ELSE 0 END) AS sent_count,
        SUM(CASE WHEN m.is_from_me = 0 THEN 1 ELSE 0 END) AS received_count,
        MAX(m.date) AS last_message_date
    FROM handle h
    LEFT JOIN message m ON h.ROWID = m.handle_id
    GROUP BY h.id
    ORDER BY last_message_date DESC
    LIMIT ?
"""

ATTACHMENTS_SQL = """
    SELECT
        a.ROWID AS id,
        a.filename AS filename,
        a.mime_type AS mime_type,
        a.total_bytes AS total_bytes,
        a.is_outgoing AS is_outgoing,
        a.created_date AS created_date,
        m.ROWID AS message_id
    FROM attachment a
    JOIN message_attachment_join maj ON a.ROWID = maj.attachment_id
    JOIN message m ON maj.message_id = m.ROWID
    LEFT JOIN handle h ON m.handle_id = h.ROWID
    LEFT JOIN chat_message_join cmj ON m.ROWID = cmj.message_id
    LEFT JOIN chat c ON cmj.chat_id = c.ROWID
"""

# associated_message_guid is "p:<part>/<guid>" or "bp:<guid>" for the target
REACTIONS_SQL = """
    SELECT
        r.associated_message_type AS type,
        r.is_from_me AS is_from_me,
        h.id AS sender,
        r.date AS date
    FROM message r
    LEFT JOIN handle h ON r.handle_id = h.ROWID
    WHERE r.associated_message_type BETWEEN 2000 AND 3005
      AND (r.associated_message_guid = ?
           OR r.associated_message_guid LIKE ? ESCAPE '\\')
    ORDER BY r.date ASC
"""

MESSAGE_GUID_SQL = "SELECT ROWID AS id, guid FROM message WHERE ROWID = ?"

READ_RECEIPT_SQL = """
    SELECT
        ROWID AS id,
        is_read,
        is_delivered,
        date_read,
        date_delivered
    FROM message
    WHERE ROWID = ?
"""

SERVICE_SQL = """
    SELECT c.service_name AS service_name
    FROM chat c
    WHERE c.chat_identifier = ?
    ORDER BY (SELECT MAX(m.date) FROM message m
              JOIN chat_message_join cmj ON m.ROWID = cmj.message_id
              WHERE cmj.chat_id = c.ROWID) DESC
    LIMIT 1
"""


def conversations_query(limit: int, groups_only: bool = False) -> Query:
    predicates = []
    if groups_only:
        predicates.append(Predicate(
            "(c.chat_identifier LIKE 'chat%' OR "
            "(SELECT COUNT(*) FROM chat_handle_join WHERE chat_id = c.ROWID) > 1)"
        ))
    return compose(CONVERSATIONS_SQL, predicates, "last_message_date DESC", limit)


def handles_query(limit: int) -> Query:
    return Query(HANDLES_SQL, (int(limit),))


def attachments_query(chat: Optional[str], mime_type: Optional[str], limit: int) -> Query:
    predicates = []
    if chat:
        pattern = contains_pattern(identifier_for_query(chat))
        predicates.append(Predicate(
            "(c.chat_identifier LIKE ? ESCAPE '\\' OR h.id LIKE ? ESCAPE '\\')",
            (pattern, pattern),
        ))
    if mime_type:
        predicates.append(Predicate(
            "a.mime_type LIKE ? ESCAPE '\\'",
            (contains_pattern(mime_type),),
        ))
    return compose(ATTACHMENTS_SQL, predicates, "a.created_date DESC", limit)


def reactions_query(guid: str) -> Query:
    return Query(REACTIONS_SQL, (f"bp:{guid}", f"p:%/{escape_like(guid)}"))
