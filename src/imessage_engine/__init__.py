"""
iMessage engine
Query, search and scheduled delivery over the macOS Messages database
"""

from .contacts_manager import ContactCache, ContactResolver, normalize_phone
from .messages_interface import MessagesInterface
from .query_builder import MessageFilter, QueryBuilder
from .rag import SearchEngine
from .scheduler import ScheduleStore
from .transport import MessagingTransport

__version__ = "0.1.0"

__all__ = [
    'MessagesInterface', 'QueryBuilder', 'MessageFilter',
    'ContactResolver', 'ContactCache', 'normalize_phone',
    'SearchEngine', 'ScheduleStore', 'MessagingTransport',
]
