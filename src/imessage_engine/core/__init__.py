"""
Core module for the iMessage engine
Contains configuration, errors, timestamp codec, store access and model definitions
"""

from .config import EngineConfig, setup_logging
from .errors import (
    AccessDenied,
    ImessageEngineError,
    InvalidState,
    NotFound,
    PersistenceError,
    TransportFailure,
    ValidationError,
)
from .message_store import MessagesDatabase
from .models import (
    Attachment,
    Contact,
    Conversation,
    HandleSummary,
    Message,
    Reaction,
    ReadReceipt,
    ScheduledDelivery,
    ScheduleStatus,
    SearchMethod,
    SearchResponse,
    SearchResult,
)

__all__ = [
    'EngineConfig', 'setup_logging', 'MessagesDatabase',
    'ImessageEngineError', 'ValidationError', 'NotFound', 'InvalidState',
    'AccessDenied', 'TransportFailure', 'PersistenceError',
    'Message', 'Conversation', 'Contact', 'HandleSummary', 'Attachment',
    'Reaction', 'ReadReceipt', 'SearchResult', 'SearchResponse', 'SearchMethod',
    'ScheduledDelivery', 'ScheduleStatus',
]
