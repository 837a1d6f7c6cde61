"""
Exception taxonomy for the iMessage engine.

Every failure the engine surfaces to a caller is one of these types.
Store and transport errors carry actionable guidance (usually a macOS
privacy permission) rather than a bare driver message.
"""

# Common error patterns for permission issues
PERMISSION_ERROR_PATTERNS = [
    "unable to open database",
    "permission denied",
    "operation not permitted",
    "access denied",
    "authorization denied",
    "authorization not granted",
    "not authorized",
]

FULL_DISK_ACCESS_HELP = (
    "Grant Full Disk Access: System Settings → Privacy & Security → "
    "Full Disk Access, add your terminal (or IDE), then restart it."
)

AUTOMATION_HELP = (
    "Ensure Messages.app is running and that your terminal has Automation "
    "permission for Messages in System Settings → Privacy & Security."
)

CONTACTS_HELP = (
    "Grant Contacts access: System Settings → Privacy & Security → "
    "Contacts, add your terminal (or IDE), then restart it."
)


class ImessageEngineError(Exception):
    """Base exception for all engine errors."""
    pass


class ValidationError(ImessageEngineError):
    """Raised when caller input is malformed or out of range."""
    pass


class NotFound(ImessageEngineError):
    """Raised when a referenced id does not resolve."""
    pass


class InvalidState(ImessageEngineError):
    """Raised when an operation is not permitted in the entry's current state."""
    pass


class AccessDenied(ImessageEngineError):
    """Raised when the store, directory or transport is blocked by a permission."""

    def __init__(self, message: str, help_text: str = FULL_DISK_ACCESS_HELP):
        super().__init__(f"{message}\n\n{help_text}")
        self.help_text = help_text


class TransportFailure(ImessageEngineError):
    """Raised when both delivery channels failed."""

    def __init__(self, message: str, primary_error: str = "", secondary_error: str = ""):
        super().__init__(message)
        self.primary_error = primary_error
        self.secondary_error = secondary_error


class PersistenceError(ImessageEngineError):
    """Raised when the scheduled delivery log could not be written."""
    pass


def is_permission_error(error: Exception) -> bool:
    """
    Check if an error is likely a permission/access error.

    Args:
        error: The exception to check

    Returns:
        True if this looks like a permission error
    """
    error_str = str(error).lower()
    return any(pattern in error_str for pattern in PERMISSION_ERROR_PATTERNS)
