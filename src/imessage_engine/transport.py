"""
Outbound delivery through Messages.app automation.

Sends go out over the iMessage service first. If that attempt fails the
same text is retried exactly once over SMS; there is no further retry.
"""

import logging
import subprocess
from typing import Dict

from .core.errors import AUTOMATION_HELP, TransportFailure

logger = logging.getLogger(__name__)

PRIMARY_SERVICE = "iMessage"
SECONDARY_SERVICE = "SMS"


def escape_applescript_string(s: str) -> str:
    r"""
    Escape a string for safe use in AppleScript.

    AppleScript strings use backslash escapes, so we must:
    1. Escape backslashes first (\ -> \\)
    2. Then escape double quotes (" -> \")

    Args:
        s: The string to escape

    Returns:
        Escaped string safe for AppleScript double-quoted strings
    """
    if s is None:
        return ""
    return s.replace('\\', '\\\\').replace('"', '\\"')


def send_script(recipient: str, body: str, service: str) -> str:
    escaped_body = escape_applescript_string(body)
    escaped_recipient = escape_applescript_string(recipient)
    return f'''
    tell application "Messages"
        set targetService to 1st account whose service type = {service}
        set targetBuddy to participant "{escaped_recipient}" of targetService
        send "{escaped_body}" to targetBuddy
    end tell
    '''


class MessagingTransport:
    """
    Delivers a message body to a recipient via osascript.

    Callers validate the recipient first; this class only delivers.
    """

    def __init__(self, timeout: int = 10):
        self.timeout = timeout

    def _attempt(self, recipient: str, body: str, service: str) -> None:
        """Run one send over one service. Raises RuntimeError on failure."""
        try:
            result = subprocess.run(
                ['osascript', '-e', send_script(recipient, body, service)],
                capture_output=True,
                text=True,
                timeout=self.timeout
            )
        except subprocess.TimeoutExpired as e:
            raise RuntimeError("Timeout - ensure Messages.app is running") from e
        except (OSError, ValueError) as e:
            raise RuntimeError(f"Could not run osascript: {e}") from e

        if result.returncode != 0:
            raise RuntimeError(result.stderr.strip() or f"osascript exited {result.returncode}")

    def send(self, recipient: str, body: str) -> Dict[str, object]:
        """
        Send over iMessage, falling back once to SMS.

        Returns:
            dict: {"success": True, "service": "iMessage" | "SMS"}

        Raises:
            TransportFailure: If both services fail
        """
        logger.info(f"Sending message to {recipient}")

        try:
            self._attempt(recipient, body, PRIMARY_SERVICE)
            logger.info(f"Message sent via {PRIMARY_SERVICE} to {recipient}")
            return {"success": True, "service": PRIMARY_SERVICE}
        except RuntimeError as e:
            primary_error = str(e)
            logger.warning(f"{PRIMARY_SERVICE} send failed for {recipient}: {primary_error}")

        try:
            self._attempt(recipient, body, SECONDARY_SERVICE)
            logger.info(f"Message sent via {SECONDARY_SERVICE} to {recipient}")
            return {"success": True, "service": SECONDARY_SERVICE}
        except RuntimeError as e:
            secondary_error = str(e)
            logger.error(f"{SECONDARY_SERVICE} send failed for {recipient}: {secondary_error}")

        raise TransportFailure(
            f"Could not deliver to {recipient} via {PRIMARY_SERVICE} or "
            f"{SECONDARY_SERVICE}. {AUTOMATION_HELP}",
            primary_error=primary_error,
            secondary_error=secondary_error,
        )
