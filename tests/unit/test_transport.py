"""
Unit tests for AppleScript delivery with SMS fallback.
"""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from imessage_engine.core.errors import TransportFailure
from imessage_engine.transport import (
    MessagingTransport,
    escape_applescript_string,
    send_script,
)


def _completed(returncode=0, stderr=""):
    return MagicMock(returncode=returncode, stdout="", stderr=stderr)


class TestEscapeAppleScriptString:

    def test_quotes(self):
        assert escape_applescript_string('say "hi"') == 'say \\"hi\\"'

    def test_backslash_escaped_before_quotes(self):
        assert escape_applescript_string('\\"') == '\\\\\\"'

    def test_none(self):
        assert escape_applescript_string(None) == ""

    def test_injection_stays_inside_string(self):
        script = send_script("+14155551234", '" & do shell script "rm -rf ~" & "', "iMessage")
        assert 'send "\\" & do shell script \\"rm -rf ~\\" & \\"" to targetBuddy' in script


class TestMessagingTransport:

    def test_primary_success(self):
        with patch("subprocess.run", return_value=_completed()) as run:
            result = MessagingTransport().send("+14155551234", "hello")
        assert result == {"success": True, "service": "iMessage"}
        assert run.call_count == 1
        assert "service type = iMessage" in run.call_args[0][0][2]

    def test_falls_back_to_sms_once(self):
        responses = [_completed(1, "Can't get buddy"), _completed()]
        with patch("subprocess.run", side_effect=responses) as run:
            result = MessagingTransport().send("+14155551234", "hello")
        assert result == {"success": True, "service": "SMS"}
        assert run.call_count == 2
        assert "service type = SMS" in run.call_args_list[1][0][0][2]

    def test_both_fail_no_third_attempt(self):
        responses = [_completed(1, "imessage down"), _completed(1, "sms down")]
        with patch("subprocess.run", side_effect=responses) as run:
            with pytest.raises(TransportFailure) as exc_info:
                MessagingTransport().send("+14155551234", "hello")
        assert run.call_count == 2
        assert exc_info.value.primary_error == "imessage down"
        assert exc_info.value.secondary_error == "sms down"

    def test_timeout_counts_as_failure(self):
        responses = [subprocess.TimeoutExpired("osascript", 10), _completed()]
        with patch("subprocess.run", side_effect=responses):
            result = MessagingTransport(timeout=10).send("+14155551234", "hello")
        assert result["service"] == "SMS"

    def test_timeout_is_passed_through(self):
        with patch("subprocess.run", return_value=_completed()) as run:
            MessagingTransport(timeout=3).send("+14155551234", "hello")
        assert run.call_args.kwargs["timeout"] == 3

    def test_unrunnable_arguments_count_as_failure(self):
        with patch("subprocess.run", side_effect=ValueError("embedded null byte")) as run:
            with pytest.raises(TransportFailure) as exc_info:
                MessagingTransport().send("+14155551234", "hi\x00there")
        assert run.call_count == 2
        assert "embedded null byte" in exc_info.value.primary_error
        assert "embedded null byte" in exc_info.value.secondary_error
