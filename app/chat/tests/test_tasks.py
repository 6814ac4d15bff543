"""
Tests for chat Celery tasks.
"""

from unittest.mock import patch

from chat.tasks import send_offline_notification


class TestSendOfflineNotification:
    """Tests for send_offline_notification."""

    def test_returns_true(self):
        assert send_offline_notification.run("user-1", 3, 30, "Alice") is True

    def test_logs_recipient_and_message(self):
        with patch("chat.tasks.logger") as logger:
            send_offline_notification.run("user-1", 3, 30, "Alice")

        logged = logger.info.call_args.args[0]
        assert "user-1" in logged
        assert "message 30" in logged
        assert "Alice" in logged

    def test_unknown_sender(self):
        with patch("chat.tasks.logger") as logger:
            send_offline_notification.run("user-1", 3, 30)

        assert "from unknown" in logger.info.call_args.args[0]
