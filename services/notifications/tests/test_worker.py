"""
Tests for the notifications worker - invitation email rendering and delivery.
"""

import smtplib

import pytest

import worker


class TestBuildInvitationMessage:
    """Test the rendered invitation email."""

    def test_headers_and_link(self):
        email = worker.build_invitation_message(
            "no-reply@hiring.test",
            "jane@example.com",
            "Acme",
            "https://app.hiring.test/invitations/tok123",
            message="We loved your portfolio.",
            expires_at="2026-03-08T12:00:00",
        )

        assert email["To"] == "jane@example.com"
        assert email["From"] == "no-reply@hiring.test"
        assert "Acme" in email["Subject"]
        body = email.get_content()
        assert "https://app.hiring.test/invitations/tok123" in body
        assert "We loved your portfolio." in body
        assert "March 08, 2026" in body

    def test_unparseable_expiry_is_omitted(self):
        email = worker.build_invitation_message(
            "no-reply@hiring.test", "jane@example.com", "Acme", "https://x.test", expires_at="soon"
        )

        assert "expires" not in email.get_content()


class TestSendInvitation:
    """Test the Celery task run eagerly."""

    def test_delivers_over_smtp(self, monkeypatch):
        sent = []
        monkeypatch.setattr(worker, "deliver", lambda email, smtp: sent.append((email, smtp)))

        result = worker.send_invitation("jane@example.com", "Acme", "https://x.test/invitations/abc")

        assert result == {"status": "ok", "company_name": "Acme"}
        assert len(sent) == 1
        assert sent[0][0]["To"] == "jane@example.com"

    def test_transport_error_is_raised_for_retry(self, monkeypatch):
        def broken(email, smtp):
            raise smtplib.SMTPServerDisconnected("gone")

        monkeypatch.setattr(worker, "deliver", broken)

        with pytest.raises(smtplib.SMTPServerDisconnected):
            worker.send_invitation("jane@example.com", "Acme", "https://x.test/invitations/abc")
