"""
Tests for invitations.py - issuing, reading, accepting and revoking invitations.
"""

import base64
import hashlib
import threading
from datetime import timedelta

import pytest
from sqlalchemy import select

from hiring_api import companies, invitations, models
from hiring_api import celery_app as dispatch
from hiring_api.errors import Conflict, InvalidState, InvalidToken, NotFound, ValidationFailure
from hiring_api.models import AssessmentStatus, InvitationStatus, PipelineStage


class TestCreateInvitation:
    """Test invitation creation for unregistered and registered candidates."""

    def test_unregistered_candidate_gets_token_and_pending_entry(self, session, company, now, queued_tasks):
        """Test the pending invitation path."""
        invitation = invitations.create_invitation(
            session, company.id, "  Jane.Doe@Example.com ", message="Hi Jane", now=now
        )

        assert invitation.candidate_email == "jane.doe@example.com"
        assert invitation.status == InvitationStatus.PENDING
        assert invitation.token
        assert invitation.expires_at == now + timedelta(days=7)
        assert invitation.sent_at == now

        entry = session.get(models.PipelineEntry, invitation.pipeline_entry_id)
        assert entry.stage == PipelineStage.INVITED
        assert entry.is_pending_invitation is True

        assert len(queued_tasks) == 1
        task = queued_tasks[0]
        assert task["name"] == "email.send_invitation"
        assert task["queue"] == "email"
        assert task["args"] == ["jane.doe@example.com", "Acme"]
        assert invitation.token in task["kwargs"]["invitation_url"]
        assert task["kwargs"]["message"] == "Hi Jane"

    def test_send_email_false_queues_nothing(self, session, company, now, queued_tasks):
        """Test that email delivery can be skipped."""
        invitation = invitations.create_invitation(session, company.id, "quiet@example.com", send_email=False, now=now)

        assert invitation.sent_at is None
        assert queued_tasks == []

    def test_invalid_email(self, session, company):
        """Test that an address without @ is rejected."""
        with pytest.raises(ValidationFailure):
            invitations.create_invitation(session, company.id, "not-an-email")

    def test_unknown_company(self, session):
        """Test that inviting for a missing company raises NotFound."""
        with pytest.raises(NotFound):
            invitations.create_invitation(session, "missing", "jane@example.com")

    def test_active_duplicate_conflicts(self, session, company, now):
        """Test that only one unexpired invitation exists per email."""
        invitations.create_invitation(session, company.id, "jane@example.com", now=now)

        with pytest.raises(Conflict):
            invitations.create_invitation(session, company.id, "JANE@example.com", now=now + timedelta(days=1))

    def test_expired_invitation_can_be_reissued(self, session, company, now):
        """Test that a new invitation reuses the pending entry once the old one expired."""
        first = invitations.create_invitation(session, company.id, "jane@example.com", now=now)
        later = now + timedelta(days=8)

        second = invitations.create_invitation(session, company.id, "jane@example.com", now=later)

        assert second.token != first.token
        assert second.pipeline_entry_id == first.pipeline_entry_id
        assert first.status_at(later) == InvitationStatus.EXPIRED
        assert second.status_at(later) == InvitationStatus.PENDING

    def test_registered_developer_is_tracked(self, session, company, make_developer, now):
        """Test the TRACKED path for an existing account."""
        developer = make_developer("known@example.com", status=AssessmentStatus.PROJECTS_SUBMITTED)

        invitation = invitations.create_invitation(session, company.id, "known@example.com", now=now)

        assert invitation.status == InvitationStatus.TRACKED
        assert invitation.token is None
        assert invitation.expires_at is None
        assert invitation.developer_id == developer.id
        entry = session.get(models.PipelineEntry, invitation.pipeline_entry_id)
        assert entry.developer_id == developer.id
        assert entry.stage == PipelineStage.PROJECTS_SUBMITTED

    def test_tracking_twice_conflicts(self, session, company, make_developer, now):
        """Test that a developer is tracked once per company."""
        make_developer("known@example.com")
        invitations.create_invitation(session, company.id, "known@example.com", now=now)

        with pytest.raises(Conflict):
            invitations.create_invitation(session, company.id, "known@example.com", now=now)

    def test_enqueue_failure_keeps_invitation(self, session, company, now, monkeypatch):
        """Test that a broker outage never rolls back the invitation."""

        def broken_send_task(*args, **kwargs):
            raise ConnectionError("redis down")

        monkeypatch.setattr(dispatch.celery_app, "send_task", broken_send_task)

        invitation = invitations.create_invitation(session, company.id, "jane@example.com", now=now)

        assert session.get(models.Invitation, invitation.id) is not None


class TestInvitationInfo:
    """Test the public, never-raising token lookup."""

    def test_valid_token(self, session, company, now):
        """Test that a valid token reveals only a masked email."""
        invitation = invitations.create_invitation(session, company.id, "jane@example.com", message="Hi", now=now)

        info = invitations.get_invitation_info(session, invitation.token, now=now + timedelta(days=1))

        assert info.valid is True
        assert info.email == "j***@example.com"
        assert info.company_name == "Acme"
        assert info.message == "Hi"
        assert info.error is None

    def test_unknown_token(self, session):
        """Test that an unknown token is reported without raising."""
        info = invitations.get_invitation_info(session, "nope")

        assert info.valid is False
        assert info.error == invitations.INVALID_LINK_MESSAGE
        assert info.email is None

    def test_expired_token(self, session, company, now):
        """Test that a token past its expiry reads as expired."""
        invitation = invitations.create_invitation(session, company.id, "jane@example.com", now=now)

        info = invitations.get_invitation_info(session, invitation.token, now=now + timedelta(days=7, seconds=1))

        assert info.valid is False
        assert info.expired is True
        assert info.error == invitations.INVALID_LINK_MESSAGE

    def test_used_token_is_generic(self, session, company, now):
        """Test that a used token is indistinguishable from an unknown one."""
        invitation = invitations.create_invitation(session, company.id, "jane@example.com", now=now)
        invitations.accept_invitation(session, invitation.token, "s3cret-pass", now=now)

        info = invitations.get_invitation_info(session, invitation.token, now=now)

        assert info.valid is False
        assert info.expired is False
        assert info.error == invitations.INVALID_LINK_MESSAGE


class TestAcceptInvitation:
    """Test redeeming an invitation."""

    def test_accept_creates_account_and_binds_entry(self, session, company, now):
        """Test the INVITED -> REGISTERING transition on acceptance."""
        invitation = invitations.create_invitation(session, company.id, "jane@example.com", now=now)

        developer = invitations.accept_invitation(
            session, invitation.token, "s3cret-pass", first_name="Jane", now=now + timedelta(days=6)
        )

        assert developer.email == "jane@example.com"
        assert developer.first_name == "Jane"
        assert developer.assessment_status == AssessmentStatus.REGISTERING
        scheme, iterations, salt_b64, hash_b64 = developer.password_hash.split("$")
        assert scheme == "pbkdf2_sha256"
        expected = hashlib.pbkdf2_hmac("sha256", b"s3cret-pass", base64.b64decode(salt_b64), int(iterations))
        assert base64.b64decode(hash_b64) == expected
        assert invitation.status == InvitationStatus.ACCEPTED
        assert invitation.developer_id == developer.id
        assert invitation.accepted_at == now + timedelta(days=6)
        entry = session.get(models.PipelineEntry, invitation.pipeline_entry_id)
        assert entry.developer_id == developer.id
        assert entry.stage == PipelineStage.REGISTERING

    def test_second_accept_is_already_used(self, session, company, now):
        """Test that a token is single-use."""
        invitation = invitations.create_invitation(session, company.id, "jane@example.com", now=now)
        invitations.accept_invitation(session, invitation.token, "s3cret-pass", now=now)

        with pytest.raises(InvalidToken) as excinfo:
            invitations.accept_invitation(session, invitation.token, "s3cret-pass", now=now)
        assert excinfo.value.reason == "already_used"

    def test_expired_token_rejected(self, session, company, now):
        """Test that acceptance after 7 days fails and creates nothing."""
        invitation = invitations.create_invitation(session, company.id, "jane@example.com", now=now)

        with pytest.raises(InvalidToken) as excinfo:
            invitations.accept_invitation(session, invitation.token, "s3cret-pass", now=now + timedelta(days=8))

        assert excinfo.value.reason == "expired"
        assert session.execute(select(models.Developer)).first() is None

    def test_unknown_token_rejected(self, session):
        """Test that an unknown token raises InvalidToken."""
        with pytest.raises(InvalidToken):
            invitations.accept_invitation(session, "nope", "s3cret-pass")

    def test_short_password_rejected(self, session, company, now):
        """Test the minimum password length."""
        invitation = invitations.create_invitation(session, company.id, "jane@example.com", now=now)

        with pytest.raises(ValidationFailure):
            invitations.accept_invitation(session, invitation.token, "short", now=now)

    def test_binds_pending_entries_of_other_companies(self, session, company, now):
        """Test that one registration binds every company's pending entry and tracks their invitation."""
        other = companies.create_company(session, "Globex")
        ours = invitations.create_invitation(session, company.id, "jane@example.com", now=now)
        theirs = invitations.create_invitation(session, other.id, "jane@example.com", now=now)
        their_token = theirs.token

        developer = invitations.accept_invitation(session, ours.token, "s3cret-pass", now=now)

        their_entry = session.get(models.PipelineEntry, theirs.pipeline_entry_id)
        assert their_entry.developer_id == developer.id
        assert their_entry.stage == PipelineStage.REGISTERING
        session.refresh(theirs)
        assert theirs.status == InvitationStatus.TRACKED
        assert theirs.developer_id == developer.id
        assert theirs.token is None
        assert theirs.expires_at is None
        assert theirs.status_at(now) == InvitationStatus.TRACKED

        assert invitations.get_invitation_info(session, their_token, now=now).valid is False
        with pytest.raises(InvalidToken):
            invitations.accept_invitation(session, their_token, "s3cret-pass", now=now)
        with pytest.raises(Conflict):
            invitations.create_invitation(session, other.id, "jane@example.com", now=now)
        tracked, total = invitations.list_invitations(session, other.id, status=InvitationStatus.TRACKED, now=now)
        assert total == 1
        assert tracked[0].id == theirs.id

    def test_only_latest_foreign_invitation_is_tracked(self, session, company, now):
        """Test that an older, expired invitation of the other company keeps reading EXPIRED."""
        other = companies.create_company(session, "Globex")
        stale = invitations.create_invitation(session, other.id, "jane@example.com", now=now - timedelta(days=10))
        latest = invitations.create_invitation(session, other.id, "jane@example.com", now=now)
        ours = invitations.create_invitation(session, company.id, "jane@example.com", now=now)

        invitations.accept_invitation(session, ours.token, "s3cret-pass", now=now)

        session.refresh(stale)
        session.refresh(latest)
        assert latest.status == InvitationStatus.TRACKED
        assert stale.status == InvitationStatus.PENDING
        assert stale.status_at(now) == InvitationStatus.EXPIRED


class TestListAndRevoke:
    """Test listing with computed status and revocation."""

    def test_list_filters_on_computed_status(self, session, company, now):
        """Test that EXPIRED is derived from expires_at when filtering."""
        invitations.create_invitation(session, company.id, "old@example.com", now=now - timedelta(days=10))
        invitations.create_invitation(session, company.id, "new@example.com", now=now)

        expired, expired_total = invitations.list_invitations(
            session, company.id, status=InvitationStatus.EXPIRED, now=now
        )
        pending, pending_total = invitations.list_invitations(
            session, company.id, status=InvitationStatus.PENDING, now=now
        )
        everything, total = invitations.list_invitations(session, company.id, now=now)

        assert [inv.candidate_email for inv in expired] == ["old@example.com"]
        assert [inv.candidate_email for inv in pending] == ["new@example.com"]
        assert expired_total == pending_total == 1
        assert total == 2
        assert [inv.candidate_email for inv in everything] == ["new@example.com", "old@example.com"]

    def test_revoke_pending_removes_entry(self, session, company, now):
        """Test that revoking drops the still-pending pipeline entry too."""
        invitation = invitations.create_invitation(session, company.id, "jane@example.com", now=now)
        entry_id = invitation.pipeline_entry_id

        invitations.revoke_invitation(session, company.id, invitation.id)

        assert session.get(models.Invitation, invitation.id) is None
        assert session.get(models.PipelineEntry, entry_id) is None

    def test_revoke_accepted_is_invalid_state(self, session, company, now):
        """Test that accepted invitations are kept."""
        invitation = invitations.create_invitation(session, company.id, "jane@example.com", now=now)
        invitations.accept_invitation(session, invitation.token, "s3cret-pass", now=now)

        with pytest.raises(InvalidState):
            invitations.revoke_invitation(session, company.id, invitation.id)

    def test_revoke_other_company_not_found(self, session, company, now):
        """Test that another company cannot revoke the invitation."""
        other = companies.create_company(session, "Globex")
        invitation = invitations.create_invitation(session, company.id, "jane@example.com", now=now)

        with pytest.raises(NotFound):
            invitations.revoke_invitation(session, other.id, invitation.id)


class TestConcurrentInvitations:
    """Test racing invitations against a real file database."""

    def test_same_email_twice_yields_one_invitation(self, session, session_factory, company, now):
        """Test that two simultaneous invitations for one email create a single PENDING row."""
        first = invitations.create_invitation(session, company.id, "jane@example.com", now=now - timedelta(days=10))
        company_id = company.id
        entry_id = first.pipeline_entry_id
        session.close()

        barrier = threading.Barrier(2)
        created: list[models.Invitation] = []
        conflicts: list[Exception] = []

        def worker():
            local = session_factory()
            try:
                barrier.wait()
                created.append(invitations.create_invitation(local, company_id, "jane@example.com", now=now))
            except Conflict as exc:
                conflicts.append(exc)
            finally:
                local.close()

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert len(created) == 1
        assert len(conflicts) == 1
        assert created[0].pipeline_entry_id == entry_id

        check = session_factory()
        try:
            rows = check.execute(
                select(models.Invitation).where(models.Invitation.company_id == company_id)
            ).scalars().all()
            assert len(rows) == 2
            assert [inv.status_at(now) for inv in rows].count(InvitationStatus.PENDING) == 1
        finally:
            check.close()


class TestDeveloperStatus:
    """Test the lookup behind the invite form."""

    def test_unknown_email(self, session, company):
        status = invitations.get_developer_status(session, company.id, "Nobody@Example.com")

        assert status.exists is False
        assert status.status == invitations.NOT_REGISTERED
        assert status.email == "nobody@example.com"
        assert status.is_tracked is False
        assert status.is_unlocked is False

    def test_invited_but_unregistered_is_tracked(self, session, company, now):
        invitations.create_invitation(session, company.id, "jane@example.com", now=now)

        status = invitations.get_developer_status(session, company.id, "jane@example.com")

        assert status.exists is False
        assert status.is_tracked is True

    def test_registered_developer_facts(self, session, company, make_developer, make_entry):
        """Test that a tracked, assessed developer reports score and unlock state."""
        developer = make_developer(
            "grace@example.com",
            first_name="Grace",
            last_name="Hopper",
            overall_score=91,
            tech_stack=["cobol", "python"],
            project_count=3,
        )
        make_entry(company, developer)
        session.add(models.UnlockedReport(company_id=company.id, developer_id=developer.id))
        session.commit()

        status = invitations.get_developer_status(session, company.id, "grace@example.com")

        assert status.exists is True
        assert status.status == "ASSESSED"
        assert status.developer_id == developer.id
        assert status.name == "Grace Hopper"
        assert status.is_tracked is True
        assert status.is_unlocked is True
        assert status.overall_score == 91
        assert status.project_count == 3
        assert status.tech_stack == ["cobol", "python"]

    def test_other_company_sees_untracked(self, session, company, make_developer, make_entry):
        developer = make_developer("grace@example.com")
        make_entry(company, developer)
        other = companies.create_company(session, "Globex")

        status = invitations.get_developer_status(session, other.id, "grace@example.com")

        assert status.exists is True
        assert status.is_tracked is False
        assert status.is_unlocked is False

    def test_invalid_email(self, session, company):
        with pytest.raises(ValidationFailure):
            invitations.get_developer_status(session, company.id, "nope")
