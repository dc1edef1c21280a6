"""Tests for bearer-token identity resolution."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from library_kernel.exceptions import InvalidCredentialError, PatronNotFoundError
from library_kernel.models.patron import PatronRole
from library_services.identity import Actor, _digest
from library_services.orm import AccessTokenModel


class TestIssueAndResolve:
    def test_round_trip(self, identity_provider, librarian):
        token = identity_provider.issue_token(librarian.user_id)
        actor = identity_provider.resolve_actor(token)
        assert actor == Actor(user_id=librarian.user_id, role="LIBRARIAN")
        assert actor.is_staff
        assert not actor.is_admin

    def test_only_digest_is_stored(self, session_factory, identity_provider, member):
        token = identity_provider.issue_token(member.user_id)
        with session_factory() as s:
            stored = s.execute(select(AccessTokenModel.token_digest)).scalars().all()
        assert stored == [_digest(token)]
        assert token not in stored

    def test_unknown_patron(self, identity_provider):
        with pytest.raises(PatronNotFoundError):
            identity_provider.issue_token("ghost")

    def test_role_read_at_resolve_time(self, session_factory, identity_provider, member):
        from library_kernel.services.patron_service import PatronService

        token = identity_provider.issue_token(member.user_id)
        with session_factory() as s:
            PatronService(s).set_role(member.user_id, PatronRole.ADMIN)
            s.commit()
        assert identity_provider.resolve_actor(token).is_admin


class TestRejectedCredentials:
    def test_empty(self, identity_provider):
        with pytest.raises(InvalidCredentialError):
            identity_provider.resolve_actor("")

    def test_unknown(self, identity_provider):
        with pytest.raises(InvalidCredentialError, match="unknown"):
            identity_provider.resolve_actor("not-a-token")

    def test_expired(self, identity_provider, deterministic_clock, member):
        token = identity_provider.issue_token(member.user_id, ttl=timedelta(hours=1))
        deterministic_clock.advance(3600)
        with pytest.raises(InvalidCredentialError, match="expired"):
            identity_provider.resolve_actor(token)

    def test_revoked(self, identity_provider, member):
        token = identity_provider.issue_token(member.user_id)
        identity_provider.revoke_token(token)
        with pytest.raises(InvalidCredentialError, match="revoked"):
            identity_provider.resolve_actor(token)

    def test_revoke_unknown(self, identity_provider):
        with pytest.raises(InvalidCredentialError):
            identity_provider.revoke_token("not-a-token")
