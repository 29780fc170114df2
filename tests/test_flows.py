"""Unit tests for auth/flows.py -- AuthFlows orchestration.

Covers:
- register signs in and sends an email_confirmation token
- confirm_email works once; the same token is STALE afterwards
- reset tokens die on password change; a token issued after the change works
- request_password_reset sends nothing for unknown emails
- signed-out / signed-in guards
- mail delivery failures never fail the flow
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from api.main import build_auth
from auth.errors import AlreadyAuthenticated, TokenError, TokenErrorKind, Unauthenticated, ValidationError
from auth.flows import INVALID_CREDENTIALS, AuthFlows
from auth.models import Notification
from auth.sessions import SessionContext
from auth.store import AuthStore
from auth.tokens import TokenPurpose
from core.config import get_settings

PASSWORD = "correct horse battery"
NEW_PASSWORD = "a brand new secret"


@pytest.fixture
def registered(flows: AuthFlows):
    return flows.register(SessionContext(), "guest@example.com", PASSWORD, PASSWORD)


class TestRegistration:
    def test_signs_in_and_sends_confirmation(self, flows: AuthFlows, channel) -> None:
        context = SessionContext()
        account = flows.register(context, "Guest@Example.com", PASSWORD, PASSWORD)

        assert flows.current_account(context).id == account.id
        assert context.session_id is not None
        notification = channel.last("email_confirmation")
        assert notification.account_email == "guest@example.com"
        assert notification.token

    def test_invalid_registration_sends_nothing(self, flows: AuthFlows, channel) -> None:
        with pytest.raises(ValidationError):
            flows.register(SessionContext(), "bad", PASSWORD, PASSWORD)
        assert channel.sent == []

    def test_requires_signed_out(self, flows: AuthFlows, registered) -> None:
        context = SessionContext()
        flows.sign_in(context, "guest@example.com", PASSWORD)
        with pytest.raises(AlreadyAuthenticated):
            flows.register(context, "second@example.com", PASSWORD, PASSWORD)


class TestEmailConfirmation:
    def test_confirms_once(self, flows: AuthFlows, registered, channel) -> None:
        token = channel.last("email_confirmation").token

        confirmed = flows.confirm_email(token)
        assert confirmed.confirmed
        stamp = confirmed.confirmed_at

        with pytest.raises(TokenError) as exc_info:
            flows.confirm_email(token)
        assert exc_info.value.kind is TokenErrorKind.STALE
        assert flows.credentials.get(registered.id).confirmed_at == stamp

    def test_reset_token_cannot_confirm(self, flows: AuthFlows, registered) -> None:
        token = flows.issue_token(registered, TokenPurpose.PASSWORD_RESET)
        with pytest.raises(TokenError) as exc_info:
            flows.confirm_email(token)
        assert exc_info.value.kind is TokenErrorKind.WRONG_PURPOSE

    def test_lost_race_is_stale(self, flows: AuthFlows, registered, channel) -> None:
        token = channel.last("email_confirmation").token
        # Someone else confirms between verification and update.
        flows.credentials.confirm(registered.id)
        with pytest.raises(TokenError) as exc_info:
            flows.confirm_email(token)
        assert exc_info.value.kind is TokenErrorKind.STALE


class TestSignIn:
    def test_unconfirmed_account_can_sign_in(self, flows: AuthFlows, registered) -> None:
        context = SessionContext()
        account = flows.sign_in(context, "guest@example.com", PASSWORD)
        assert account.id == registered.id
        assert not account.confirmed

    def test_failures_share_one_message(self, flows: AuthFlows, registered) -> None:
        with pytest.raises(ValidationError) as wrong_password:
            flows.sign_in(SessionContext(), "guest@example.com", "nope")
        with pytest.raises(ValidationError) as unknown_email:
            flows.sign_in(SessionContext(), "nobody@example.com", PASSWORD)
        assert wrong_password.value.messages == unknown_email.value.messages == [INVALID_CREDENTIALS]

    def test_failed_sign_in_keeps_existing_session(self, flows: AuthFlows, registered) -> None:
        context = SessionContext()
        flows.sign_in(context, "guest@example.com", PASSWORD)
        session_id = context.session_id
        with pytest.raises(ValidationError):
            flows.sign_in(context, "guest@example.com", "nope")
        assert context.session_id == session_id

    def test_sign_out_requires_session(self, flows: AuthFlows) -> None:
        with pytest.raises(Unauthenticated):
            flows.sign_out(SessionContext())


class TestPasswordReset:
    def test_unknown_email_sends_nothing(self, flows: AuthFlows, channel) -> None:
        flows.request_password_reset(SessionContext(), "nobody@example.com")
        assert channel.sent == []

    def test_known_email_sends_token(self, flows: AuthFlows, registered, channel) -> None:
        flows.request_password_reset(SessionContext(), "  GUEST@example.com ")
        assert channel.last("password_reset").account_email == "guest@example.com"

    def test_reset_sets_password(self, flows: AuthFlows, registered, channel) -> None:
        flows.request_password_reset(SessionContext(), "guest@example.com")
        token = channel.last("password_reset").token

        flows.reset_password(SessionContext(), token, NEW_PASSWORD, NEW_PASSWORD)

        assert flows.credentials.authenticate("guest@example.com", NEW_PASSWORD) is not None

    def test_token_is_single_use(self, flows: AuthFlows, registered, channel) -> None:
        flows.request_password_reset(SessionContext(), "guest@example.com")
        token = channel.last("password_reset").token
        flows.reset_password(SessionContext(), token, NEW_PASSWORD, NEW_PASSWORD)

        with pytest.raises(TokenError) as exc_info:
            flows.reset_password(SessionContext(), token, "yet another one", "yet another one")
        assert exc_info.value.kind is TokenErrorKind.STALE

    def test_password_change_invalidates_older_tokens_only(self, flows: AuthFlows, registered) -> None:
        before = flows.issue_token(registered, TokenPurpose.PASSWORD_RESET)
        context = SessionContext()
        flows.sign_in(context, "guest@example.com", PASSWORD)
        flows.change_password(context, NEW_PASSWORD, NEW_PASSWORD, PASSWORD)

        with pytest.raises(TokenError) as exc_info:
            flows.reset_password(SessionContext(), before, "third password", "third password")
        assert exc_info.value.kind is TokenErrorKind.STALE

        after = flows.issue_token(flows.credentials.get(registered.id), TokenPurpose.PASSWORD_RESET)
        flows.reset_password(SessionContext(), after, "third password", "third password")
        assert flows.credentials.authenticate("guest@example.com", "third password") is not None

    def test_validation_failure_keeps_token_usable(self, flows: AuthFlows, registered) -> None:
        token = flows.issue_token(registered, TokenPurpose.PASSWORD_RESET)
        with pytest.raises(ValidationError):
            flows.reset_password(SessionContext(), token, NEW_PASSWORD, "mismatch")
        flows.reset_password(SessionContext(), token, NEW_PASSWORD, NEW_PASSWORD)

    def test_confirmation_token_cannot_reset(self, flows: AuthFlows, registered, channel) -> None:
        token = channel.last("email_confirmation").token
        with pytest.raises(TokenError) as exc_info:
            flows.reset_password(SessionContext(), token, NEW_PASSWORD, NEW_PASSWORD)
        assert exc_info.value.kind is TokenErrorKind.WRONG_PURPOSE

    def test_requires_signed_out(self, flows: AuthFlows, registered) -> None:
        context = SessionContext()
        flows.sign_in(context, "guest@example.com", PASSWORD)
        with pytest.raises(AlreadyAuthenticated):
            flows.request_password_reset(context, "guest@example.com")
        token = flows.issue_token(registered, TokenPurpose.PASSWORD_RESET)
        with pytest.raises(AlreadyAuthenticated):
            flows.reset_password(context, token, NEW_PASSWORD, NEW_PASSWORD)


class TestChangePassword:
    def test_requires_session(self, flows: AuthFlows) -> None:
        with pytest.raises(Unauthenticated):
            flows.change_password(SessionContext(), NEW_PASSWORD, NEW_PASSWORD, PASSWORD)


class ExplodingChannel:
    def __init__(self) -> None:
        self.attempts = 0

    def deliver(self, notification: Notification) -> None:
        self.attempts += 1
        raise ConnectionError("smtp down")


class TestMailFailures:
    def test_inline_failure_is_logged_not_raised(self, store: AuthStore, caplog) -> None:
        channel = ExplodingChannel()
        flows = build_auth(get_settings(), store, channel)

        context = SessionContext()
        account = flows.register(context, "guest@example.com", PASSWORD, PASSWORD)

        assert account.id is not None
        assert flows.current_account(context).id == account.id
        assert channel.attempts == 1
        assert "Failed to deliver email_confirmation email" in caplog.text

    def test_background_failure_is_logged_not_raised(self, store: AuthStore, caplog) -> None:
        channel = ExplodingChannel()
        executor = ThreadPoolExecutor(max_workers=1)
        flows = build_auth(get_settings(), store, channel, executor)

        flows.register(SessionContext(), "guest@example.com", PASSWORD, PASSWORD)
        flows.request_password_reset(SessionContext(), "guest@example.com")
        executor.shutdown(wait=True)

        assert channel.attempts == 2
        assert "Failed to deliver password_reset email" in caplog.text
