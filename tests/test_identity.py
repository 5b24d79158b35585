import logging
from datetime import datetime, timedelta, timezone

import pytest

from datastore.identity import (
    MAX_OTP_ATTEMPTS,
    AuthenticationError,
    IdentityError,
    MockIdentityProvider,
)

PASSWORD = "Sup3r$ecret"


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider(tmp_path, clock: FakeClock) -> MockIdentityProvider:
    return MockIdentityProvider(
        persistence_path=tmp_path / "identity.json", otp_ttl_seconds=60, clock=clock
    )


def _confirmed(provider: MockIdentityProvider, email: str = "ops@greenthread.com") -> str:
    provider.sign_up(email, PASSWORD)
    _, session = provider.verify_otp(email, provider.outbox[-1].code, "signup")
    return session.token


def test_signup_sends_code_and_blocks_login_until_confirmed(provider: MockIdentityProvider) -> None:
    user = provider.sign_up("Ops@GreenThread.com", PASSWORD)

    assert user.email == "ops@greenthread.com"
    assert user.email_confirmed is False
    assert provider.outbox[-1].kind == "signup"
    assert len(provider.outbox[-1].code) == 6
    with pytest.raises(IdentityError, match="Email not confirmed"):
        provider.sign_in("ops@greenthread.com", PASSWORD)


def test_duplicate_signup_is_rejected(provider: MockIdentityProvider) -> None:
    provider.sign_up("ops@greenthread.com", PASSWORD)

    with pytest.raises(IdentityError, match="User already registered"):
        provider.sign_up("ops@greenthread.com", PASSWORD)


def test_code_is_single_use(provider: MockIdentityProvider) -> None:
    provider.sign_up("ops@greenthread.com", PASSWORD)
    code = provider.outbox[-1].code

    user, session = provider.verify_otp("ops@greenthread.com", code, "signup")

    assert user.email_confirmed is True
    assert provider.get_user(session.token).id == user.id
    with pytest.raises(IdentityError, match="Token has expired or is invalid"):
        provider.verify_otp("ops@greenthread.com", code, "signup")


def test_wrong_or_expired_code_is_rejected(provider: MockIdentityProvider, clock: FakeClock) -> None:
    provider.sign_up("ops@greenthread.com", PASSWORD)
    code = provider.outbox[-1].code
    wrong = "000000" if code != "000000" else "111111"

    with pytest.raises(IdentityError):
        provider.verify_otp("ops@greenthread.com", wrong, "signup")

    clock.now += timedelta(seconds=61)
    with pytest.raises(IdentityError, match="Token has expired or is invalid"):
        provider.verify_otp("ops@greenthread.com", code, "signup")


def test_resend_issues_fresh_code(provider: MockIdentityProvider) -> None:
    provider.sign_up("ops@greenthread.com", PASSWORD)
    provider.resend_signup_otp("ops@greenthread.com")

    assert [delivery.kind for delivery in provider.outbox] == ["signup", "signup"]
    with pytest.raises(IdentityError, match="No pending signup"):
        provider.resend_signup_otp("nobody@greenthread.com")


def test_recovery_for_unknown_email_is_silent(provider: MockIdentityProvider) -> None:
    provider.send_recovery_otp("nobody@greenthread.com")

    assert provider.outbox == []


def test_password_update_rejects_reuse(provider: MockIdentityProvider) -> None:
    token = _confirmed(provider)

    with pytest.raises(IdentityError, match="should be different"):
        provider.update_password(token, PASSWORD)

    provider.update_password(token, "N3w$ecret!")
    assert provider.check_password(token, "N3w$ecret!") is True


def test_sign_out_invalidates_session(provider: MockIdentityProvider) -> None:
    token = _confirmed(provider)

    provider.sign_out(token)

    with pytest.raises(AuthenticationError):
        provider.get_user(token)


def test_confirmed_users_survive_reload(tmp_path, provider: MockIdentityProvider) -> None:
    token = _confirmed(provider)
    provider.update_profile(token, "Plant Operator")

    reloaded = MockIdentityProvider(persistence_path=tmp_path / "identity.json")
    user, _ = reloaded.sign_in("ops@greenthread.com", PASSWORD)

    assert user.full_name == "Plant Operator"


def test_mail_log_carries_code_and_verification_link(caplog, clock: FakeClock) -> None:
    caplog.set_level(logging.INFO, logger="datastore.identity")
    provider = MockIdentityProvider(clock=clock, app_url="https://monitor.greenthread.com/")

    provider.sign_up("ops@greenthread.com", PASSWORD)
    provider.send_recovery_otp("ops@greenthread.com")

    mails = [record for record in caplog.records if record.getMessage() == "OTP sent"]
    assert [(mail.reason, mail.otp) for mail in mails] == [
        (delivery.kind, delivery.code) for delivery in provider.outbox
    ]
    assert [mail.link for mail in mails] == [
        "https://monitor.greenthread.com/auth/otp/verify",
        "https://monitor.greenthread.com/auth/password-reset/verify",
    ]


def test_code_is_invalidated_after_repeated_failures(provider: MockIdentityProvider) -> None:
    provider.sign_up("ops@greenthread.com", PASSWORD)
    code = provider.outbox[-1].code
    wrong = "000000" if code != "000000" else "111111"

    for _ in range(MAX_OTP_ATTEMPTS):
        with pytest.raises(IdentityError):
            provider.verify_otp("ops@greenthread.com", wrong, "signup")

    with pytest.raises(IdentityError, match="Token has expired or is invalid"):
        provider.verify_otp("ops@greenthread.com", code, "signup")


def test_fresh_code_resets_failed_attempts(provider: MockIdentityProvider) -> None:
    provider.sign_up("ops@greenthread.com", PASSWORD)
    wrong = "000000" if provider.outbox[-1].code != "000000" else "111111"
    for _ in range(MAX_OTP_ATTEMPTS - 1):
        with pytest.raises(IdentityError):
            provider.verify_otp("ops@greenthread.com", wrong, "signup")

    provider.resend_signup_otp("ops@greenthread.com")
    code = provider.outbox[-1].code
    wrong = "000000" if code != "000000" else "111111"
    with pytest.raises(IdentityError):
        provider.verify_otp("ops@greenthread.com", wrong, "signup")

    user, _ = provider.verify_otp("ops@greenthread.com", code, "signup")
    assert user.email_confirmed is True
