from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from cramr import auth
from cramr.database import get_session
from cramr.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from cramr.models import User
from cramr.utils import utcnow


def test_register_hashes_password_and_reports_conflicts(make_user):
    make_user("taken", email="taken@example.edu")

    with get_session() as session:
        with pytest.raises(ConflictError) as excinfo:
            auth.register_user(
                session,
                username="taken",
                password="Password1!",
                email="taken@example.edu",
                full_name="Someone",
            )
    assert excinfo.value.extra["errors"] == {
        "email": "User with this email already exists",
        "username": "Username is already taken",
    }

    with get_session() as session:
        user = auth.register_user(
            session,
            username="fresh",
            password="Password1!",
            email="fresh@example.edu",
            full_name="Fresh Face",
        )
        assert user.password_hash != "Password1!"
        assert auth.verify_password("Password1!", user.password_hash)


def test_register_requires_all_fields():
    with get_session() as session:
        with pytest.raises(ValidationError, match="Missing required fields"):
            auth.register_user(
                session, username="x", password="", email="x@example.edu", full_name="X"
            )


def test_authenticate_distinguishes_email_and_password(make_user):
    make_user("alice", email="alice@example.edu")

    with get_session() as session:
        assert auth.authenticate(session, "alice@example.edu", "Password1!").username == "alice"
        with pytest.raises(AuthenticationError, match="Invalid email"):
            auth.authenticate(session, "nobody@example.edu", "Password1!")
        with pytest.raises(AuthenticationError, match="Invalid password"):
            auth.authenticate(session, "alice@example.edu", "wrong")
        with pytest.raises(ValidationError, match="Missing email or password"):
            auth.authenticate(session, "", "")


def test_verify_password_rejects_non_bcrypt_hash():
    assert auth.verify_password("secret", "plain-text") is False
    assert auth.verify_password("secret", None) is False


@pytest.mark.parametrize(
    "password, message",
    [
        ("Short1!", "at least 8 characters"),
        ("lowercase1!", "capital letter"),
        ("Uppercase1", "special character"),
    ],
)
def test_validate_new_password_rules(password, message):
    with pytest.raises(ValidationError, match=message):
        auth.validate_new_password(password)


def test_password_reset_flow(make_user):
    make_user("alice", email="alice@example.edu")

    with get_session() as session:
        user, code = auth.start_password_reset(session, "alice@example.edu")
        assert len(code) == 6 and code.isdigit()
    wrong = "000000" if code != "000000" else "111111"
    with get_session() as session:
        with pytest.raises(ValidationError) as excinfo:
            auth.verify_reset_code(session, "alice@example.edu", wrong)
        assert excinfo.value.extra["code"] == "CODE_EXPIRED"
        token = auth.verify_reset_code(session, "alice@example.edu", code)
    with get_session() as session:
        auth.confirm_password_reset(session, token, "NewPassword1!")
    with get_session() as session:
        user = auth.authenticate(session, "alice@example.edu", "NewPassword1!")
        assert user.verification_code is None
        with pytest.raises(ValidationError) as excinfo:
            auth.confirm_password_reset(session, token, "Another1!")
        assert excinfo.value.extra["code"] == "TOKEN_EXPIRED"


def test_expired_reset_code_is_rejected(make_user):
    make_user("alice", email="alice@example.edu")

    with get_session() as session:
        user, code = auth.start_password_reset(session, "alice@example.edu")
        user.verification_code_expiry = utcnow() - timedelta(minutes=1)
    with get_session() as session:
        with pytest.raises(ValidationError, match="Invalid or expired verification code"):
            auth.verify_reset_code(session, "alice@example.edu", code)


def test_password_reset_unknown_email():
    with get_session() as session:
        with pytest.raises(NotFoundError, match="No account found"):
            auth.start_password_reset(session, "ghost@example.edu")


def test_otp_store_single_use_and_attempt_limit():
    store = auth.OtpStore(ttl=timedelta(minutes=15), max_attempts=3)
    code = store.issue("a@example.edu")
    store.verify("a@example.edu", code)
    with pytest.raises(ValidationError, match="No OTP found"):
        store.verify("a@example.edu", code)

    code = store.issue("b@example.edu")
    wrong = "000000" if code != "000000" else "111111"
    for _ in range(3):
        with pytest.raises(ValidationError, match="Invalid OTP"):
            store.verify("b@example.edu", wrong)
    with pytest.raises(ValidationError, match="Too many failed attempts"):
        store.verify("b@example.edu", code)
    assert len(store) == 0


def test_otp_store_expiry_and_sweep():
    store = auth.OtpStore(ttl=timedelta(minutes=15), max_attempts=3)
    issued = datetime(2024, 1, 1, 12, 0)
    code = store.issue("a@example.edu", now=issued)
    store.issue("b@example.edu", now=issued + timedelta(minutes=10))

    with pytest.raises(ValidationError, match="OTP has expired"):
        store.verify("a@example.edu", code, now=issued + timedelta(minutes=16))
    assert store.sweep(now=issued + timedelta(minutes=30)) == 1
    assert len(store) == 0


def test_user_rows_never_store_plain_passwords(make_user):
    user_id = make_user("alice", password="Password1!")
    with get_session() as session:
        assert session.get(User, user_id).password_hash.startswith("$2")
