import jwt
import pytest

from invoicebook.errors import AuthenticationError
from invoicebook.session import session_from_header, session_from_token

SECRET = "test-signing-key-long-enough-for-hs256"


def _token(**claims):
    return jwt.encode(claims, SECRET, algorithm="HS256")


def test_user_role_and_id():
    session = session_from_token(_token(userId="u-1", role="User", email="a@example.com"))
    assert session.user_id == "u-1"
    assert session.role == "user"
    assert session.email == "a@example.com"
    assert session.is_admin is False


@pytest.mark.parametrize(
    "claim, role",
    [("Admin", "Admin"), ("admin", "Admin"), ("ACCOUNTANT", "accountant"), ("superuser", None)],
)
def test_role_mapping(claim, role):
    assert session_from_token(_token(userId="u-1", role=claim)).role == role


def test_admin_flag():
    assert session_from_token(_token(userId="u-1", role="Admin")).is_admin is True


def test_user_id_falls_back_to_subject():
    assert session_from_token(_token(sub="u-7")).user_id == "u-7"


def test_numeric_user_id_is_text():
    assert session_from_token(_token(id=42)).user_id == "42"


def test_explicit_user_id_wins():
    session = session_from_token(_token(userId="u-1"), user_id="cookie-user")
    assert session.user_id == "cookie-user"


def test_expired_token_still_reads_claims():
    session = session_from_token(_token(userId="u-1", exp=1))
    assert session.user_id == "u-1"


def test_token_is_kept_for_requests():
    token = _token(userId="u-1")
    assert session_from_token(f"  {token} ").token == token


@pytest.mark.parametrize("token", [None, "", "   "])
def test_missing_token(token):
    with pytest.raises(AuthenticationError, match="No authentication token found"):
        session_from_token(token)


def test_garbage_token():
    with pytest.raises(AuthenticationError, match="Invalid authentication token"):
        session_from_token("not-a-jwt")


def test_session_from_bearer_header():
    session = session_from_header(f"Bearer {_token(userId='u-1', role='Admin')}")
    assert session.user_id == "u-1"
    assert session.role == "Admin"


@pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer"])
def test_bad_authorization_header(header):
    with pytest.raises(AuthenticationError):
        session_from_header(header)
