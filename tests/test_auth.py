import random
import string
from datetime import timedelta

import pytest
from flask import Flask, jsonify

from eleclog.auth import (
    AUTHORIZATION_TYPE_BEARER,
    TOKEN_MAKER_KEY,
    AuthError,
    TokenError,
    TokenMaker,
    authenticate,
    authorized_username,
    require_auth,
)


def random_key(length):
    return "".join(random.choices(string.ascii_letters, k=length))


@pytest.fixture
def maker():
    return TokenMaker(random_key(32))


@pytest.fixture
def client(maker):
    app = Flask(__name__)
    app.config[TOKEN_MAKER_KEY] = maker

    @app.get("/auth")
    @require_auth
    def protected():
        return jsonify({"user": authorized_username()})

    return app.test_client()


def auth_header(maker, authorization_type, username, duration):
    token, payload = maker.create_token(username, duration)
    assert payload.username == username
    return {"Authorization": f"{authorization_type} {token}"}


def test_ok(client, maker):
    headers = auth_header(maker, AUTHORIZATION_TYPE_BEARER, "user", timedelta(minutes=1))
    response = client.get("/auth", headers=headers)
    assert response.status_code == 200
    assert response.get_json() == {"user": "user"}


def test_no_authorization(client, maker):
    response = client.get("/auth")
    assert response.status_code == 401
    assert response.get_json()["error"] == "authorization header is not provided"
    with pytest.raises(AuthError, match="authorization header is not provided"):
        authenticate("", maker)


def test_unsupported_authorization_type(client, maker):
    headers = auth_header(maker, "unsupported", "user", timedelta(minutes=1))
    response = client.get("/auth", headers=headers)
    assert response.status_code == 401
    assert response.get_json()["error"] == "unsupported authorization type"


def test_invalid_authorization_format(client, maker):
    headers = auth_header(maker, "", "user", timedelta(minutes=1))
    response = client.get("/auth", headers=headers)
    assert response.status_code == 401


def test_expired_token(client, maker):
    headers = auth_header(maker, AUTHORIZATION_TYPE_BEARER, "user", -timedelta(minutes=1))
    response = client.get("/auth", headers=headers)
    assert response.status_code == 401
    assert "token has expired" in response.get_json()["error"]


def test_token_round_trip(maker):
    token, payload = maker.create_token("alice", timedelta(minutes=5))
    verified = maker.verify_token(token)
    assert verified == payload
    assert verified.expired_at - verified.issued_at == timedelta(minutes=5)


def test_token_from_other_key_is_invalid(maker):
    other = TokenMaker(random_key(32))
    token, _ = other.create_token("alice", timedelta(minutes=5))
    with pytest.raises(TokenError, match="token is invalid"):
        maker.verify_token(token)


def test_tampered_token_is_invalid(maker):
    token, _ = maker.create_token("alice", timedelta(minutes=5))
    with pytest.raises(TokenError):
        maker.verify_token(token[:-2] + ("AA" if token[-2:] != "AA" else "BB"))


def test_bad_key_size():
    with pytest.raises(TokenError):
        TokenMaker(random_key(5))


def test_authenticate_single_field(maker):
    token, _ = maker.create_token("user", timedelta(minutes=1))
    with pytest.raises(AuthError, match="invalid authorization header format"):
        authenticate(f" {token}", maker)


def test_authenticate_case_insensitive_type(maker):
    token, _ = maker.create_token("user", timedelta(minutes=1))
    assert authenticate(f"BEARER {token}", maker).username == "user"


def test_authenticate_wraps_token_error(maker):
    with pytest.raises(AuthError, match="^invalid token: token is invalid$"):
        authenticate("Bearer token", maker)