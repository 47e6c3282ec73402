"""Access tokens and the bearer-token guard for protected routes."""

from __future__ import annotations

import base64
import functools
import hashlib
import hmac
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from flask import current_app, g, jsonify, request

AUTHORIZATION_HEADER_KEY = "authorization"
AUTHORIZATION_TYPE_BEARER = "bearer"
AUTHORIZATION_PAYLOAD_KEY = "authorization_payload"
TOKEN_MAKER_KEY = "ELECLOG_TOKEN_MAKER"

KEY_SIZE = 32
_TOKEN_PREFIX = "v1.local."


class TokenError(Exception):
    """A token could not be created or verified."""


class AuthError(Exception):
    """A request carries no usable authorization."""


@dataclass(frozen=True)
class Payload:
    id: str
    username: str
    issued_at: datetime
    expired_at: datetime

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "issued_at": self.issued_at.isoformat(),
            "expired_at": self.expired_at.isoformat(),
        }

    @classmethod
    def from_json(cls, data: dict) -> "Payload":
        return cls(
            id=str(data["id"]),
            username=str(data["username"]),
            issued_at=datetime.fromisoformat(data["issued_at"]),
            expired_at=datetime.fromisoformat(data["expired_at"]),
        )


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class TokenMaker:
    """Creates and verifies signed, expiring access tokens."""

    def __init__(self, symmetric_key: str) -> None:
        key = symmetric_key.encode("utf-8")
        if len(key) != KEY_SIZE:
            raise TokenError(f"invalid key size: must be exactly {KEY_SIZE} characters")
        self._key = key

    def _sign(self, body: str) -> str:
        digest = hmac.new(self._key, body.encode("ascii"), hashlib.sha256).digest()
        return _b64encode(digest)

    def create_token(self, username: str, duration: timedelta) -> tuple[str, Payload]:
        issued = datetime.now(timezone.utc)
        payload = Payload(
            id=str(uuid.uuid4()),
            username=username,
            issued_at=issued,
            expired_at=issued + duration,
        )
        body = _b64encode(json.dumps(payload.to_json()).encode("utf-8"))
        return f"{_TOKEN_PREFIX}{body}.{self._sign(body)}", payload

    def verify_token(self, token: str) -> Payload:
        if not token.startswith(_TOKEN_PREFIX):
            raise TokenError("token is invalid")
        body, _, signature = token[len(_TOKEN_PREFIX):].partition(".")
        if not body or not hmac.compare_digest(signature, self._sign(body)):
            raise TokenError("token is invalid")
        try:
            payload = Payload.from_json(json.loads(_b64decode(body)))
        except (ValueError, KeyError, TypeError) as exc:
            raise TokenError("token is invalid") from exc
        if datetime.now(timezone.utc) > payload.expired_at:
            raise TokenError("token has expired")
        return payload


def authenticate(header: str | None, maker: TokenMaker) -> Payload:
    """Check an Authorization header value and return the token's payload."""
    if not header:
        raise AuthError("authorization header is not provided")
    fields = header.split()
    if len(fields) < 2:
        raise AuthError("invalid authorization header format")
    if fields[0].lower() != AUTHORIZATION_TYPE_BEARER:
        raise AuthError("unsupported authorization type")
    try:
        return maker.verify_token(fields[1])
    except TokenError as exc:
        raise AuthError(f"invalid token: {exc}") from exc


def require_auth(view):
    """Reject the request with 401 unless it carries a valid bearer token."""

    @functools.wraps(view)
    def wrapper(*args, **kwargs):
        maker = current_app.config[TOKEN_MAKER_KEY]
        try:
            payload = authenticate(request.headers.get(AUTHORIZATION_HEADER_KEY), maker)
        except AuthError as exc:
            return jsonify({"error": str(exc)}), 401
        setattr(g, AUTHORIZATION_PAYLOAD_KEY, payload)
        return view(*args, **kwargs)

    return wrapper


def authorized_username() -> str:
    """The username from the token accepted for the current request."""
    payload = getattr(g, AUTHORIZATION_PAYLOAD_KEY, None)
    if payload is None:
        raise AuthError("request is not authorized")
    return payload.username