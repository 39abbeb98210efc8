import hmac
import logging
import secrets
import time
from functools import wraps
from flask import current_app, jsonify, request


logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Auth-Token"


class TokenStore:
    """In-memory bearer tokens with a fixed lifetime. Lost on restart."""

    def __init__(self, ttl_seconds: float, clock=time.time):
        self.ttl = ttl_seconds
        self._clock = clock
        self._tokens = {}

    def issue(self) -> str:
        token = secrets.token_hex(32)
        self._tokens[token] = self._clock() + self.ttl
        return token

    def verify(self, token: str | None) -> bool:
        if not token:
            return False
        expires = self._tokens.get(token)
        if expires is None:
            return False
        if expires < self._clock():
            self._tokens.pop(token, None)
            return False
        return True

    def revoke(self, token: str | None) -> None:
        if token:
            self._tokens.pop(token, None)


def check_password(candidate, expected: str) -> bool:
    if not expected:
        logger.warning("Login refused: FRIDAY_ADMIN_PASSWORD is not set")
        return False
    if not isinstance(candidate, str):
        return False
    return hmac.compare_digest(candidate.encode(), expected.encode())


def require_auth(view):
    """Reject the request with 401 unless it carries a live X-Auth-Token."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        token = request.headers.get(TOKEN_HEADER)
        if not token:
            return jsonify({"error": "Authentication required"}), 401
        if not current_app.extensions["token_store"].verify(token):
            logger.info("Rejected expired or unknown token on %s %s", request.method, request.path)
            return jsonify({"error": "Invalid or expired token"}), 401
        return view(*args, **kwargs)

    return wrapper
