"""Bearer token authentication for the directory API.

The API is protected by a static token (DAVDIR_API_TOKEN). When no token is
configured the API is open, which is only meant for local development.
"""
from __future__ import annotations
import hashlib
import hmac
import logging
from functools import wraps

from flask import current_app, jsonify, request

logger = logging.getLogger(__name__)


def _unauthorized(message: str):
    return jsonify({"error": "Unauthorized", "message": message}), 401


def _token_fingerprint(token: str) -> str:
    """SHA256 prefix of a token, safe to log."""
    return hashlib.sha256(token.encode()).hexdigest()[:12]


def require_api_token(fn):
    """
    Decorator requiring 'Authorization: Bearer <token>' on API endpoints.

    The token is compared in constant time against the configured one.

    Example:
        @bp.route("/principals")
        @require_api_token
        def list_principals():
            ...
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        cfg = current_app.config["APP_CONFIG"]
        expected = cfg.api_token
        if not expected:
            return fn(*args, **kwargs)

        auth_header = request.headers.get("Authorization", "")
        if not auth_header:
            logger.warning("API request missing Authorization header")
            return _unauthorized("Authorization header required. Use 'Authorization: Bearer <token>'")

        if not auth_header.startswith("Bearer "):
            logger.warning(f"API request with invalid Authorization format: {auth_header[:20]}")
            return _unauthorized("Invalid Authorization header format. Expected 'Bearer <token>'")

        token = auth_header[7:]
        if not token:
            return _unauthorized("Bearer token is empty")

        if not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
            logger.warning(f"API request with invalid token | token_hash={_token_fingerprint(token)} | path={request.path}")
            return _unauthorized("Invalid token")

        return fn(*args, **kwargs)

    return wrapper
