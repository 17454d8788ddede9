"""Principal directory JSON API.

Thin HTTP surface over PrincipalStore for operators and adjacent services.
All business rules live in davdir.core; this module only parses requests,
maps outcomes to status codes and writes the audit trail for changes.

Architecture:
    /api/v1/* -> davdir.core.principals.PrincipalStore -> relational store
"""
from __future__ import annotations
import logging

from flask import Blueprint, abort, current_app, jsonify, request
from sqlalchemy.exc import IntegrityError

from davdir.api.decorators import require_api_token
from davdir.core.principals import PrincipalStore, SearchTest
from scripts import audit

bp = Blueprint("principals", __name__)

logger = logging.getLogger(__name__)

AUDIT_OPERATOR = "api"


# ─────────────────────────────────────────────────────────────────────────────
# Request helpers
# ─────────────────────────────────────────────────────────────────────────────

def _store() -> PrincipalStore:
    return current_app.config["PRINCIPAL_STORE"]


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        abort(400, description="Request body must be a JSON object")
    return payload


def _properties(payload: dict, key: str = "properties") -> dict:
    """Extract a property -> string (or null) mapping from the payload."""
    properties = payload.get(key) or {}
    if not isinstance(properties, dict):
        abort(400, description=f"'{key}' must be an object")
    for name, value in properties.items():
        if value is not None and not isinstance(value, str):
            abort(400, description=f"Value of {name} must be a string or null")
    return properties


def _public(principal: dict) -> dict:
    """Drop the internal id before returning a principal."""
    return {key: value for key, value in principal.items() if key != "id"}


def _default_prefix() -> str:
    return current_app.config["APP_CONFIG"].principal_prefix


# ─────────────────────────────────────────────────────────────────────────────
# Principals
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/principals", methods=["GET"])
@require_api_token
def list_principals():
    prefix = request.args.get("prefix", _default_prefix())
    return jsonify({"principals": _store().get_principals_by_prefix(prefix)})


@bp.route("/principals", methods=["POST"])
@require_api_token
def create_principal():
    """Create a principal: {"uri": "...", "properties": {...}}."""
    payload = _json_body()
    uri = payload.get("uri")
    if not isinstance(uri, str) or not uri.strip("/"):
        abort(400, description="'uri' is required")
    properties = _properties(payload)

    try:
        unhandled = _store().create_principal(uri, properties)
    except IntegrityError:
        logger.warning(f"Principal {uri} already exists")
        audit.safe_log_directory_event(
            "create_principal", uri, operator=AUDIT_OPERATOR,
            details={"error": "already exists"}, success=False,
        )
        abort(409, description=f"Principal {uri} already exists")

    audit.safe_log_directory_event(
        "create_principal", uri, operator=AUDIT_OPERATOR,
        details={"properties": sorted(set(properties) - set(unhandled))},
    )
    body = {"uri": uri, "unhandled": sorted(unhandled)}
    return jsonify(body), 201


@bp.route("/principals/<path:uri>", methods=["GET"])
@require_api_token
def get_principal(uri: str):
    principal = _store().get_principal_by_path(uri)
    if principal is None:
        abort(404, description=f"Principal {uri} not found")
    return jsonify(_public(principal))


@bp.route("/principals/<path:uri>", methods=["PATCH"])
@require_api_token
def update_principal(uri: str):
    """Update recognized properties: {"properties": {name: value|null}}."""
    properties = _properties(_json_body())
    store = _store()
    if store.get_principal_by_path(uri) is None:
        abort(404, description=f"Principal {uri} not found")

    unhandled = store.update_principal(uri, properties)
    handled = sorted(set(properties) - set(unhandled))
    if handled:
        audit.safe_log_directory_event(
            "update_principal", uri, operator=AUDIT_OPERATOR, details={"properties": handled},
        )
    return jsonify({"uri": uri, "updated": handled, "unhandled": sorted(unhandled)})


# ─────────────────────────────────────────────────────────────────────────────
# Group membership
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/members/<path:uri>", methods=["GET"])
@require_api_token
def get_members(uri: str):
    return jsonify({"uri": uri, "members": _store().get_group_member_set(uri)})


@bp.route("/members/<path:uri>", methods=["PUT"])
@require_api_token
def set_members(uri: str):
    """Replace the member list: {"members": ["principals/users/alice", ...]}."""
    members = _json_body().get("members")
    if not isinstance(members, list) or not all(isinstance(m, str) for m in members):
        abort(400, description="'members' must be a list of principal URIs")

    stored = _store().set_group_member_set(uri, members)
    audit.safe_log_directory_event(
        "set_group_members", uri, operator=AUDIT_OPERATOR,
        details={"members": stored, "skipped": sorted(set(members) - set(stored))},
    )
    return jsonify({"uri": uri, "members": stored})


@bp.route("/memberships/<path:uri>", methods=["GET"])
@require_api_token
def get_memberships(uri: str):
    return jsonify({"uri": uri, "memberships": _store().get_group_membership(uri)})


# ─────────────────────────────────────────────────────────────────────────────
# Search & resolve
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/search", methods=["POST"])
@require_api_token
def search():
    """Property search: {"prefix": ..., "properties": {...}, "test": "allof"|"anyof"}."""
    payload = _json_body()
    properties = _properties(payload)
    if any(value is None for value in properties.values()):
        abort(400, description="Search values must be strings")
    prefix = payload.get("prefix", _default_prefix())
    try:
        test = SearchTest(payload.get("test", SearchTest.ALLOF.value))
    except ValueError:
        abort(400, description="'test' must be 'allof' or 'anyof'")

    return jsonify({"principals": _store().search_principals(prefix, properties, test)})


@bp.route("/resolve", methods=["GET"])
@require_api_token
def resolve():
    """Resolve an external URI (mailto:) to a principal URI."""
    uri = request.args.get("uri", "")
    if not uri:
        abort(400, description="'uri' query parameter is required")
    prefix = request.args.get("prefix", _default_prefix())

    found = _store().find_by_uri(uri, prefix)
    if found is None:
        abort(404, description=f"No principal for {uri}")
    return jsonify({"uri": found})
