"""Audit logging utilities for directory changes (principals, group members, digests)."""

from __future__ import annotations
import datetime
import hashlib
import hmac
import json
import os
import sys
from pathlib import Path
from typing import Any, Literal

AUDIT_LOG_DIR = Path(os.environ.get("AUDIT_LOG_DIR", ".runtime/audit"))
_default_secret_paths: list[Path] = []
_env_secret_path_str = os.environ.get("AUDIT_LOG_SIGNING_KEY_FILE")
_env_secret_path: Path | None = None
if _env_secret_path_str:
    _env_secret_path = Path(_env_secret_path_str)
    _default_secret_paths.append(_env_secret_path)
_default_secret_paths.extend([
    Path(".runtime/secrets/audit_log_signing_key"),
    Path("/run/secrets/audit_log_signing_key"),
])
AUDIT_LOG_FILE = AUDIT_LOG_DIR / "directory-events.jsonl"


def _get_signing_key() -> bytes:
    """Get the audit signing key (env var first, then secret files)."""
    if "AUDIT_LOG_SIGNING_KEY" in os.environ:
        return os.environ.get("AUDIT_LOG_SIGNING_KEY", "").strip().encode("utf-8")
    for path in _default_secret_paths:
        if path.exists():
            try:
                return path.read_text(encoding="utf-8").strip().encode("utf-8")
            except OSError:
                continue
    return b""


EventType = Literal[
    "create_principal",
    "update_principal",
    "set_group_members",
    "set_digest",
]


def _ensure_audit_dir() -> None:
    """Create audit directory with restricted permissions."""
    AUDIT_LOG_DIR.mkdir(parents=True, exist_ok=True)
    AUDIT_LOG_DIR.chmod(0o700)


def _sign_event(event: dict[str, Any]) -> str:
    """Generate HMAC-SHA256 signature for audit event."""
    signing_key = _get_signing_key()
    if not signing_key:
        return ""
    # Canonical JSON representation for signing
    canonical = json.dumps(event, sort_keys=True, separators=(",", ":"))
    return hmac.new(signing_key, canonical.encode("utf-8"), hashlib.sha256).hexdigest()


def log_directory_event(
    event_type: EventType,
    principal: str,
    *,
    operator: str = "system",
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """Append a directory event to the audit trail with timestamp and signature.

    Args:
        event_type: Type of change (create_principal, set_group_members, ...)
        principal: Principal URI (or username for digest changes) affected
        operator: Who performed the change ("cli", "api", a username, ...)
        details: Additional context (properties, members, ...)
        success: Whether the change succeeded
    """
    _ensure_audit_dir()

    event = {
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "event_type": event_type,
        "principal": principal,
        "operator": operator,
        "success": success,
        "details": details or {},
    }

    signature = _sign_event(event)
    if signature:
        event["signature"] = signature

    # One JSON object per line
    with AUDIT_LOG_FILE.open("a", encoding="utf-8") as f:
        f.write(json.dumps(event, ensure_ascii=False) + "\n")

    AUDIT_LOG_FILE.chmod(0o600)


def safe_log_directory_event(
    event_type: EventType,
    principal: str,
    *,
    operator: str = "system",
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> bool:
    """Log a directory event, reporting failures on stderr instead of raising.

    Audit failures must not break the change that was already committed.

    Returns:
        True if event was logged successfully, False if logging failed
    """
    try:
        log_directory_event(
            event_type,
            principal,
            operator=operator,
            details=details,
            success=success,
        )
        return True
    except OSError as e:
        print(
            f"[audit] Warning: Failed to log {event_type} event for {principal}: {e}",
            file=sys.stderr,
        )
        return False


def verify_audit_log() -> tuple[int, int]:
    """Verify all signatures in the audit log.

    Returns:
        Tuple of (total_events, valid_signatures)
    """
    if not AUDIT_LOG_FILE.exists():
        return 0, 0

    total = 0
    valid = 0

    with AUDIT_LOG_FILE.open("r", encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            total += 1
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            stored_sig = event.pop("signature", "")
            if not stored_sig:
                continue
            computed_sig = _sign_event(event)
            if computed_sig and hmac.compare_digest(stored_sig, computed_sig):
                valid += 1

    return total, valid


if __name__ == "__main__":
    total, valid = verify_audit_log()
    print(f"Audit log: {valid}/{total} events with valid signatures")
    sys.exit(0 if total == valid else 1)
