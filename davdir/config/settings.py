"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from sqlalchemy.engine import Engine

from davdir.core.fieldmap import FieldMap, default_field_map, parse_extra_fields
from davdir.core.schema import create_engine_for_url

DEMO_DATABASE_URL = "sqlite:///.runtime/davdir.db"


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = Path("/run/secrets") / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                print(f"[settings] ✓ Loaded {secret_name} from /run/secrets")
                return secret_value
        except OSError as e:
            print(f"[settings] ✗ Failed to read /run/secrets/{secret_name}: {e}")

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            return secret_value

    return None


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # Relational store
    database_url: str
    principals_table: str = "principals"
    group_members_table: str = "groupmembers"
    users_table: str = "users"
    users_realm_column: str = ""

    # Directory layout
    principal_prefix: str = "principals/users"
    extra_fields: dict[str, str] = field(default_factory=dict)

    # HTTP API
    api_token: str = ""

    def build_field_map(self) -> FieldMap:
        """Default recognized properties plus the configured extra fields.

        Raises:
            ValueError: If an extra field maps to an invalid or taken column
        """
        field_map = default_field_map()
        for prop, column in self.extra_fields.items():
            field_map.register(prop, column)
        return field_map

    @property
    def schema_options(self) -> dict:
        """Keyword arguments for build_metadata()/init_schema()."""
        return {
            "field_map": self.build_field_map(),
            "principals_table": self.principals_table,
            "group_members_table": self.group_members_table,
            "users_table": self.users_table,
            "users_realm_column": self.users_realm_column or None,
        }


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() == "true"


def load_settings() -> AppConfig:
    """Load directory settings from environment and /run/secrets."""
    demo_mode = _env_flag("DEMO_MODE")

    database_url = _load_secret_from_file("database_url", "DATABASE_URL")
    if not database_url:
        if not demo_mode:
            raise RuntimeError("DATABASE_URL not found in /run/secrets or environment")
        database_url = DEMO_DATABASE_URL
        Path(".runtime").mkdir(parents=True, exist_ok=True)
        print(f"[demo-mode] Using default database {database_url}")

    api_token = _load_secret_from_file("api_token", "DAVDIR_API_TOKEN") or ""
    if not api_token and demo_mode:
        api_token = secrets.token_urlsafe(32)
        os.environ["DAVDIR_API_TOKEN"] = api_token
        print("[demo-mode] Generated temporary DAVDIR_API_TOKEN")

    extra_fields = parse_extra_fields(os.environ.get("DAVDIR_EXTRA_FIELDS", ""))

    principal_prefix = os.environ.get("DAVDIR_PRINCIPAL_PREFIX", "principals/users").strip().rstrip("/")

    cfg = AppConfig(
        demo_mode=demo_mode,
        database_url=database_url,
        principals_table=os.environ.get("DAVDIR_PRINCIPALS_TABLE", "principals").strip(),
        group_members_table=os.environ.get("DAVDIR_GROUPMEMBERS_TABLE", "groupmembers").strip(),
        users_table=os.environ.get("DAVDIR_USERS_TABLE", "users").strip(),
        users_realm_column=os.environ.get("DAVDIR_USERS_REALM_COLUMN", "").strip(),
        principal_prefix=principal_prefix,
        extra_fields=extra_fields,
        api_token=api_token,
    )

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    print(f"[settings] Mode={mode_label}; prefix={principal_prefix}; fields={len(cfg.build_field_map())}")
    return cfg


def create_engine_from_settings(cfg: AppConfig, echo: Optional[bool] = None) -> Engine:
    """Create the SQLAlchemy engine for the configured database."""
    if echo is None:
        echo = _env_flag("DAVDIR_SQL_ECHO")
    return create_engine_for_url(cfg.database_url, echo=echo)
