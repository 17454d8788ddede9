"""Table definitions and schema bootstrap.

Schema migration is out of scope: init_schema() only creates missing tables
(CREATE TABLE IF NOT EXISTS semantics) for first runs, the CLI and tests.
"""
from __future__ import annotations
import logging
from typing import Optional

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine

from .fieldmap import FieldMap, default_field_map, validate_identifier

logger = logging.getLogger(__name__)


def build_metadata(
    field_map: Optional[FieldMap] = None,
    principals_table: str = "principals",
    group_members_table: str = "groupmembers",
    users_table: str = "users",
    users_realm_column: Optional[str] = None,
) -> MetaData:
    """Describe the principals, group members and users tables.

    Every column of the field map becomes a nullable string column of the
    principals table.
    """
    field_map = field_map if field_map is not None else default_field_map()
    validate_identifier(principals_table, "Table")
    validate_identifier(group_members_table, "Table")
    validate_identifier(users_table, "Table")

    metadata = MetaData()

    Table(
        principals_table,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("uri", String(200), nullable=False, unique=True),
        *[Column(column, String(200), nullable=True) for column in field_map.columns],
    )

    Table(
        group_members_table,
        metadata,
        Column("principal_id", Integer, ForeignKey(f"{principals_table}.id"), primary_key=True),
        Column("member_id", Integer, ForeignKey(f"{principals_table}.id"), primary_key=True),
    )

    user_columns = [
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("username", String(50), nullable=False),
        Column("digesta1", String(32), nullable=True),
    ]
    if users_realm_column:
        validate_identifier(users_realm_column)
        user_columns.append(Column(users_realm_column, String(100), nullable=False))
        user_columns.append(UniqueConstraint("username", users_realm_column))
    else:
        user_columns[1] = Column("username", String(50), nullable=False, unique=True)
    Table(users_table, metadata, *user_columns)

    return metadata


def init_schema(engine: Engine, **kwargs) -> MetaData:
    """Create the directory tables that do not exist yet.

    Accepts the same keyword arguments as build_metadata().
    """
    metadata = build_metadata(**kwargs)
    metadata.create_all(engine, checkfirst=True)
    logger.info(f"Directory schema ready: {', '.join(sorted(metadata.tables))}")
    return metadata


def create_engine_for_url(database_url: str, echo: bool = False) -> Engine:
    """Create an engine, enabling foreign keys on SQLite connections."""
    engine = create_engine(database_url, echo=echo)
    if engine.dialect.name == "sqlite":
        from sqlalchemy import event

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys = ON")
            cursor.close()

    return engine
