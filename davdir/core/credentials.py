"""Digest credential lookup.

The default users table has no realm column: the same digest hash is returned
for every realm. Deployments that keep one hash per realm configure a
``realm_column`` so the realm becomes part of the lookup.
"""
from __future__ import annotations
import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine

from .fieldmap import validate_identifier

logger = logging.getLogger(__name__)


class DigestCredentials:
    """Keyed lookup from (realm, username) to the stored digest hash."""

    def __init__(self, engine: Engine, table_name: str = "users", realm_column: Optional[str] = None):
        self.engine = engine
        self.table_name = validate_identifier(table_name, "Table")
        self.realm_column = validate_identifier(realm_column) if realm_column else None

    def get_digest_hash(self, realm: str, username: str) -> Optional[str]:
        """Return the digest hash (HA1) for a user.

        Args:
            realm: Authentication realm
            username: Username

        Returns:
            Digest hash or None if the user is unknown
        """
        sql = f"SELECT digesta1 FROM {self.table_name} WHERE username = :username"
        params = {"username": username}
        if self.realm_column:
            sql += f" AND {self.realm_column} = :realm"
            params["realm"] = realm

        with self.engine.connect() as conn:
            row = conn.execute(text(sql), params).mappings().first()

        if row is None:
            logger.debug(f"No digest hash for {username!r}")
            return None
        return row["digesta1"]

    def set_digest_hash(self, realm: str, username: str, digest: str) -> None:
        """Store a precomputed digest hash, replacing any previous one.

        The hash is stored as given; computing it is the caller's job.
        """
        where = "username = :username"
        params = {"username": username, "digest": digest}
        if self.realm_column:
            where += f" AND {self.realm_column} = :realm"
            params["realm"] = realm

        with self.engine.begin() as conn:
            result = conn.execute(
                text(f"UPDATE {self.table_name} SET digesta1 = :digest WHERE {where}"), params
            )
            if result.rowcount:
                return
            if self.realm_column:
                insert = (
                    f"INSERT INTO {self.table_name} (username, {self.realm_column}, digesta1) "
                    "VALUES (:username, :realm, :digest)"
                )
            else:
                insert = f"INSERT INTO {self.table_name} (username, digesta1) VALUES (:username, :digest)"
            conn.execute(text(insert), params)
        logger.info(f"Stored digest hash for {username!r}")
