"""Principal directory backed by a relational database.

All principals live in a single table; collections such as
``principals/users`` and ``principals/groups`` are derived from the URI at
query time, there is no stored prefix column.

Usage:
    from davdir.core.principals import PrincipalStore
    from davdir.core.schema import create_engine_for_url

    store = PrincipalStore(create_engine_for_url("sqlite:///davdir.db"))
    store.create_principal("principals/users/alice", {"{DAV:}displayname": "Alice"})
    store.get_principals_by_prefix("principals/users")
"""
from __future__ import annotations
import logging
from enum import Enum
from typing import Callable, Dict, Iterable, Mapping, Optional, Union

from sqlalchemy import Select, String, and_, bindparam, column, func, or_, select, table, text
from sqlalchemy.engine import Connection, Engine

from .exceptions import PrincipalNotFoundError
from .fieldmap import EMAIL_ADDRESS, FieldMap, default_field_map, validate_identifier
from .paths import is_in_prefix

logger = logging.getLogger(__name__)


class SearchTest(str, Enum):
    """How multiple search properties are combined."""
    ALLOF = "allof"
    ANYOF = "anyof"


class PrincipalStore:
    """Principal records and group membership edges."""

    def __init__(
        self,
        engine: Engine,
        field_map: Optional[FieldMap] = None,
        principals_table: str = "principals",
        group_members_table: str = "groupmembers",
    ):
        """Initialize the store.

        Args:
            engine: SQLAlchemy engine of the relational store
            field_map: Recognized properties (defaults to displayname + email)
            principals_table: Name of the principals table
            group_members_table: Name of the group membership table
        """
        self.engine = engine
        self.field_map = field_map if field_map is not None else default_field_map()
        self.principals_table = validate_identifier(principals_table, "Table")
        self.group_members_table = validate_identifier(group_members_table, "Table")

        # URI scheme -> resolver(connection, value) returning candidate rows
        self._uri_resolvers: Dict[str, Callable[[Connection, str], Iterable[Mapping]]] = {
            "mailto": self._resolve_mailto,
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Lookups
    # ─────────────────────────────────────────────────────────────────────────

    def _select_columns(self, *leading: str) -> str:
        return ", ".join([*leading, *self.field_map.columns])

    def get_principals_by_prefix(self, prefix_path: str) -> list[dict]:
        """Return all principals directly inside a collection.

        Only principals whose parent path is exactly ``prefix_path`` are
        returned, nested collections are not.

        Args:
            prefix_path: Collection path, e.g. 'principals/users'

        Returns:
            List of principals with 'uri' and every set recognized property
        """
        sql = f"SELECT {self._select_columns('uri')} FROM {self.principals_table} ORDER BY id"
        with self.engine.connect() as conn:
            rows = conn.execute(text(sql)).mappings().all()

        principals = []
        for row in rows:
            if not is_in_prefix(row["uri"], prefix_path):
                continue
            principal = {"uri": row["uri"]}
            principal.update(self.field_map.row_to_properties(row))
            principals.append(principal)
        return principals

    def get_principal_by_path(self, path: str) -> Optional[dict]:
        """Return a principal by its exact URI.

        The structure matches get_principals_by_prefix() with the internal
        'id' added.

        Returns:
            Principal dict or None if not found
        """
        sql = (
            f"SELECT {self._select_columns('id', 'uri')} FROM {self.principals_table} "
            "WHERE uri = :uri"
        )
        with self.engine.connect() as conn:
            row = conn.execute(text(sql), {"uri": path}).mappings().first()

        if row is None:
            return None

        principal = {"id": row["id"], "uri": row["uri"]}
        principal.update(self.field_map.row_to_properties(row))
        return principal

    # ─────────────────────────────────────────────────────────────────────────
    # Updates
    # ─────────────────────────────────────────────────────────────────────────

    def update_principal(self, path: str, changes: Mapping[str, Optional[str]]) -> dict:
        """Update recognized properties of a principal.

        Recognized properties are written with a single UPDATE statement. A
        value of None clears the property.

        Args:
            path: Principal URI
            changes: Property name -> new value

        Returns:
            The changes this store did not handle (unrecognized properties),
            for the caller to process or reject
        """
        with self.engine.begin() as conn:
            return self._update_principal(conn, path, changes)

    def _update_principal(
        self, conn: Connection, path: str, changes: Mapping[str, Optional[str]]
    ) -> dict:
        values = {}
        unhandled = {}
        for prop, value in changes.items():
            column = self.field_map.column_for(prop)
            if column is None:
                unhandled[prop] = value
            else:
                values[column] = value

        if not values:
            return unhandled

        assignments = ", ".join(f"{column} = :{column}" for column in values)
        sql = f"UPDATE {self.principals_table} SET {assignments} WHERE uri = :uri"
        params = dict(values)
        # 'uri' is reserved in the field map, no clash with a column param
        params["uri"] = path
        result = conn.execute(text(sql), params)
        logger.debug(f"Updated {sorted(values)} on {path} ({result.rowcount} row)")
        return unhandled

    def create_principal(self, path: str, properties: Optional[Mapping[str, Optional[str]]] = None) -> dict:
        """Create a new principal.

        The row is inserted and the initial properties applied in one
        transaction. Duplicate URIs fail with the store's IntegrityError.

        Args:
            path: Full URI of the new principal
            properties: Initial property values

        Returns:
            Unhandled properties, as for update_principal()
        """
        with self.engine.begin() as conn:
            conn.execute(
                text(f"INSERT INTO {self.principals_table} (uri) VALUES (:uri)"),
                {"uri": path},
            )
            unhandled = self._update_principal(conn, path, properties or {})
        logger.info(f"Created principal {path}")
        return unhandled

    # ─────────────────────────────────────────────────────────────────────────
    # Search
    # ─────────────────────────────────────────────────────────────────────────

    def search_principals(
        self,
        prefix_path: str,
        search_properties: Mapping[str, str],
        test: Union[str, SearchTest] = SearchTest.ALLOF,
    ) -> list[str]:
        """Search principals by property values (principal-property-search).

        Values match case-insensitively anywhere in the stored value.
        Searching on a property that is not in the field map returns no
        results at all, even if other properties are valid.

        Args:
            prefix_path: Collection to search in
            search_properties: Property name -> substring
            test: 'allof' (AND, default) or 'anyof' (OR)

        Returns:
            URIs of matching principals

        Raises:
            ValueError: If test is not 'allof' or 'anyof'
        """
        statement = self.build_search_statement(search_properties, test)
        if statement is None:
            return []

        with self.engine.connect() as conn:
            rows = conn.execute(statement).mappings().all()

        return [row["uri"] for row in rows if is_in_prefix(row["uri"], prefix_path)]

    def build_search_statement(
        self,
        search_properties: Mapping[str, str],
        test: Union[str, SearchTest] = SearchTest.ALLOF,
    ) -> Optional[Select]:
        """Build the SELECT behind search_principals().

        LIKE wildcards in the values are escaped by SQLAlchemy (autoescape),
        so the ESCAPE clause is rendered by each dialect.

        Returns:
            The statement, or None when the search cannot match anything
        """
        test = SearchTest(test)
        if not search_properties:
            return None

        principals = table(
            self.principals_table,
            column("id"),
            column("uri", String),
            *[column(name, String) for name in self.field_map.columns],
        )
        clauses = []
        for prop, value in search_properties.items():
            column_name = self.field_map.column_for(prop)
            if column_name is None:
                logger.debug(f"Search on unsupported property {prop}, returning no results")
                return None
            lowered = func.lower(principals.c[column_name], type_=String)
            clauses.append(lowered.contains(value.lower(), autoescape=True))

        combine = or_ if test is SearchTest.ANYOF else and_
        return select(principals.c.uri).where(combine(*clauses)).order_by(principals.c.id)

    def find_by_uri(self, uri: str, principal_prefix: str) -> Optional[str]:
        """Find a principal by an external URI such as 'mailto:alice@example.com'.

        Only the mailto scheme is supported. When several principals share
        the address, the one created first (lowest id) wins.

        Returns:
            Principal URI or None if not found or the scheme is unsupported
        """
        scheme, sep, value = uri.partition(":")
        if not sep or not value:
            return None

        resolver = self._uri_resolvers.get(scheme.lower())
        if resolver is None:
            logger.debug(f"Unsupported URI scheme '{scheme}'")
            return None

        with self.engine.connect() as conn:
            for row in resolver(conn, value):
                if is_in_prefix(row["uri"], principal_prefix):
                    return row["uri"]
        return None

    def _resolve_mailto(self, conn: Connection, address: str) -> Iterable[Mapping]:
        column = self.field_map.column_for(EMAIL_ADDRESS)
        if column is None:
            return []
        sql = (
            f"SELECT uri FROM {self.principals_table} "
            f"WHERE lower({column}) = lower(:address) ORDER BY id"
        )
        return conn.execute(text(sql), {"address": address}).mappings().all()

    # ─────────────────────────────────────────────────────────────────────────
    # Group membership
    # ─────────────────────────────────────────────────────────────────────────

    def _require_id(self, path: str) -> int:
        principal = self.get_principal_by_path(path)
        if principal is None:
            raise PrincipalNotFoundError(path)
        return principal["id"]

    def _joined_uris(self, join_column: str, filter_column: str, principal_id: int) -> list[str]:
        sql = (
            f"SELECT principals.uri AS uri FROM {self.group_members_table} AS groupmembers "
            f"LEFT JOIN {self.principals_table} AS principals "
            f"ON groupmembers.{join_column} = principals.id "
            f"WHERE groupmembers.{filter_column} = :principal_id ORDER BY principals.id"
        )
        with self.engine.connect() as conn:
            rows = conn.execute(text(sql), {"principal_id": principal_id}).mappings().all()
        # Edges to rows that no longer exist join to NULL
        return [row["uri"] for row in rows if row["uri"] is not None]

    def get_group_member_set(self, principal: str) -> list[str]:
        """Return the URIs of the members of a group principal.

        Raises:
            PrincipalNotFoundError: If the group principal does not exist
        """
        return self._joined_uris("member_id", "principal_id", self._require_id(principal))

    def get_group_membership(self, principal: str) -> list[str]:
        """Return the URIs of the groups a principal is a member of.

        Raises:
            PrincipalNotFoundError: If the principal does not exist
        """
        return self._joined_uris("principal_id", "member_id", self._require_id(principal))

    def set_group_member_set(self, principal: str, members: Iterable[str]) -> list[str]:
        """Replace the member list of a group principal.

        The existing membership is deleted and the new one inserted in a
        single transaction. Member URIs that do not resolve to a principal
        are skipped.

        Args:
            principal: Group principal URI
            members: Member principal URIs

        Returns:
            The member URIs that were stored

        Raises:
            PrincipalNotFoundError: If the group principal does not exist
        """
        members = list(members)
        lookup = text(
            f"SELECT id, uri FROM {self.principals_table} WHERE uri IN :uris"
        ).bindparams(bindparam("uris", expanding=True))

        with self.engine.begin() as conn:
            rows = conn.execute(lookup, {"uris": [principal, *members]}).mappings().all()

            ids_by_uri = {row["uri"]: row["id"] for row in rows}
            principal_id = ids_by_uri.get(principal)
            if principal_id is None:
                raise PrincipalNotFoundError(principal)

            stored = []
            member_ids = []
            for uri in members:
                member_id = ids_by_uri.get(uri)
                if member_id is None:
                    logger.warning(f"Skipping unknown member {uri} of {principal}")
                    continue
                if member_id == principal_id or member_id in member_ids:
                    continue
                member_ids.append(member_id)
                stored.append(uri)

            conn.execute(
                text(f"DELETE FROM {self.group_members_table} WHERE principal_id = :principal_id"),
                {"principal_id": principal_id},
            )
            if member_ids:
                conn.execute(
                    text(
                        f"INSERT INTO {self.group_members_table} (principal_id, member_id) "
                        "VALUES (:principal_id, :member_id)"
                    ),
                    [{"principal_id": principal_id, "member_id": member_id} for member_id in member_ids],
                )

        logger.info(f"Replaced members of {principal}: {len(stored)} member(s)")
        return stored
