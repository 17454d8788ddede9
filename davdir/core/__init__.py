"""Principal directory and digest credential store.

This package holds the storage logic used by a WebDAV access-control layer,
independent of any HTTP framework.

Module Structure:
    - principals.py  : PrincipalStore (lookups, search, group membership)
    - credentials.py : DigestCredentials (digest hash lookup)
    - fieldmap.py    : WebDAV property -> column registry
    - paths.py       : Principal path helpers
    - schema.py      : Table definitions, schema bootstrap, engine factory
    - exceptions.py  : Typed exceptions

Usage:
    from davdir.core import PrincipalStore, create_engine_for_url

    engine = create_engine_for_url("sqlite:///davdir.db")
    store = PrincipalStore(engine)
    store.get_principals_by_prefix("principals/users")
"""
from .credentials import DigestCredentials
from .exceptions import DirectoryError, PrincipalNotFoundError
from .fieldmap import (
    DISPLAYNAME,
    EMAIL_ADDRESS,
    FieldMap,
    default_field_map,
    parse_extra_fields,
)
from .paths import split_path, parent_path, is_in_prefix
from .principals import PrincipalStore, SearchTest
from .schema import build_metadata, init_schema, create_engine_for_url

__all__ = [
    # Stores
    "PrincipalStore",
    "SearchTest",
    "DigestCredentials",

    # Exceptions
    "DirectoryError",
    "PrincipalNotFoundError",

    # Field map
    "DISPLAYNAME",
    "EMAIL_ADDRESS",
    "FieldMap",
    "default_field_map",
    "parse_extra_fields",

    # Paths
    "split_path",
    "parent_path",
    "is_in_prefix",

    # Schema
    "build_metadata",
    "init_schema",
    "create_engine_for_url",
]
