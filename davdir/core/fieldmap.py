"""Registry of WebDAV properties the directory knows how to store.

Each recognized property name (Clark notation, e.g. ``{DAV:}displayname``)
maps to a column of the principals table. The field map decides which
properties are returned by listings, which ones update_principal() writes
and which ones search_principals() can filter on.
"""
from __future__ import annotations
import re
from typing import Dict, Iterator, Mapping, Optional, Tuple

DISPLAYNAME = "{DAV:}displayname"
EMAIL_ADDRESS = "{http://sabredav.org/ns}email-address"

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_identifier(name: str, what: str = "Column") -> str:
    """Validate a SQL identifier (table or column name).

    Identifiers are interpolated into statements, so only plain names are
    accepted.

    Raises:
        ValueError: If the name is not a plain identifier
    """
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.match(name):
        raise ValueError(f"{what} name '{name}' is not a valid SQL identifier")
    return name


class FieldMap:
    """Ordered mapping of WebDAV property name to database column."""

    def __init__(self, fields: Optional[Mapping[str, str]] = None):
        self._fields: Dict[str, str] = {}
        for prop, column in (fields or {}).items():
            self.register(prop, column)

    def register(self, prop: str, column: str) -> None:
        """Register (or re-point) a property.

        Args:
            prop: Property name in Clark notation
            column: Column name in the principals table

        Raises:
            ValueError: If prop is empty, column is not an identifier, or the
                column is already mapped to another property
        """
        if not prop or not isinstance(prop, str):
            raise ValueError("Property name is required")
        validate_identifier(column)
        if column.lower() in ("id", "uri"):
            raise ValueError(f"Column '{column}' is reserved")
        for other, other_column in self._fields.items():
            if other != prop and other_column == column:
                raise ValueError(f"Column '{column}' is already mapped to {other}")
        self._fields[prop] = column

    def column_for(self, prop: str) -> Optional[str]:
        return self._fields.get(prop)

    def __contains__(self, prop: object) -> bool:
        return prop in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def items(self) -> Iterator[Tuple[str, str]]:
        return iter(self._fields.items())

    @property
    def columns(self) -> list[str]:
        return list(self._fields.values())

    def copy(self) -> "FieldMap":
        return FieldMap(self._fields)

    def row_to_properties(self, row: Mapping) -> dict:
        """Collect the set properties of a result row.

        NULL and empty values are left out of the result.
        """
        properties = {}
        for prop, column in self._fields.items():
            value = row.get(column)
            if value:
                properties[prop] = value
        return properties

    def __repr__(self) -> str:
        return f"FieldMap({self._fields!r})"


def default_field_map() -> FieldMap:
    """Field map with the properties every deployment supports."""
    return FieldMap({
        DISPLAYNAME: "displayname",
        EMAIL_ADDRESS: "email",
    })


def parse_extra_fields(raw: str) -> Dict[str, str]:
    """Parse ``{ns}name=column`` pairs separated by commas.

    The property name may itself contain ``=`` inside the namespace, so the
    split happens on the last ``=`` of each entry.

    Raises:
        ValueError: If an entry has no ``=`` or an empty side
    """
    fields: Dict[str, str] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        prop, sep, column = entry.rpartition("=")
        if not sep or not prop.strip() or not column.strip():
            raise ValueError(f"Invalid field mapping '{entry}', expected '{{ns}}name=column'")
        fields[prop.strip()] = column.strip()
    return fields
