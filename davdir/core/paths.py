"""Principal path helpers."""
from __future__ import annotations
import re
from typing import Optional, Tuple

_SPLIT_PATTERN = re.compile(r"^(?:(?:(.*)(?:/+))?([^/]+))(?:/?)$", re.DOTALL)


def split_path(path: str) -> Tuple[Optional[str], Optional[str]]:
    """Split a path into its parent path and last segment.

    Trailing slashes are ignored. A path without any slash has an empty
    parent. A run of trailing slashes (``a//``) is collapsed first, where
    Sabre's ``URLUtil::splitPath`` gives ``(null, null)``.

        >>> split_path("principals/users/alice")
        ('principals/users', 'alice')
        >>> split_path("principals/users/")
        ('principals', 'users')
        >>> split_path("alice")
        ('', 'alice')

    Args:
        path: Slash separated path

    Returns:
        (parent, name), or (None, None) when the path has no segment at all
    """
    match = _SPLIT_PATTERN.match(re.sub(r"/+$", "/", path))
    if not match:
        return None, None
    return match.group(1) or "", match.group(2)


def parent_path(path: str) -> Optional[str]:
    """Return the parent path of a principal URI (see split_path)."""
    parent, _ = split_path(path)
    return parent


def is_in_prefix(path: str, prefix: str) -> bool:
    """True if the parent path of ``path`` is exactly ``prefix``."""
    return parent_path(path) == prefix
