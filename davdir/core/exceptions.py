"""Directory-specific exceptions for error handling."""


class DirectoryError(Exception):
    """Base exception for all directory operations."""
    pass


class PrincipalNotFoundError(DirectoryError):
    """Subject principal of a group operation does not exist.

    Attributes:
        path: Principal URI that failed to resolve
    """

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Principal not found: {path}")
