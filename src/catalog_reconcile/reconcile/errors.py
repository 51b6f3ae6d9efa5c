"""Structural errors raised by the merge entry points.

Field-level problems are never raised; they are logged and the field is
treated as absent.  Conflicts are returned values, not errors.
"""

from __future__ import annotations


class ReconcileError(Exception):
    """Base class for structural reconciliation failures."""


class MissingResourceError(ReconcileError, ValueError):
    """A required input record was ``None``."""

    def __init__(self, role: str) -> None:
        super().__init__(f"Missing required {role} record")
        self.role = role


class ResourceTypeMismatchError(ReconcileError, TypeError):
    """An input record is not of the type the merge call expects."""

    def __init__(
        self, role: str, expected: type | tuple[type, ...], actual: type
    ) -> None:
        accepted = expected if isinstance(expected, tuple) else (expected,)
        super().__init__(
            f"{role} record has type {actual.__name__}, "
            f"expected {' or '.join(cls.__name__ for cls in accepted)}"
        )
        self.role = role
        self.expected = expected
        self.actual = actual


class InvalidSourceError(ReconcileError, ValueError):
    """A source name is unknown or not valid for the merge mode."""
