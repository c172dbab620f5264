"""Tagged outcomes returned by the data-access layer and services.

Storage calls never collapse failures into ``False`` or ``None``: every
single-row or mutating operation returns a :class:`Result` whose status tells
the caller whether the row was missing, the write conflicted with existing
data, or the database could not be reached.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class Status(Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAVAILABLE = "unavailable"


class ConflictError(Exception):
    pass


class StorageUnavailableError(Exception):
    pass


@dataclass(frozen=True)
class Result(Generic[T]):
    status: Status
    value: Optional[T] = None
    message: str = ""

    @classmethod
    def ok(cls, value: Any = None, message: str = "") -> "Result":
        return cls(Status.OK, value, message)

    @classmethod
    def not_found(cls, message: str = "Not found.") -> "Result":
        return cls(Status.NOT_FOUND, None, message)

    @classmethod
    def conflict(cls, message: str) -> "Result":
        return cls(Status.CONFLICT, None, message)

    @classmethod
    def unavailable(cls, message: str = "Database unavailable.") -> "Result":
        return cls(Status.UNAVAILABLE, None, message)

    @property
    def is_ok(self) -> bool:
        return self.status is Status.OK

    def __bool__(self) -> bool:
        return self.is_ok

    def unwrap(self) -> T:
        """Return the carried value or raise the exception matching the status."""
        if self.status is Status.OK:
            return self.value  # type: ignore[return-value]
        if self.status is Status.NOT_FOUND:
            raise LookupError(self.message)
        if self.status is Status.CONFLICT:
            raise ConflictError(self.message)
        raise StorageUnavailableError(self.message)
