"""Explicit success/failure values returned by persistence calls.

Stores never raise for infrastructure failures; they hand back a ``Result``
and the caller decides, in plain sight, whether to fail open.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from .exceptions import PersistenceError, RecordNotFoundError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[PersistenceError] = None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: PersistenceError) -> "Result[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def not_found(self) -> bool:
        return isinstance(self.error, RecordNotFoundError)

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
