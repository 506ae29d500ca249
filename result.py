"""
Result values for entity factories and updates.

A factory returns ``Success(entity)`` or ``Failure(ValidationError)`` instead of
raising, so call sites decide explicitly what a rejected value means.
"""

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    def is_success(self) -> bool:
        return True

    def is_failure(self) -> bool:
        return False

    def map(self, func: Callable[[T], Any]) -> "Success[Any]":
        return Success(func(self.value))

    def flat_map(self, func: Callable[[T], "Result"]) -> "Result":
        return func(self.value)

    def or_else(self, default: T) -> T:
        return self.value

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Failure(Generic[E]):
    error: E

    def is_success(self) -> bool:
        return False

    def is_failure(self) -> bool:
        return True

    def map(self, func: Callable[[Any], Any]) -> "Failure[E]":
        return self

    def flat_map(self, func: Callable[[Any], Any]) -> "Failure[E]":
        return self

    def or_else(self, default: Any) -> Any:
        return default

    def unwrap(self) -> Any:
        """Raise the carried error."""
        if isinstance(self.error, BaseException):
            raise self.error
        raise ValueError(f"Attempted to unwrap a Failure: {self.error}")


Result = Union[Success[T], Failure[E]]
