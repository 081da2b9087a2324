"""
Tri-state attribute values.

Every optional attribute of an API key is one of:
  - absent:  the user never set it, or the server reports nothing
  - pending: the value is only known once an operation completes
  - present: a concrete value

A completed operation must never hand back a pending field; `resolved()`
collapses pending to absent.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class FieldState(enum.Enum):
    ABSENT = "absent"
    PENDING = "pending"
    PRESENT = "present"


@dataclass(frozen=True)
class Field(Generic[T]):
    state: FieldState
    value: Optional[T] = None

    def __post_init__(self) -> None:
        if self.state is not FieldState.PRESENT and self.value is not None:
            raise ValueError(f"{self.state.value} field cannot carry a value")
        if self.state is FieldState.PRESENT and self.value is None:
            raise ValueError("present field requires a value")

    @classmethod
    def absent(cls) -> "Field[Any]":
        return cls(FieldState.ABSENT)

    @classmethod
    def pending(cls) -> "Field[Any]":
        return cls(FieldState.PENDING)

    @classmethod
    def present(cls, value: T) -> "Field[T]":
        return cls(FieldState.PRESENT, value)

    @classmethod
    def of(cls, value: Optional[T]) -> "Field[T]":
        """present(value) for a non-None value, absent otherwise."""
        return cls.absent() if value is None else cls.present(value)

    @property
    def is_absent(self) -> bool:
        return self.state is FieldState.ABSENT

    @property
    def is_pending(self) -> bool:
        return self.state is FieldState.PENDING

    @property
    def is_present(self) -> bool:
        return self.state is FieldState.PRESENT

    def get(self, default: Optional[T] = None) -> Optional[T]:
        return self.value if self.is_present else default

    def resolved(self) -> "Field[T]":
        return Field.absent() if self.is_pending else self

    def __repr__(self) -> str:  # pragma: no cover (debug formatting)
        if self.is_present:
            return f"Field.present({self.value!r})"
        return f"Field.{self.state.value}()"


ABSENT: Field[Any] = Field.absent()
PENDING: Field[Any] = Field.pending()
