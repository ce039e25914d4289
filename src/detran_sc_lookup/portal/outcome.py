from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar


T = TypeVar("T")


class Outcome(str, Enum):
    FOUND = "found"
    MISSING = "missing"
    # Label matched more than once with different values; the first one is kept.
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class Extracted(Generic[T]):
    """Result of one heuristic extraction; `value` is None exactly when outcome is MISSING."""

    outcome: Outcome
    value: Optional[T] = None

    @classmethod
    def found(cls, value: T) -> "Extracted[T]":
        return cls(Outcome.FOUND, value)

    @classmethod
    def missing(cls) -> "Extracted[T]":
        return cls(Outcome.MISSING, None)

    @classmethod
    def ambiguous(cls, value: T) -> "Extracted[T]":
        return cls(Outcome.AMBIGUOUS, value)

    @property
    def is_missing(self) -> bool:
        return self.outcome is Outcome.MISSING

    def map(self, fn) -> "Extracted":
        if self.is_missing:
            return self
        return Extracted(self.outcome, fn(self.value))

    def or_default(self, default: T) -> T:
        return default if self.is_missing else self.value  # type: ignore[return-value]
