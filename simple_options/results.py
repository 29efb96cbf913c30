from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from simple_options.exceptions import DataAccessError


class Outcome(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class OptionResult:
    """
    Outcome of a store operation.

    Distinguishes "nothing there" (NOT_FOUND) from "the database failed"
    (FAILED), which the boolean/default API collapses together.
    """

    outcome: Outcome
    value: Any = None
    error: Optional[DataAccessError] = None

    @classmethod
    def success(cls, value: Any = True) -> "OptionResult":
        return cls(Outcome.OK, value)

    @classmethod
    def missing(cls) -> "OptionResult":
        return cls(Outcome.NOT_FOUND)

    @classmethod
    def failure(cls, error: DataAccessError) -> "OptionResult":
        return cls(Outcome.FAILED, error=error)

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.OK

    @property
    def not_found(self) -> bool:
        return self.outcome is Outcome.NOT_FOUND

    @property
    def failed(self) -> bool:
        return self.outcome is Outcome.FAILED

    def value_or(self, default: Any) -> Any:
        return self.value if self.ok else default

    def __bool__(self) -> bool:
        return self.ok
