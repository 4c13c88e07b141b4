"""Outcome of one reconcile step."""

from dataclasses import dataclass
from typing import Callable, Optional

SUCCESS = "Success"
INCOMPLETE = "Incomplete"
FATAL = "Fatal"


@dataclass(frozen=True)
class Result:
    """Tagged result: Success, Incomplete (wait for the next event) or Fatal.

    Transient errors are not represented here, they are raised.
    """

    outcome: str
    reason: str = ""
    message: str = ""
    error: Optional[Exception] = None

    @classmethod
    def success(cls, reason="", message=""):
        return cls(SUCCESS, reason, message)

    @classmethod
    def incomplete(cls, reason, message=""):
        return cls(INCOMPLETE, reason, message)

    @classmethod
    def fatal(cls, error, reason="Failed"):
        return cls(FATAL, reason, str(error), error)

    @property
    def is_success(self):
        return self.outcome == SUCCESS

    @property
    def is_incomplete(self):
        return self.outcome == INCOMPLETE

    @property
    def is_fatal(self):
        return self.outcome == FATAL

    def then(self, step: Callable[[], "Result"]) -> "Result":
        """Run ``step`` only if this result succeeded."""
        if not self.is_success:
            return self
        return step()
