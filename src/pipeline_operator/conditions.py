"""Status conditions.

A condition is a named boolean progress indicator on a resource's status.
Types are unique within one resource; an absent condition counts as false.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional


@dataclass
class Condition:
    type: str
    status: bool
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[datetime] = None

    def to_dict(self):
        return {
            "type": self.type,
            "status": "True" if self.status else "False",
            "reason": self.reason,
            "message": self.message,
            "lastTransitionTime": _format_time(self.last_transition_time),
        }

    @classmethod
    def from_dict(cls, data):
        status = data.get("status")
        return cls(
            type=data["type"],
            status=status is True or status == "True",
            reason=data.get("reason", ""),
            message=data.get("message", ""),
            last_transition_time=_parse_time(data.get("lastTransitionTime")),
        )


def get_condition(conditions: List[Condition], type_: str) -> Optional[Condition]:
    for condition in conditions:
        if condition.type == type_:
            return condition
    return None


def is_true(conditions: List[Condition], type_: str) -> bool:
    condition = get_condition(conditions, type_)
    return condition is not None and condition.status


def set_condition(conditions, type_, status, reason, message="", now=None):
    """Upsert a condition by type.

    The transition time only moves when the boolean value changes.
    Returns the stored condition.
    """
    now = now or datetime.now(timezone.utc)
    existing = get_condition(conditions, type_)
    if existing is None:
        condition = Condition(type_, status, reason, message, now)
        conditions.append(condition)
        return condition

    if existing.status != status or existing.last_transition_time is None:
        existing.last_transition_time = now
    existing.status = status
    existing.reason = reason
    existing.message = message
    return existing


def all_ready(conditions: List[Condition], required: Iterable[str]) -> bool:
    """True iff every required condition is present and true."""
    return all(is_true(conditions, type_) for type_ in required)


def _format_time(value):
    if value is None:
        return None
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _parse_time(value):
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
