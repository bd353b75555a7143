from __future__ import annotations

from dataclasses import asdict, dataclass, field, is_dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Exposition:
    introduction: str = ""
    paragraphs: List[str] = field(default_factory=list)
    conclusion: str = ""

    def is_empty(self) -> bool:
        return not (self.introduction or self.paragraphs or self.conclusion)


@dataclass(frozen=True)
class Source:
    url: str
    title: str


@dataclass(frozen=True)
class Image:
    url: str
    description: str


class FieldStatus(Enum):
    """Where one field is in its retrieval."""
    PENDING = "pending"
    DISPATCHING = "dispatching"
    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"
    CANCELLED = "cancelled"


def serialize_value(value: Any) -> Any:
    """
    Turn a parsed field value into plain JSON types.

    Args:
        value: A string, a payload dataclass or a list of either.

    Returns:
        The same value with every dataclass converted to a dict.
    """
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    return value


@dataclass
class FieldResult:
    """
    The outcome of retrieving one field for one question.

    value is only meaningful when status is OK or EMPTY; error is set when status is FAILED or CANCELLED.
    """
    field: str
    status: FieldStatus = FieldStatus.PENDING
    value: Any = None
    error: Optional[str] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.status in (FieldStatus.OK, FieldStatus.EMPTY)

    def to_payload(self) -> Any:
        return serialize_value(self.value)

    def to_event(self) -> Dict[str, Any]:
        """
        Render the message pushed to the browser for this field.

        Returns:
            {field: value} for a delivered field, {"field": field, "error": message} otherwise.
        """
        if self.ok:
            return {self.field: self.to_payload()}
        return {"field": self.field, "error": self.error or f"Error for {self.field}"}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "status": self.status.value,
            "value": self.to_payload(),
            "error": self.error,
            "attempts": self.attempts,
        }
