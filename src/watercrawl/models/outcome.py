"""Terminal outcomes of a scrape-and-wait call."""

from dataclasses import dataclass, field
from typing import Any, Dict, Union


@dataclass(frozen=True)
class Delivered:
    """An authoritative result was obtained."""
    payload: Dict[str, Any]

    status = "delivered"
    succeeded = True

    def to_dict(self) -> Dict[str, Any]:
        return {"outcome": self.status, "payload": self.payload}


@dataclass(frozen=True)
class Degraded:
    """The job reported completion but no authoritative result was obtained."""
    last_state: Dict[str, Any]

    status = "degraded"
    succeeded = True

    def to_dict(self) -> Dict[str, Any]:
        return {"outcome": self.status, "last_state": self.last_state}


@dataclass(frozen=True)
class Failed:
    """The job failed or the stream ended without a usable result."""
    reason: str
    details: Dict[str, Any] = field(default_factory=dict)

    status = "failed"
    succeeded = False

    def to_dict(self) -> Dict[str, Any]:
        return {"outcome": self.status, "reason": self.reason, "details": self.details}


Outcome = Union[Delivered, Degraded, Failed]
