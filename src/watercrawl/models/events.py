"""Event records decoded from the crawl request status stream."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class EventKind(str, Enum):
    """Event kinds the client acts on. Other kinds are passed through."""
    STATE = "state"
    PROGRESS = "progress"
    RESULT = "result"
    ERROR = "error"
    COMPLETED = "completed"


class CrawlStatus(str, Enum):
    """Values of the ``status`` field carried by ``state`` events."""
    NEW = "new"
    RUNNING = "running"
    CANCELING = "canceling"
    CANCELED = "canceled"
    FAILED = "failed"
    COMPLETED = "completed"


class Event(BaseModel):
    """One frame of the status stream.

    On the wire the fields are named ``type`` and ``data``. ``payload`` is any
    JSON value; its shape depends on ``kind`` and is only checked after the
    kind has been matched.
    """

    kind: StrictStr = Field(alias="type")
    payload: Any = Field(default=None, alias="data")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def known_kind(self) -> Optional[EventKind]:
        """The matching ``EventKind``, or None for pass-through kinds."""
        try:
            return EventKind(self.kind)
        except ValueError:
            return None

    def payload_object(self) -> Optional[Dict[str, Any]]:
        """The payload if it is a JSON object, else None."""
        if isinstance(self.payload, dict):
            return self.payload
        return None

    def with_payload(self, payload: Any) -> "Event":
        """Copy of this event with the payload replaced in full."""
        return self.model_copy(update={"payload": payload})

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)
