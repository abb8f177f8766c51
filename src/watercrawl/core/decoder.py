"""Decoder for the line-framed crawl status stream.

A frame is a single line whose content starts with the ``data:`` marker
followed by a JSON document::

    data: {"type": "progress", "data": {"progress": 42.0}}

Every other line (blank keep-alives, ``event:``/``id:`` fields, comments) is
skipped. A frame that is not a valid event is logged and dropped; only a
failure to read from the connection ends the sequence with an error.
"""

from typing import AsyncIterable, AsyncIterator, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..foundation.errors import StreamError
from ..foundation.logging import get_logger
from ..foundation.metrics import get_metrics_collector, record_diagnostic
from ..models.events import Event


DATA_MARKER = "data:"


class EventFrameDecoder:
    """Turns a stream of text lines into a lazy sequence of ``Event``."""

    def __init__(self, marker: str = DATA_MARKER, job_id: Optional[str] = None):
        self.logger = get_logger(__name__)
        self.metrics = get_metrics_collector()
        self.marker = marker
        self.job_id = job_id

    def parse_frame(self, line: str) -> Optional[Event]:
        """Parse one line.

        Returns:
            The decoded event, or None when the line carries no event
        """
        line = line.strip()
        if not line.startswith(self.marker):
            if line:
                self.logger.debug(f"Skipping non-data line: {line}")
            return None

        document = line[len(self.marker):].strip()
        try:
            return Event.model_validate_json(document)
        except PydanticValidationError as e:
            self.metrics.increment_counter("stream.frames.malformed")
            record_diagnostic(
                self.logger,
                "malformed_frame",
                "Dropping frame that is not a valid event",
                job_id=self.job_id,
                frame=document[:200],
                error=str(e.errors()[0]["msg"]) if e.errors() else str(e),
            )
            return None

    async def iter_events(self, lines: AsyncIterable[str]) -> AsyncIterator[Event]:
        """Yield events from ``lines`` in wire order.

        Raises:
            StreamError: Reading the next line failed for a reason other than EOF
        """
        try:
            async for line in lines:
                event = self.parse_frame(line)
                if event is not None:
                    yield event
        except (httpx.HTTPError, OSError) as e:
            raise StreamError(f"Error reading event stream: {e}", job_id=self.job_id) from e

        self.logger.debug("End of event stream")

    def from_response(self, response: httpx.Response) -> AsyncIterator[Event]:
        """Decode the body of a streamed response."""
        return self.iter_events(response.aiter_lines())
