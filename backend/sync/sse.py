"""
Client side of the realtime stream.

Reads the service's Server-Sent Events endpoint with httpx and emits the
decoded ChangeEvents on an EventChannel. The stream is not reconnected
when it drops; the connected flag simply goes false.
"""

import json
import logging
from typing import AsyncIterator, Callable, Optional, Tuple

import httpx
from pydantic import ValidationError

from schemas import ChangeEvent
from sync.events import EventChannel, WILDCARD

logger = logging.getLogger(__name__)


async def iter_sse_frames(lines: AsyncIterator[str]) -> AsyncIterator[Tuple[str, str]]:
    """Group SSE lines into (event name, data) frames. Comment lines are skipped."""
    event_name = "message"
    data_lines = []
    async for line in lines:
        line = line.rstrip("\r")
        if not line:
            if data_lines:
                yield event_name, "\n".join(data_lines)
            event_name = "message"
            data_lines = []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if name == "event":
            event_name = value
        elif name == "data":
            data_lines.append(value)
    if data_lines:
        yield event_name, "\n".join(data_lines)


class SseSubscription:
    def __init__(
        self,
        client: httpx.AsyncClient,
        channel: EventChannel,
        *,
        table: str = "todos",
        event: str = WILDCARD,
        token: Optional[str] = None,
        on_status: Optional[Callable[[bool], None]] = None,
    ):
        self.client = client
        self.channel = channel
        self.table = table
        self.event = event
        self.token = token
        self.on_status = on_status
        self.connected = False

    def _set_connected(self, connected: bool) -> None:
        if connected == self.connected:
            return
        self.connected = connected
        if self.on_status is not None:
            self.on_status(connected)

    def dispatch(self, event_name: str, data: str) -> None:
        if event_name == "status":
            try:
                payload = json.loads(data)
            except json.JSONDecodeError as e:
                logger.warning(f"Dropping undecodable status frame: {e}")
                return
            if not isinstance(payload, dict):
                logger.warning(f"Dropping malformed status frame: {data!r}")
                return
            self._set_connected(payload.get("status") == "SUBSCRIBED")
            return
        if event_name != "change":
            return
        try:
            event = ChangeEvent.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Dropping undecodable change event: {e}")
            return
        self.channel.emit(event)

    async def run(self) -> None:
        """Consume the stream until the server closes it or the task is cancelled."""
        headers = {"Accept": "text/event-stream"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        path = f"/api/realtime/{self.table}"
        try:
            async with self.client.stream(
                "GET", path, params={"event": self.event}, headers=headers, timeout=None
            ) as response:
                if response.status_code >= 400:
                    logger.error(f"Realtime subscription rejected: HTTP {response.status_code}")
                    return
                async for event_name, data in iter_sse_frames(response.aiter_lines()):
                    self.dispatch(event_name, data)
        except httpx.HTTPError as e:
            logger.warning(f"Realtime stream closed: {e}")
        finally:
            self._set_connected(False)
