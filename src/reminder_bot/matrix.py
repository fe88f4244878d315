"""Matrix client-server API: the sync response fields we consume and the
message sender used for chat replies."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ProtocolError, TransportError

logger = logging.getLogger("reminder_bot.matrix")

MESSAGE_EVENT_TYPE = "m.room.message"
SYNC_PATH = "/_matrix/client/r0/sync"


class Event(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str
    sender: str
    origin_server_ts: int = 0
    state_key: str | None = None
    content: dict[str, Any] = Field(default_factory=dict)

    def body(self) -> str | None:
        value = self.content.get("body")
        return value if isinstance(value, str) else None


class RoomTimeline(BaseModel):
    model_config = ConfigDict(extra="ignore")

    events: list[Event] = Field(default_factory=list)


class JoinedRoom(BaseModel):
    model_config = ConfigDict(extra="ignore")

    timeline: RoomTimeline = Field(default_factory=RoomTimeline)


class Rooms(BaseModel):
    model_config = ConfigDict(extra="ignore")

    join: dict[str, JoinedRoom] = Field(default_factory=dict)


class SyncResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    next_batch: str
    rooms: Rooms = Field(default_factory=Rooms)

    def events(self) -> Iterator[tuple[str, Event]]:
        """Yield ``(room_id, event)`` in server order, timeline order per room."""
        for room_id, room in self.rooms.join.items():
            for event in room.timeline.events:
                yield room_id, event


def parse_sync_response(body: bytes | str) -> SyncResponse:
    try:
        return SyncResponse.model_validate_json(body)
    except ValidationError as exc:
        raise ProtocolError(f"Failed to parse sync response: {exc.error_count()} error(s)") from exc


def auth_headers(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


class MatrixClient:
    """Posts plain-text messages into rooms."""

    def __init__(self, client: httpx.AsyncClient, host: str, access_token: str):
        self.client = client
        self.host = host.rstrip("/")
        self.access_token = access_token

    def message_url(self, room_id: str) -> str:
        return f"{self.host}/_matrix/client/r0/rooms/{quote(room_id, safe='')}/send/{MESSAGE_EVENT_TYPE}"

    async def send_text_message(self, room_id: str, text: str) -> None:
        url = self.message_url(room_id)
        logger.info("Sending message to room=%s", room_id)
        logger.debug("Using url: %s", url)
        try:
            response = await self.client.post(
                url,
                json={"body": text, "msgtype": "m.text"},
                headers=auth_headers(self.access_token),
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Failed to send matrix message: {exc}") from exc
        if response.is_error:
            raise ProtocolError(f"Got HTTP response: {response.status_code}")
        logger.info("Sent message to room=%s", room_id)
