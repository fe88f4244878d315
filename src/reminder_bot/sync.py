"""Long-poll sync loop against the Matrix ``/sync`` endpoint.

:meth:`Syncer.run` is an async generator of :class:`SyncOutcome`. Each
iteration issues one request; failures are yielded and followed by a backoff
on the next iteration. The stream ends when the cancellation flag is set.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import httpx

from .errors import Cancelled, ProtocolError, TransportError
from .flag import CancellationFlag
from .matrix import SYNC_PATH, SyncResponse, auth_headers, parse_sync_response
from .models import SyncOutcome, SyncSnapshot, SyncState

logger = logging.getLogger("reminder_bot.sync")


class Syncer:
    def __init__(
        self,
        client: httpx.AsyncClient,
        host: str,
        access_token: str,
        stop_flag: CancellationFlag,
        timeout_ms: int = 60000,
        backoff_seconds: float = 5.0,
    ):
        self.client = client
        self.host = host.rstrip("/")
        self.access_token = access_token
        self.stop_flag = stop_flag
        self.timeout_ms = timeout_ms
        self.backoff_seconds = backoff_seconds
        self.state = SyncState()

    def build_request(self) -> httpx.Request:
        params: dict[str, str] = {}
        if self.state.next_batch is not None:
            params = {"since": self.state.next_batch, "timeout": str(self.timeout_ms)}
        request = self.client.build_request(
            "GET",
            f"{self.host}{SYNC_PATH}",
            params=params,
            headers=auth_headers(self.access_token),
        )
        logger.debug("Using url: %s", request.url)
        return request

    async def _fetch(self) -> SyncResponse:
        try:
            response = await self.client.send(self.build_request())
        except httpx.HTTPError as exc:
            raise TransportError(f"Failed to make HTTP sync request: {exc}") from exc
        if not response.is_success:
            raise ProtocolError(f"Got HTTP response: {response.status_code}")
        return parse_sync_response(response.content)

    async def sync_once(self) -> SyncSnapshot:
        """Run one iteration of the state machine.

        Raises Cancelled if the stop flag wins, or TransportError /
        ProtocolError if the request fails. State is updated either way.
        """
        if self.state.errored:
            await self.stop_flag.sleep(self.backoff_seconds)

        logger.debug("Making sync request")
        try:
            sync_response = await self.stop_flag.guard(self._fetch())
        except Cancelled:
            raise
        except (TransportError, ProtocolError) as exc:
            logger.warning("Response error: %s", exc)
            self.state.errored = True
            raise

        snapshot = SyncSnapshot(response=sync_response, is_live=self.state.is_live)
        self.state.next_batch = sync_response.next_batch
        self.state.is_live = True
        self.state.errored = False
        return snapshot

    async def run(self) -> AsyncIterator[SyncOutcome]:
        while not self.stop_flag.is_set():
            try:
                snapshot = await self.sync_once()
            except Cancelled:
                break
            except (TransportError, ProtocolError) as exc:
                yield SyncOutcome(error=exc)
                continue
            yield SyncOutcome(snapshot=snapshot)
        logger.info("Stopping sync stream")
