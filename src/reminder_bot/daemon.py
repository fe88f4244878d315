from __future__ import annotations

import asyncio
import logging
import signal
import sys

import httpx
import uvicorn

from .address_book import AddressBook
from .admin import build_app
from .config import BotSettings, load_settings
from .dispatcher import ReminderDispatcher
from .errors import ConfigError, PersistenceError
from .flag import CancellationFlag
from .handler import EventHandler
from .matrix import Event, MatrixClient
from .sms import TwilioClient
from .store import SQLiteStore
from .sync import Syncer

logger = logging.getLogger("reminder_bot.daemon")


class ReminderDaemon:
    def __init__(self, settings: BotSettings, http_client: httpx.AsyncClient | None = None):
        self.settings = settings
        self.stop_flag = CancellationFlag()

        self.store = SQLiteStore(settings.database)
        self.store.bootstrap()
        self.address_book = AddressBook(self.store)

        self.http = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        self.matrix = MatrixClient(self.http, settings.matrix.host, settings.matrix.access_token)
        self.syncer = Syncer(
            self.http,
            settings.matrix.host,
            settings.matrix.access_token,
            self.stop_flag,
            timeout_ms=settings.sync_timeout_ms,
            backoff_seconds=settings.sync_backoff_seconds,
        )
        self.handler = EventHandler(self.store, self.matrix, command_prefix=settings.command_prefix)
        self.sms = TwilioClient(
            self.http,
            settings.twilio.account_sid,
            settings.twilio.auth_token,
            api_base=settings.twilio.api_base,
        )
        self.dispatcher = ReminderDispatcher(
            self.store,
            self.address_book,
            self.sms,
            from_num=settings.twilio.from_num,
            tick_interval_seconds=settings.tick_interval_seconds,
        )

        self.admin_server: uvicorn.Server | None = None
        if settings.enable_admin_api:
            app = build_app(self.store, self.syncer.state, api_token=settings.admin_api_token)
            self.admin_server = uvicorn.Server(
                uvicorn.Config(app, host=settings.admin_host, port=settings.admin_port, log_level="warning")
            )

        self._event_tasks: set[asyncio.Task] = set()

    def request_shutdown(self) -> None:
        """Request graceful shutdown of the daemon."""
        logger.info("Shutdown requested")
        self.stop_flag.set()
        if self.admin_server is not None:
            self.admin_server.should_exit = True

    async def shutdown(self) -> None:
        """Perform cleanup on shutdown."""
        logger.info("Shutting down...")
        try:
            await self.http.aclose()
        except httpx.HTTPError as exc:
            logger.warning("Error closing HTTP client: %s", exc)
        self.store.close()
        logger.info("Shutdown complete")

    async def run_forever(self) -> None:
        tasks = [asyncio.create_task(self.dispatcher.run_forever(self.stop_flag))]
        if self.admin_server is not None:
            logger.info("Admin API listening on %s:%s", self.settings.admin_host, self.settings.admin_port)
            tasks.append(asyncio.create_task(self.admin_server.serve()))
        try:
            await self._sync_loop()
        finally:
            self.request_shutdown()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self._drain()

    async def _sync_loop(self) -> None:
        async for outcome in self.syncer.run():
            if not outcome.ok:
                logger.debug("Sync iteration failed: %s", outcome.error)
                continue
            snapshot = outcome.snapshot
            if not snapshot.is_live:
                logger.info("Skipping catch-up sync (next_batch=%s)", snapshot.response.next_batch)
                continue
            for room_id, event in snapshot.response.events():
                logger.info("Got event room=%s sender=%s type=%s", room_id, event.sender, event.type)
                self._spawn_event(room_id, event)

    def _spawn_event(self, room_id: str, event: Event) -> None:
        task = asyncio.create_task(self._handle_event(room_id, event))
        self._event_tasks.add(task)
        task.add_done_callback(self._event_tasks.discard)

    async def _handle_event(self, room_id: str, event: Event) -> None:
        try:
            result = await self.handler.handle_event(room_id, event)
        except Exception as exc:  # pragma: no cover - runtime safety
            logger.exception("Event handler error room=%s: %s", room_id, exc)
            return
        if result.reminder is not None:
            logger.info("Handled room=%s outcome=%s id=%s", room_id, result.outcome.value, result.reminder.id)

    async def _drain(self) -> None:
        """Let in-flight event and SMS tasks finish."""
        if self._event_tasks:
            await asyncio.gather(*list(self._event_tasks), return_exceptions=True)
        await self.dispatcher.drain()


async def run(settings: BotSettings | None = None) -> None:
    settings = settings or load_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(message)s")
    logger.info("Initialising")
    daemon = ReminderDaemon(settings)

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def handle_signal(sig: signal.Signals) -> None:
        logger.info("Received signal %s", sig.name)
        daemon.request_shutdown()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)

    pending = daemon.store.pending_count()
    next_due = daemon.store.next_due()
    logger.info(
        "Starting. homeserver=%s prefix=%s pending=%d next_due=%s",
        settings.matrix.host,
        settings.command_prefix,
        pending,
        next_due.isoformat() if next_due else "-",
    )
    logger.info("Ready. Press Ctrl+C to stop.")

    try:
        await daemon.run_forever()
    finally:
        await daemon.shutdown()


def main() -> None:
    try:
        asyncio.run(run())
    except (ConfigError, PersistenceError) as exc:
        print(f"reminder-bot: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc


if __name__ == "__main__":  # pragma: no cover
    main()
