from __future__ import annotations

import logging
import queue
import signal
import threading
import time
from typing import Callable

from . import __version__
from .commands import CommandHandler
from .config import WardenRuntimeConfig
from .errors import FatalError, QueryError
from .events import (
    ClientConnect,
    ClientLeave,
    ConnectionLost,
    Event,
    ServerError,
    TextMessage,
)
from .history import ConnectionHistory, row_from_client
from .protection import ProtectionRegistry
from .query import ServerQueryConnection
from .reconnect import ReconnectSupervisor
from .stats import StatsManager
from .sweeper import IdleSweeper


class WardenService:
    def __init__(
        self,
        config: WardenRuntimeConfig,
        *,
        connection: ServerQueryConnection | None = None,
        history: ConnectionHistory | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.log = logging.getLogger("ts3warden.warden")

        self._shutdown = threading.Event()
        self.exit_code = 0

        # Server events are handled one at a time, in arrival order, by the
        # dispatch thread. The sweeper runs on its own thread; the protection
        # registry is the only state the two share.
        self.events: queue.Queue[Event] = queue.Queue()

        if connection is None:
            connection = ServerQueryConnection(
                config.host,
                query_port=config.query_port,
                server_port=config.server_port,
                username=config.username,
                password=config.password,
                nickname=config.nickname,
                events=self.events,
                timeout=config.query_timeout_s,
                keepalive_s=config.keepalive_s,
            )
        self.connection = connection

        self.registry = ProtectionRegistry(clock)
        self.supervisor = ReconnectSupervisor(
            self.connection,
            max_attempts=config.reconnect_max_attempts,
            delay_s=config.reconnect_delay_s,
            backoff=config.reconnect_backoff,
            max_delay_s=config.reconnect_max_delay_s or None,
        )
        self.command_handler = CommandHandler(
            self.connection,
            self.registry,
            self.supervisor.own_client_id,
            protect_prefix=config.protect_prefix,
            protect_hours=config.protect_hours,
            protect_reply=config.protect_reply,
        )
        self.sweeper = IdleSweeper(
            self.connection,
            self.registry,
            idle_minutes=config.idle_minutes,
            holding_channel=config.holding_channel,
            idle_message=config.idle_message,
            clock=clock,
        )
        self.history = history if history is not None else ConnectionHistory(config.db_path)
        self.stats_manager = StatsManager(self.connection)

        self._dispatch_thread: threading.Thread | None = None
        self._sweep_thread: threading.Thread | None = None

    def start(self) -> None:
        self.log.info("Starting ts3warden %s", __version__)
        self.history.open()

        self.log.info(
            "Connecting to TeamSpeak server: %s:%s",
            self.config.host,
            self.config.server_port,
        )
        self.connection.connect()
        me = self.connection.whoami()
        self.supervisor.mark_connected(me)
        self.log.debug("Own identity: %s", me)
        self.log.info("Connected to TeamSpeak server as client id %s", me.client_id)

        self.stats_manager.bind()
        self.stats_manager.start_exporter(self.config.metrics_port, self.config.metrics_addr)

        self._dispatch_thread = threading.Thread(
            target=self._dispatch_loop, name="ts3warden-dispatch", daemon=True
        )
        self._dispatch_thread.start()

        self._sweep_thread = threading.Thread(
            target=self._sweep_loop, name="ts3warden-sweep", daemon=True
        )
        self._sweep_thread.start()

        self.log.info(
            "Policy idle_minutes=%s sweep_interval_s=%s holding_channel=%r protect_hours=%s",
            self.config.idle_minutes,
            self.config.effective_sweep_interval_s,
            self.config.holding_channel,
            self.config.protect_hours,
        )

    def run_forever(self) -> int:
        if self._dispatch_thread is None:
            self.start()

        signal.signal(signal.SIGINT, lambda *_: self.stop())
        signal.signal(signal.SIGTERM, lambda *_: self.stop())

        while not self._shutdown.is_set():
            time.sleep(0.25)
        return self.exit_code

    def stop(self) -> None:
        if self._shutdown.is_set():
            return
        self._shutdown.set()
        self.log.info("Stopping ts3warden")
        self.connection.close()
        self.history.close()

    def _fatal(self, err: FatalError) -> None:
        self.log.error("Fatal: %s", err)
        self.exit_code = 1
        self.stop()

    # Event handling

    def dispatch(self, event: Event) -> None:
        if isinstance(event, ConnectionLost):
            self.supervisor.on_connection_lost(event)
        elif isinstance(event, TextMessage):
            self.command_handler.handle(event)
        elif isinstance(event, ClientConnect):
            self._on_client_connect(event)
        elif isinstance(event, ClientLeave):
            self._on_client_leave(event)
        elif isinstance(event, ServerError):
            self.supervisor.on_server_error(event)

    def _dispatch_loop(self) -> None:
        while not self._shutdown.is_set():
            try:
                event = self.events.get(timeout=0.25)
            except queue.Empty:
                continue
            try:
                self.dispatch(event)
            except FatalError as e:
                self._fatal(e)
                return
            except QueryError as e:
                self.log.warning("Handling %s failed: %s", type(event).__name__, e)
            except Exception:
                self.log.exception("Unexpected error handling %s", type(event).__name__)

    def _on_client_connect(self, event: ClientConnect) -> None:
        data = dict(event.data)
        try:
            data.update(self.connection.client_info(event.clid))
        except QueryError as e:
            self.log.debug("clientinfo for %s failed: %s", event.clid, e)

        self.history.record(row_from_client(data, clid=event.clid, cid=event.cid))
        self.log.info("Client connected: %s (id %s)", event.nickname, event.clid)

    def _on_client_leave(self, event: ClientLeave) -> None:
        if self.config.release_on_leave:
            self.registry.release(event.clid)

    # Idle enforcement

    def run_sweep(self) -> None:
        """One sweep cycle; fatal conditions stop the service."""
        try:
            result = self.sweeper.run_once()
        except FatalError as e:
            self._fatal(e)
            return
        except QueryError as e:
            self.log.warning("Idle sweep aborted: %s", e)
            return
        if result.moved:
            self.log.debug("Moved %d idle client(s)", len(result.moved))

    def _sweep_loop(self) -> None:
        interval = self.config.effective_sweep_interval_s
        while not self._shutdown.wait(interval):
            while not self.supervisor.wait_connected(0.5):
                if self._shutdown.is_set():
                    return
            self.run_sweep()
