"""Threaded client for the TeamSpeak 3 RAW ServerQuery interface."""

from __future__ import annotations

import logging
import queue
import socket
import threading
from typing import Any

from .codec import encode_command, parse_error_line, parse_multi_kv, to_int
from .constants import (
    CLIENT_TYPE_VOICE,
    DEFAULT_QUERY_PORT,
    DEFAULT_SERVER_PORT,
    ERROR_DATABASE_EMPTY_RESULT,
    ERROR_NICKNAME_IN_USE,
    ERROR_OK,
    KEEPALIVE_S,
    NOTIFY_EVENTS,
    QUERY_TIMEOUT_S,
    TARGETMODE_CLIENT,
)
from .errors import QueryConnectionError, QueryError, ReconnectFailed
from .events import ConnectionLost, Event, ServerError, event_from_notification
from .models import Channel, ClientSnapshot, SelfIdentity


class ServerQueryConnection:
    """
    Owns the query socket and its reader thread.

    Commands are serialized: one command is in flight at a time and its
    response lines are handed back by the reader thread. ``notify*`` lines
    are turned into events and put on ``events``.
    """

    def __init__(
        self,
        host: str,
        *,
        query_port: int = DEFAULT_QUERY_PORT,
        server_port: int = DEFAULT_SERVER_PORT,
        username: str,
        password: str,
        nickname: str,
        events: queue.Queue[Event] | None = None,
        timeout: float = QUERY_TIMEOUT_S,
        keepalive_s: float = KEEPALIVE_S,
    ) -> None:
        self.host = host
        self.query_port = int(query_port)
        self.server_port = int(server_port)
        self.username = username
        self.password = password
        self.nickname = nickname
        self.events = events
        self.timeout = float(timeout)
        self.keepalive_s = float(keepalive_s)
        self.log = logging.getLogger("ts3warden.query")

        self._sock: socket.socket | None = None
        self._rfile: Any = None
        self._generation = 0

        # _cmd_lock serializes whole request/response exchanges; _state_lock
        # guards the socket handle and the pending response buffer.
        self._cmd_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._responses: queue.Queue[list[str] | None] = queue.Queue()
        self._pending: list[str] = []
        self._awaiting = False
        self._lost_reason: str | None = None

        self._connected = threading.Event()
        self._stop = threading.Event()
        self._reader_thread: threading.Thread | None = None
        self._keepalive_thread: threading.Thread | None = None

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    # Connection lifecycle

    def connect(self) -> None:
        try:
            sock = socket.create_connection(
                (self.host, self.query_port), timeout=self.timeout
            )
        except OSError as e:
            raise QueryConnectionError(
                f"cannot reach {self.host}:{self.query_port}: {e}"
            ) from e

        rfile = sock.makefile("rb")
        try:
            banner = rfile.readline()
            if not banner.strip().startswith(b"TS3"):
                raise QueryConnectionError(f"unexpected banner {banner[:32]!r}")
            # Second banner line is the welcome text.
            rfile.readline()
            sock.settimeout(None)
        except (OSError, QueryConnectionError) as e:
            rfile.close()
            sock.close()
            if isinstance(e, QueryConnectionError):
                raise
            raise QueryConnectionError(f"handshake failed: {e}") from e

        with self._state_lock:
            self._generation += 1
            generation = self._generation
            self._sock = sock
            self._rfile = rfile
            self._pending = []
            self._awaiting = False
            self._lost_reason = None
            self._connected.set()

        self._reader_thread = threading.Thread(
            target=self._reader_loop,
            args=(generation, rfile),
            name="ts3warden-query-reader",
            daemon=True,
        )
        self._reader_thread.start()

        try:
            self._setup_session()
        except QueryError:
            self._drop()
            raise

        if self.keepalive_s > 0 and (
            self._keepalive_thread is None or not self._keepalive_thread.is_alive()
        ):
            self._keepalive_thread = threading.Thread(
                target=self._keepalive_loop, name="ts3warden-keepalive", daemon=True
            )
            self._keepalive_thread.start()

        self.log.info(
            "Query session ready host=%s query_port=%s server_port=%s",
            self.host,
            self.query_port,
            self.server_port,
        )

    def _setup_session(self) -> None:
        self.execute(
            "login",
            {"client_login_name": self.username, "client_login_password": self.password},
        )
        self.execute("use", {"port": self.server_port})
        try:
            self.execute("clientupdate", {"client_nickname": self.nickname})
        except QueryError as e:
            if e.error_id != ERROR_NICKNAME_IN_USE:
                raise
            self.log.warning("Nickname %r already in use, keeping default", self.nickname)
        for event in NOTIFY_EVENTS:
            self.execute("servernotifyregister", {"event": event})

    def reconnect(
        self,
        max_attempts: int = -1,
        delay: float = 1.0,
        *,
        backoff: float = 1.0,
        max_delay: float | None = None,
    ) -> int:
        """
        Re-establish the session, retrying until it succeeds.

        ``max_attempts <= 0`` retries forever. Returns the number of attempts
        used. Raises ReconnectFailed once a bounded budget is exhausted.
        """
        attempt = 0
        wait = max(0.0, float(delay))
        while True:
            attempt += 1
            self._drop()
            try:
                self.connect()
                return attempt
            except QueryError as e:
                if max_attempts > 0 and attempt >= max_attempts:
                    raise ReconnectFailed(
                        f"gave up reconnecting after {attempt} attempts: {e}"
                    ) from e
                self.log.warning(
                    "Reconnect attempt %d failed: %s (next in %.1fs)", attempt, e, wait
                )
            if self._stop.wait(wait):
                raise QueryConnectionError("connection closed while reconnecting")
            wait = wait * float(backoff) if backoff and backoff > 1.0 else wait
            if max_delay is not None and max_delay > 0:
                wait = min(wait, float(max_delay))

    def close(self) -> None:
        self._stop.set()
        if self.is_connected:
            try:
                self.execute("quit")
            except QueryError:
                pass
        self._drop()

    def _drop(self) -> None:
        # Bumping the generation makes the old reader exit silently.
        with self._state_lock:
            self._generation += 1
            self._connected.clear()
            self._close_socket_locked()
            if self._awaiting:
                self._awaiting = False
                self._responses.put(None)

    def _abandon(self, reason: str) -> None:
        # Shut the socket down without bumping the generation: the reader
        # wakes up, sees its own generation and reports ConnectionLost.
        with self._state_lock:
            self._awaiting = False
            self._pending = []
            if not self._connected.is_set():
                return
            self._connected.clear()
            self._lost_reason = reason
            if self._sock is not None:
                try:
                    self._sock.shutdown(socket.SHUT_RDWR)
                except OSError:
                    pass

    def _close_socket_locked(self) -> None:
        sock, rfile = self._sock, self._rfile
        self._sock = None
        self._rfile = None
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()
        if rfile is not None:
            try:
                rfile.close()
            except OSError:
                pass

    # Reader side

    def _reader_loop(self, generation: int, rfile: Any) -> None:
        reason = "connection closed by server"
        try:
            while True:
                raw = rfile.readline()
                if not raw:
                    break
                line = raw.decode("utf-8", "replace").strip()
                if line:
                    self._handle_line(line)
        except (OSError, ValueError) as e:
            reason = f"read failed: {e}"
        finally:
            self._on_reader_exit(generation, reason)

    def _handle_line(self, line: str) -> None:
        if line.startswith("notify"):
            name, _, rest = line.partition(" ")
            for entry in parse_multi_kv(rest) or [{}]:
                event = event_from_notification(name, entry)
                if event is not None:
                    self._emit(event)
            return

        with self._state_lock:
            if not self._awaiting:
                self.log.debug("Dropping unsolicited line: %s", line)
                return
            self._pending.append(line)
            if line.startswith("error "):
                lines = self._pending
                self._pending = []
                self._awaiting = False
                self._responses.put(lines)

    def _on_reader_exit(self, generation: int, reason: str) -> None:
        with self._state_lock:
            if generation != self._generation:
                return
            if self._lost_reason:
                reason = self._lost_reason
            self._connected.clear()
            self._close_socket_locked()
            if self._awaiting:
                self._awaiting = False
                self._responses.put(None)

        if self._stop.is_set():
            return
        self.log.warning("Query connection lost: %s", reason)
        self._emit(ConnectionLost(reason))

    def _emit(self, event: Event) -> None:
        if self.events is not None:
            self.events.put(event)

    def _keepalive_loop(self) -> None:
        while not self._stop.wait(self.keepalive_s):
            if not self.is_connected:
                continue
            try:
                self.execute("version")
            except QueryConnectionError:
                # The reader reports the loss.
                continue
            except QueryError as e:
                self._emit(ServerError(e))

    # Commands

    def execute(
        self,
        name: str,
        params: dict[str, Any] | None = None,
        options: tuple[str, ...] = (),
    ) -> list[dict[str, str]]:
        cmd = encode_command(name, params, options)
        with self._cmd_lock:
            with self._state_lock:
                sock = self._sock
                if sock is None or not self._connected.is_set():
                    raise QueryConnectionError("not connected")
                while not self._responses.empty():
                    self._responses.get_nowait()
                self._pending = []
                self._awaiting = True
            try:
                sock.sendall((cmd + "\n").encode("utf-8"))
            except OSError as e:
                with self._state_lock:
                    self._awaiting = False
                raise QueryConnectionError(f"send failed: {e}") from e
            try:
                lines = self._responses.get(timeout=self.timeout)
            except queue.Empty:
                # A late reply would be read as the answer to the next command.
                self._abandon(f"no reply to {name!r} within {self.timeout:.1f}s")
                raise QueryConnectionError(f"timed out waiting for {name!r}") from None

        if lines is None:
            raise QueryConnectionError(f"connection closed during {name!r}")

        error_id, msg = parse_error_line(lines[-1])
        if error_id == ERROR_DATABASE_EMPTY_RESULT:
            return []
        if error_id != ERROR_OK:
            raise QueryError(error_id, msg)

        records: list[dict[str, str]] = []
        for line in lines[:-1]:
            records.extend(parse_multi_kv(line))
        return records

    def whoami(self) -> SelfIdentity:
        rows = self.execute("whoami")
        data = rows[0] if rows else {}
        return SelfIdentity(
            client_id=to_int(data.get("client_id")),
            channel_id=to_int(data.get("client_channel_id")),
            nickname=data.get("client_nickname", ""),
            database_id=to_int(data.get("client_database_id")),
        )

    def client_list(self, client_type: int | None = CLIENT_TYPE_VOICE) -> list[ClientSnapshot]:
        rows = self.execute(
            "clientlist", options=("-uid", "-times", "-voice", "-country", "-info")
        )
        clients = [ClientSnapshot.from_entry(row) for row in rows]
        if client_type is None:
            return clients
        return [c for c in clients if c.client_type == client_type]

    def client_info(self, clid: int) -> dict[str, str]:
        rows = self.execute("clientinfo", {"clid": clid})
        return rows[0] if rows else {}

    def get_channel_by_name(self, name: str) -> Channel | None:
        for row in self.execute("channellist"):
            if row.get("channel_name") == name:
                return Channel(cid=to_int(row.get("cid")), name=name)
        return None

    def send_message(self, clid: int, text: str) -> None:
        self.execute(
            "sendtextmessage",
            {"targetmode": TARGETMODE_CLIENT, "target": clid, "msg": text},
        )

    def move_client(self, clid: int, cid: int) -> None:
        self.execute("clientmove", {"clid": clid, "cid": cid})

    def server_info(self) -> dict[str, str]:
        rows = self.execute("serverinfo")
        return rows[0] if rows else {}
