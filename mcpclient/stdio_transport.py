"""A transport that speaks line-delimited JSON-RPC over a child process's stdio."""

from __future__ import annotations

import concurrent.futures
import json
import os
import subprocess
import threading
from typing import IO, Dict, Iterable, Mapping, Optional, Union

from mcpclient.protocol import (
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    NotificationHandler,
    Transport,
    TransportError,
    request_id_key,
)

EnvSpec = Union[Mapping[str, str], Iterable[str], None]


def _merge_env(extra: EnvSpec) -> Dict[str, str]:
    env = dict(os.environ)
    if extra is None:
        return env
    if isinstance(extra, Mapping):
        env.update(extra)
        return env
    for item in extra:
        key, _, value = item.partition("=")
        env[key] = value
    return env


def _encode(message: dict) -> bytes:
    return (json.dumps(message, separators=(",", ":"), ensure_ascii=False) + "\n").encode("utf-8")


class StdioTransport(Transport):
    """Runs a command and exchanges JSON-RPC messages with it, one per line."""

    def __init__(self, command: str = "", env: EnvSpec = None, *args: str) -> None:
        self._command = command
        self._args = list(args)
        self._env = env
        self._process: Optional[subprocess.Popen] = None
        self._stdin: Optional[IO[bytes]] = None
        self._stdout: Optional[IO[bytes]] = None
        self._stderr: Optional[IO[bytes]] = None
        self._responses: Dict[str, concurrent.futures.Future] = {}
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._handler: Optional[NotificationHandler] = None
        self._closed = threading.Event()
        self._reader: Optional[threading.Thread] = None

    @classmethod
    def from_streams(cls, input: IO[bytes], output: IO[bytes], logging: Optional[IO[bytes]]) -> "StdioTransport":
        """Build a transport over existing binary streams instead of a child process."""
        transport = cls()
        transport._stdout = input
        transport._stdin = output
        transport._stderr = logging
        return transport

    def start(self) -> None:
        """Spawn the command, if any, and begin reading its output."""
        self._spawn()
        self._reader = threading.Thread(target=self._read_responses, daemon=True)
        self._reader.start()

    def _spawn(self) -> None:
        if not self._command:
            return
        try:
            process = subprocess.Popen(
                [self._command, *self._args],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=_merge_env(self._env),
            )
        except OSError as exc:
            raise TransportError(f"failed to start command: {exc}") from exc
        self._process = process
        self._stdin = process.stdin
        self._stdout = process.stdout
        self._stderr = process.stderr

    def close(self) -> None:
        """Close stdin and stderr and wait for the child process to exit."""
        if self._closed.is_set():
            return
        self._closed.set()
        if self._stdin is not None:
            try:
                self._stdin.close()
            except OSError as exc:
                raise TransportError(f"failed to close stdin: {exc}") from exc
        if self._process is None:
            if self._stderr is not None:
                self._stderr.close()
            return
        returncode = self._process.wait()
        if self._reader is not None:
            self._reader.join(timeout=1)
        if self._stderr is not None:
            self._stderr.close()
        if returncode != 0:
            raise TransportError(f"command exited with status {returncode}")

    def set_notification_handler(self, handler: Optional[NotificationHandler]) -> None:
        """Replace the handler that receives notifications."""
        with self._lock:
            self._handler = handler

    def _read_responses(self) -> None:
        stream = self._stdout
        if stream is None:
            return
        try:
            for line in iter(stream.readline, b""):
                if self._closed.is_set() and self._process is None:
                    break
                self._dispatch(line)
        except (OSError, ValueError):
            pass
        finally:
            self._fail_pending(TransportError("connection has been closed"))

    def _dispatch(self, line: Union[bytes, str]) -> None:
        try:
            message = json.loads(line)
        except ValueError:
            return
        if not isinstance(message, dict):
            return
        response = JSONRPCResponse.from_dict(message)
        if response.is_notification():
            with self._lock:
                handler = self._handler
            if handler is not None:
                handler(JSONRPCNotification.from_dict(message))
            return
        with self._lock:
            future = self._responses.pop(request_id_key(response.id), None)
        if future is not None:
            future.set_result(response)

    def _fail_pending(self, error: Exception) -> None:
        with self._lock:
            pending = list(self._responses.values())
            self._responses.clear()
        for future in pending:
            if not future.done():
                future.set_exception(error)

    def _write(self, data: bytes, what: str) -> None:
        if self._closed.is_set():
            raise TransportError(f"failed to write {what}: transport has been closed")
        try:
            with self._write_lock:
                self._stdin.write(data)
                self._stdin.flush()
        except (OSError, ValueError) as exc:
            raise TransportError(f"failed to write {what}: {exc}") from exc

    def send_request(self, request: JSONRPCRequest, timeout: Optional[float] = None) -> JSONRPCResponse:
        """Write a request and block until its response arrives or the timeout passes."""
        if self._stdin is None:
            raise TransportError("stdio client not started")
        data = _encode(request.to_dict())
        key = request_id_key(request.id)
        future: concurrent.futures.Future = concurrent.futures.Future()
        with self._lock:
            self._responses[key] = future
        try:
            self._write(data, "request")
        except TransportError:
            self._forget(key)
            raise
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            self._forget(key)
            raise TimeoutError(f"no response to request {request.id!r}") from None

    def _forget(self, key: str) -> None:
        with self._lock:
            self._responses.pop(key, None)

    def send_notification(self, notification: JSONRPCNotification) -> None:
        """Write a notification line."""
        if self._stdin is None:
            raise TransportError("stdio client not started")
        self._write(_encode(notification.to_dict()), "notification")

    def stderr(self) -> Optional[IO[bytes]]:
        """Return the stream carrying the child's standard error."""
        return self._stderr