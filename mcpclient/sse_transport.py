"""A transport that receives JSON-RPC messages over server-sent events and posts requests."""

from __future__ import annotations

import concurrent.futures
import json
import logging
import socket
import threading
import time
from typing import Callable, Dict, Mapping, Optional
from urllib.parse import urljoin, urlsplit

import httpx

from mcpclient.protocol import (
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    NotificationHandler,
    Transport,
    TransportError,
    iter_sse_events,
    request_id_key,
)

logger = logging.getLogger(__name__)

HeaderFunc = Callable[[], Mapping[str, str]]

_ENDPOINT_TIMEOUT = 30.0


class SSETransport(Transport):
    """Listens on an event stream for replies and sends each message as an HTTP POST.

    The server first announces, with an ``endpoint`` event, the URL that messages
    are posted to; replies and notifications then arrive as ``message`` events.
    """

    def __init__(
        self,
        base_url: str,
        headers: Optional[Mapping[str, str]] = None,
        header_func: Optional[HeaderFunc] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        parts = urlsplit(base_url)
        if not parts.scheme or not parts.netloc:
            raise TransportError(f"invalid URL: {base_url!r}")
        self._base_url = base_url
        self._endpoint: Optional[str] = None
        self._headers: Dict[str, str] = dict(headers or {})
        self._header_func = header_func
        self._owns_client = http_client is None
        self._client = http_client if http_client is not None else httpx.Client(timeout=None)
        self._responses: Dict[str, concurrent.futures.Future] = {}
        self._lock = threading.Lock()
        self._handler: Optional[NotificationHandler] = None
        self._endpoint_ready = threading.Event()
        self._started = False
        self._closed = threading.Event()
        self._stream: Optional[httpx.Response] = None
        self._reader: Optional[threading.Thread] = None

    def _merged_headers(self, base: Mapping[str, str]) -> Dict[str, str]:
        merged = dict(base)
        merged.update(self._headers)
        if self._header_func is not None:
            merged.update(self._header_func() or {})
        return merged

    def start(self, timeout: Optional[float] = _ENDPOINT_TIMEOUT) -> None:
        """Open the event stream and wait until the server announces its endpoint."""
        if self._started:
            raise TransportError("has already started")
        if self._closed.is_set():
            raise TransportError("transport has been closed")
        headers = self._merged_headers(
            {"Accept": "text/event-stream", "Cache-Control": "no-cache", "Connection": "keep-alive"}
        )
        request = self._client.build_request("GET", self._base_url, headers=headers)
        try:
            response = self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise TransportError(f"failed to connect to SSE stream: {exc}") from exc
        if response.status_code != 200:
            response.close()
            raise TransportError(f"unexpected status code: {response.status_code}")
        self._stream = response
        self._reader = threading.Thread(target=self._read_sse, args=(response,), daemon=True)
        self._reader.start()

        if not self._endpoint_ready.wait(timeout):
            self._close_stream()
            raise TimeoutError("timeout waiting for endpoint")
        if self._endpoint is None:
            raise TransportError("connection closed before the endpoint was received")
        self._started = True

    def _read_sse(self, response: httpx.Response) -> None:
        try:
            for event, data in iter_sse_events(response.iter_lines()):
                self._handle_event(event, data)
        except Exception as exc:  # the stream may die in many ways; the reader must not
            if not self._closed.is_set():
                logger.warning("SSE stream error: %s", exc)
        finally:
            try:
                response.close()
            except Exception:
                pass
            self._endpoint_ready.set()
            self._fail_pending(TransportError("connection has been closed"))

    def _handle_event(self, event: str, data: str) -> None:
        if event == "endpoint":
            endpoint = urljoin(self._base_url, data)
            if urlsplit(endpoint).netloc != urlsplit(self._base_url).netloc:
                logger.warning("Endpoint origin does not match connection origin")
                return
            self._endpoint = endpoint
            self._endpoint_ready.set()
        elif event == "message":
            try:
                message = json.loads(data)
            except ValueError as exc:
                logger.warning("Error unmarshaling message: %s", exc)
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
            if future is not None and not future.done():
                future.set_result(response)

    def _fail_pending(self, error: Exception) -> None:
        with self._lock:
            pending = list(self._responses.values())
            self._responses.clear()
        for future in pending:
            if not future.done():
                future.set_exception(error)

    def _forget(self, key: str) -> None:
        with self._lock:
            self._responses.pop(key, None)

    def set_notification_handler(self, handler: Optional[NotificationHandler]) -> None:
        """Replace the handler that receives notifications."""
        with self._lock:
            self._handler = handler

    def send_request(self, request: JSONRPCRequest, timeout: Optional[float] = None) -> JSONRPCResponse:
        """Post a request and wait for its response on the event stream."""
        if not self._started:
            raise TransportError("transport not started yet")
        if self._closed.is_set():
            raise TransportError("transport has been closed")
        if self._endpoint is None:
            raise TransportError("endpoint not received")
        if timeout is not None and timeout <= 0:
            raise TimeoutError("request timed out before it was sent")
        deadline = None if timeout is None else time.monotonic() + timeout

        body = json.dumps(request.to_dict(), ensure_ascii=False).encode("utf-8")
        key = request_id_key(request.id)
        future: concurrent.futures.Future = concurrent.futures.Future()
        with self._lock:
            self._responses[key] = future

        try:
            reply = self._client.post(
                self._endpoint,
                content=body,
                headers=self._merged_headers({"Content-Type": "application/json"}),
                timeout=httpx.USE_CLIENT_DEFAULT if timeout is None else timeout,
            )
        except httpx.TimeoutException as exc:
            self._forget(key)
            raise TimeoutError(f"failed to send request: {exc}") from exc
        except httpx.HTTPError as exc:
            self._forget(key)
            raise TransportError(f"failed to send request: {exc}") from exc

        if reply.status_code not in (200, 202):
            self._forget(key)
            raise TransportError(f"request failed with status {reply.status_code}: {reply.text}")

        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        try:
            return future.result(timeout=remaining)
        except concurrent.futures.TimeoutError:
            self._forget(key)
            raise TimeoutError(f"no response to request {request.id!r}") from None

    def send_notification(self, notification: JSONRPCNotification) -> None:
        """Post a notification; no response is awaited."""
        if self._endpoint is None:
            raise TransportError("endpoint not received")
        if self._closed.is_set():
            raise TransportError("transport has been closed")
        body = json.dumps(notification.to_dict(), ensure_ascii=False).encode("utf-8")
        try:
            reply = self._client.post(
                self._endpoint,
                content=body,
                headers=self._merged_headers({"Content-Type": "application/json"}),
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"failed to send notification: {exc}") from exc
        if reply.status_code not in (200, 202):
            raise TransportError(f"notification failed with status {reply.status_code}: {reply.text}")

    def _close_stream(self) -> None:
        stream = self._stream
        if stream is None:
            return
        network_stream = stream.extensions.get("network_stream")
        if network_stream is not None:
            try:
                sock = network_stream.get_extra_info("socket")
                if sock is not None:
                    sock.shutdown(socket.SHUT_RDWR)
            except Exception:
                pass
        try:
            stream.close()
        except Exception:
            pass

    def close(self) -> None:
        """Stop the event stream and fail every request still waiting."""
        if self._closed.is_set():
            return
        self._closed.set()
        self._close_stream()
        self._fail_pending(TransportError("connection has been closed"))
        if self._owns_client:
            try:
                self._client.close()
            except Exception:
                pass

    def endpoint(self) -> Optional[str]:
        """Return the URL messages are posted to, once the server has announced it."""
        return self._endpoint

    def base_url(self) -> str:
        """Return the URL of the event stream."""
        return self._base_url