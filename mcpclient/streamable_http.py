"""A transport that sends each JSON-RPC message as its own HTTP POST.

The reply to a request is either a single JSON document or an event stream
that carries notifications and ends with the response to that request.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Callable, Dict, Mapping, Optional
from urllib.parse import urlsplit

import httpx

from mcpclient.protocol import (
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    NotificationHandler,
    Transport,
    TransportError,
    iter_sse_events,
)

logger = logging.getLogger(__name__)

HeaderFunc = Callable[[], Mapping[str, str]]

SESSION_HEADER = "Mcp-Session-Id"
_CLOSE_TIMEOUT = 5.0


def _media_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


class StreamableHTTPTransport(Transport):
    """Posts every message to one URL and reads the reply from the response body.

    Batching, listening for server messages while no request is in flight,
    resuming streams and server-to-client requests are not supported.
    """

    def __init__(
        self,
        base_url: str,
        headers: Optional[Mapping[str, str]] = None,
        header_func: Optional[HeaderFunc] = None,
        timeout: Optional[float] = None,
    ) -> None:
        parts = urlsplit(base_url)
        if not parts.scheme or not parts.netloc:
            raise TransportError(f"invalid URL: {base_url!r}")
        self._base_url = base_url
        self._headers: Dict[str, str] = dict(headers or {})
        self._header_func = header_func
        self._client = httpx.Client(timeout=timeout)
        self._session_id = ""
        self._session_lock = threading.Lock()
        self._handler: Optional[NotificationHandler] = None
        self._handler_lock = threading.Lock()
        self._closed = threading.Event()

    def start(self) -> None:
        """Nothing to open: every message travels on its own request."""

    def close(self) -> None:
        """Stop accepting messages and tell the server the session has ended."""
        if self._closed.is_set():
            return
        self._closed.set()
        with self._session_lock:
            session = self._session_id
            self._session_id = ""
        if session:
            threading.Thread(target=self._end_session, args=(session,), daemon=True).start()
        else:
            self._client.close()

    def _end_session(self, session: str) -> None:
        try:
            self._client.delete(self._base_url, headers={SESSION_HEADER: session}, timeout=_CLOSE_TIMEOUT)
        except Exception as exc:  # the server may already be gone
            logger.warning("failed to send close request: %s", exc)
        finally:
            try:
                self._client.close()
            except Exception:
                pass

    def set_notification_handler(self, handler: Optional[NotificationHandler]) -> None:
        """Replace the handler that receives notifications."""
        with self._handler_lock:
            self._handler = handler

    def session_id(self) -> str:
        """Return the session id the server assigned at initialization, or ''."""
        with self._session_lock:
            return self._session_id

    def _merged_headers(self, base: Mapping[str, str]) -> Dict[str, str]:
        merged = dict(base)
        merged.update(self._headers)
        if self._header_func is not None:
            merged.update(self._header_func() or {})
        return merged

    def _message_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json, text/event-stream"}
        session = self.session_id()
        if session:
            headers[SESSION_HEADER] = session
        return self._merged_headers(headers)

    def send_request(self, request: JSONRPCRequest, timeout: Optional[float] = None) -> JSONRPCResponse:
        """Post a request and return its response."""
        if self._closed.is_set():
            raise TransportError("transport has been closed")
        if timeout is not None and timeout <= 0:
            raise TimeoutError("request timed out before it was sent")
        session = self.session_id()
        body = json.dumps(request.to_dict(), ensure_ascii=False).encode("utf-8")
        http_request = self._client.build_request(
            "POST",
            self._base_url,
            content=body,
            headers=self._message_headers(),
            timeout=httpx.USE_CLIENT_DEFAULT if timeout is None else timeout,
        )
        try:
            reply = self._client.send(http_request, stream=True)
        except httpx.TimeoutException as exc:
            raise TimeoutError(f"failed to send request: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"failed to send request: {exc}") from exc
        try:
            return self._read_reply(request, session, reply)
        except httpx.TimeoutException as exc:
            raise TimeoutError(f"timed out reading response: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"failed to read response: {exc}") from exc
        finally:
            reply.close()

    def _read_reply(self, request: JSONRPCRequest, session: str, reply: httpx.Response) -> JSONRPCResponse:
        if reply.status_code not in (200, 202):
            if reply.status_code == 404:
                with self._session_lock:
                    if self._session_id == session:
                        self._session_id = ""
                raise TransportError("session terminated (404). need to re-initialize")
            body = reply.read()
            try:
                message = json.loads(body)
            except ValueError:
                message = None
            if isinstance(message, dict):
                return JSONRPCResponse.from_dict(message)
            text = body.decode("utf-8", errors="replace")
            raise TransportError(f"request failed with status {reply.status_code}: {text}")

        if request.method == "initialize":
            assigned = reply.headers.get(SESSION_HEADER, "")
            if assigned:
                with self._session_lock:
                    self._session_id = assigned

        content_type = reply.headers.get("Content-Type", "")
        media = _media_type(content_type)
        if media == "application/json":
            try:
                message = json.loads(reply.read())
            except ValueError as exc:
                raise TransportError(f"failed to decode response: {exc}") from exc
            if not isinstance(message, dict):
                raise TransportError("failed to decode response: not a JSON object")
            response = JSONRPCResponse.from_dict(message)
            if response.is_notification():
                raise TransportError(f"response should contain RPC id: {message}")
            return response
        if media == "text/event-stream":
            return self._read_event_stream(reply)
        raise TransportError(f"unexpected content type: {content_type}")

    def _read_event_stream(self, reply: httpx.Response) -> JSONRPCResponse:
        for _event, data in iter_sse_events(reply.iter_lines()):
            try:
                message = json.loads(data)
            except ValueError as exc:
                logger.warning("failed to unmarshal message: %s", exc)
                continue
            if not isinstance(message, dict):
                logger.warning("failed to unmarshal message: not a JSON object")
                continue
            response = JSONRPCResponse.from_dict(message)
            if response.is_notification():
                with self._handler_lock:
                    handler = self._handler
                if handler is not None:
                    handler(JSONRPCNotification.from_dict(message))
                continue
            return response
        raise TransportError("unexpected nil response")

    def send_notification(self, notification: JSONRPCNotification) -> None:
        """Post a notification; no response is awaited."""
        if self._closed.is_set():
            raise TransportError("transport has been closed")
        body = json.dumps(notification.to_dict(), ensure_ascii=False).encode("utf-8")
        try:
            reply = self._client.post(self._base_url, content=body, headers=self._message_headers())
        except httpx.HTTPError as exc:
            raise TransportError(f"failed to send request: {exc}") from exc
        if reply.status_code not in (200, 202):
            raise TransportError(f"notification failed with status {reply.status_code}: {reply.text}")