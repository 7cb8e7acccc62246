"""JSON-RPC message types and the transport interface shared by all transports."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, Tuple, Union

JSONRPC_VERSION = "2.0"

RequestId = Union[int, str]


class TransportError(Exception):
    """Raised when a transport cannot deliver a message or receive its reply."""


@dataclass
class JSONRPCErrorDetail:
    """The ``error`` member of a JSON-RPC response."""

    code: int = 0
    message: str = ""
    data: Any = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "JSONRPCErrorDetail":
        return cls(
            code=int(data.get("code") or 0),
            message=str(data.get("message") or ""),
            data=data.get("data"),
        )


@dataclass
class JSONRPCRequest:
    """A JSON-RPC request carrying an id, a method and optional params."""

    id: RequestId
    method: str
    params: Any = None
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict:
        """Return the wire form; ``params`` is left out when it is None."""
        out: dict = {"jsonrpc": self.jsonrpc, "id": self.id, "method": self.method}
        if self.params is not None:
            out["params"] = self.params
        return out


@dataclass
class JSONRPCResponse:
    """A JSON-RPC response: a result or an error for a given id."""

    id: Optional[RequestId] = None
    result: Any = None
    error: Optional[JSONRPCErrorDetail] = None
    jsonrpc: str = JSONRPC_VERSION

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "JSONRPCResponse":
        error = data.get("error")
        return cls(
            id=data.get("id"),
            result=data.get("result"),
            error=JSONRPCErrorDetail.from_dict(error) if isinstance(error, Mapping) else None,
            jsonrpc=str(data.get("jsonrpc") or ""),
        )

    def is_notification(self) -> bool:
        """A message without an id is a notification, not a response."""
        return self.id is None


@dataclass
class JSONRPCNotification:
    """A JSON-RPC notification: a method call that expects no reply."""

    method: str
    params: Any = None
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict:
        out: dict = {"jsonrpc": self.jsonrpc, "method": self.method}
        if self.params is not None:
            out["params"] = self.params
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "JSONRPCNotification":
        return cls(
            method=str(data.get("method") or ""),
            params=data.get("params"),
            jsonrpc=str(data.get("jsonrpc") or ""),
        )


NotificationHandler = Callable[[JSONRPCNotification], None]


class Transport(abc.ABC):
    """The interface every MCP transport provides."""

    @abc.abstractmethod
    def start(self) -> None:
        """Open the connection. Call once."""

    @abc.abstractmethod
    def send_request(self, request: JSONRPCRequest, timeout: Optional[float] = None) -> JSONRPCResponse:
        """Send a request and wait for its response."""

    @abc.abstractmethod
    def send_notification(self, notification: JSONRPCNotification) -> None:
        """Send a notification; no response is awaited."""

    @abc.abstractmethod
    def set_notification_handler(self, handler: Optional[NotificationHandler]) -> None:
        """Set the callable that receives server notifications."""

    @abc.abstractmethod
    def close(self) -> None:
        """Close the connection."""


def request_id_key(value: Any) -> str:
    """Return a lookup key for a request id that tells numbers from strings."""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"{type(value).__name__}:{value}"


def iter_sse_events(lines: Iterable[Union[str, bytes]]) -> Iterator[Tuple[str, str]]:
    """Yield ``(event, data)`` pairs from the lines of a server-sent event stream."""
    event = ""
    data = ""
    for raw in lines:
        line = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r\n")
        if not line:
            if event and data:
                yield event, data
                event = ""
                data = ""
            continue
        if line.startswith("event:"):
            event = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data = line[len("data:"):].strip()
    if event and data:
        yield event, data