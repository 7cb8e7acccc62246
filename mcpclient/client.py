"""An MCP client that runs requests over any transport, and helpers to build one."""

from __future__ import annotations

import itertools
import threading
from typing import IO, Any, Callable, Dict, List, Mapping, Optional

from mcpclient.protocol import (
    JSONRPCNotification,
    JSONRPCRequest,
    NotificationHandler,
    Transport,
    TransportError,
)
from mcpclient.sse_transport import HeaderFunc, SSETransport
from mcpclient.stdio_transport import EnvSpec, StdioTransport
from mcpclient.streamable_http import StreamableHTTPTransport


class ClientError(Exception):
    """Raised when a request cannot be made or the server answers with an error."""


class Client:
    """Speaks the Model Context Protocol to a server through a transport.

    ``start`` opens the transport, ``initialize`` negotiates with the server;
    every other request needs a successful ``initialize`` first.
    """

    def __init__(
        self,
        transport: Optional[Transport],
        client_capabilities: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.transport = transport
        self.client_capabilities: Dict[str, Any] = dict(client_capabilities or {})
        self.server_capabilities: Dict[str, Any] = {}
        self.timeout = timeout
        self._initialized = False
        self._handlers: List[NotificationHandler] = []
        self._handlers_lock = threading.Lock()
        self._ids = itertools.count(1)
        self._id_lock = threading.Lock()
        if transport is not None:
            transport.set_notification_handler(self._dispatch_notification)

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def initialized(self) -> bool:
        """True once ``initialize`` has succeeded."""
        return self._initialized

    def start(self) -> None:
        """Open the transport. Call before any request."""
        if self.transport is None:
            raise ClientError("transport is nil")
        self.transport.start()
        self.transport.set_notification_handler(self._dispatch_notification)

    def close(self) -> None:
        """Close the transport."""
        if self.transport is not None:
            self.transport.close()

    def on_notification(self, handler: NotificationHandler) -> None:
        """Add a notification handler; handlers run in the order they were added."""
        with self._handlers_lock:
            self._handlers.append(handler)

    def _dispatch_notification(self, notification: JSONRPCNotification) -> None:
        with self._handlers_lock:
            handlers = list(self._handlers)
        for handler in handlers:
            handler(notification)

    def _next_id(self) -> int:
        with self._id_lock:
            return next(self._ids)

    def _send_request(self, method: str, params: Any) -> Any:
        if not self._initialized and method != "initialize":
            raise ClientError("client not initialized")
        if self.transport is None:
            raise ClientError("transport is nil")
        request = JSONRPCRequest(id=self._next_id(), method=method, params=params)
        try:
            response = self.transport.send_request(request, self.timeout)
        except TransportError as exc:
            raise ClientError(f"transport error: {exc}") from exc
        if response.error is not None:
            raise ClientError(response.error.message)
        return response.result

    @staticmethod
    def _as_object(result: Any) -> Dict[str, Any]:
        if not isinstance(result, dict):
            raise ClientError("failed to unmarshal response: expected a JSON object")
        return result

    def initialize(
        self,
        protocol_version: str,
        client_info: Mapping[str, Any],
        capabilities: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Negotiate with the server and announce that the client is ready."""
        caps = dict(capabilities) if capabilities is not None else dict(self.client_capabilities)
        params = {
            "protocolVersion": protocol_version,
            "clientInfo": dict(client_info),
            "capabilities": caps,
        }
        result = self._as_object(self._send_request("initialize", params))
        server_caps = result.get("capabilities")
        self.server_capabilities = dict(server_caps) if isinstance(server_caps, Mapping) else {}
        try:
            self.transport.send_notification(JSONRPCNotification(method="notifications/initialized"))
        except TransportError as exc:
            raise ClientError(f"failed to send initialized notification: {exc}") from exc
        self._initialized = True
        return result

    def ping(self) -> None:
        """Check that the server is alive."""
        self._send_request("ping", None)

    def _list_by_page(self, method: str, cursor: Optional[str]) -> Dict[str, Any]:
        params = {"cursor": cursor} if cursor else {}
        return self._as_object(self._send_request(method, params))

    def _list_all(self, method: str, key: str) -> Dict[str, Any]:
        result = self._list_by_page(method, None)
        items = list(result.get(key) or [])
        cursor = result.get("nextCursor")
        while cursor:
            page = self._list_by_page(method, cursor)
            items.extend(page.get(key) or [])
            cursor = page.get("nextCursor")
        result[key] = items
        result.pop("nextCursor", None)
        return result

    def list_resources_by_page(self, cursor: Optional[str] = None) -> Dict[str, Any]:
        """List one page of resources."""
        return self._list_by_page("resources/list", cursor)

    def list_resources(self) -> Dict[str, Any]:
        """List every resource, following pagination cursors."""
        return self._list_all("resources/list", "resources")

    def list_resource_templates_by_page(self, cursor: Optional[str] = None) -> Dict[str, Any]:
        """List one page of resource templates."""
        return self._list_by_page("resources/templates/list", cursor)

    def list_resource_templates(self) -> Dict[str, Any]:
        """List every resource template, following pagination cursors."""
        return self._list_all("resources/templates/list", "resourceTemplates")

    def read_resource(self, uri: str) -> Dict[str, Any]:
        """Read the resource at ``uri``."""
        return self._as_object(self._send_request("resources/read", {"uri": uri}))

    def subscribe(self, uri: str) -> None:
        """Ask for notifications when the resource at ``uri`` changes."""
        self._send_request("resources/subscribe", {"uri": uri})

    def unsubscribe(self, uri: str) -> None:
        """Stop notifications for the resource at ``uri``."""
        self._send_request("resources/unsubscribe", {"uri": uri})

    def list_prompts_by_page(self, cursor: Optional[str] = None) -> Dict[str, Any]:
        """List one page of prompts."""
        return self._list_by_page("prompts/list", cursor)

    def list_prompts(self) -> Dict[str, Any]:
        """List every prompt, following pagination cursors."""
        return self._list_all("prompts/list", "prompts")

    def get_prompt(self, name: str, arguments: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        """Fetch a prompt rendered with the given arguments."""
        params: Dict[str, Any] = {"name": name}
        if arguments:
            params["arguments"] = dict(arguments)
        return self._as_object(self._send_request("prompts/get", params))

    def list_tools_by_page(self, cursor: Optional[str] = None) -> Dict[str, Any]:
        """List one page of tools."""
        return self._list_by_page("tools/list", cursor)

    def list_tools(self) -> Dict[str, Any]:
        """List every tool, following pagination cursors."""
        return self._list_all("tools/list", "tools")

    def call_tool(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Invoke a tool with the given arguments."""
        params: Dict[str, Any] = {"name": name}
        if arguments is not None:
            params["arguments"] = dict(arguments)
        return self._as_object(self._send_request("tools/call", params))

    def set_level(self, level: str) -> None:
        """Set the server's logging level."""
        self._send_request("logging/setLevel", {"level": level})

    def complete(self, ref: Mapping[str, Any], argument_name: str, argument_value: str) -> Dict[str, Any]:
        """Ask for completion values for one argument of a prompt or resource."""
        params = {"ref": dict(ref), "argument": {"name": argument_name, "value": argument_value}}
        return self._as_object(self._send_request("completion/complete", params))


def new_stdio_client(command: str, env: EnvSpec, *args: str) -> Client:
    """Start ``command`` and return a client talking to it; do not call ``start`` again."""
    transport = StdioTransport(command, env, *args)
    try:
        transport.start()
    except TransportError as exc:
        raise ClientError(f"failed to start stdio transport: {exc}") from exc
    return Client(transport)


def new_sse_client(
    base_url: str,
    headers: Optional[Mapping[str, str]] = None,
    header_func: Optional[HeaderFunc] = None,
) -> Client:
    """Return a client using the server-sent events transport at ``base_url``."""
    try:
        transport = SSETransport(base_url, headers, header_func)
    except TransportError as exc:
        raise ClientError(f"failed to create SSE transport: {exc}") from exc
    return Client(transport)


def new_streamable_http_client(
    base_url: str,
    headers: Optional[Mapping[str, str]] = None,
    header_func: Optional[Callable[[], Mapping[str, str]]] = None,
    timeout: Optional[float] = None,
) -> Client:
    """Return a client using the streamable HTTP transport at ``base_url``."""
    try:
        transport = StreamableHTTPTransport(base_url, headers, header_func, timeout)
    except TransportError as exc:
        raise ClientError(f"failed to create streamable HTTP transport: {exc}") from exc
    return Client(transport)


def get_stderr(client: Client) -> Optional[IO[bytes]]:
    """Return the child process's stderr stream, or None for other transports."""
    if isinstance(client.transport, StdioTransport):
        return client.transport.stderr()
    return None


def get_endpoint(client: Client) -> Optional[str]:
    """Return the endpoint announced over SSE; only SSE clients have one."""
    if not isinstance(client.transport, SSETransport):
        raise TypeError("client does not use an SSE transport")
    return client.transport.endpoint()