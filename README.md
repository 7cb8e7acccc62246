# mcpclient

A client for the Model Context Protocol (MCP). It talks JSON-RPC 2.0 to an MCP server
over one of three transports:

- **stdio** (`mcpclient.stdio_transport.StdioTransport`): starts the server as a child
  process and exchanges one JSON message per line over its standard streams.
- **SSE** (`mcpclient.sse_transport.SSETransport`): keeps a server-sent events stream
  open, waits for the server's `endpoint` event, and posts each message to that endpoint.
  Replies and notifications come back as `message` events.
- **streamable HTTP** (`mcpclient.streamable_http.StreamableHTTPTransport`): sends every
  message as its own HTTP POST. The reply is either a JSON document or an event stream
  that ends with the response. The session id the server sends back on `initialize` goes
  out with every later message.

The package also has an interactive shell for trying out a server's tools, and helpers
that turn tool schemas into Markdown documentation.

## Installation

```
pip install .
```

With the test dependencies:

```
pip install ".[test]"
```

## Interactive shell

```
mcp-client [--quiet] [--machine] [--help|-h] <server-command> [args...]
```

The shell starts `<server-command>` as a child process. It sends `tools/list` and keeps
the tool names and input schemas from the reply. Then it reads commands. When standard
input is a terminal, you get an `mcp> ` prompt with history (saved in
`~/.mcp_client_history`) and tab completion. Otherwise it reads one command per line
from standard input.

| Command                   | Effect                                                    |
|---------------------------|-----------------------------------------------------------|
| `list`                    | Send `tools/list` to the server again                     |
| `schema <tool>`           | Print the tool's input schema and an example `call` line  |
| `call <tool> <json-args>` | Send `tools/call` with a JSON object as the arguments     |
| `help`                    | Print the list of commands                                |
| `exit`, `quit`            | Kill the server and leave                                 |

The shell prints server replies as they arrive. By default the output is meant for
people: in tool results it prints the text content, and it pretty-prints any JSON that
follows a `Response:` line. `--quiet` and `--machine` switch to raw indented JSON for
results, and for errors, which go to standard error. When the server closes its output,
the shell exits.

If a `call` line holds invalid JSON, the shell reports it and prints the tool's expected
schema if it knows one.

## Library use

```python
from mcpclient.client import new_stdio_client

client = new_stdio_client("./my-mcp-server", None)
try:
    info = client.initialize(
        "2025-03-26",
        {"name": "example", "version": "1.0.0"},
        {},
    )
    tools = client.list_tools()["tools"]
    result = client.call_tool("getFoo", {"id": "123"})
finally:
    client.close()
```

`new_stdio_client(command, env, *args)` has already started the transport when it
returns. `env` is `None`, a mapping, or a list of `KEY=VALUE` strings; its entries are
added on top of the current environment.

`new_sse_client(base_url, headers, header_func)` and
`new_streamable_http_client(base_url, headers, header_func, timeout)` build clients on the
network transports. On these you call `Client.start()` before `initialize`. `headers` is a
dict of extra HTTP headers. `header_func` is a callable with no arguments that returns
further headers for each request. A `Client` can also be built directly around any
`mcpclient.protocol.Transport`, and it works as a context manager that closes the
transport on exit.

`Client` methods:

- `initialize`, `ping`
- `list_tools`, `list_prompts`, `list_resources`, `list_resource_templates`: these follow
  `nextCursor` to collect every page. The `*_by_page(cursor)` variants fetch a single page.
- `call_tool`, `get_prompt`, `read_resource`, `subscribe`, `unsubscribe`, `set_level`,
  `complete`

Results come back as plain dicts.

Before any other request you must call `initialize`; if you don't, the client raises
`ClientError`. `ClientError` also covers transport failures and error responses from the
server. If you use a transport directly, it raises `mcpclient.protocol.TransportError`, or
`TimeoutError` when a reply does not arrive within the timeout.

To receive notifications, use `Client.on_notification(handler)`. Handlers run in the order
they were added. `get_stderr(client)` returns the stdio child's standard error stream.
`get_endpoint(client)` returns the endpoint announced over SSE.

## Documentation helpers

`mcpclient.docgen` works on tool summaries. Each summary is a dict with `name`,
`description`, `tags` and `inputSchema`:

- `render_markdown_doc(summaries, info)` returns a Markdown document.
  `write_markdown_doc(path, summaries, info)` writes it to a file. `info` is an optional
  dict with `title`, `version` and `description`.
- `example_arguments(properties)` builds placeholder arguments from JSON-schema properties.
- `format_tool_name(format, name)` renames a tool as `lower`, `upper`, `snake` or `camel`.
  `to_snake_case` and `to_camel_case` are also available on their own.
- `process_with_post_hook(data, command)` pipes data through `sh -c command` and returns
  its output. It raises `RuntimeError` if the command fails.

## What this package does not do

It is a client only. It has no MCP server. It does not read OpenAPI specifications or turn
API operations into tools. The documentation helpers need tool summaries that you build
yourself, and they write Markdown only.