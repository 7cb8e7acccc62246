"""Interactive command-line client that drives an MCP server started as a child process."""

from __future__ import annotations

import json
import os
import subprocess
import sys
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

_BOOL_FLAGS = {"h": "show_help", "help": "show_help", "quiet": "quiet", "machine": "machine"}
_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}

_USAGE = "Usage: mcp-client <server-command> [args...]"

_HELP = """mcp-client: Simple MCP client for openapi-to-mcp

Usage:
  mcp-client <server-command> [args...]

Flags:
  --quiet              Suppress banners and non-essential output
  --machine            Minimal output: only print raw result
  --help, -h           Show help

By default, output is human-friendly. Use --machine or --quiet for minimal/agent output.
"""

_COMMANDS_HELP = """Available commands:

  help        Show this help message
  exit        Exit the client
  schema      Show the schema for a tool
  call        Call a tool with arguments
  list        List available tools
  version     Show version info
"""

_RESPONSE_MARKER = "Response:\n"


@dataclass
class CliOptions:
    """Parsed command-line options and the server command to run."""

    show_help: bool = False
    quiet: bool = False
    machine: bool = False
    command: List[str] = field(default_factory=list)

    @property
    def minimal(self) -> bool:
        """True when only raw results should be printed."""
        return self.quiet or self.machine


@dataclass
class ToolCatalog:
    """Tool names and input schemas as reported by the server."""

    names: List[str] = field(default_factory=list)
    schemas: Dict[str, dict] = field(default_factory=dict)

    @classmethod
    def from_list_response(cls, message: Mapping[str, Any]) -> "ToolCatalog":
        """Collect the tools from a ``tools/list`` response message."""
        catalog = cls()
        result = message.get("result")
        if not isinstance(result, Mapping):
            return catalog
        tools = result.get("tools")
        if not isinstance(tools, list):
            return catalog
        for tool in tools:
            if not isinstance(tool, Mapping) or not isinstance(tool.get("name"), str):
                continue
            name = tool["name"]
            catalog.names.append(name)
            schema = tool.get("inputSchema")
            if isinstance(schema, dict):
                catalog.schemas[name] = schema
        return catalog


class _InvalidArguments(ValueError):
    def __init__(self, tool: str, reason: str) -> None:
        super().__init__(f"Invalid JSON for args: {reason}")
        self.tool = tool


def _parse_bool(name: str, value: str) -> bool:
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f'invalid boolean value "{value}" for -{name}')


def parse_args(argv: Optional[Sequence[str]] = None) -> CliOptions:
    """Parse flags up to the first non-flag argument; the rest is the server command."""
    args = list(sys.argv[1:] if argv is None else argv)
    options = CliOptions()
    while args:
        arg = args[0]
        if arg == "--":
            args.pop(0)
            break
        if not arg.startswith("-") or arg == "-":
            break
        args.pop(0)
        body = arg[2:] if arg.startswith("--") else arg[1:]
        name, has_value, value = body.partition("=")
        attr = _BOOL_FLAGS.get(name)
        if attr is None:
            raise ValueError(f"flag provided but not defined: -{name}")
        setattr(options, attr, _parse_bool(name, value) if has_value else True)
    options.command = args
    return options


def help_text() -> str:
    """Return the command-line help message."""
    return _HELP


def _example_value(spec: Any) -> Any:
    if not isinstance(spec, Mapping):
        return None
    type_str = spec.get("type") if isinstance(spec.get("type"), str) else ""
    desc = spec.get("description") if isinstance(spec.get("description"), str) else ""
    if type_str == "string" and "integer" in desc.lower():
        return "123"
    if type_str == "string":
        return "example"
    if type_str in ("number", "integer"):
        return 123
    if type_str == "boolean":
        return True
    if type_str == "array":
        return ["item1", "item2"]
    if type_str == "object":
        return {"key": "value"}
    return None


def example_for_schema(schema: Mapping[str, Any]) -> Optional[dict]:
    """Build example call arguments from a tool's input schema, or None without properties."""
    properties = schema.get("properties")
    if not isinstance(properties, Mapping):
        return None
    return {name: _example_value(spec) for name, spec in properties.items()}


def parse_call_command(line: str) -> Tuple[str, Optional[dict]]:
    """Split ``call <tool> <json-args>`` into the tool name and its argument object."""
    if not line.startswith("call ") or len(line) <= 5:
        raise ValueError("Usage: call <tool> <json-args>")
    rest = line[5:]
    tool, space, raw = rest.partition(" ")
    if not space:
        raise ValueError("Usage: call <tool> <json-args>")
    try:
        arguments = json.loads(raw)
    except ValueError as exc:
        raise _InvalidArguments(tool, str(exc)) from exc
    if arguments is not None and not isinstance(arguments, dict):
        raise _InvalidArguments(tool, f"cannot use {type(arguments).__name__} as an argument object")
    return tool, arguments


def _indent(value: Any) -> str:
    return json.dumps(value, indent=2, sort_keys=True, ensure_ascii=False)


def _format_text_content(text: str) -> str:
    idx = text.find(_RESPONSE_MARKER)
    if idx != -1:
        prefix = text[: idx + len(_RESPONSE_MARKER)]
        body = text[idx + len(_RESPONSE_MARKER):].strip()
        if body[:1] in ("{", "["):
            try:
                parsed = json.loads(body)
            except ValueError:
                pass
            else:
                return f"{prefix}{json.dumps(parsed, indent=2, ensure_ascii=False)}\n"
    return text + "\n"


def format_server_message(message: str, minimal: bool) -> Tuple[str, str]:
    """Render one line from the server as ``(stdout_text, stderr_text)``."""
    try:
        obj = json.loads(message)
    except ValueError:
        return "", f"[server] {message}"
    if not isinstance(obj, dict):
        return "", f"[server] {message}"
    if obj.get("method") == "tools/call":
        return "", ""
    if "result" in obj:
        result = obj["result"]
        if minimal:
            return _indent(result) + "\n", ""
        if not isinstance(result, dict):
            return f"[server result] {_indent(result)}\n", ""
        content = result.get("content")
        if not isinstance(content, list):
            return f"[tool response] {_indent(result)}\n", ""
        out = [
            _format_text_content(item["text"])
            for item in content
            if isinstance(item, dict) and isinstance(item.get("text"), str)
        ]
        return "".join(out), ""
    if "error" in obj:
        error = obj["error"]
        if minimal:
            return "", _indent(error) + "\n"
        return "", f"[server error] {_indent(error)}\n"
    return "", f"[server] {_indent(obj)}\n"


class _Session:
    def __init__(self, process: subprocess.Popen, options: CliOptions) -> None:
        self.process = process
        self.options = options
        self.catalog = ToolCatalog()
        self._next_id = 1
        self._stopping = threading.Event()

    def send(self, method: str, params: Mapping[str, Any]) -> None:
        message = {"jsonrpc": "2.0", "id": self._next_id, "method": method, "params": dict(params)}
        self._next_id += 1
        try:
            self.process.stdin.write((json.dumps(message, ensure_ascii=False) + "\n").encode("utf-8"))
            self.process.stdin.flush()
        except (OSError, ValueError):
            pass

    def fetch_catalog(self) -> None:
        self.send("tools/list", {})
        for raw in iter(self.process.stdout.readline, b""):
            try:
                obj = json.loads(raw)
            except ValueError:
                continue
            if isinstance(obj, dict):
                self.catalog = ToolCatalog.from_list_response(obj)
            break

    def read_server(self) -> None:
        try:
            for raw in iter(self.process.stdout.readline, b""):
                out, err = format_server_message(raw.decode("utf-8", errors="replace"), self.options.minimal)
                if out:
                    sys.stdout.write(out)
                    sys.stdout.flush()
                if err:
                    sys.stderr.write(err)
                    sys.stderr.flush()
        except (OSError, ValueError):
            pass
        if self._stopping.is_set():
            return
        print("[server closed] EOF", file=sys.stderr)
        sys.stdout.flush()
        sys.stderr.flush()
        os._exit(0)

    def lines(self) -> Iterator[str]:
        if not sys.stdin.isatty():
            yield from sys.stdin
            return
        from prompt_toolkit import PromptSession
        from prompt_toolkit.completion import NestedCompleter
        from prompt_toolkit.history import FileHistory
        from prompt_toolkit.patch_stdout import patch_stdout

        tools = {name: None for name in self.catalog.names}
        completer = NestedCompleter.from_nested_dict(
            {"list": None, "help": None, "exit": None, "quit": None, "call": dict(tools), "schema": dict(tools)}
        )
        session = PromptSession(
            history=FileHistory(os.path.expanduser("~/.mcp_client_history")), completer=completer
        )
        with patch_stdout():
            while True:
                try:
                    yield session.prompt("mcp> ")
                except (KeyboardInterrupt, EOFError):
                    return

    def show_schema(self, name: str) -> None:
        schema = self.catalog.schemas.get(name)
        if schema is None:
            print(
                f"[error] No schema found for tool '{name}'. Try 'refresh' if the tool was just added.",
                file=sys.stderr,
            )
            return
        print(f"Schema for {name}:\n{_indent(schema)}")
        example = example_for_schema(schema)
        if example is not None:
            example_json = json.dumps(example, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
            print(f"Example: call {name} {example_json}")

    def call(self, line: str) -> None:
        try:
            tool, arguments = parse_call_command(line)
        except _InvalidArguments as exc:
            print(exc, file=sys.stderr)
            schema = self.catalog.schemas.get(exc.tool)
            if schema is not None:
                print(f"Expected schema for {exc.tool}:\n{_indent(schema)}", file=sys.stderr)
            return
        except ValueError as exc:
            print(exc, file=sys.stderr)
            return
        self.send("tools/call", {"name": tool, "arguments": arguments})

    def handle(self, line: str) -> bool:
        line = line.strip()
        if line in ("exit", "quit"):
            return False
        if line == "help":
            print(_COMMANDS_HELP, end="")
        elif line == "list":
            self.send("tools/list", {})
        elif line.startswith("schema "):
            self.show_schema(line[len("schema "):].strip())
        elif len(line) > 5 and line.startswith("call "):
            self.call(line)
        elif line:
            print("[error] Unknown command. Type 'help' for available commands.", file=sys.stderr)
        return True

    def run(self) -> int:
        self.fetch_catalog()
        if not self.options.minimal:
            print("Welcome to mcp-client! Type 'help' for available commands.")
        threading.Thread(target=self.read_server, daemon=True).start()
        for line in self.lines():
            if not self.handle(line):
                break
        return 0

    def shutdown(self) -> None:
        self._stopping.set()
        try:
            self.process.kill()
        except OSError:
            pass
        self.process.wait()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Start the server command and run the interactive prompt; return the exit status."""
    try:
        options = parse_args(argv)
    except ValueError as exc:
        print(exc, file=sys.stderr)
        print(help_text(), file=sys.stderr, end="")
        return 2
    if options.show_help:
        print(help_text(), end="")
        return 0
    if not options.command:
        print(_USAGE, file=sys.stderr)
        return 1
    try:
        process = subprocess.Popen(options.command, stdin=subprocess.PIPE, stdout=subprocess.PIPE)
    except OSError as exc:
        print("Failed to start server:", exc, file=sys.stderr)
        return 1
    session = _Session(process, options)
    try:
        return session.run()
    finally:
        session.shutdown()


if __name__ == "__main__":
    sys.exit(main())