import io
import json
import sys

import pytest

from mcpclient.cli import (
    CliOptions,
    ToolCatalog,
    example_for_schema,
    format_server_message,
    help_text,
    main,
    parse_args,
    parse_call_command,
)


def test_parse_args_stops_at_command():
    options = parse_args(["--quiet", "server", "--flag", "x"])
    assert options.quiet is True
    assert options.machine is False
    assert options.command == ["server", "--flag", "x"]
    assert options.minimal is True


def test_parse_args_single_dash_and_values():
    options = parse_args(["-h", "-machine=false", "srv"])
    assert options.show_help is True
    assert options.machine is False
    assert options.command == ["srv"]


def test_parse_args_double_dash_terminator():
    options = parse_args(["--", "--quiet"])
    assert options.quiet is False
    assert options.command == ["--quiet"]


def test_parse_args_defaults():
    assert parse_args([]) == CliOptions()


def test_parse_args_unknown_flag():
    with pytest.raises(ValueError, match="flag provided but not defined"):
        parse_args(["--verbose"])


def test_help_text_mentions_flags():
    text = help_text()
    assert "mcp-client <server-command> [args...]" in text
    assert "--machine" in text and "--quiet" in text


def test_example_for_schema_types():
    schema = {
        "properties": {
            "s": {"type": "string"},
            "id": {"type": "string", "description": "An Integer id"},
            "n": {"type": "number"},
            "i": {"type": "integer"},
            "b": {"type": "boolean"},
            "a": {"type": "array"},
            "o": {"type": "object"},
            "x": {},
            "y": "bad",
        }
    }
    assert example_for_schema(schema) == {
        "s": "example",
        "id": "123",
        "n": 123,
        "i": 123,
        "b": True,
        "a": ["item1", "item2"],
        "o": {"key": "value"},
        "x": None,
        "y": None,
    }


def test_example_for_schema_without_properties():
    assert example_for_schema({"type": "object"}) is None


def test_parse_call_command():
    tool, arguments = parse_call_command('call getFoo {"id": "1", "q": [1, 2]}')
    assert tool == "getFoo"
    assert arguments == {"id": "1", "q": [1, 2]}


def test_parse_call_command_usage_error():
    with pytest.raises(ValueError, match="Usage: call <tool> <json-args>"):
        parse_call_command("call getFoo")


def test_parse_call_command_invalid_json():
    with pytest.raises(ValueError, match="Invalid JSON for args"):
        parse_call_command("call getFoo {not json")


def test_parse_call_command_rejects_array():
    with pytest.raises(ValueError, match="Invalid JSON for args"):
        parse_call_command("call getFoo [1]")


def test_tool_catalog_from_list_response():
    message = {
        "result": {
            "tools": [
                {"name": "a", "inputSchema": {"type": "object"}},
                {"name": "b"},
                {"nope": 1},
                "junk",
            ]
        }
    }
    catalog = ToolCatalog.from_list_response(message)
    assert catalog.names == ["a", "b"]
    assert catalog.schemas == {"a": {"type": "object"}}


def test_tool_catalog_without_result():
    catalog = ToolCatalog.from_list_response({"error": {"message": "x"}})
    assert catalog.names == [] and catalog.schemas == {}


def test_format_ignores_tool_call_notification():
    line = json.dumps({"jsonrpc": "2.0", "method": "tools/call", "params": {}})
    assert format_server_message(line, False) == ("", "")


def test_format_minimal_result_round_trips():
    result = {"content": [{"type": "text", "text": "hi"}], "z": 1}
    out, err = format_server_message(json.dumps({"id": 1, "result": result}), True)
    assert err == ""
    assert json.loads(out) == result


def test_format_text_content():
    result = {"content": [{"type": "text", "text": "hello"}, {"type": "image"}]}
    out, err = format_server_message(json.dumps({"id": 1, "result": result}), False)
    assert (out, err) == ("hello\n", "")


def test_format_pretty_prints_response_json():
    text = 'Status: 200\nResponse:\n {"b":1,"a":[2]} '
    result = {"content": [{"type": "text", "text": text}]}
    out, _ = format_server_message(json.dumps({"id": 1, "result": result}), False)
    prefix = "Status: 200\nResponse:\n"
    assert out.startswith(prefix)
    assert json.loads(out[len(prefix):]) == {"b": 1, "a": [2]}
    assert "\n  " in out[len(prefix):]


def test_format_invalid_response_json_kept_verbatim():
    text = "Response:\n{broken"
    result = {"content": [{"type": "text", "text": text}]}
    out, _ = format_server_message(json.dumps({"id": 1, "result": result}), False)
    assert out == text + "\n"


def test_format_tool_response_without_content():
    out, err = format_server_message(json.dumps({"id": 1, "result": {"tools": []}}), False)
    assert out.startswith("[tool response] ")
    assert json.loads(out[len("[tool response] "):]) == {"tools": []}
    assert err == ""


def test_format_non_object_result():
    out, _ = format_server_message(json.dumps({"id": 1, "result": [1]}), False)
    assert out.startswith("[server result] ")


def test_format_error_messages():
    line = json.dumps({"id": 1, "error": {"code": -1, "message": "boom"}})
    out, err = format_server_message(line, False)
    assert out == ""
    assert err.startswith("[server error] ")
    assert json.loads(err[len("[server error] "):]) == {"code": -1, "message": "boom"}
    out, err = format_server_message(line, True)
    assert json.loads(err) == {"code": -1, "message": "boom"}


def test_format_non_json_and_other():
    assert format_server_message("garbage\n", False) == ("", "[server] garbage\n")
    out, err = format_server_message(json.dumps({"method": "notifications/x"}), False)
    assert out == "" and err.startswith("[server] ")


def test_main_without_command(capsys):
    assert main([]) == 1
    assert "Usage: mcp-client" in capsys.readouterr().err


def test_main_help(capsys):
    assert main(["--help"]) == 0
    assert capsys.readouterr().out == help_text()


def test_main_bad_flag(capsys):
    assert main(["--nope"]) == 2
    assert "flag provided but not defined" in capsys.readouterr().err


_FAKE_SERVER = """
import json, sys
for line in sys.stdin:
    msg = json.loads(line)
    if msg.get("method") == "tools/list":
        tools = [{"name": "echo", "inputSchema": {"type": "object",
                  "properties": {"text": {"type": "string"}}}}]
        print(json.dumps({"jsonrpc": "2.0", "id": msg["id"], "result": {"tools": tools}}), flush=True)
"""


def test_main_schema_command(tmp_path, monkeypatch, capsys):
    script = tmp_path / "server.py"
    script.write_text(_FAKE_SERVER)
    monkeypatch.setattr(sys, "stdin", io.StringIO("schema echo\nschema missing\nexit\n"))
    assert main([sys.executable, str(script)]) == 0
    captured = capsys.readouterr()
    assert "Welcome to mcp-client!" in captured.out
    assert "Schema for echo:" in captured.out
    assert 'Example: call echo {"text":"example"}' in captured.out
    assert "No schema found for tool 'missing'" in captured.err


def test_main_quiet_has_no_banner(tmp_path, monkeypatch, capsys):
    script = tmp_path / "server.py"
    script.write_text(_FAKE_SERVER)
    monkeypatch.setattr(sys, "stdin", io.StringIO("bogus\nquit\n"))
    assert main(["--quiet", sys.executable, str(script)]) == 0
    captured = capsys.readouterr()
    assert "Welcome" not in captured.out
    assert "Unknown command" in captured.err