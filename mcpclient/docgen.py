"""Markdown documentation for MCP tools, tool name formatting and post-processing hooks."""

from __future__ import annotations

import json
import re
import subprocess
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union


def format_tool_name(format: str, name: str) -> str:
    """Apply a tool name format: lower, upper, snake or camel; others leave it alone."""
    if format == "lower":
        return name.lower()
    if format == "upper":
        return name.upper()
    if format == "snake":
        return to_snake_case(name)
    if format == "camel":
        return to_camel_case(name)
    return name


def to_snake_case(s: str) -> str:
    """Put an underscore before every ASCII capital except a leading one, then lower-case."""
    out = []
    for i, ch in enumerate(s):
        if i > 0 and "A" <= ch <= "Z":
            out.append("_")
        out.append(ch)
    return "".join(out).lower()


def to_camel_case(s: str) -> str:
    """Join the parts split on ``_``, ``-`` and spaces into camelCase."""
    parts = [part for part in re.split(r"[_\- ]", s) if part]
    if not parts:
        return s
    return parts[0].lower() + "".join(part[:1].upper() + part[1:].lower() for part in parts[1:])


def example_arguments(properties: Optional[Mapping[str, Any]]) -> dict:
    """Build placeholder argument values from JSON-schema properties."""
    example: dict = {}
    for name, spec in (properties or {}).items():
        spec = spec if isinstance(spec, Mapping) else {}
        type_str = spec.get("type") if isinstance(spec.get("type"), str) else ""
        desc = spec.get("description") if isinstance(spec.get("description"), str) else ""
        if type_str == "string" and "integer" in desc.lower():
            example[name] = "123"
        elif type_str == "string":
            example[name] = "example"
        elif type_str in ("number", "integer"):
            example[name] = 123
        elif type_str == "boolean":
            example[name] = True
        else:
            example[name] = "..."
    return example


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def render_markdown_doc(summaries: Iterable[Mapping[str, Any]], info: Optional[Mapping[str, Any]]) -> str:
    """Render tool summaries (name, description, tags, inputSchema) as Markdown."""
    out = ["# MCP Tools Documentation\n\n"]
    if info is not None:
        out.append(f"**API Title:** {_str(info.get('title'))}\n\n")
        out.append(f"**Version:** {_str(info.get('version'))}\n\n")
        description = _str(info.get("description"))
        if description:
            out.append(description + "\n\n")
    for summary in summaries:
        name = _str(summary.get("name"))
        desc = _str(summary.get("description"))
        tags = summary.get("tags") if isinstance(summary.get("tags"), list) else []
        schema = summary.get("inputSchema") if isinstance(summary.get("inputSchema"), Mapping) else {}
        out.append(f"## {name}\n\n")
        if desc:
            out.append(desc + "\n\n")
        if tags:
            out.append(f"**Tags:** {', '.join(_str(tag) for tag in tags)}\n\n")
        props = schema.get("properties") if isinstance(schema.get("properties"), Mapping) else {}
        if props:
            out.append("**Arguments:**\n\n")
            out.append("| Name | Type | Description |\n|------|------|-------------|\n")
            for prop_name, spec in props.items():
                spec = spec if isinstance(spec, Mapping) else {}
                out.append(f"| {prop_name} | {_str(spec.get('type'))} | {_str(spec.get('description'))} |\n")
            out.append("\n")
        example = example_arguments(props)
        if example:
            example_json = json.dumps(example, indent=2, sort_keys=True, ensure_ascii=False)
            out.append("**Example call:**\n\n")
            out.append(f"```json\ncall {name} {example_json}\n```\n\n")
    return "".join(out)


def write_markdown_doc(
    path: Union[str, Path], summaries: Iterable[Mapping[str, Any]], info: Optional[Mapping[str, Any]]
) -> None:
    """Write the Markdown documentation to ``path``."""
    Path(path).write_text(render_markdown_doc(summaries, info), encoding="utf-8")


def process_with_post_hook(data: Union[bytes, str], command: str) -> bytes:
    """Pipe ``data`` through ``sh -c command`` and return its standard output."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    completed = subprocess.run(["sh", "-c", command], input=data, capture_output=True)
    if completed.returncode != 0:
        stderr = completed.stderr.decode("utf-8", errors="replace")
        raise RuntimeError(f"post-hook-cmd failed: exit status {completed.returncode}\n{stderr}")
    return completed.stdout