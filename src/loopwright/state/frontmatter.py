from __future__ import annotations

import json
import re
import tomllib
from typing import Any

DELIMITER = "+++"
BARE_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
DOCUMENT_PATTERN = re.compile(r"\A\+\+\+\n(.*?)\n\+\+\+(?:\n(.*))?\Z", re.DOTALL)


class FrontmatterError(ValueError):
    """Raised when a document does not carry a readable TOML header."""


def _toml_string(text: str) -> str:
    # TOML basic strings reject a raw DEL, which json leaves unescaped.
    return json.dumps(text, ensure_ascii=False).replace("\x7f", "\\u007f")


def _toml_key(key: str) -> str:
    if BARE_KEY_PATTERN.match(key):
        return key
    return _toml_string(key)


def toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        rendered = f"{value:.3f}".rstrip("0").rstrip(".")
        return rendered if rendered else "0"
    if isinstance(value, list):
        return "[" + ", ".join(toml_value(item) for item in value) + "]"
    if isinstance(value, dict):
        pairs = [
            f"{_toml_key(str(key))} = {toml_value(item)}"
            for key, item in value.items()
            if item is not None
        ]
        return "{" + ", ".join(pairs) + "}"
    return _toml_string(str(value))


def _is_table_array(value: object) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(item, dict) for item in value)


def _emit_table(table: dict[str, Any], path: str, lines: list[str]) -> None:
    nested: list[tuple[str, Any]] = []
    for key, value in table.items():
        if value is None:
            continue
        if isinstance(value, dict) or _is_table_array(value):
            nested.append((key, value))
            continue
        lines.append(f"{_toml_key(key)} = {toml_value(value)}")

    for key, value in nested:
        dotted = f"{path}.{_toml_key(key)}" if path else _toml_key(key)
        if isinstance(value, dict):
            lines.append("")
            lines.append(f"[{dotted}]")
            _emit_table(value, dotted, lines)
            continue
        for item in value:
            lines.append("")
            lines.append(f"[[{dotted}]]")
            _emit_table(item, dotted, lines)


def dumps_toml(table: dict[str, Any]) -> str:
    """Render a nested mapping as TOML.

    Scalars come first, then sub-tables, then arrays of tables, so the output
    is always valid for ``tomllib``. ``None`` values are omitted.
    """
    lines: list[str] = []
    _emit_table(table, "", lines)
    return "\n".join(lines).strip() + "\n"


def dumps_document(header: dict[str, Any], body: str) -> str:
    rendered_header = dumps_toml(header).rstrip("\n")
    return f"{DELIMITER}\n{rendered_header}\n{DELIMITER}\n\n{body.rstrip()}\n"


def loads_document(text: str) -> tuple[dict[str, Any], str]:
    match = DOCUMENT_PATTERN.match(text.replace("\r\n", "\n"))
    if not match:
        raise FrontmatterError("Document does not start with a +++ delimited header.")
    raw_header, body = match.group(1), match.group(2) or ""
    try:
        header = tomllib.loads(raw_header)
    except tomllib.TOMLDecodeError as exc:
        raise FrontmatterError(f"Header is not valid TOML: {exc}") from exc
    return header, body.strip()
