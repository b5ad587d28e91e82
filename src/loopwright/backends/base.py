from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any


class BackendExecutionError(RuntimeError):
    """Raised when an agent process execution fails."""

    def __init__(
        self,
        message: str,
        *,
        backend: str | None = None,
        exit_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.backend = backend
        self.exit_code = exit_code


class BackendTimeoutError(BackendExecutionError):
    """Raised when an agent invocation exceeds the configured timeout."""


class BackendProcessError(BackendExecutionError):
    """Raised when the agent process cannot be started."""


def extract_content(event: dict[str, Any]) -> str:
    content = event.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                text = item.get("text")
                if isinstance(text, str):
                    parts.append(text)
        return "".join(parts)

    delta = event.get("delta")
    if isinstance(delta, str):
        return delta

    message = event.get("message")
    if isinstance(message, str):
        return message
    if isinstance(message, dict):
        return extract_content(message)

    return ""


def appears_partial_json(raw: str) -> bool:
    return raw.count("{") > raw.count("}") or raw.count("[") > raw.count("]")


class AgentBackend(ABC):
    name: str = "agent"

    @abstractmethod
    def build_command(self, prompt: str) -> list[str]:
        """Command line that runs one stateless invocation for ``prompt``."""

    @abstractmethod
    def execute(self, prompt: str) -> AsyncIterator[str]:
        """Run the agent once and stream textual chunks of its response."""


async def collect_response(
    backend: AgentBackend, prompt: str, timeout_seconds: float | None = None
) -> str:
    async def _consume() -> str:
        chunks: list[str] = []
        async for chunk in backend.execute(prompt):
            chunks.append(chunk)
        return "\n".join(chunk for chunk in chunks if chunk)

    if timeout_seconds is None:
        return await _consume()
    try:
        return await asyncio.wait_for(_consume(), timeout=timeout_seconds)
    except TimeoutError as exc:
        raise BackendTimeoutError(
            f"{backend.name} did not finish within {timeout_seconds:.0f}s",
            backend=backend.name,
        ) from exc


def parse_stream_line(buffer: str, line: str) -> tuple[str, dict[str, Any] | None, str | None]:
    """Feed one stdout line into the JSON-lines parser.

    Returns ``(new_buffer, event, passthrough)``: ``event`` when a full JSON
    object was decoded, ``passthrough`` for plain text lines.
    """
    candidate = f"{buffer}{line}" if buffer else line
    try:
        event = json.loads(candidate)
    except json.JSONDecodeError:
        if appears_partial_json(candidate):
            return candidate, None, None
        return "", None, line
    if not isinstance(event, dict):
        return "", None, line
    return "", event, None
