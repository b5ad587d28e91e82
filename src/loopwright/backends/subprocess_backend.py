from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from pathlib import Path

from loopwright.backends.base import (
    AgentBackend,
    BackendExecutionError,
    BackendProcessError,
    extract_content,
    parse_stream_line,
)

logger = logging.getLogger(__name__)


class StreamingCLIBackend(AgentBackend):
    """Runs an agent CLI that prints JSON lines and streams the text it carries."""

    def __init__(self, binary: str, working_directory: Path | None = None) -> None:
        self.binary = binary
        self.working_directory = working_directory

    async def execute(self, prompt: str) -> AsyncIterator[str]:
        command = self.build_command(prompt)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(self.working_directory) if self.working_directory else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise BackendProcessError(
                f"{self.name} binary not found: {self.binary}", backend=self.name
            ) from exc

        if process.stdout is None:
            raise BackendProcessError(f"{self.name} did not expose stdout.", backend=self.name)

        buffer = ""
        async for raw_line in process.stdout:
            line = raw_line.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            buffer, event, passthrough = parse_stream_line(buffer, line)
            if passthrough is not None:
                yield passthrough
            elif event is not None:
                content = extract_content(event)
                if content:
                    yield content

        if buffer:
            logger.debug("Flushing %d bytes of undecodable %s output", len(buffer), self.name)
            yield buffer

        return_code = await process.wait()
        stderr_output = ""
        if process.stderr is not None:
            stderr_output = (await process.stderr.read()).decode("utf-8", errors="replace").strip()
        if return_code != 0:
            raise BackendExecutionError(
                f"{self.name} failed with exit code {return_code}: {stderr_output}",
                backend=self.name,
                exit_code=return_code,
            )


class ClaudeCodeBackend(StreamingCLIBackend):
    name = "claude"

    def __init__(self, binary: str = "claude", working_directory: Path | None = None) -> None:
        super().__init__(binary, working_directory)

    def build_command(self, prompt: str) -> list[str]:
        return [self.binary, "-p", prompt, "--output-format", "stream-json", "--verbose"]


class CodexBackend(StreamingCLIBackend):
    name = "codex"

    def __init__(self, binary: str = "codex", working_directory: Path | None = None) -> None:
        super().__init__(binary, working_directory)

    def build_command(self, prompt: str) -> list[str]:
        return [self.binary, "exec", "--json", prompt]
