from loopwright.backends.base import (
    AgentBackend,
    BackendExecutionError,
    BackendProcessError,
    BackendTimeoutError,
    collect_response,
)
from loopwright.backends.subprocess_backend import (
    ClaudeCodeBackend,
    CodexBackend,
    StreamingCLIBackend,
)

__all__ = [
    "AgentBackend",
    "BackendExecutionError",
    "BackendProcessError",
    "BackendTimeoutError",
    "ClaudeCodeBackend",
    "CodexBackend",
    "StreamingCLIBackend",
    "collect_response",
]
