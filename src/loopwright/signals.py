"""Completion marker detection.

Agents signal completion by emitting ``<promise>MARKER</promise>`` anywhere in
their response. Only the first delimiter counts and matching is exact, so a
stray or garbled marker never advances the workflow.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

MARKER_PATTERN = re.compile(r"<promise>(.*?)</promise>", re.DOTALL)


@dataclass(frozen=True, slots=True)
class CompletionSignal:
    marker: str


def format_marker(marker: str) -> str:
    return f"<promise>{marker}</promise>"


def extract_marker(text: str | None) -> str | None:
    if not text:
        return None
    match = MARKER_PATTERN.search(text)
    if not match:
        return None
    return match.group(1).strip()


def detect(text: str | None, expected: Iterable[str]) -> CompletionSignal | None:
    marker = extract_marker(text)
    if marker is None:
        return None
    if marker in set(expected):
        return CompletionSignal(marker=marker)
    logger.warning("Ignoring marker '%s'; it does not complete the current unit.", marker)
    return None
