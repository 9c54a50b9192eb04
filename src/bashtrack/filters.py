"""Exclusion patterns that keep commands out of the history."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

logger = logging.getLogger("bashtrack")


def is_excluded(command: str, patterns: Iterable[str | re.Pattern]) -> bool:
    """Check a command against exclusion patterns, in order.

    Patterns use ``re.search`` semantics, so they match anywhere in the
    command unless anchored (``^ls$``). A pattern that does not compile
    is skipped.

    Args:
        command: Full command text
        patterns: Regex strings or precompiled patterns

    Returns:
        True on the first matching pattern, False otherwise
    """
    for pattern in patterns:
        if isinstance(pattern, str):
            try:
                pattern = re.compile(pattern)
            except re.error as e:
                logger.debug(f"Skipping invalid exclude pattern {pattern!r}: {e}")
                continue
        if pattern.search(command):
            return True
    return False


def compile_patterns(
    patterns: Iterable[str], log: logging.Logger | None = None
) -> list[re.Pattern]:
    """Compile exclusion patterns once, dropping the ones that are invalid."""
    log = log or logger
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            log.warning(f"Ignoring invalid exclude pattern {pattern!r}: {e}")
    return compiled


class ExclusionFilter:
    """Precompiled exclusion patterns, built once per loaded configuration."""

    def __init__(self, patterns: Iterable[str] = (), log: logging.Logger | None = None):
        self.patterns = compile_patterns(patterns, log)

    def matches(self, command: str) -> bool:
        return is_excluded(command, self.patterns)

    def __len__(self) -> int:
        return len(self.patterns)
