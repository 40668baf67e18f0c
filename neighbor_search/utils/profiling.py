"""
Phase timing and work counters for the search engine.

A search records wall time for ``tree_build`` and ``search`` and adds the
engine's prune, base case and distance evaluation counts. Everything is a
no-op unless the profiler is enabled (``NEIGHBOR_SEARCH_PROFILE=1``).
"""

import contextlib
import os
import time
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

_TRUE_VALUES = {"1", "true", "yes", "y", "t", "on"}
_FALSE_VALUES = {"0", "false", "no", "n", "f", "off", ""}

PROFILE_ENV = "NEIGHBOR_SEARCH_PROFILE"


def parse_flag(value: Optional[str], default: bool = False) -> bool:
    """
    Parse a flexible boolean string.

    Returns ``default`` for ``None`` and raises ``ValueError`` on
    anything that is not a recognised true/false spelling.
    """
    if value is None:
        return default
    value = value.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


@dataclass
class PhaseStats:
    """Accumulated count and wall time for one key."""

    count: int = 0
    total_s: float = 0.0


class Profiler:
    """
    Collects per-phase wall time and engine work counters.

    Parameters
    ----------
    enabled : bool
        When False, ``time`` and ``count`` record nothing.
    """

    def __init__(self, enabled: bool) -> None:
        self.enabled = bool(enabled)
        self._stats: Dict[str, PhaseStats] = {}

    @classmethod
    def from_env(cls) -> "Profiler":
        return cls(parse_flag(os.getenv(PROFILE_ENV), default=False))

    def _entry(self, key: str) -> PhaseStats:
        entry = self._stats.get(key)
        if entry is None:
            entry = self._stats[key] = PhaseStats()
        return entry

    @contextlib.contextmanager
    def time(self, key: str) -> Iterator[None]:
        """Add the wall time of the ``with`` block to ``key``."""
        if not self.enabled:
            yield
            return
        start = time.perf_counter()
        try:
            yield
        finally:
            entry = self._entry(key)
            entry.count += 1
            entry.total_s += time.perf_counter() - start

    def count(self, key: str, value: int = 1) -> None:
        if self.enabled:
            self._entry(key).count += int(value)

    def summary(self) -> Dict[str, Dict[str, float]]:
        return {
            key: {"count": entry.count, "total_s": entry.total_s}
            for key, entry in sorted(self._stats.items())
        }

    def format_summary(self) -> str:
        lines = ["neighbor search profile summary:"]
        for key, entry in self.summary().items():
            lines.append(f"{key}: count={entry['count']} total_s={entry['total_s']:.6f}")
        return "\n".join(lines)
