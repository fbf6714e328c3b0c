"""Log sources rendered as console panels.

Sources are held in an explicit ``LogSourceRegistry`` owned by the caller;
nothing here is process-global.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from typing import Iterator, Union

logger = logging.getLogger(__name__)

_TARGET_RE = re.compile(r"^[a-zA-Z0-9_:.\-%]+$")
_NAME_RE = re.compile(r"^[a-zA-Z0-9_.\-]{1,64}$")
_TIMEOUT = 5.0


def _validate_target(target: str | None) -> str | None:
    if target is None:
        return None
    if not _TARGET_RE.match(target):
        raise ValueError(f"Invalid tmux target: {target!r}")
    return target


def validate_name(name: str) -> str:
    if not _NAME_RE.match(name):
        raise ValueError(f"Invalid source name: {name!r}")
    return name


async def _run(*args: str) -> bytes:
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=_TIMEOUT)
    if proc.returncode != 0:
        msg = stderr.decode(errors="replace").strip() if stderr else f"tmux exited {proc.returncode}"
        raise RuntimeError(msg)
    return stdout


async def capture_pane(lines: int = 80, target: str | None = None) -> bytes:
    """Capture a tmux pane with ANSI escapes preserved.

    -S captures the given number of lines from the bottom of the visible
    region, -e keeps escapes, -J joins wrapped lines.
    """
    _validate_target(target)
    cmd = ["tmux", "capture-pane", "-e", "-p", "-J", "-S", f"-{lines}"]
    if target:
        cmd.extend(["-t", target])
    return await _run(*cmd)


async def has_tmux() -> bool:
    """Check if tmux server is running."""
    try:
        await _run("tmux", "list-sessions", "-F", "#{session_name}")
        return True
    except (RuntimeError, FileNotFoundError, asyncio.TimeoutError):
        return False


class MemoryLogSource:
    """In-memory log of ANSI-colored messages, e.g. one plugin's output."""

    kind = "memory"

    def __init__(self, name: str, max_entries: int = 1000) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.name = validate_name(name)
        self._entries: deque[str] = deque(maxlen=max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, message: str) -> None:
        self._entries.append(message)

    def clear(self) -> None:
        self._entries.clear()

    async def collect(self) -> bytes:
        # Messages carry their own newlines; join them as-is.
        return "".join(self._entries).encode("utf-8")


class TmuxPaneSource:
    """A tmux pane captured on every collect."""

    kind = "tmux"

    def __init__(self, name: str, target: str | None = None, lines: int = 80) -> None:
        if not 1 <= lines <= 500:
            raise ValueError("lines must be between 1 and 500")
        self.name = validate_name(name)
        self.target = _validate_target(target)
        self.lines = lines

    async def collect(self) -> bytes:
        return await capture_pane(lines=self.lines, target=self.target)


LogSource = Union[MemoryLogSource, TmuxPaneSource]


class LogSourceRegistry:
    """Ordered collection of named log sources."""

    def __init__(self) -> None:
        self._sources: dict[str, LogSource] = {}

    def __len__(self) -> int:
        return len(self._sources)

    def __iter__(self) -> Iterator[LogSource]:
        return iter(list(self._sources.values()))

    def __contains__(self, name: object) -> bool:
        return name in self._sources

    def add(self, source: LogSource) -> LogSource:
        if source.name in self._sources:
            raise ValueError(f"Source {source.name!r} already registered")
        self._sources[source.name] = source
        logger.info("Registered %s source %r", source.kind, source.name)
        return source

    def get(self, name: str) -> LogSource:
        try:
            return self._sources[name]
        except KeyError:
            raise KeyError(f"Unknown source: {name!r}") from None

    def get_or_create_memory(self, name: str, max_entries: int = 1000) -> MemoryLogSource:
        source = self._sources.get(name)
        if source is None:
            source = MemoryLogSource(name, max_entries=max_entries)
            self.add(source)
        if not isinstance(source, MemoryLogSource):
            raise TypeError(f"Source {name!r} is a {source.kind} source")
        return source

    def remove(self, name: str) -> None:
        self.get(name)
        del self._sources[name]
        logger.info("Removed source %r", name)

    def names(self) -> list[str]:
        return list(self._sources)

    def describe(self) -> list[dict[str, object]]:
        out: list[dict[str, object]] = []
        for source in self._sources.values():
            entry: dict[str, object] = {"name": source.name, "kind": source.kind}
            if isinstance(source, MemoryLogSource):
                entry["entries"] = len(source)
            else:
                entry["target"] = source.target
                entry["lines"] = source.lines
            out.append(entry)
        return out
