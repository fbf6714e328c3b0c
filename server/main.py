"""ansicanvas FastAPI server: renders ANSI-colored log sources as panels."""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import time
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field, model_validator

from ansi_parser import parse_runs
from canvas import render_png
from log_sources import (
    LogSourceRegistry,
    TmuxPaneSource,
    has_tmux,
    validate_name,
)
from metrics import PillowFontMetrics


def _env_int(name: str, fallback: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return fallback
    try:
        return int(raw)
    except ValueError:
        return fallback


TOKEN = os.environ.get("AC_TOKEN", "changeme")
FONT_PATH = os.environ.get("AC_FONT_PATH", "").strip()
FONT_SIZE = _env_int("AC_FONT_SIZE", 16)
MAX_ENTRIES = _env_int("AC_MAX_ENTRIES", 1000)
TMUX_TARGETS = os.environ.get("AC_TMUX_TARGETS", "").strip()
LOG_LEVEL = os.environ.get("AC_LOG_LEVEL", "WARNING").strip().upper()

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.WARNING),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

if TOKEN == "changeme":
    import sys

    print(
        "\n\033[1;31mFATAL: AC_TOKEN is set to 'changeme'.\033[0m\n"
        "Generate a secure token:  python3 -c \"import secrets; print(secrets.token_urlsafe(32))\"\n"
        "Then set it:  export AC_TOKEN=<your-token>\n",
        file=sys.stderr,
    )
    sys.exit(1)

_MAX_TEXT_LENGTH = 1 << 20
_MAX_MESSAGE_LENGTH = 16384


def parse_tmux_targets(raw: str) -> list[tuple[str, str]]:
    """Parse ``name=target,name=target`` into pairs."""
    pairs: list[tuple[str, str]] = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        if "=" not in item:
            raise ValueError(f"Expected name=target, got {item!r}")
        name, target = item.split("=", 1)
        pairs.append((name.strip(), target.strip()))
    return pairs


def build_registry(tmux_targets: str = "") -> LogSourceRegistry:
    registry = LogSourceRegistry()
    for name, target in parse_tmux_targets(tmux_targets):
        registry.add(TmuxPaneSource(name, target=target))
    return registry


def _load_metrics() -> PillowFontMetrics:
    if FONT_PATH:
        return PillowFontMetrics.from_path(FONT_PATH, FONT_SIZE)
    return PillowFontMetrics.default(FONT_SIZE)


app = FastAPI(title="ansicanvas", version="1.0.0")
app.state.registry = build_registry(TMUX_TARGETS)
app.state.metrics = _load_metrics()
_security = HTTPBearer()


def _verify(creds: HTTPAuthorizationCredentials = Depends(_security)) -> str:
    if creds.credentials != TOKEN:
        raise HTTPException(status_code=401, detail="Invalid token")
    return creds.credentials


def _registry() -> LogSourceRegistry:
    return app.state.registry


def _metrics() -> PillowFontMetrics:
    return app.state.metrics


async def _collect(name: str) -> bytes:
    try:
        source = _registry().get(name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown source: {name}")
    try:
        return await source.collect()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except (RuntimeError, FileNotFoundError, asyncio.TimeoutError) as exc:
        logger.warning("Collecting %r failed: %s", name, exc)
        raise HTTPException(status_code=502, detail=str(exc) or type(exc).__name__)


async def render_panels(registry: LogSourceRegistry, metrics: Any) -> list[dict[str, Any]]:
    """Render every source as its own panel, each laid out from (0, 0)."""
    panels: list[dict[str, Any]] = []
    for source in registry:
        panel: dict[str, Any] = {"name": source.name, "kind": source.kind}
        try:
            data = await source.collect()
        except (RuntimeError, ValueError, FileNotFoundError, asyncio.TimeoutError) as exc:
            logger.warning("Collecting %r failed: %s", source.name, exc)
            panel["error"] = str(exc) or type(exc).__name__
        else:
            panel.update(await run_in_threadpool(parse_runs, data, metrics))
        panels.append(panel)
    return panels


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "hostname": socket.gethostname(),
        "tmux": await has_tmux(),
    }


@app.get("/sources")
async def sources(_: str = Depends(_verify)):
    return {"sources": _registry().describe()}


class LogMessage(BaseModel):
    message: str = Field(max_length=_MAX_MESSAGE_LENGTH)

    @model_validator(mode="after")
    def not_empty(self):
        if not self.message:
            raise ValueError("message must not be empty")
        return self


class RenderRequest(BaseModel):
    text: str = Field(max_length=_MAX_TEXT_LENGTH)
    x: float = 0.0
    y: float = 0.0


class _RateLimiter:
    """Simple in-memory sliding-window rate limiter."""

    def __init__(self, max_per_sec: int = 50):
        self._max = max_per_sec
        self._timestamps: list[float] = []

    def check(self) -> None:
        now = time.monotonic()
        self._timestamps = [t for t in self._timestamps if now - t < 1.0]
        if len(self._timestamps) >= self._max:
            raise HTTPException(status_code=429, detail="Rate limit exceeded")
        self._timestamps.append(now)


_append_limiter = _RateLimiter(max_per_sec=50)


@app.post("/sources/{name}/logs")
async def post_log(
    name: str,
    body: LogMessage,
    _: str = Depends(_verify),
):
    _append_limiter.check()
    try:
        validate_name(name)
        source = _registry().get_or_create_memory(name, max_entries=MAX_ENTRIES)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except TypeError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    source.append(body.message)
    return {"ok": True, "entries": len(source)}


@app.delete("/sources/{name}")
async def delete_source(name: str, _: str = Depends(_verify)):
    try:
        _registry().remove(name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown source: {name}")
    return {"ok": True}


@app.post("/render")
async def post_render(body: RenderRequest, _: str = Depends(_verify)):
    return await run_in_threadpool(parse_runs, body.text, _metrics(), origin=(body.x, body.y))


@app.get("/panels")
async def panels(_: str = Depends(_verify)):
    return {"panels": await render_panels(_registry(), _metrics())}


@app.get("/render/{name}.png")
async def render_source_png(name: str, _: str = Depends(_verify)):
    data = await _collect(name)
    metrics = _metrics()
    png = await run_in_threadpool(render_png, data, metrics, metrics.font)
    return Response(content=png, media_type="image/png")


@app.get("/render/{name}")
async def render_source(
    name: str,
    _: str = Depends(_verify),
    x: float = Query(default=0.0),
    y: float = Query(default=0.0),
):
    data = await _collect(name)
    result = await run_in_threadpool(parse_runs, data, _metrics(), origin=(x, y))
    result["name"] = name
    return result


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8787)
