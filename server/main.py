"""enview FastAPI server — browse and search ANSI-colored log files."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import socket
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from ansi_parser import AnsiParseError, parse_to_runs, render_html, render_text
from log_store import breadcrumbs, list_directory, render_log, resolve_path, search
from settings import Settings, load_settings

logger = logging.getLogger(__name__)

app = FastAPI(title="enview", version="1.0.0")
_security = HTTPBearer(auto_error=False)

SETTINGS = load_settings()


def _mount_static(settings: Settings) -> None:
    """(Re)mount ``/static`` for *settings*, dropping any earlier mount."""
    app.router.routes[:] = [
        r for r in app.router.routes if getattr(r, "name", None) != "static"
    ]
    if settings.static_dir.is_dir():
        app.mount("/static", StaticFiles(directory=settings.static_dir), name="static")


_mount_static(SETTINGS)


def _verify(creds: Optional[HTTPAuthorizationCredentials] = Depends(_security)) -> None:
    if not SETTINGS.token:
        return
    if creds is None or creds.credentials != SETTINGS.token:
        raise HTTPException(status_code=401, detail="Invalid token")


def _internal_error(tag: str, exc: Exception) -> HTTPException:
    logger.error("Internal Server Error: %s: %s", tag, exc)
    return HTTPException(status_code=500, detail=str(exc))


def _crumbs(path: str) -> list[dict[str, str]]:
    return [dataclasses.asdict(c) for c in breadcrumbs(path)]


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "hostname": socket.gethostname(),
        "logDir": SETTINGS.log_dir.is_dir(),
    }


@app.get("/view")
@app.get("/view/{path:path}")
async def view(path: str = "", _: None = Depends(_verify)):
    try:
        target = resolve_path(SETTINGS.log_dir, path)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if not target.exists():
        raise HTTPException(status_code=404, detail=f"Not found: /{path}")

    if target.is_dir():
        try:
            dirs, files = await asyncio.to_thread(list_directory, target, path)
        except OSError as exc:
            raise _internal_error("list_directory", exc)
        return {
            "crumbs": _crumbs(path),
            "path": "/" + path.strip("/"),
            "dirs": [dataclasses.asdict(d) for d in dirs],
            "files": [
                {"path": f.path, "name": f.name, "mtime": f.mtime.isoformat()}
                for f in files
            ],
        }

    try:
        html = await asyncio.to_thread(render_log, target)
    except (OSError, AnsiParseError) as exc:
        raise _internal_error("render_log", exc)
    return {
        "crumbs": _crumbs(path),
        "path": "/" + path.strip("/"),
        "html": html,
    }


@app.get("/search")
@app.get("/search/{path:path}")
async def search_path(
    path: str = "",
    q: str = Query(default=""),
    _: None = Depends(_verify),
):
    try:
        directory = resolve_path(SETTINGS.log_dir, path)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if not directory.is_dir():
        raise HTTPException(status_code=400, detail=f"Not a directory: /{path}")

    try:
        results = await search(
            q,
            directory,
            path,
            workers=SETTINGS.search_workers,
            timeout=SETTINGS.search_timeout,
        )
    except asyncio.TimeoutError:
        raise HTTPException(status_code=504, detail="Search timed out")
    except OSError as exc:
        raise _internal_error("search", exc)

    return {
        "crumbs": _crumbs(path),
        "query": q,
        "results": [
            {
                "name": r.name,
                "url": r.url,
                "html": r.html,
                "mtime": r.mtime.isoformat() if r.mtime else None,
                "hasResults": r.has_results,
            }
            for r in results
        ],
    }


class RenderRequest(BaseModel):
    text: str


@app.post("/render")
async def post_render(body: RenderRequest, _: None = Depends(_verify)):
    try:
        runs = parse_to_runs(body.text)
    except AnsiParseError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {
        "runs": [run.to_dict() for run in runs],
        "html": render_html(runs),
        "text": render_text(runs),
    }


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve ANSI-colored logs as HTML.")
    parser.add_argument("--config", type=Path, help="env file, default: ~/.config/enview/env")
    parser.add_argument("--host", help="address to listen on")
    parser.add_argument("--port", type=int, help="port to listen on")
    parser.add_argument("--log-dir", type=Path, help="directory of logs to serve")
    return parser.parse_args(argv)


def _main(argv: list[str] | None = None) -> None:
    global SETTINGS
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    args = _parse_args(argv)
    settings = load_settings(env_file=args.config) if args.config else SETTINGS
    overrides = {
        "host": args.host,
        "port": args.port,
        "log_dir": args.log_dir,
    }
    SETTINGS = dataclasses.replace(
        settings, **{k: v for k, v in overrides.items() if v is not None}
    )
    _mount_static(SETTINGS)
    if not SETTINGS.token:
        logger.warning(
            "ENVIEW_TOKEN is not set: every route is open to anyone who can reach %s:%d",
            SETTINGS.host, SETTINGS.port,
        )
    logger.info("Serving logs from %s on %s:%d", SETTINGS.log_dir, SETTINGS.host, SETTINGS.port)
    uvicorn.run(app, host=SETTINGS.host, port=SETTINGS.port)


if __name__ == "__main__":
    _main()
