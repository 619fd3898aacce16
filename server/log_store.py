"""Filesystem access for the log browser: listing, reading and searching logs."""

from __future__ import annotations

import asyncio
import logging
import os
import posixpath
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from ansi_parser import AnsiParseError, parse_to_html, parse_to_text

logger = logging.getLogger(__name__)

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


@dataclass
class DirEntry:
    path: str
    name: str


@dataclass
class FileEntry:
    path: str
    name: str
    mtime: datetime


@dataclass
class SearchResult:
    file: Path
    url: str
    name: str
    html: str = ""
    mtime: datetime | None = None

    @property
    def has_results(self) -> bool:
        return len(self.html) > 0


def _mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def resolve_path(root: Path, url_path: str) -> Path:
    """Map a URL path onto the log root, refusing anything outside it."""
    root = root.resolve()
    path = (root / url_path.lstrip("/")).resolve()
    if path != root and root not in path.parents:
        raise ValueError(f"Path outside log directory: {url_path!r}")
    return path


def breadcrumbs(url_path: str) -> list[DirEntry]:
    """One entry per path prefix, outermost first."""
    crumbs: list[DirEntry] = []
    p = posixpath.normpath("/" + url_path.strip("/"))
    while len(p) > 1:
        crumbs.append(DirEntry(path=p, name=posixpath.basename(p)))
        p = posixpath.dirname(p)
    crumbs.reverse()
    return crumbs


def list_directory(directory: Path, url_path: str) -> tuple[list[DirEntry], list[FileEntry]]:
    """List a log directory: subdirectories by name and files newest first."""
    dirs: list[DirEntry] = []
    files: list[FileEntry] = []
    with os.scandir(directory) as it:
        entries = list(it)
    for entry in entries:
        url = posixpath.join("/", url_path.strip("/"), entry.name)
        if entry.is_dir():
            dirs.append(DirEntry(path=url, name=entry.name))
        else:
            # lstat, so a dangling symlink is still listed
            st = entry.stat(follow_symlinks=False)
            mtime = datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)
            files.append(FileEntry(path=url, name=entry.name, mtime=mtime))
    dirs.sort(key=lambda d: d.name, reverse=True)
    files.sort(key=lambda f: f.mtime, reverse=True)
    return dirs, files


def render_log(path: Path) -> str:
    """Render a whole log file as an HTML fragment."""
    raw = path.read_bytes().decode("utf-8", errors="replace")
    return parse_to_html(raw)


def search_file(result: SearchResult, query: str) -> None:
    """Fill *result* with the lines of its file whose plain text contains *query*.

    Each line is parsed on its own to find matches; the matching raw lines are
    then rendered together so their HTML keeps the original styling.
    """
    matched: list[str] = []
    try:
        result.mtime = _mtime(result.file)
        with result.file.open("rb") as f:
            for raw in f:
                line = raw.rstrip(b"\n").removesuffix(b"\r").decode("utf-8", errors="replace")
                try:
                    plain = parse_to_text(line)
                except AnsiParseError as exc:
                    logger.debug("Skipping unparsable line in %s: %s", result.file, exc)
                    continue
                if query in plain:
                    matched.append(line + "\n")
    except OSError as exc:
        logger.debug("Skipping unreadable file %s: %s", result.file, exc)
        return

    try:
        result.html = parse_to_html("".join(matched))
    except AnsiParseError as exc:
        logger.warning("Could not render matches in %s: %s", result.file, exc)
        result.html = ""


def _search_targets(directory: Path, url_path: str) -> list[SearchResult]:
    results: list[SearchResult] = []
    with os.scandir(directory) as it:
        entries = list(it)
    for entry in entries:
        if entry.is_dir():
            continue
        results.append(SearchResult(
            file=Path(entry.path),
            url=posixpath.join("/", url_path.strip("/"), entry.name),
            name=entry.name,
        ))
    return results


async def search(
    query: str,
    directory: Path,
    url_path: str,
    workers: int = 8,
    timeout: float = 30.0,
) -> list[SearchResult]:
    """Search every file directly inside *directory* for *query*.

    Files are searched in worker threads, at most *workers* at a time.
    Raises ``asyncio.TimeoutError`` if the whole search exceeds *timeout*.
    Worker threads already running are not interrupted by the timeout and
    finish reading their file in the background.
    """
    results = await asyncio.to_thread(_search_targets, directory, url_path)

    sem = asyncio.Semaphore(workers)

    async def _one(result: SearchResult) -> None:
        async with sem:
            await asyncio.to_thread(search_file, result, query)

    await asyncio.wait_for(asyncio.gather(*(_one(r) for r in results)), timeout=timeout)
    results.sort(key=lambda r: r.mtime or _EPOCH, reverse=True)
    logger.info(
        "Searched %d files in %s for %r, %d with matches",
        len(results), directory, query, sum(r.has_results for r in results),
    )
    return results
