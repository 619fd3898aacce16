"""Environment-driven settings for the enview server."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

CONFIG_DIR = Path.home() / ".config" / "enview"
ENV_FILE = CONFIG_DIR / "env"

_PREFIX = "ENVIEW_"


@dataclass(frozen=True)
class Settings:
    log_dir: Path = Path("./logs")
    static_dir: Path = Path("./public")
    token: str = ""
    search_workers: int = 8
    search_timeout: float = 30.0
    host: str = "127.0.0.1"
    port: int = 8080


def read_env_file(path: Path, prefix: str = _PREFIX) -> dict[str, str]:
    """Collect ``[export ]KEY=value`` assignments whose key starts with *prefix*.

    Blank lines, ``#`` comments and lines without ``=`` are skipped; one
    level of surrounding quotes is removed from values.
    """
    if not path.is_file():
        return {}

    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line.startswith("#"):
            continue
        key, sep, value = line.removeprefix("export ").partition("=")
        key = key.strip()
        if not sep or not key.startswith(prefix):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        values[key] = value
    return values


def _int(values: Mapping[str, str], key: str, default: int, minimum: int) -> int:
    raw = values.get(_PREFIX + key, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{_PREFIX}{key} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{_PREFIX}{key} must be >= {minimum}, got {value}")
    return value


def _float(values: Mapping[str, str], key: str, default: float) -> float:
    raw = values.get(_PREFIX + key, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{_PREFIX}{key} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{_PREFIX}{key} must be positive, got {value}")
    return value


def load_settings(
    env_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Merge the env file with the process environment; the environment wins."""
    values = read_env_file(env_file or ENV_FILE)
    if environ is None:
        environ = os.environ
    values.update({k: v for k, v in environ.items() if k.startswith(_PREFIX)})

    defaults = Settings()
    return Settings(
        log_dir=Path(values.get(_PREFIX + "LOG_DIR") or defaults.log_dir),
        static_dir=Path(values.get(_PREFIX + "STATIC_DIR") or defaults.static_dir),
        token=values.get(_PREFIX + "TOKEN", "").strip(),
        search_workers=_int(values, "SEARCH_WORKERS", defaults.search_workers, 1),
        search_timeout=_float(values, "SEARCH_TIMEOUT", defaults.search_timeout),
        host=values.get(_PREFIX + "HOST") or defaults.host,
        port=_int(values, "PORT", defaults.port, 1),
    )
