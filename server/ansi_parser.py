"""ANSI SGR escape sequence parser.

Converts raw terminal text (with escape codes) into styled runs and renders
them as an HTML fragment or as plain text. ``"foo\\x1b[31mbar"`` becomes a
default-styled ``foo`` run followed by a ``bar`` run with fg ``#800000``.

Only SGR (``ESC [ ... m``) is understood. Any other escape introducer is an
error; SGR codes other than reset, bold and colors are accepted and ignored.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from ansi_colors import HIGH_COLORS, LOW_COLORS, color_256

_ESC = "\x1b"
_INT_RE = re.compile(r"[+-]?[0-9]+")
# Parameters must fit a signed 64-bit integer.
_INT_MIN, _INT_MAX = -(2**63), 2**63 - 1

_HTML_ESCAPES = str.maketrans({
    "&": "&amp;",
    "'": "&#39;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&#34;",
})


class AnsiParseError(ValueError):
    """Raised when terminal output cannot be parsed."""


class MalformedEscape(AnsiParseError):
    """An escape introducer not followed by ``[``."""


class InvalidParameter(AnsiParseError):
    """A non-integer SGR parameter, or an extended color missing its arguments."""


@dataclass(frozen=True)
class StyledRun:
    text: str
    fg: str | None = None
    bg: str | None = None
    bold: bool = False

    @property
    def has_style(self) -> bool:
        return bool(self.fg or self.bg or self.bold)

    def to_dict(self) -> dict[str, Any]:
        """Build a compact run dict, omitting falsy fields."""
        run: dict[str, Any] = {"t": self.text}
        if self.fg:
            run["fg"] = self.fg
        if self.bg:
            run["bg"] = self.bg
        if self.bold:
            run["b"] = True
        return run

    def to_html(self) -> str:
        escaped = self.text.translate(_HTML_ESCAPES)
        styles = []
        if self.bg:
            styles.append(f"background-color: {self.bg}")
        if self.fg:
            styles.append(f"color: {self.fg}")
        if self.bold:
            styles.append("font-weight: bold")
        if not styles:
            return escaped
        return f'<span style="{"; ".join(styles)}">{escaped}</span>'


class Mode(Enum):
    PLAIN = "plain"
    ESCAPE = "escape"
    CSI_PARAMS = "csi_params"


def _parse_params(raw: str) -> list[int]:
    codes = []
    for segment in raw.split(";"):
        if not _INT_RE.fullmatch(segment):
            raise InvalidParameter(f"Invalid SGR parameter: {segment!r}")
        value = int(segment)
        if not _INT_MIN <= value <= _INT_MAX:
            raise InvalidParameter(f"SGR parameter out of range: {segment!r}")
        codes.append(value)
    return codes


class _Parser:
    __slots__ = ("mode", "runs", "text", "params", "fg", "bg", "bold")

    def __init__(self) -> None:
        self.mode = Mode.PLAIN
        self.runs: list[StyledRun] = []
        self.text: list[str] = []
        self.params: list[str] = []
        self.fg: str | None = None
        self.bg: str | None = None
        self.bold: bool = False

    def flush(self) -> None:
        self.runs.append(StyledRun("".join(self.text), self.fg, self.bg, self.bold))
        self.text.clear()

    def feed(self, c: str) -> None:
        if self.mode is Mode.PLAIN:
            if c == _ESC:
                if self.text:
                    self.flush()
                self.mode = Mode.ESCAPE
            else:
                self.text.append(c)
        elif self.mode is Mode.ESCAPE:
            if c != "[":
                raise MalformedEscape(f"Expected '[' after ESC, got {c!r}")
            self.mode = Mode.CSI_PARAMS
        elif c == "m":  # Mode.CSI_PARAMS
            codes = _parse_params("".join(self.params))
            self.params.clear()
            self.apply_sgr(codes)
            self.mode = Mode.PLAIN
        else:
            self.params.append(c)

    def finish(self) -> list[StyledRun]:
        # An unterminated escape sequence at the end is dropped.
        if self.mode is Mode.PLAIN:
            self.flush()
        return self.runs

    def apply_sgr(self, codes: list[int]) -> None:
        """Apply SGR parameter codes to the current style."""
        i = 0
        while i < len(codes):
            p = codes[i]
            if p == 0:
                self.fg = None
                self.bg = None
                self.bold = False
            elif p == 1:
                self.bold = True
            elif 30 <= p <= 37:
                self.fg = LOW_COLORS[p - 30]
            elif 40 <= p <= 47:
                self.bg = LOW_COLORS[p - 40]
            elif 90 <= p <= 97:
                self.fg = HIGH_COLORS[p - 90]
            elif 100 <= p <= 107:
                self.bg = HIGH_COLORS[p - 100]
            elif p in (38, 48):  # extended fg/bg
                if i + 2 >= len(codes):
                    raise InvalidParameter(f"SGR {p} needs two more parameters")
                i += 1
                if codes[i] == 5:
                    i += 1
                    if p == 38:
                        self.fg = color_256(codes[i])
                    else:
                        self.bg = color_256(codes[i])
            i += 1


def parse_to_runs(text: str) -> list[StyledRun]:
    """Parse terminal output into styled runs.

    Input ending outside an escape sequence always ends with a run, empty if
    the last escape was the final thing in the input. The zero-length string
    yields no runs at all.
    """
    if not text:
        return []
    parser = _Parser()
    for c in text:
        parser.feed(c)
    return parser.finish()


def render_html(runs: Iterable[StyledRun]) -> str:
    return "".join(run.to_html() for run in runs)


def render_text(runs: Iterable[StyledRun]) -> str:
    """Concatenate run text, dropping all styling."""
    return "".join(run.text for run in runs)


def parse_to_html(text: str) -> str:
    return render_html(parse_to_runs(text))


def parse_to_text(text: str) -> str:
    return render_text(parse_to_runs(text))
