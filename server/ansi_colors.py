"""Color tables for the ANSI SGR parser.

The 3-bit and bright palettes, the 6x6x6 color cube and the grayscale ramp
used by 256-color terminals, all as #rrggbb strings.
"""

from __future__ import annotations

LOW_COLORS: tuple[str, ...] = (
    "#303030",  # black
    "#800000",  # red
    "#008000",  # green
    "#808000",  # yellow
    "#000080",  # blue
    "#800080",  # magenta
    "#008080",  # cyan
    "#c0c0c0",  # white
)

HIGH_COLORS: tuple[str, ...] = (
    "#808080",  # black
    "#ff0000",  # red
    "#00ff00",  # green
    "#ffff00",  # yellow
    "#0000ff",  # blue
    "#ff00ff",  # magenta
    "#00ffff",  # cyan
    "#ffffff",  # white
)

CUBE_COLORS: tuple[str, ...] = ("00", "5f", "87", "af", "d7", "ff")

# Darkest to lightest. Index 14 repeats #9e9e9e; existing output depends on it.
GRAYSCALE_COLORS: tuple[str, ...] = (
    "#080808", "#121212", "#1c1c1c", "#262626", "#303030", "#3a3a3a",
    "#444444", "#4e4e4e", "#585858", "#626262", "#6c6c6c", "#767676",
    "#808080", "#8a8a8a", "#9e9e9e", "#9e9e9e", "#a8a8a8", "#b2b2b2",
    "#bcbcbc", "#c6c6c6", "#d0d0d0", "#dadada", "#e4e4e4", "#eeeeee",
)


def _cube(n: int) -> str:
    n -= 16
    r = n // 36
    g = (n - 36 * r) // 6
    b = n - 36 * r - 6 * g
    return "#" + CUBE_COLORS[r] + CUBE_COLORS[g] + CUBE_COLORS[b]


def color_256(n: int) -> str | None:
    """Convert a 256-color palette index to a #rrggbb hex string.

    Returns None for indices outside 0-255; callers assign it as-is, which
    clears the channel.
    """
    if 0 <= n <= 7:
        return LOW_COLORS[n]
    if 8 <= n <= 15:
        return HIGH_COLORS[n - 8]
    if 16 <= n <= 231:
        return _cube(n)
    if 232 <= n <= 255:
        return GRAYSCALE_COLORS[n - 232]
    return None
