"""
Human-readable sizes and durations, and the download filename rule.
"""

import re

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def format_size(bytes_size: float) -> str:
    """`1536` -> `'1.5 KB'`. Non-positive sizes render as `'0 B'`."""
    if bytes_size <= 0:
        return "0 B"
    size = float(bytes_size)
    for unit in _SIZE_UNITS[:-1]:
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} {_SIZE_UNITS[-1]}"


def format_duration(seconds: float) -> str:
    """`3725` -> `'1h 2m 5s'`. Zero-valued leading units are omitted."""
    total = int(seconds)
    units = (("h", total // 3600), ("m", total % 3600 // 60), ("s", total % 60))
    parts = [f"{value}{suffix}" for suffix, value in units if value]
    return " ".join(parts) or "0s"


def suggested_filename(title: str, artist: str = "", ext: str = "mp3") -> str:
    """
    Derives a download filename from track metadata.

    Every non-alphanumeric character becomes an underscore, so the result is
    deterministic for a given title/artist pair:
    ``suggested_filename("Hey Jude", "The Beatles") == "Hey_Jude_The_Beatles.mp3"``
    """
    name = _NON_ALNUM.sub("_", title or "track")
    if artist:
        name = f"{name}_{_NON_ALNUM.sub('_', artist)}"
    return f"{name}.{ext}"
