"""
Packs the finished tracks of a batch into a single ZIP archive.
"""

import logging
import zipfile
from pathlib import Path
from typing import Iterable, List

from ytmp3_cli.exceptions import BundleError
from ytmp3_cli.models.track import Success

log = logging.getLogger(__name__)

DEFAULT_BUNDLE_NAME = "tracks.zip"


def unique_names(filenames: Iterable[str]) -> List[str]:
    """
    Gives repeated filenames a numeric suffix: `a.mp3`, `a_2.mp3`, `a_3.mp3`.
    """
    seen: dict[str, int] = {}
    taken: set[str] = set()
    result = []
    for name in filenames:
        candidate = name
        if candidate in taken:
            stem, dot, ext = name.rpartition(".")
            if not dot:
                stem, ext = name, ""
            count = seen.get(name, 1)
            while candidate in taken:
                count += 1
                candidate = f"{stem}_{count}.{ext}" if ext else f"{stem}_{count}"
            seen[name] = count
        taken.add(candidate)
        result.append(candidate)
    return result


def write_bundle(successes: Iterable[Success], destination: Path) -> Path:
    """
    Writes every successful track into `destination` under its suggested name.

    Raises BundleError if there is nothing to bundle or the archive cannot be
    written.
    """
    tracks = list(successes)
    if not tracks:
        raise BundleError("No tracks were converted successfully; nothing to bundle.")

    names = unique_names(t.filename for t in tracks)
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(destination, "w", zipfile.ZIP_DEFLATED) as zf:
            for name, track in zip(names, tracks):
                zf.writestr(name, track.result.audio_bytes)
    except OSError as e:
        raise BundleError(f"Could not write archive '{destination}': {e}") from e

    log.info(f"Bundled {len(tracks)} tracks into [cyan]{destination}[/cyan]")
    return destination
