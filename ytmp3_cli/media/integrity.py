"""
Provides an optional sanity check for transcoded MP3 files.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from mutagen import MutagenError
from mutagen.mp3 import MP3, HeaderNotFoundError

log = logging.getLogger(__name__)


class FileIntegrityChecker:
    """Validates encoder output before it is handed back to the caller."""

    @staticmethod
    def mp3_problem(filepath: Union[str, Path]) -> Optional[str]:
        """
        Inspects an MP3 file with mutagen.

        Returns None when the file has a readable MPEG header and a positive
        duration, otherwise a short description of what is wrong.
        """
        try:
            audio = MP3(str(filepath))
        except HeaderNotFoundError:
            return "missing MPEG frame header"
        except MutagenError as e:
            return f"unreadable MP3 ({e})"

        if not audio.info or audio.info.length <= 0:
            return "no audio frames"
        log.debug(
            f"MP3 check passed for '{Path(filepath).name}': "
            f"{audio.info.length:.1f}s at {audio.info.bitrate // 1000} kbps"
        )
        return None

    @classmethod
    def check_mp3(cls, filepath: Union[str, Path]) -> bool:
        """Returns True if the file appears to be a valid MP3 file."""
        problem = cls.mp3_problem(filepath)
        if problem:
            log.warning(f"MP3 integrity check failed for '{filepath}': {problem}.")
            return False
        return True
