"""
Advisory checks for the external tools the pipeline depends on.
Never called on the hot path.
"""

import logging
import shutil
from dataclasses import dataclass
from importlib import metadata
from typing import List, Optional

from ytmp3_cli.exceptions import PipelineError, ScratchDirectoryError
from ytmp3_cli.models.config import PipelineConfig
from ytmp3_cli.storage.scratch import ScratchDirectory
from ytmp3_cli.utils.process import run_process

log = logging.getLogger(__name__)

DIAGNOSTIC_TIMEOUT = 15.0


@dataclass
class ToolStatus:
    name: str
    available: bool
    version: str = ""
    detail: str = ""


async def _check_binary(name: str, executable: str, version_flag: str) -> ToolStatus:
    resolved = shutil.which(executable)
    if not resolved:
        return ToolStatus(name, False, detail=f"'{executable}' not found on PATH")
    try:
        result = await run_process(
            [resolved, version_flag], timeout=DIAGNOSTIC_TIMEOUT, tool=name
        )
    except PipelineError as e:
        return ToolStatus(name, False, detail=e.detail)
    if not result.ok:
        return ToolStatus(
            name, False, detail=f"exit code {result.returncode}: {result.stderr_tail}"
        )
    first_line = (result.stdout.strip().splitlines() or [""])[0]
    return ToolStatus(name, True, version=first_line, detail=resolved)


def _check_library() -> ToolStatus:
    try:
        version = metadata.version("yt-dlp")
    except metadata.PackageNotFoundError:
        return ToolStatus("yt_dlp (library)", False, detail="package not installed")
    return ToolStatus("yt_dlp (library)", True, version=version)


def _check_scratch(root: Optional[str]) -> ToolStatus:
    scratch = ScratchDirectory(root) if root else ScratchDirectory()
    try:
        path = scratch.ensure()
        probe = scratch.acquire("probe.tmp")
        probe.path.write_bytes(b"ok")
        probe.release()
    except (ScratchDirectoryError, OSError) as e:
        return ToolStatus("scratch directory", False, detail=str(e))
    return ToolStatus("scratch directory", True, detail=str(path))


async def check_tools(config: PipelineConfig) -> List[ToolStatus]:
    """Reports whether the extractor, encoder and scratch space are usable."""
    statuses = [
        await _check_binary("yt-dlp", config.ytdlp_path, "--version"),
        await _check_binary("ffmpeg", config.ffmpeg_path, "-version"),
        _check_library(),
        _check_scratch(config.scratch_dir or None),
    ]
    for status in statuses:
        log.debug(f"Diagnostic {status.name}: available={status.available} {status.detail}")
    return statuses
