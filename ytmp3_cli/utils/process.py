"""
Runs external tools (yt-dlp, ffmpeg) as cancellable asyncio subprocesses.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from ytmp3_cli.core.cancellation import CancelToken
from ytmp3_cli.exceptions import EmptyOutputError, ProcessFailureError

log = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 600


@dataclass
class ProcessResult:
    """Exit status and captured output of one external process."""

    args: Sequence[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def stderr_tail(self) -> str:
        return tail(self.stderr)


def tail(text: str, limit: int = STDERR_TAIL_CHARS) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return "…" + text[-limit:]


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """Terminates a process, escalating to kill if it lingers."""
    if proc.returncode is not None:
        return
    try:
        proc.terminate()
        await asyncio.wait_for(proc.wait(), timeout=5)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
    except ProcessLookupError:
        pass


async def run_process(
    args: Sequence[str],
    *,
    timeout: float,
    cancel: Optional[CancelToken] = None,
    tool: str = "process",
) -> ProcessResult:
    """
    Runs `args` to completion and returns its result.

    Raises ProcessFailureError if the executable cannot be started or the
    timeout elapses. A set cancel token terminates the process and raises
    PipelineCancelledError. The exit code is not interpreted here.
    """
    if cancel:
        cancel.raise_if_cancelled()

    log.debug(f"Running {tool}: {' '.join(map(str, args))}")
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise ProcessFailureError(
            f"Could not start {tool} ({args[0]}): {e}", retryable=False
        ) from e

    communicate = asyncio.wait_for(proc.communicate(), timeout=timeout)
    try:
        if cancel:
            stdout, stderr = await cancel.race(communicate)
        else:
            stdout, stderr = await communicate
    except asyncio.TimeoutError:
        await _terminate(proc)
        raise ProcessFailureError(f"{tool} timed out after {timeout:.0f}s") from None
    except BaseException:
        await _terminate(proc)
        raise

    return ProcessResult(
        args=list(args),
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def verify_output(
    result: ProcessResult,
    output_path: Path,
    *,
    tool: str,
    error_cls: type = ProcessFailureError,
) -> int:
    """
    Applies the success oracle to a finished process: exit code zero, output
    file present, output size above zero. Returns the output size.
    """
    if not result.ok:
        raise error_cls(
            f"{tool} exited with an error",
            exit_code=result.returncode,
            stderr_tail=result.stderr_tail,
        )
    size = output_path.stat().st_size if output_path.is_file() else 0
    if size <= 0:
        state = "empty" if output_path.exists() else "missing"
        message = f"{tool} reported success but its output is {state}"
        if error_cls is ProcessFailureError:
            raise EmptyOutputError(
                message, exit_code=result.returncode, stderr_tail=result.stderr_tail
            )
        raise error_cls(
            message, exit_code=result.returncode, stderr_tail=result.stderr_tail
        )
    return size


def is_executable(path: str) -> bool:
    candidate = Path(path)
    return candidate.is_file() and os.access(candidate, os.X_OK)
