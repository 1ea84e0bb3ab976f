"""
Entry point for `ytmp3-cli` and `python -m ytmp3_cli`.

Application errors that escape a command are rendered as a Rich panel with
suggestions instead of a traceback.
"""

import logging
import os
import sys

from rich.console import Console

from ytmp3_cli.cli.app import app
from ytmp3_cli.cli.formatters import format_error_with_suggestions
from ytmp3_cli.exceptions import YtMp3Error

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

log = logging.getLogger("ytmp3_cli")


def _use_utf8_streams() -> None:
    # Windows consoles default to a legacy code page; panels use box glyphs.
    if os.name != "nt":
        return
    for stream in (sys.stdout, sys.stderr):
        reconfigure = getattr(stream, "reconfigure", None)
        if reconfigure:
            reconfigure(encoding="utf-8")


def main() -> None:
    _use_utf8_streams()
    console = Console(stderr=True)

    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(EXIT_INTERRUPTED)
    except YtMp3Error as e:
        console.print(format_error_with_suggestions(e))
        sys.exit(EXIT_FAILURE)
    except Exception as e:
        console.print(
            format_error_with_suggestions(e, {"command": " ".join(sys.argv[1:])})
        )
        log.debug("Unhandled exception", exc_info=True)
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
