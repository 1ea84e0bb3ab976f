"""
Media Processing Layer.

This package is responsible for all media operations: fetching source streams
over HTTP, transcoding them to MP3, tagging album and cover art, and
validating the encoded output.
"""

from .downloader import Downloader, close_connection_pool, get_connection_pool
from .integrity import FileIntegrityChecker
from .tagger import Tagger
from .transcoder import MP3_MIME_TYPE, Transcoder

__all__ = [
    "MP3_MIME_TYPE",
    "Downloader",
    "FileIntegrityChecker",
    "Tagger",
    "Transcoder",
    "close_connection_pool",
    "get_connection_pool",
]
