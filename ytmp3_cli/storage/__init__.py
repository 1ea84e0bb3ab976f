"""
Storage Layer.

This package handles everything that touches the filesystem: the scratch
directory for working files, the INI configuration file, and ZIP bundles of
finished tracks.
"""

from .bundle import write_bundle
from .config_manager import ConfigManager
from .scratch import ScratchDirectory, TempHandle, default_scratch

__all__ = [
    "ConfigManager",
    "ScratchDirectory",
    "TempHandle",
    "default_scratch",
    "write_bundle",
]
