"""
Media Tooling Layer.

This package is responsible for fetching the external tool binaries over
HTTP and pulling executables out of their release archives.
"""

from .archive import extract_executable, find_member
from .downloader import Downloader

__all__ = ["Downloader", "extract_executable", "find_member"]
