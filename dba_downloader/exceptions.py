"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class DbaDownloaderError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(DbaDownloaderError):
    """Raised for issues related to configuration loading or validation."""


class ProvisioningError(DbaDownloaderError):
    """Raised when a required external tool cannot be downloaded or installed."""


class ArchiveMemberNotFoundError(ProvisioningError):
    """Raised when a downloaded archive does not contain the expected executable."""


class ProbeError(DbaDownloaderError):
    """Raised when the engine exits with a non-zero code while probing a URL."""


class SpawnError(DbaDownloaderError):
    """Raised when an external executable is missing or cannot be started."""

    def __init__(self, reason: str):
        super().__init__(f"Failed to start yt-dlp: {reason}")
        self.reason = reason


class EngineExitError(DbaDownloaderError):
    """Raised when the engine process finishes with a non-zero exit code."""

    def __init__(self, exit_code: int | None, stderr_tail: str = ""):
        super().__init__(f"Exit code {exit_code}")
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail


class DownloadCancelledError(DbaDownloaderError):
    """Raised when the user cancels a running download."""


class DownloadInProgressError(DbaDownloaderError):
    """
    Raised when a download is started while another one is still running.
    """
