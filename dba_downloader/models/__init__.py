"""
Data Models Layer.

This package contains the Pydantic models and dataclasses that define the core
data structures used throughout the application, such as configuration,
download requests and process outcomes.
"""

from .config import AppConfig
from .download import (
    AudioTrack,
    DownloadOutcome,
    DownloadRequest,
    Invocation,
    OutcomeStatus,
    ProbeResult,
    ProvisionStatus,
    QualityTier,
    TimeRange,
    ToolSet,
)

__all__ = [
    "AppConfig",
    "AudioTrack",
    "DownloadOutcome",
    "DownloadRequest",
    "Invocation",
    "OutcomeStatus",
    "ProbeResult",
    "ProvisionStatus",
    "QualityTier",
    "TimeRange",
    "ToolSet",
]
