"""
Helper functions for formatting data into human-readable strings and for
reading the engine's progress lines.
"""

import re

_PERCENT_REGEX = re.compile(r"(\d+\.?\d*)%")


def format_size(bytes_size: int) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 34m 12s').
    """
    s = int(seconds)
    hours, remainder = divmod(s, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def parse_progress_line(line: str) -> tuple[float | None, str | None]:
    """
    Splits an engine output line into a percentage or a status label.

    Lines containing an 'NN.N%' value yield (percent, None); any other line
    yields (None, line) so it can be shown as the current status.
    """
    if "%" in line:
        match = _PERCENT_REGEX.search(line)
        return (float(match.group(1)) if match else None), None
    return None, line


def shorten(text: str, width: int = 40) -> str:
    """Truncates a status label with an ellipsis."""
    return text if len(text) <= width else text[: width - 3] + "..."
