"""
dba-downloader: provisions yt-dlp, ffmpeg and deno locally and drives
yt-dlp downloads with track probing, argument synthesis and cancellation.
"""

__version__ = "1.2.0"
