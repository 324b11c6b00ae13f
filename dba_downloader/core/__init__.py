"""
Core application engine for provisioning tools and orchestrating downloads.

This package contains the primary logic. The `DownloaderService` acts as the
high-level coordinator, delegating tool installation to the
`BinaryProvisioner`, language discovery to the `TrackProber`, command line
construction to `synthesize`, and process ownership to the
`ProcessSupervisor`.
"""
