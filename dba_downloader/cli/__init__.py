"""
Command-Line Interface Layer.

This package defines the Typer application, its Rich progress display, and
the console formatters for errors, tools, and detected tracks.
"""
