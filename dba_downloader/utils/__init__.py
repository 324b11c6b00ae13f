"""
Utility Layer.

Formatting helpers and the structured diagnostic logger.
"""
