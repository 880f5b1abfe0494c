"""
eolforge - A cross-platform Python utility for detecting and normalizing line delimiters.

This package provides functionality to:
- Report which line delimiters (LF, CR, CRLF) a file uses
- Convert every line of a file to a single delimiter
- Keep all other bytes intact, including a missing final newline
- Replace files atomically through a temporary file
"""

__version__ = "1.0.0"
