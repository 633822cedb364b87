"""sheetchat — workbook reads and human-confirmed edits for a chat assistant."""

__version__ = "0.1.0"
