from typing import Optional


class DeclscanError(Exception):
    """Base class for errors raised by declscan."""


class ParseFailure(DeclscanError):
    """
    Source text could not be parsed into a syntax tree.

    This is the only failure that crosses the extraction boundary; everything
    downstream of a successful parse degrades to fallback data instead.
    """

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        self.message = message
        self.path = path
        super().__init__(f"Failed to parse TypeScript code: {message}")


class SettingsError(DeclscanError):
    """Invalid configuration, such as a malformed alias table entry."""
