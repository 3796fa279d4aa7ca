"""Custom exceptions for the DLP-TH1C sensor library."""

from typing import Optional


class TH1CError(Exception):
    """Base exception for all DLP-TH1C library errors."""

    pass


class SerialIOError(TH1CError):
    """Raised when serial communication fails (port closed, disconnect, etc)."""

    pass


class DecodeError(TH1CError):
    """Raised when a response cannot be turned into a reading.

    Attributes:
        fragment: The raw text (or bytes) that failed to decode, kept for diagnostics.
    """

    def __init__(self, message: str, fragment: Optional[object] = None) -> None:
        super().__init__(message)
        self.fragment = fragment


class DataMissing(DecodeError):
    """Raised when an expected delimiter, field or line count is absent."""

    pass


class ResponseTooShort(DataMissing):
    """Raised when an aggregate response holds fewer lines than all fields need."""

    pass


class MalformedNumber(DecodeError):
    """Raised when a delimited value cannot be parsed as the expected number."""

    pass


class InvalidByteLength(DecodeError):
    """Raised when a fixed-width binary helper gets the wrong number of bytes."""

    pass


class InvalidCommand(DecodeError):
    """Raised for a command byte or command string outside the known set."""

    pass
