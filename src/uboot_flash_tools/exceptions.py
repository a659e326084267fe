"""Custom exceptions for console flashing operations."""

from __future__ import annotations

from typing import Optional


class UBootFlashToolsError(Exception):
    """Common base exception for all uboot_flash_tools errors."""
    pass


class ConfigError(UBootFlashToolsError):
    """Exception for invalid configuration: bad image path or size, bad settings.

    Raised before any command is sent to the device.
    """
    pass


class ParseError(UBootFlashToolsError):
    """Exception for console output that cannot be parsed.

    Attributes:
        line: The offending console line, if any.
        field: Name of the field that failed to parse, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        line: Optional[str] = None,
        field: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.line = line
        self.field = field


class ProtocolMismatch(UBootFlashToolsError):
    """Exception for a read-back value that disagrees with what was written.

    Attributes:
        field: ``"address"`` or ``"dword[i]"``.
        expected: The value that was written (or the expected address).
        actual: The value the device reported.
        address: Address cursor at the time of the mismatch.
        line: The offending console line.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str,
        expected: int,
        actual: Optional[int],
        address: int,
        line: str,
    ) -> None:
        super().__init__(message)
        self.field = field
        self.expected = expected
        self.actual = actual
        self.address = address
        self.line = line


class VerifyTimeoutError(UBootFlashToolsError, TimeoutError):
    """Exception raised when the read-back never arrives.

    The retry budget was exhausted while the address cursor was still
    behind the end of the chunk being verified.

    Attributes:
        expected_address: Cursor value that would have completed the chunk.
        cursor: Cursor value actually reached.
    """

    def __init__(
        self,
        message: str,
        *,
        expected_address: int,
        cursor: int,
    ) -> None:
        super().__init__(message)
        self.expected_address = expected_address
        self.cursor = cursor


class TransportError(UBootFlashToolsError):
    """Exception for I/O failures on the console channel.

    Raised when the serial port cannot be opened, configured, written to
    or read from, or is used after it was closed.
    """
    pass
