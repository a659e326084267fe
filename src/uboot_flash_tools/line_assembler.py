"""Reassemble console lines from arbitrarily split serial reads."""

from __future__ import annotations

import logging
from typing import List, Optional

from typeguard import typechecked

logger = logging.getLogger("uboot_flash_tools.line_assembler")

_DELIMITERS = b"\r\n"


@typechecked
class LineAssembler:
    """Turns a stream of byte chunks into complete text lines.

    Both ``\\r`` and ``\\n`` end a line, so a ``\\r\\n`` pair yields an
    extra empty line; callers ignore empty lines anyway.  Text after the
    last delimiter is kept until the next ``feed()``.

    Example::

        asm = LineAssembler()
        asm.feed(b"01080000: 1111")   # -> []
        asm.feed(b"1111 ...\\r\\n")     # -> ["01080000: 11111111 ...", ""]
    """

    def __init__(self, encoding: str = "latin-1", max_pending: int = 4096) -> None:
        """Initialize the assembler.

        Args:
            encoding: Used to decode each finished line.  ``latin-1`` maps
                every byte to one character, so line length is byte length.
            max_pending: Upper bound on buffered unterminated bytes.  Older
                bytes are dropped when a runaway line exceeds it.
        """
        self.encoding = encoding
        self.max_pending = max_pending
        self._pending = bytearray()

    @property
    def pending(self) -> bytes:
        """Bytes received after the last delimiter."""
        return bytes(self._pending)

    def feed(self, data: bytes) -> List[str]:
        """Append ``data`` and return every line it completes, in order."""
        lines: List[str] = []
        start = 0
        for index, byte in enumerate(data):
            if byte in _DELIMITERS:
                self._pending.extend(data[start:index])
                lines.append(self._pending.decode(self.encoding, errors="replace"))
                self._pending.clear()
                start = index + 1
        self._pending.extend(data[start:])

        overflow = len(self._pending) - self.max_pending
        if overflow > 0:
            logger.warning(
                "[LINE-ASM] Unterminated line exceeded %d bytes — dropping %d oldest bytes",
                self.max_pending, overflow,
            )
            del self._pending[:overflow]

        return lines

    def flush(self) -> Optional[str]:
        """Return the unterminated remainder as a line and clear it.

        Returns ``None`` when nothing is pending.
        """
        if not self._pending:
            return None
        line = self._pending.decode(self.encoding, errors="replace")
        self._pending.clear()
        return line

    def reset(self) -> None:
        """Discard any pending partial line."""
        self._pending.clear()
