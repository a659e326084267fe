"""Fixed-width hexadecimal fields and word extraction from image chunks.

U-Boot prints memory as 32-bit registers in plain hexadecimal, most
significant nibble first.  The host side reads the image chunk as native
little-endian words, so byte ``4*i`` of the chunk is the low byte of the
``i``-th dword the console reports.
"""

from __future__ import annotations

import string
from typing import Tuple

from typeguard import typechecked

from . import CHUNK_SIZE, DWORD_SIZE, HEX_FIELD_WIDTH, QUAD_SIZE
from .exceptions import ParseError
from .types import Dwords

_HEX_DIGITS = frozenset(string.hexdigits)


@typechecked
def parse_fixed_hex(text: str, width: int = HEX_FIELD_WIDTH) -> int:
    """Parse exactly ``width`` hex digits into an unsigned integer.

    Args:
        text: The field text.  No ``0x`` prefix, no whitespace.
        width: Required number of characters.

    Returns:
        The decoded value.

    Raises:
        ParseError: If ``text`` has the wrong length or contains a
            character outside ``[0-9a-fA-F]``.
    """
    if len(text) != width:
        raise ParseError(
            f"Hex field {text!r} has {len(text)} characters, expected {width}",
            line=text,
        )
    for ch in text:
        if ch not in _HEX_DIGITS:
            raise ParseError(
                f"Hex field {text!r} contains non-hex character {ch!r}",
                line=text,
            )
    return int(text, 16)


@typechecked
def chunk_dwords(chunk: bytes) -> Dwords:
    """Split a 16-byte chunk into the four dwords ``md.l`` will print."""
    if len(chunk) != CHUNK_SIZE:
        raise ValueError(f"Chunk must be {CHUNK_SIZE} bytes, got {len(chunk)}")
    return tuple(  # type: ignore[return-value]
        int.from_bytes(chunk[i:i + DWORD_SIZE], "little")
        for i in range(0, CHUNK_SIZE, DWORD_SIZE)
    )


@typechecked
def chunk_quads(chunk: bytes) -> Tuple[int, int]:
    """Split a 16-byte chunk into the two 64-bit values written with ``mw.q``."""
    if len(chunk) != CHUNK_SIZE:
        raise ValueError(f"Chunk must be {CHUNK_SIZE} bytes, got {len(chunk)}")
    return (
        int.from_bytes(chunk[:QUAD_SIZE], "little"),
        int.from_bytes(chunk[QUAD_SIZE:], "little"),
    )
