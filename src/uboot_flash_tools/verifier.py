"""Classification and verification of ``md.l`` read-back lines.

Every line the console prints while a chunk is being verified falls into
one of four buckets:

- **IGNORE** — empty, or an echo of something we sent (``mw.q``,
  ``md.l``) or the device prompt.
- **VERIFIED** — a data record whose address equals the cursor and whose
  four dwords equal the chunk just written.  The cursor moves forward by
  one chunk.
- **MISMATCH** — a well-formed record that disagrees with the cursor or
  the written data.
- **MALFORMED** — anything else: wrong length, unparsable address.

MISMATCH and MALFORMED are fatal for the whole session.  A disagreement
means a bad write, a bad read or a desynchronised console, and sending
the same commands again would not fix any of those.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
from typing import Optional, Tuple

from typeguard import typechecked

from . import CHUNK_SIZE, DEVICE_PROMPT, DWORD_OFFSETS, HEX_FIELD_WIDTH, RECORD_LENGTH
from .commands import DUMP_WORDS_PREFIX, WRITE_QUAD_PREFIX
from .exceptions import ConfigError, ParseError, ProtocolMismatch
from .hexcodec import chunk_dwords, parse_fixed_hex

logger = logging.getLogger("uboot_flash_tools.verifier")

_DWORD_NAMES = ("first", "second", "third", "fourth")


class Verdict(enum.Enum):
    IGNORE = "ignore"
    VERIFIED = "verified"
    MISMATCH = "mismatch"
    MALFORMED = "malformed"


class VerifyMode(enum.Enum):
    """How much of each record is checked."""
    FULL = "full"
    ADDRESS_ONLY = "address-only"


@dataclasses.dataclass(frozen=True)
class LineOutcome:
    """Immutable result of classifying one console line.

    Attributes:
        verdict: Which bucket the line fell into.
        line: The line as received (delimiter stripped).
        cursor: The cursor after this line — advanced for VERIFIED,
            unchanged otherwise.
        field: ``"address"`` or ``"dword[i]"`` for MISMATCH, the field
            that failed to parse for MALFORMED, else ``None``.
        expected: Expected value of ``field`` for MISMATCH.
        actual: Reported value of ``field``; ``None`` when it did not parse.
        detail: Human-readable explanation for MISMATCH / MALFORMED.
    """
    verdict: Verdict
    line: str
    cursor: int
    field: Optional[str] = None
    expected: Optional[int] = None
    actual: Optional[int] = None
    detail: str = ""

    @property
    def is_fatal(self) -> bool:
        return self.verdict in (Verdict.MISMATCH, Verdict.MALFORMED)

    @property
    def dword_index(self) -> Optional[int]:
        """Index of the mismatching dword, or ``None`` for other fields."""
        if self.field is None or not self.field.startswith("dword["):
            return None
        return int(self.field[len("dword["):-1])

    def to_exception(self, context: str = "") -> Exception:
        """Build the exception that aborts the session for a fatal outcome."""
        message = f"[{context}] {self.detail}" if context else self.detail
        if self.verdict is Verdict.MISMATCH:
            return ProtocolMismatch(
                message,
                field=self.field or "",
                expected=self.expected if self.expected is not None else 0,
                actual=self.actual,
                address=self.cursor,
                line=self.line,
            )
        if self.verdict is Verdict.MALFORMED:
            return ParseError(message, line=self.line, field=self.field)
        raise ValueError(f"Outcome {self.verdict.value!r} is not fatal")


@typechecked
class ResponseVerifier:
    """Checks console lines against the chunk that was just written.

    The record layout is a protocol constant of the target's ``md.l``::

        01080000: 11111111 22222222 33333333 44444444    ................
        ^0        ^10      ^19      ^28      ^37                       ^64

    Separators and the ASCII column are not checked, only the length and
    the hex fields at their fixed offsets.
    """

    def __init__(
        self,
        prompt: str = DEVICE_PROMPT,
        verify_mode: VerifyMode = VerifyMode.FULL,
        record_length: int = RECORD_LENGTH,
        dword_offsets: Tuple[int, ...] = DWORD_OFFSETS,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self.prompt = prompt
        self.verify_mode = verify_mode
        self.record_length = record_length
        self.dword_offsets = dword_offsets
        self.chunk_size = chunk_size
        self.ignore_prefixes: Tuple[str, ...] = tuple(
            p for p in (WRITE_QUAD_PREFIX, DUMP_WORDS_PREFIX, prompt) if p
        )

    def is_echo(self, line: str) -> bool:
        """True for command echoes and prompt lines."""
        return line.startswith(self.ignore_prefixes)

    def classify(self, line: str, cursor: int, expected_chunk: bytes) -> LineOutcome:
        """Classify ``line`` given the cursor and the chunk being verified.

        Raises:
            ConfigError: If ``expected_chunk`` is not ``chunk_size`` bytes.
        """
        if len(expected_chunk) != self.chunk_size:
            raise ConfigError(
                f"Expected chunk must be {self.chunk_size} bytes, got {len(expected_chunk)}"
            )
        if not line or self.is_echo(line):
            return LineOutcome(Verdict.IGNORE, line, cursor)

        if len(line) != self.record_length:
            return LineOutcome(
                Verdict.MALFORMED, line, cursor,
                detail=(
                    f"Invalid result line {line!r}: length {len(line)}, "
                    f"expected {self.record_length}"
                ),
            )

        try:
            address = parse_fixed_hex(line[:HEX_FIELD_WIDTH])
        except ParseError as exc:
            return LineOutcome(
                Verdict.MALFORMED, line, cursor, field="address",
                detail=f"Failed to parse address in {line!r}: {exc}",
            )
        if address != cursor:
            return LineOutcome(
                Verdict.MISMATCH, line, cursor, field="address",
                expected=cursor, actual=address,
                detail=(
                    f"Invalid address. Expected 0x{cursor:08X}, "
                    f"got 0x{address:08X} in {line!r}"
                ),
            )

        if self.verify_mode is VerifyMode.FULL:
            expected_words = chunk_dwords(expected_chunk)
            for index, offset in enumerate(self.dword_offsets):
                field = f"dword[{index}]"
                name = _DWORD_NAMES[index] if index < len(_DWORD_NAMES) else field
                text = line[offset:offset + HEX_FIELD_WIDTH]
                try:
                    actual = parse_fixed_hex(text)
                except ParseError as exc:
                    return LineOutcome(
                        Verdict.MISMATCH, line, cursor, field=field,
                        expected=expected_words[index], actual=None,
                        detail=f"Failed to parse {name} dword at 0x{cursor:08X}: {exc}",
                    )
                if actual != expected_words[index]:
                    return LineOutcome(
                        Verdict.MISMATCH, line, cursor, field=field,
                        expected=expected_words[index], actual=actual,
                        detail=(
                            f"Incorrect {name} dword at 0x{cursor:08X}. "
                            f"Expected 0x{expected_words[index]:08X}, "
                            f"got 0x{actual:08X} in {line!r}"
                        ),
                    )

        new_cursor = cursor + self.chunk_size
        logger.debug("[VERIFY] 0x%08X verified, cursor -> 0x%08X", cursor, new_cursor)
        return LineOutcome(Verdict.VERIFIED, line, new_cursor)


_DEFAULT_VERIFIER = ResponseVerifier()


def classify_and_verify(line: str, cursor: int, expected_chunk: bytes) -> LineOutcome:
    """Classify ``line`` with the default prompt, layout and full verification."""
    return _DEFAULT_VERIFIER.classify(line, cursor, expected_chunk)
