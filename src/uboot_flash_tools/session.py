"""Write-verify loading of an image into target RAM over the console.

For every 16-byte chunk the session:

1. sends two ``mw.q`` writes and one ``md.l`` read-back,
2. waits for console output in short polls, feeding everything through
   the ``LineAssembler`` and the ``ResponseVerifier``,
3. moves on once the read-back for the chunk has been verified.

The next chunk is never sent before the current one is verified.  Any
mismatch, malformed record, transport failure or exhausted retry budget
aborts the whole session; there is no resume.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import time
from typing import Optional

from tqdm import tqdm
from typeguard import typechecked

from . import (
    CHUNK_SIZE,
    DEVICE_PROMPT,
    FLASH_BASE_ADDRESS,
    IMAGE_BLOCK_SIZE,
    QUAD_SIZE,
    VERIFY_POLL_TIMEOUT_S,
    VERIFY_RETRIES,
)
from .commands import chunk_commands
from .exceptions import ConfigError, UBootFlashToolsError, VerifyTimeoutError
from .image import iter_chunks, validate_image
from .line_assembler import LineAssembler
from .transport import ConsoleTransport
from .types import CommandHook
from .verifier import ResponseVerifier, Verdict, VerifyMode

logger = logging.getLogger("uboot_flash_tools.session")

_ADDRESS_LIMIT = 1 << 32


class FlashMode(enum.Enum):
    """``LIVE`` talks to the device; ``DRY_RUN`` only emits commands."""
    LIVE = "live"
    DRY_RUN = "dry-run"


class SessionState(enum.Enum):
    IDLE = "idle"
    WRITING = "writing"
    AWAITING_VERIFY = "awaiting-verify"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclasses.dataclass(frozen=True)
class SessionConfig:
    """Settings for one flashing session.

    Attributes:
        base_address: RAM address of the first image byte.
        block_size: The image length must be a multiple of this.
        poll_timeout_s: How long one wait for console output lasts.
        retries: Consecutive silent waits tolerated before giving up.
        mode: ``FlashMode.LIVE`` or ``FlashMode.DRY_RUN``.
        verify_mode: Check full records or only their addresses.
        prompt: Device prompt, ignored when it shows up in the output.
        echo_commands: Log every command at INFO instead of DEBUG.
        show_progress: Show a tqdm progress bar.
    """
    base_address: int = FLASH_BASE_ADDRESS
    block_size: int = IMAGE_BLOCK_SIZE
    poll_timeout_s: float = VERIFY_POLL_TIMEOUT_S
    retries: int = VERIFY_RETRIES
    mode: FlashMode = FlashMode.LIVE
    verify_mode: VerifyMode = VerifyMode.FULL
    prompt: str = DEVICE_PROMPT
    echo_commands: bool = False
    show_progress: bool = True

    def __post_init__(self) -> None:
        if not 0 <= self.base_address < _ADDRESS_LIMIT:
            raise ConfigError(f"Base address 0x{self.base_address:X} is not a 32-bit address")
        if self.base_address % QUAD_SIZE != 0:
            raise ConfigError(
                f"Base address 0x{self.base_address:X} is not {QUAD_SIZE}-byte aligned"
            )
        if self.block_size <= 0 or self.block_size % CHUNK_SIZE != 0:
            raise ConfigError(
                f"Block size {self.block_size} must be a positive multiple of {CHUNK_SIZE}"
            )
        if self.poll_timeout_s <= 0:
            raise ConfigError(f"Poll timeout {self.poll_timeout_s}s must be positive")
        if self.retries < 1:
            raise ConfigError(f"Retry budget {self.retries} must be at least 1")


@dataclasses.dataclass(frozen=True)
class SessionResult:
    """Immutable summary of a finished session.

    Attributes:
        mode: Mode the session ran in.
        chunks_written: Chunks whose commands were sent.
        chunks_verified: Chunks confirmed by read-back (0 in dry-run).
        bytes_written: ``chunks_written * CHUNK_SIZE``.
        start_address: Base address of the image.
        final_address: Address cursor at the end of the session.
        elapsed_seconds: Wall-clock duration.
    """
    mode: FlashMode
    chunks_written: int
    chunks_verified: int
    bytes_written: int
    start_address: int
    final_address: int
    elapsed_seconds: float


@typechecked
class FlashSession:
    """Drives the chunk-by-chunk write/verify cycle over a console transport.

    Example::

        with SerialTransport("/dev/ttyUSB0") as console:
            session = FlashSession(console, SessionConfig(base_address=0x1080000))
            result = session.run(image, context="load system image")
            print(f"verified up to 0x{result.final_address:08X}")
    """

    def __init__(
        self,
        transport: ConsoleTransport,
        config: Optional[SessionConfig] = None,
        on_command: Optional[CommandHook] = None,
    ) -> None:
        """Initialize the session.

        Args:
            transport: An open console transport.  The session uses it but
                does not close it.
            config: Session settings.  Defaults to ``SessionConfig()``.
            on_command: Called with every command right before it is sent.
        """
        self.transport = transport
        self.config = config if config is not None else SessionConfig()
        self.on_command = on_command
        self.verifier = ResponseVerifier(
            prompt=self.config.prompt,
            verify_mode=self.config.verify_mode,
        )
        self._assembler = LineAssembler()
        self._state = SessionState.IDLE
        self._cursor = self.config.base_address
        self._chunk_index = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def cursor(self) -> int:
        """Next address expected to be confirmed by a read-back."""
        return self._cursor

    @property
    def chunk_index(self) -> int:
        return self._chunk_index

    def run(self, image: bytes, context: str) -> SessionResult:
        """Write and verify the whole image.

        Args:
            image: The image.  Its length must be a positive multiple of
                ``config.block_size``.
            context: Description of the purpose, embedded into logs and errors.

        Returns:
            A ``SessionResult`` describing the completed session.

        Raises:
            ConfigError: If the image size is invalid or it would not fit
                below 4 GiB at the base address.  Nothing is sent.
            ProtocolMismatch: If a read-back disagrees with the data written.
            ParseError: If the console prints a malformed record.
            VerifyTimeoutError: If a read-back does not arrive in time.
            TransportError: On I/O failure.
        """
        if self._state is not SessionState.IDLE:
            raise ConfigError(
                f"[{context}] Session already used (state={self._state.value}); "
                f"create a new FlashSession to flash again"
            )

        cfg = self.config
        validate_image(image, cfg.block_size)
        if cfg.base_address + len(image) > _ADDRESS_LIMIT:
            raise ConfigError(
                f"[{context}] Image of {len(image)} bytes at 0x{cfg.base_address:08X} "
                f"runs past the 32-bit address space"
            )

        total_chunks = len(image) // CHUNK_SIZE
        logger.info(
            "[FLASH-SESSION] [%s] Writing %d bytes (%d chunks) to 0x%08X via %s (mode=%s, verify=%s)",
            context, len(image), total_chunks, cfg.base_address,
            self.transport.name, cfg.mode.value, cfg.verify_mode.value,
        )

        start_time = time.monotonic()
        chunks_written = 0
        chunks_verified = 0
        self._cursor = cfg.base_address
        self._assembler.reset()

        progress_bar = tqdm(
            total=len(image),
            unit="B",
            unit_scale=True,
            unit_divisor=1024,
            desc="Writing image to RAM",
            disable=not cfg.show_progress,
        )
        try:
            for index, (offset, chunk) in enumerate(iter_chunks(image, CHUNK_SIZE)):
                address = cfg.base_address + offset
                self._chunk_index = index
                self._state = SessionState.WRITING

                for command in chunk_commands(address, chunk):
                    self._send(command, context)
                chunks_written += 1

                if cfg.mode is FlashMode.LIVE:
                    self._await_verify(address, chunk, context)
                    chunks_verified += 1

                progress_bar.update(len(chunk))
        except UBootFlashToolsError as exc:
            self._state = SessionState.ABORTED
            logger.error(
                "[FLASH-SESSION] [%s] ABORTED at chunk %d/%d (cursor=0x%08X) — %s: %s",
                context, self._chunk_index, total_chunks, self._cursor,
                type(exc).__name__, exc,
            )
            raise
        finally:
            progress_bar.close()

        self._state = SessionState.COMPLETED
        elapsed = time.monotonic() - start_time
        logger.info(
            "[FLASH-SESSION] [%s] Completed — %d chunks written, %d verified, "
            "cursor=0x%08X (%.3fs)",
            context, chunks_written, chunks_verified, self._cursor, elapsed,
        )

        return SessionResult(
            mode=cfg.mode,
            chunks_written=chunks_written,
            chunks_verified=chunks_verified,
            bytes_written=chunks_written * CHUNK_SIZE,
            start_address=cfg.base_address,
            final_address=self._cursor,
            elapsed_seconds=elapsed,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _send(self, command: str, context: str) -> None:
        if self.on_command is not None:
            self.on_command(command)
        if self.config.echo_commands:
            logger.info("[CONSOLE] > %s", command)
        self.transport.send_line(command, context)

    def _await_verify(self, address: int, chunk: bytes, context: str) -> None:
        """Read console output until the chunk at ``address`` is verified.

        Every read that returns data restores the full retry budget.

        Raises:
            VerifyTimeoutError: If ``config.retries`` consecutive polls come
                back empty before the cursor reaches the end of the chunk.
        """
        expected = address + CHUNK_SIZE
        retries_left = self.config.retries
        self._state = SessionState.AWAITING_VERIFY

        while self._cursor != expected and retries_left > 0:
            data = self.transport.read_available(self.config.poll_timeout_s, context)
            if not data:
                retries_left -= 1
                continue
            retries_left = self.config.retries
            for line in self._assembler.feed(data):
                self._consume(line, chunk, context)

        if self._cursor != expected:
            # The record may have arrived without its terminator.
            remainder = self._assembler.flush()
            if remainder is not None:
                self._consume(remainder, chunk, context)

        if self._cursor != expected:
            raise VerifyTimeoutError(
                f"[{context}] No read-back for 0x{address:08X} after {self.config.retries} "
                f"polls of {self.config.poll_timeout_s}s. Expected cursor 0x{expected:08X}, "
                f"got 0x{self._cursor:08X}",
                expected_address=expected,
                cursor=self._cursor,
            )

    def _consume(self, line: str, chunk: bytes, context: str) -> None:
        outcome = self.verifier.classify(line, self._cursor, chunk)
        if outcome.verdict is Verdict.VERIFIED:
            self._cursor = outcome.cursor
        elif outcome.is_fatal:
            raise outcome.to_exception(context)
        else:
            logger.debug("[VERIFY] [%s] ignored %r", context, line)
