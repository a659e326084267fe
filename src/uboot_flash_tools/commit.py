"""Commit a verified RAM image to NAND: erase, write, optional reboot.

The NAND commands print progress text but nothing that can be checked
line by line, so completion is detected by quiescence: the console is
considered done once it has been silent for ``retries`` consecutive
polls of ``poll_timeout_s`` each.  Any output restores the full budget.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Callable, List, Optional, Tuple

from typeguard import typechecked

from . import SETTLE_POLL_TIMEOUT_S, SETTLE_RETRIES, SYSTEM_PARTITION
from . import commands
from .exceptions import ConfigError
from .session import FlashMode
from .transport import ConsoleTransport
from .types import CommandHook

logger = logging.getLogger("uboot_flash_tools.commit")


@dataclasses.dataclass(frozen=True)
class CommitConfig:
    """Settings for the NAND commit.

    Attributes:
        partition: NAND partition name passed to ``nand erase.part`` / ``nand write``.
        poll_timeout_s: Length of one quiet-period poll.
        retries: Consecutive quiet polls that mean "command finished".
        reboot: Reboot unconditionally after the write.
        mode: In ``DRY_RUN`` commands are emitted but nothing is awaited.
    """
    partition: str = SYSTEM_PARTITION
    poll_timeout_s: float = SETTLE_POLL_TIMEOUT_S
    retries: int = SETTLE_RETRIES
    reboot: bool = False
    mode: FlashMode = FlashMode.LIVE

    def __post_init__(self) -> None:
        if not self.partition or any(ch.isspace() for ch in self.partition):
            raise ConfigError(f"Invalid partition name {self.partition!r}")
        if self.poll_timeout_s <= 0:
            raise ConfigError(f"Settle poll timeout {self.poll_timeout_s}s must be positive")
        if self.retries < 1:
            raise ConfigError(f"Settle retry budget {self.retries} must be at least 1")


@dataclasses.dataclass(frozen=True)
class CommitResult:
    """Immutable summary of a commit.

    Attributes:
        steps: Commands sent, in order.
        bytes_observed: Console bytes seen while each step settled.
        rebooted: Whether ``reboot`` was sent.
    """
    steps: Tuple[str, ...]
    bytes_observed: Tuple[int, ...]
    rebooted: bool


@typechecked
class CommitOrchestrator:
    """Sequences ``nand erase.part`` → ``nand write`` → ``reboot``."""

    def __init__(
        self,
        transport: ConsoleTransport,
        config: Optional[CommitConfig] = None,
        on_command: Optional[CommandHook] = None,
    ) -> None:
        self.transport = transport
        self.config = config if config is not None else CommitConfig()
        self.on_command = on_command

    def wait_for_idle(self, context: str) -> int:
        """Block until the console has been quiet for the full retry budget.

        Returns:
            Number of bytes received (and discarded) while waiting.
        """
        if self.config.mode is FlashMode.DRY_RUN:
            return 0

        retries_left = self.config.retries
        observed = 0
        while retries_left > 0:
            data = self.transport.read_available(self.config.poll_timeout_s, context)
            if data:
                observed += len(data)
                retries_left = self.config.retries
            else:
                retries_left -= 1

        logger.info("[COMMIT] [%s] Console idle after %d bytes of output", context, observed)
        return observed

    def commit(
        self,
        base_address: int,
        size: int,
        context: str,
        confirm_reboot: Optional[Callable[[], bool]] = None,
    ) -> CommitResult:
        """Erase the partition, copy ``size`` bytes from RAM into it, maybe reboot.

        Args:
            base_address: RAM address of the verified image.
            size: Image size in bytes.
            context: Description of the purpose, embedded into logs and errors.
            confirm_reboot: Asked after the write when ``config.reboot`` is
                off; a ``True`` answer reboots the device.

        Raises:
            ConfigError: If ``size`` is not positive.
            TransportError: On I/O failure.
        """
        if size <= 0:
            raise ConfigError(f"[{context}] Commit size {size} must be positive")

        partition = self.config.partition
        steps: List[str] = []
        observed: List[int] = []

        logger.info("[COMMIT] [%s] Erasing partition %r", context, partition)
        steps.append(self._send(commands.erase_partition(partition), context))
        observed.append(self.wait_for_idle(context))

        logger.info(
            "[COMMIT] [%s] Writing %d bytes from 0x%08X to partition %r",
            context, size, base_address, partition,
        )
        steps.append(self._send(commands.write_partition(base_address, size, partition), context))
        observed.append(self.wait_for_idle(context))

        rebooted = self.config.reboot or (confirm_reboot is not None and bool(confirm_reboot()))
        if rebooted:
            logger.info("[COMMIT] [%s] Rebooting", context)
            steps.append(self._send(commands.reboot(), context))

        return CommitResult(steps=tuple(steps), bytes_observed=tuple(observed), rebooted=rebooted)

    def _send(self, command: str, context: str) -> str:
        if self.on_command is not None:
            self.on_command(command)
        self.transport.send_line(command, context)
        return command
