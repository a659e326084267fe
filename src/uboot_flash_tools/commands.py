"""U-Boot console command formatting.

Pure string builders.  The line terminator is added by the transport.
Addresses and sizes are printed as upper-case hex without ``0x`` and
without padding, which is what U-Boot's ``simple_strtoul`` expects.
"""

from __future__ import annotations

from typing import List

from typeguard import typechecked

from . import DUMP_WORD_COUNT, QUAD_SIZE, SYSTEM_PARTITION
from .hexcodec import chunk_quads

WRITE_QUAD_PREFIX = "mw.q"
DUMP_WORDS_PREFIX = "md.l"


@typechecked
def write_quad(address: int, value: int) -> str:
    """``mw.q <addr> <16-digit value>`` — store one 64-bit word."""
    return f"{WRITE_QUAD_PREFIX} {address:X} {value:016X}"


@typechecked
def dump_words(address: int, count: int = DUMP_WORD_COUNT) -> str:
    """``md.l <addr> <count>`` — print ``count`` 32-bit words."""
    return f"{DUMP_WORDS_PREFIX} {address:X} {count:X}"


@typechecked
def erase_partition(partition: str = SYSTEM_PARTITION) -> str:
    return f"nand erase.part {partition}"


@typechecked
def write_partition(address: int, size: int, partition: str = SYSTEM_PARTITION) -> str:
    """``nand write <addr> <partition> <size>`` — copy RAM to NAND."""
    return f"nand write {address:X} {partition} {size:X}"


def reboot() -> str:
    return "reboot"


@typechecked
def chunk_commands(address: int, chunk: bytes) -> List[str]:
    """Commands that write one chunk and ask the console to print it back.

    Two ``mw.q`` writes cover the chunk halves, then one ``md.l`` reads
    the whole chunk at ``address``.
    """
    low, high = chunk_quads(chunk)
    return [
        write_quad(address, low),
        write_quad(address + QUAD_SIZE, high),
        dump_words(address),
    ]
