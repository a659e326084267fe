"""
Hex field parsing, console line framing and command formatting.

Pure functions and small state machines — no transport involved.

Run with full visibility:
    pytest tests/test_codec_and_framing.py -v -s
"""

from __future__ import annotations

import random

import pytest

from uboot_flash_tools import commands
from uboot_flash_tools.exceptions import ParseError, UBootFlashToolsError
from uboot_flash_tools.hexcodec import chunk_dwords, chunk_quads, parse_fixed_hex
from uboot_flash_tools.line_assembler import LineAssembler


def _report(label, detail=""):
    # type: (str, str) -> None
    if detail:
        print("  [{}] {}".format(label, detail))
    else:
        print("  [{}]".format(label))


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS: Hex Codec
# ═══════════════════════════════════════════════════════════════════════════

class TestParseFixedHex:
    """8-digit register values, nothing more and nothing less."""

    @pytest.mark.parametrize("text, value", [
        ("00000000", 0),
        ("01080000", 0x1080000),
        ("DEADBEEF", 0xDEADBEEF),
        ("deadbeef", 0xDEADBEEF),
        ("FfFfFfFf", 0xFFFFFFFF),
    ])
    def test_valid_fields(self, text, value):
        # type: (str, int) -> None
        assert parse_fixed_hex(text) == value

    def test_matches_formatted_integers(self):
        # type: () -> None
        rng = random.Random(1234)
        for _ in range(200):
            value = rng.getrandbits(32)
            assert parse_fixed_hex("{:08x}".format(value)) == value
            assert parse_fixed_hex("{:08X}".format(value)) == value
        _report("PASS", "200 random values parsed back in both cases")

    @pytest.mark.parametrize("text", [
        "",
        "1234567",
        "123456789",
        "0x123456",
        "1234567g",
        " 1234567",
        "1234_567",
        "+1234567",
        "１２３４５６７８",
    ])
    def test_invalid_fields(self, text):
        # type: (str) -> None
        with pytest.raises(ParseError) as exc_info:
            parse_fixed_hex(text)
        _report("CAUGHT", str(exc_info.value))
        assert isinstance(exc_info.value, UBootFlashToolsError)

    def test_custom_width(self):
        # type: () -> None
        assert parse_fixed_hex("ff", width=2) == 0xFF
        with pytest.raises(ParseError):
            parse_fixed_hex("ff", width=8)


class TestChunkWords:
    """Chunks are read as little-endian words, like the host would."""

    def test_dwords_positional_little_endian(self):
        # type: () -> None
        chunk = bytes(range(16))
        assert chunk_dwords(chunk) == (0x03020100, 0x07060504, 0x0B0A0908, 0x0F0E0D0C)

    def test_quads(self):
        # type: () -> None
        chunk = bytes(range(16))
        assert chunk_quads(chunk) == (0x0706050403020100, 0x0F0E0D0C0B0A0908)

    def test_wrong_chunk_size(self):
        # type: () -> None
        with pytest.raises(ValueError):
            chunk_dwords(b"\x00" * 15)
        with pytest.raises(ValueError):
            chunk_quads(b"\x00" * 17)


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS: Line Assembler
# ═══════════════════════════════════════════════════════════════════════════

_STREAM = (
    b"mw.q 1080000 0807060504030201\r\n"
    b"axg_s420_v1_gva# md.l 1080000 4\r\n"
    b"01080000: 04030201 08070605 0c0b0a09 100f0e0d    ................\r\n"
    b"axg_s420_v1_gva# "
)


class TestLineAssembler:
    """Splitting the input differently never changes the lines produced."""

    def test_single_feed(self):
        # type: () -> None
        asm = LineAssembler()
        lines = asm.feed(_STREAM)
        assert lines == [
            "mw.q 1080000 0807060504030201", "",
            "axg_s420_v1_gva# md.l 1080000 4", "",
            "01080000: 04030201 08070605 0c0b0a09 100f0e0d    ................", "",
        ]
        assert asm.pending == b"axg_s420_v1_gva# "

    def test_arbitrary_splits_yield_same_lines(self):
        # type: () -> None
        reference = LineAssembler().feed(_STREAM)
        rng = random.Random(99)
        for _ in range(100):
            asm = LineAssembler()
            lines = []
            pos = 0
            while pos < len(_STREAM):
                step = rng.randint(1, 20)
                lines.extend(asm.feed(_STREAM[pos:pos + step]))
                pos += step
            assert lines == reference
            assert asm.pending == b"axg_s420_v1_gva# "
        _report("PASS", "100 random splits produced identical lines")

    def test_byte_at_a_time(self):
        # type: () -> None
        asm = LineAssembler()
        lines = []
        for i in range(len(_STREAM)):
            lines.extend(asm.feed(_STREAM[i:i + 1]))
        assert lines == LineAssembler().feed(_STREAM)

    def test_partial_line_is_buffered(self):
        # type: () -> None
        asm = LineAssembler()
        assert asm.feed(b"01080000: 1111") == []
        assert asm.feed(b"1111\r") == ["01080000: 11111111"]
        assert asm.pending == b""

    def test_flush_returns_remainder_once(self):
        # type: () -> None
        asm = LineAssembler()
        asm.feed(b"abc\rdef")
        assert asm.flush() == "def"
        assert asm.flush() is None

    def test_reset_discards_pending(self):
        # type: () -> None
        asm = LineAssembler()
        asm.feed(b"garbage")
        asm.reset()
        assert asm.feed(b"ok\n") == ["ok"]

    def test_empty_feed(self):
        # type: () -> None
        assert LineAssembler().feed(b"") == []

    def test_runaway_line_is_bounded(self):
        # type: () -> None
        asm = LineAssembler(max_pending=16)
        asm.feed(b"x" * 100)
        assert len(asm.pending) == 16

    def test_high_bytes_keep_length(self):
        # type: () -> None
        lines = LineAssembler().feed(b"\xff\xfe\x80\r")
        assert lines == ["\xff\xfe\x80"]
        assert len(lines[0]) == 3


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS: Command Encoder
# ═══════════════════════════════════════════════════════════════════════════

class TestCommands:
    """Exact console text, without line terminators."""

    def test_write_quad(self):
        # type: () -> None
        assert commands.write_quad(0x1080000, 0x1122) == "mw.q 1080000 0000000000001122"
        assert commands.write_quad(0x1080008, 0xFFFFFFFFFFFFFFFF) == "mw.q 1080008 FFFFFFFFFFFFFFFF"

    def test_dump_words(self):
        # type: () -> None
        assert commands.dump_words(0x1080010) == "md.l 1080010 4"
        assert commands.dump_words(0x10, 16) == "md.l 10 10"

    def test_nand_commands(self):
        # type: () -> None
        assert commands.erase_partition() == "nand erase.part system"
        assert commands.erase_partition("data") == "nand erase.part data"
        assert commands.write_partition(0x1080000, 0x800) == "nand write 1080000 system 800"

    def test_reboot(self):
        # type: () -> None
        assert commands.reboot() == "reboot"

    def test_chunk_commands(self):
        # type: () -> None
        chunk = bytes(range(1, 17))
        assert commands.chunk_commands(0x1080000, chunk) == [
            "mw.q 1080000 0807060504030201",
            "mw.q 1080008 100F0E0D0C0B0A09",
            "md.l 1080000 4",
        ]

    def test_no_terminators(self):
        # type: () -> None
        for text in commands.chunk_commands(0, bytes(16)) + [commands.reboot()]:
            assert "\r" not in text and "\n" not in text
