"""
Response classification and read-back verification.

Run with full visibility:
    pytest tests/test_verifier.py -v -s
"""

from __future__ import annotations

import dataclasses

import pytest

from console_fakes import format_record, record_from_words
from uboot_flash_tools import DEVICE_PROMPT
from uboot_flash_tools.exceptions import ConfigError, ParseError, ProtocolMismatch, UBootFlashToolsError
from uboot_flash_tools.verifier import (
    LineOutcome,
    ResponseVerifier,
    Verdict,
    VerifyMode,
    classify_and_verify,
)

_BASE = 0x1080000
_WORDS = (0x11111111, 0x22222222, 0x33333333, 0x44444444)
_CHUNK = b"".join(w.to_bytes(4, "little") for w in _WORDS)
_GOOD = record_from_words(_BASE, _WORDS)


def _report(label, detail=""):
    # type: (str, str) -> None
    if detail:
        print("  [{}] {}".format(label, detail))
    else:
        print("  [{}]".format(label))


def _replace(line, offset, text):
    # type: (str, int, str) -> str
    return line[:offset] + text + line[offset + len(text):]


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS: Verified records
# ═══════════════════════════════════════════════════════════════════════════

class TestVerified:

    def test_layout(self):
        # type: () -> None
        _report("LINE", _GOOD)
        assert len(_GOOD) == 65
        assert _GOOD.startswith("01080000: 11111111 22222222 33333333 44444444")

    def test_matching_record_advances_cursor(self):
        # type: () -> None
        outcome = classify_and_verify(_GOOD, _BASE, _CHUNK)
        assert outcome.verdict is Verdict.VERIFIED
        assert outcome.cursor == 0x1080010
        assert not outcome.is_fatal

    def test_upper_case_hex_accepted(self):
        # type: () -> None
        chunk = bytes(range(0xA0, 0xB0))
        line = format_record(_BASE, chunk).upper()
        outcome = classify_and_verify(line, _BASE, chunk)
        assert outcome.verdict is Verdict.VERIFIED

    def test_dword_byte_mapping_is_positional(self):
        # type: () -> None
        chunk = bytes(range(16))
        line = format_record(_BASE, chunk)
        assert line[10:18] == "03020100"
        assert line[37:45] == "0f0e0d0c"
        assert classify_and_verify(line, _BASE, chunk).verdict is Verdict.VERIFIED


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS: Ignored lines
# ═══════════════════════════════════════════════════════════════════════════

class TestIgnored:

    @pytest.mark.parametrize("line", [
        "",
        "mw.q 1080000 2222222211111111",
        "mw.q " + "x" * 60,
        "md.l 1080000 4",
        "md.l " + "0" * 60,
        DEVICE_PROMPT,
        DEVICE_PROMPT + " md.l 1080000 4",
        DEVICE_PROMPT + " " + "z" * 48,
    ])
    def test_echo_and_prompt_ignored(self, line):
        # type: (str) -> None
        outcome = classify_and_verify(line, _BASE, _CHUNK)
        assert outcome.verdict is Verdict.IGNORE
        assert outcome.cursor == _BASE

    def test_custom_prompt(self):
        # type: () -> None
        verifier = ResponseVerifier(prompt="=>")
        assert verifier.classify("=> md.l 0 4", _BASE, _CHUNK).verdict is Verdict.IGNORE
        assert verifier.classify(DEVICE_PROMPT, _BASE, _CHUNK).verdict is Verdict.MALFORMED


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS: Mismatches
# ═══════════════════════════════════════════════════════════════════════════

class TestMismatch:

    def test_address_mismatch(self):
        # type: () -> None
        line = _replace(_GOOD, 0, "01080010")
        outcome = classify_and_verify(line, _BASE, _CHUNK)
        _report("OUTCOME", outcome.detail)
        assert outcome.verdict is Verdict.MISMATCH
        assert outcome.field == "address"
        assert outcome.expected == _BASE
        assert outcome.actual == 0x1080010
        assert outcome.cursor == _BASE
        assert outcome.dword_index is None

    @pytest.mark.parametrize("index, offset", [(0, 10), (1, 19), (2, 28), (3, 37)])
    def test_dword_mismatch(self, index, offset):
        # type: (int, int) -> None
        line = _replace(_GOOD, offset, "DEADBEEF")
        outcome = classify_and_verify(line, _BASE, _CHUNK)
        assert outcome.verdict is Verdict.MISMATCH
        assert outcome.field == "dword[{}]".format(index)
        assert outcome.dword_index == index
        assert outcome.expected == _WORDS[index]
        assert outcome.actual == 0xDEADBEEF

    def test_unparsable_dword_is_mismatch(self):
        # type: () -> None
        line = _replace(_GOOD, 28, "3333zz33")
        outcome = classify_and_verify(line, _BASE, _CHUNK)
        assert outcome.verdict is Verdict.MISMATCH
        assert outcome.dword_index == 2
        assert outcome.actual is None

    def test_address_only_mode_skips_dwords(self):
        # type: () -> None
        verifier = ResponseVerifier(verify_mode=VerifyMode.ADDRESS_ONLY)
        line = _replace(_GOOD, 19, "DEADBEEF")
        assert verifier.classify(line, _BASE, _CHUNK).verdict is Verdict.VERIFIED
        bad_address = _replace(_GOOD, 0, "00000000")
        assert verifier.classify(bad_address, _BASE, _CHUNK).verdict is Verdict.MISMATCH

    def test_mismatch_exception_carries_context(self):
        # type: () -> None
        line = _replace(_GOOD, 19, "22222223")
        exc = classify_and_verify(line, _BASE, _CHUNK).to_exception("unit")
        assert isinstance(exc, ProtocolMismatch)
        assert str(exc).startswith("[unit] ")
        assert exc.field == "dword[1]"
        assert exc.expected == 0x22222222
        assert exc.actual == 0x22222223
        assert exc.address == _BASE
        assert exc.line == line


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS: Malformed lines
# ═══════════════════════════════════════════════════════════════════════════

class TestMalformed:

    def test_one_short(self):
        # type: () -> None
        outcome = classify_and_verify(_GOOD[:-1], _BASE, _CHUNK)
        assert outcome.verdict is Verdict.MALFORMED
        assert "64" in outcome.detail

    def test_one_long(self):
        # type: () -> None
        outcome = classify_and_verify(_GOOD + ".", _BASE, _CHUNK)
        assert outcome.verdict is Verdict.MALFORMED

    def test_bad_address_field(self):
        # type: () -> None
        line = _replace(_GOOD, 0, "0108x000")
        outcome = classify_and_verify(line, _BASE, _CHUNK)
        assert outcome.verdict is Verdict.MALFORMED
        assert outcome.field == "address"

    def test_random_noise(self):
        # type: () -> None
        for line in ("Unknown command 'mw.x' - try 'help'", "## Error: timeout", "U-Boot 2015.01"):
            assert classify_and_verify(line, _BASE, _CHUNK).verdict is Verdict.MALFORMED

    def test_malformed_exception(self):
        # type: () -> None
        exc = classify_and_verify("garbage", _BASE, _CHUNK).to_exception()
        assert isinstance(exc, ParseError)
        assert exc.line == "garbage"

    def test_non_fatal_has_no_exception(self):
        # type: () -> None
        with pytest.raises(ValueError):
            classify_and_verify("", _BASE, _CHUNK).to_exception()


class TestExpectedChunk:

    @pytest.mark.parametrize("size", [0, 8, 15, 17, 32])
    def test_wrong_chunk_size_is_config_error(self, size):
        # type: (int) -> None
        with pytest.raises(ConfigError) as exc_info:
            classify_and_verify(_GOOD, _BASE, bytes(size))
        _report("CAUGHT", str(exc_info.value))
        assert isinstance(exc_info.value, UBootFlashToolsError)
        assert str(size) in str(exc_info.value)

    def test_checked_before_echo_filtering(self):
        # type: () -> None
        with pytest.raises(ConfigError):
            classify_and_verify("md.l 1080000 4", _BASE, b"short")

    def test_checked_in_address_only_mode(self):
        # type: () -> None
        verifier = ResponseVerifier(verify_mode=VerifyMode.ADDRESS_ONLY)
        with pytest.raises(ConfigError):
            verifier.classify(_GOOD, _BASE, bytes(4))


class TestLineOutcome:

    def test_frozen(self):
        # type: () -> None
        outcome = LineOutcome(Verdict.IGNORE, "", 0)
        with pytest.raises((dataclasses.FrozenInstanceError, AttributeError)):
            outcome.cursor = 5  # type: ignore[misc]
