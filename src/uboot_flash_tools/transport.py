"""Console transports: a pyserial-backed serial line and a dry-run stand-in.

The session and commit code only ever talk to ``ConsoleTransport``:

- ``send_line(command)`` writes one command plus the console terminator.
- ``read_available(timeout_s)`` returns whatever bytes arrive within
  ``timeout_s`` (possibly a partial line, possibly several lines), or
  ``b""`` if the line stayed silent.

Cross-platform: works on both Windows 10 (COMx) and Linux
(/dev/ttyUSB*, /dev/ttyS*, /dev/ttyACM*).

Default line settings: 115200 8N1 with XON/XOFF flow control.
"""

from __future__ import annotations

import abc
import logging
import platform
import time
from typing import List, Optional

import serial
import serial.tools.list_ports
from typeguard import typechecked

from . import (
    LINE_TERMINATOR,
    SERIAL_BAUD_RATE,
    SERIAL_BYTESIZE,
    SERIAL_PARITY,
    SERIAL_POLL_INTERVAL_S,
    SERIAL_READ_TIMEOUT,
    SERIAL_STOPBITS,
    SERIAL_WRITE_TIMEOUT,
    SERIAL_XONXOFF,
)
from .exceptions import TransportError

logger = logging.getLogger("uboot_flash_tools.transport")

_IS_WINDOWS = platform.system() == "Windows"

# Map string parity values to pyserial constants
_PARITY_MAP = {
    "N": serial.PARITY_NONE,
    "E": serial.PARITY_EVEN,
    "O": serial.PARITY_ODD,
    "M": serial.PARITY_MARK,
    "S": serial.PARITY_SPACE,
}

# Map integer stopbits to pyserial constants
_STOPBITS_MAP = {
    1: serial.STOPBITS_ONE,
    2: serial.STOPBITS_TWO,
}

# Map integer bytesize to pyserial constants
_BYTESIZE_MAP = {
    5: serial.FIVEBITS,
    6: serial.SIXBITS,
    7: serial.SEVENBITS,
    8: serial.EIGHTBITS,
}


class ConsoleTransport(abc.ABC):
    """Byte channel to a bootloader console."""

    name = "console"

    @abc.abstractmethod
    def send_line(self, command: str, context: str) -> int:
        """Send ``command`` followed by the line terminator.

        Returns:
            Number of bytes written.
        """

    @abc.abstractmethod
    def read_available(self, timeout_s: float, context: str) -> bytes:
        """Wait up to ``timeout_s`` for data and return what arrived.

        Returns ``b""`` when nothing arrived before the timeout.
        """

    def close(self) -> None:
        """Release the channel.  Safe to call more than once."""

    def __enter__(self) -> ConsoleTransport:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        self.close()


@typechecked
class DryRunTransport(ConsoleTransport):
    """Transport that logs commands instead of sending them.

    Nothing is ever received.  ``sent`` keeps every command in order so
    the traffic of a dry run can be inspected or printed.
    """

    name = "dry-run"

    def __init__(self, terminator: str = LINE_TERMINATOR) -> None:
        self.terminator = terminator
        self.sent: List[str] = []

    def send_line(self, command: str, context: str) -> int:
        self.sent.append(command)
        logger.debug("[DRY-RUN] [%s] %s", context, command)
        return len(command) + len(self.terminator)

    def read_available(self, timeout_s: float, context: str) -> bytes:
        return b""


def _write_all(
    ser: serial.Serial,
    data: bytes,
    port_name: str,
    context: str = "",
) -> int:
    """Write *all* bytes to the serial port and flush the OS transmit buffer.

    Does **not** catch exceptions — lets ``serial.SerialTimeoutException``,
    ``serial.SerialException``, and ``OSError`` propagate to the caller's
    exception handlers.

    Raises:
        TransportError: If a short write is detected (fewer bytes
            written than requested).
    """
    n = ser.write(data)
    if n != len(data):
        raise TransportError(
            f"[{context}] Short write on {port_name}: "
            f"wrote {n}/{len(data)} bytes. "
            f"This usually means write_timeout is 0 (non-blocking) "
            f"and the kernel buffer is full."
        )
    ser.flush()
    return n


@typechecked
class SerialTransport(ConsoleTransport):
    """Serial console transport with automatic resource cleanup.

    Example::

        with SerialTransport("/dev/ttyUSB0") as console:
            console.send_line("md.l 1080000 4", context="peek")
            data = console.read_available(0.5, context="peek")
    """

    name = "serial"

    def __init__(
        self,
        port: str,
        baud_rate: int = SERIAL_BAUD_RATE,
        bytesize: int = SERIAL_BYTESIZE,
        parity: str = SERIAL_PARITY,
        stopbits: int = SERIAL_STOPBITS,
        xonxoff: bool = SERIAL_XONXOFF,
        rtscts: bool = False,
        read_timeout: float = SERIAL_READ_TIMEOUT,
        write_timeout: Optional[float] = SERIAL_WRITE_TIMEOUT,
        poll_interval_s: float = SERIAL_POLL_INTERVAL_S,
        terminator: str = LINE_TERMINATOR,
        encoding: str = "ascii",
    ) -> None:
        """Initialize the serial transport.  The port is not opened yet.

        Args:
            port: Serial port path — e.g. ``/dev/ttyUSB0`` (Linux) or ``COM3`` (Windows).
            baud_rate: Baud rate (default: 115200).
            bytesize: Number of data bits (5, 6, 7, or 8; default: 8).
            parity: ``"N"``, ``"E"``, ``"O"``, ``"M"`` or ``"S"``.  Default: ``"N"``.
            stopbits: Number of stop bits (1 or 2; default: 1).
            xonxoff: Software flow control.  Default: on.
            rtscts: Hardware (RTS/CTS) flow control.  Default: off.
            read_timeout: Driver-level read timeout.  Default: 0 (non-blocking);
                          waiting is done by the poll loop.
            write_timeout: Write timeout in seconds.  ``None`` blocks forever.
            poll_interval_s: Sleep granularity of the poll loop.
            terminator: Appended to every command sent.
            encoding: Used to encode commands.

        Raises:
            TransportError: If any parameter value is invalid.
        """
        self.port = port
        self.baud_rate = baud_rate
        self.xonxoff = xonxoff
        self.rtscts = rtscts
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self.poll_interval_s = poll_interval_s
        self.terminator = terminator
        self.encoding = encoding
        self._serial: Optional[serial.Serial] = None

        if bytesize not in _BYTESIZE_MAP:
            valid = ", ".join(str(k) for k in sorted(_BYTESIZE_MAP))
            raise TransportError(
                f"Invalid bytesize {bytesize!r} for port {port}. Must be one of: {valid}."
            )
        self.bytesize = _BYTESIZE_MAP[bytesize]

        parity_upper = parity.upper()
        if parity_upper not in _PARITY_MAP:
            valid = ", ".join(f'"{k}"' for k in sorted(_PARITY_MAP))
            raise TransportError(
                f"Invalid parity {parity!r} for port {port}. Must be one of: {valid}."
            )
        self.parity = _PARITY_MAP[parity_upper]

        if stopbits not in _STOPBITS_MAP:
            valid = ", ".join(str(k) for k in sorted(_STOPBITS_MAP))
            raise TransportError(
                f"Invalid stopbits {stopbits!r} for port {port}. Must be one of: {valid}."
            )
        self.stopbits = _STOPBITS_MAP[stopbits]

        if baud_rate <= 0:
            raise TransportError(
                f"Invalid baud rate {baud_rate!r} for port {port}. "
                f"Baud rate must be a positive integer. "
                f"Common values: 9600, 19200, 38400, 57600, 115200."
            )

        if poll_interval_s <= 0:
            raise TransportError(
                f"Invalid poll interval {poll_interval_s!r} for port {port}. "
                f"Must be a positive number of seconds."
            )

        logger.info(
            "[SERIAL-INIT] Configured %s — %d %d%s%s (flow=%s, poll=%.3fs)",
            port, baud_rate, bytesize, parity_upper, stopbits,
            "XON/XOFF" if xonxoff else ("RTS/CTS" if rtscts else "none"),
            poll_interval_s,
        )

    def open(self, context: str) -> None:
        """Open the serial port.

        Raises:
            TransportError: If the port cannot be opened.  The message
                includes the OS-level reason and platform-specific hints.
        """
        if self._serial is not None and self._serial.is_open:
            logger.debug("[SERIAL-OPEN] [%s] Port %s is already open — skipping", context, self.port)
            return

        logger.info("[SERIAL-OPEN] [%s] Opening %s at %d baud ...", context, self.port, self.baud_rate)

        try:
            self._serial = serial.Serial(
                port=self.port,
                baudrate=self.baud_rate,
                bytesize=self.bytesize,
                parity=self.parity,
                stopbits=self.stopbits,
                timeout=self.read_timeout,
                write_timeout=self.write_timeout,
                xonxoff=self.xonxoff,
                rtscts=self.rtscts,
            )
            logger.info("[SERIAL-OPEN] [%s] Successfully opened %s", context, self.port)
        except (serial.SerialException, OSError) as exc:
            msg = (
                f"[{context}] Failed to open serial port {self.port} at {self.baud_rate} baud: {exc}. "
                f"{self._platform_hint()}"
            )
            logger.error("[SERIAL-OPEN] FAILED — %s", msg)
            raise TransportError(msg) from exc

    def is_open(self) -> bool:
        """Check whether the serial port is currently open."""
        return self._serial is not None and self._serial.is_open

    def close(self) -> None:
        """Discard pending I/O and close the port if open."""
        was_open = self.is_open()

        if self._serial is not None:
            try:
                if was_open:
                    self._serial.reset_input_buffer()
                    self._serial.reset_output_buffer()
                self._serial.close()
            except (serial.SerialException, OSError) as exc:
                logger.warning("[SERIAL-CLOSE] Error closing port %s: %s", self.port, exc)
            finally:
                self._serial = None

        if was_open:
            logger.info("[SERIAL-CLOSE] Closed %s", self.port)

    def get_serial(self) -> serial.Serial:
        """Return the underlying ``serial.Serial`` object.

        Raises:
            TransportError: If the port is not open.
        """
        if self._serial is None or not self._serial.is_open:
            raise TransportError(
                f"Cannot access serial port {self.port}: port is not open. "
                f"Call open() or use the context manager first."
            )
        return self._serial

    def __enter__(self) -> SerialTransport:
        """Context manager entry — opens the serial port."""
        self.open(context=f"Opening {self.port}")
        return self

    # ---- I/O ----

    def send_line(self, command: str, context: str) -> int:
        ser = self.get_serial()
        data = (command + self.terminator).encode(self.encoding)
        try:
            n = _write_all(ser, data, self.port, context=context)
        except (serial.SerialException, OSError) as exc:
            msg = (
                f"[{context}] Failed to write {command!r} to serial port {self.port}: {exc}. "
                f"The device may have been disconnected."
            )
            logger.error("[SERIAL-WRITE] ERROR — %s", msg)
            raise TransportError(msg) from exc
        logger.debug("[SERIAL-WRITE] [%s] %r (%d bytes)", context, command, n)
        return n

    def read_available(self, timeout_s: float, context: str) -> bytes:
        """Poll ``in_waiting`` until data shows up or ``timeout_s`` passes.

        Everything waiting at the moment data is first seen is returned,
        so one call may hold several lines or a fraction of one.
        """
        ser = self.get_serial()
        deadline = time.monotonic() + timeout_s
        try:
            while True:
                waiting = ser.in_waiting
                if waiting > 0:
                    data = ser.read(waiting)
                    if data:
                        logger.debug(
                            "[SERIAL-POLL] [%s] +%d bytes from %s", context, len(data), self.port,
                        )
                        return bytes(data)
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return b""
                time.sleep(min(self.poll_interval_s, remaining))
        except (serial.SerialException, OSError) as exc:
            msg = (
                f"[{context}] Serial read error on {self.port}: {exc}. "
                f"The device may have been disconnected during the read."
            )
            logger.error("[SERIAL-POLL] ERROR — %s", msg)
            raise TransportError(msg) from exc

    # ---- Helpers ----

    @staticmethod
    def list_available_ports() -> List[str]:
        """Return a list of serial port names visible to the operating system."""
        descriptions = []
        for p in serial.tools.list_ports.comports():
            descriptions.append(f"{p.device} — {p.description}")
            logger.debug("[SERIAL-LIST] Found port: %s (%s)", p.device, p.description)
        return descriptions

    def _platform_hint(self) -> str:
        """Return a platform-specific troubleshooting hint."""
        if _IS_WINDOWS:
            return (
                "On Windows: verify the COM port number in Device Manager "
                "(Ports → COM & LPT) and that no terminal program has it open."
            )
        return (
            "On Linux: verify the device path exists (ls /dev/ttyUSB* /dev/ttyACM* "
            "/dev/ttyS*), that your user is in the 'dialout' group, and that "
            "no other process (minicom, screen, picocom) holds the port."
        )
