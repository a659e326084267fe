"""
U-Boot Flash Tools - load a firmware image through a bootloader console

This package drives the interactive U-Boot console of an embedded device
over a serial line.  It provides:

- **Write-verify loading** of a flat image into RAM, 16 bytes at a time,
  with every write read back through ``md.l`` and checked
- **Commit** of the verified RAM image to a NAND partition
  (erase, write, optional reboot)
- **Dry-run mode** that prints the exact console traffic without a device

Only the console protocol lives here.  Nothing is written to NAND until
the whole image has been verified in RAM.
"""

import logging
import os

logging.getLogger("uboot_flash_tools").addHandler(logging.NullHandler())

__version__ = "0.1.0"

# RAM load address of the image on the target.
# Override via UBOOT_FLASH_BASE_ADDRESS (decimal or 0x-prefixed hex).
FLASH_BASE_ADDRESS = int(os.environ.get("UBOOT_FLASH_BASE_ADDRESS", "0x1080000"), 0)

# Image geometry
IMAGE_BLOCK_SIZE = 2048   # image length must be a multiple of the NAND block
CHUNK_SIZE = 16           # bytes written and verified per cycle
QUAD_SIZE = 8             # bytes per mw.q write
DWORD_SIZE = 4
DUMP_WORD_COUNT = 4       # dwords requested per md.l

# md.l record layout: "01080000: 11111111 22222222 33333333 44444444    ................"
HEX_FIELD_WIDTH = 8
RECORD_LENGTH = 65
DWORD_OFFSETS = (10, 19, 28, 37)

# Console text
DEVICE_PROMPT = os.environ.get("UBOOT_FLASH_PROMPT", "axg_s420_v1_gva#")
SYSTEM_PARTITION = "system"
LINE_TERMINATOR = "\r"

# Verify loop: wait VERIFY_POLL_TIMEOUT_S per attempt, give up after
# VERIFY_RETRIES silent attempts in a row.
VERIFY_POLL_TIMEOUT_S = 0.01
VERIFY_RETRIES = 10

# Settle wait for long-running NAND commands.
SETTLE_POLL_TIMEOUT_S = 1.0
SETTLE_RETRIES = 10

# Serial communication settings
SERIAL_BAUD_RATE = 115200
SERIAL_BYTESIZE = 8       # 8 data bits
SERIAL_PARITY = "N"       # No parity
SERIAL_STOPBITS = 1       # 1 stop bit
SERIAL_XONXOFF = True     # U-Boot consoles honour XON/XOFF while busy
SERIAL_READ_TIMEOUT = 0   # seconds; non-blocking, the poll loop owns timing
SERIAL_WRITE_TIMEOUT = 10  # seconds; bounded blocking write
SERIAL_POLL_INTERVAL_S = 0.002

# Default serial device path.
# On Windows this is a COM port (COM3, COM4, …).
# On Linux this is a /dev/ttyS*, /dev/ttyUSB*, or /dev/ttyACM* path.
DEFAULT_SERIAL_PORT = os.environ.get("UBOOT_FLASH_SERIAL_PORT", "/dev/ttyUSB0")
