"""Type definitions for U-Boot Flash Tools."""

from typing import Callable, Tuple

# Image data
Dwords = Tuple[int, int, int, int]  # chunk read as four 32-bit words

# Console callbacks
CommandHook = Callable[[str], None]  # receives every command before it is sent
