"""Firmware image loading and chunking."""

from __future__ import annotations

import logging
import os
from typing import Iterator, Tuple

from typeguard import typechecked

from . import CHUNK_SIZE, IMAGE_BLOCK_SIZE
from .exceptions import ConfigError

logger = logging.getLogger("uboot_flash_tools.image")


@typechecked
def validate_image(image: bytes, block_size: int = IMAGE_BLOCK_SIZE) -> None:
    """Reject images that are empty or not a whole number of NAND blocks.

    Raises:
        ConfigError: If the image length is not a positive multiple of
            ``block_size``.
    """
    if len(image) == 0:
        raise ConfigError("Image is empty")
    if len(image) % block_size != 0:
        raise ConfigError(
            f"Invalid image size {len(image)} bytes: must be a multiple of "
            f"{block_size} (short by {block_size - len(image) % block_size} bytes)"
        )


@typechecked
def load_image(path: str, block_size: int = IMAGE_BLOCK_SIZE) -> bytes:
    """Read an image file and validate its size.

    Raises:
        ConfigError: If the file is missing, unreadable or has an invalid size.
    """
    if not os.path.isfile(path):
        raise ConfigError(f"Image file does not exist: {path}")
    try:
        with open(path, "rb") as f:
            image = f.read()
    except OSError as exc:
        raise ConfigError(f"Cannot read image file {path}: {exc}") from exc

    validate_image(image, block_size)
    logger.info("[IMAGE] Loaded %s — %d bytes (%d blocks)", path, len(image), len(image) // block_size)
    return image


def iter_chunks(image: bytes, chunk_size: int = CHUNK_SIZE) -> Iterator[Tuple[int, bytes]]:
    """Yield ``(offset, chunk)`` pairs covering the image in order."""
    for offset in range(0, len(image), chunk_size):
        yield offset, image[offset:offset + chunk_size]
