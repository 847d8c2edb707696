# chonkpu/loader.py
import logging
import struct
from pathlib import Path

from .cpu import ROM_SIZE

log = logging.getLogger(__name__)


class RomFormatError(ValueError):
    pass


def load_rom(data: bytes) -> list[int]:
    """Big-endian 16-bit words; short images are padded with zero words."""
    if len(data) % 2:
        raise RomFormatError(f"rom image has odd length ({len(data)} bytes)")
    count = len(data) // 2
    if count > ROM_SIZE:
        raise RomFormatError(f"rom image holds {count} words, at most {ROM_SIZE} fit")
    words = list(struct.unpack(f">{count}H", data))
    if count < ROM_SIZE:
        log.info("padding rom image from %d to %d words", count, ROM_SIZE)
    return words + [0] * (ROM_SIZE - count)


def read_rom(path) -> list[int]:
    return load_rom(Path(path).read_bytes())


def dump_rom(words) -> bytes:
    words = [w & 0xFFFF for w in words]
    return struct.pack(f">{len(words)}H", *words)
