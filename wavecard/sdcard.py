"""SD card registers and block-level access to a card image."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass
from typing import BinaryIO

BLOCK_SIZE = 512
REGISTER_SIZE = 16

# SD card commands.
CMD0 = 0x00
CMD8 = 0x08
CMD9 = 0x09
CMD10 = 0x0A
CMD13 = 0x0D
CMD17 = 0x11
CMD24 = 0x18
CMD25 = 0x19
CMD32 = 0x20
CMD33 = 0x21
CMD38 = 0x26
CMD55 = 0x37
CMD58 = 0x3A
ACMD23 = 0x17
ACMD41 = 0x29

# Card status and data tokens.
R1_READY_STATE = 0
R1_IDLE_STATE = 1
R1_ILLEGAL_COMMAND = 4
DATA_START_BLOCK = 0xFE
STOP_TRAN_TOKEN = 0xFD
WRITE_MULTIPLE_TOKEN = 0xFC
DATA_RES_MASK = 0x1F
DATA_RES_ACCEPTED = 0x05

# Read timeout in milliseconds.
SD_READ_TIMEOUT = 300

# Card error codes.
SD_CARD_ERROR_CMD0 = 0x1
SD_CARD_ERROR_CMD8 = 0x2
SD_CARD_ERROR_CMD17 = 0x3
SD_CARD_ERROR_CMD24 = 0x4
SD_CARD_ERROR_CMD58 = 0x5
SD_CARD_ERROR_ACMD41 = 0x6
SD_CARD_ERROR_BAD_CSD = 0x7
SD_CARD_ERROR_READ_REG = 0x8
SD_CARD_ERROR_CMD8_ECHO = 0x09
SD_CARD_ERROR_READ_TIMEOUT = 0xD
SD_CARD_ERROR_READ = 0x10


class CardType(enum.IntEnum):
    """Kind of SD card."""

    SD1 = 1
    SD2 = 2
    SDHC = 3


class CardError(Exception):
    """A card operation failed; ``code`` is one of the SD_CARD_ERROR_* values."""

    def __init__(self, code: int, data: int = 0, message: str | None = None) -> None:
        self.code = code
        self.data = data
        super().__init__(message or f"SD card error 0x{code:02X} (data 0x{data:02X})")


def _register(data: bytes, what: str) -> bytes:
    if len(data) < REGISTER_SIZE:
        raise ValueError(f"{what} register needs {REGISTER_SIZE} bytes, got {len(data)}")
    return bytes(data[:REGISTER_SIZE])


@dataclass(frozen=True)
class Cid:
    """Card identification register."""

    mid: int
    oid: str
    pnm: str
    prv_n: int
    prv_m: int
    psn: int
    mdt_year: int
    mdt_month: int
    crc: int

    @classmethod
    def from_bytes(cls, data: bytes) -> Cid:
        """Parse the 16 bytes of a CID register."""
        raw = _register(data, "CID")
        return cls(
            mid=raw[0],
            oid=raw[1:3].decode("ascii", errors="replace"),
            pnm=raw[3:8].decode("ascii", errors="replace"),
            prv_n=raw[8] >> 4,
            prv_m=raw[8] & 0x0F,
            psn=int.from_bytes(raw[9:13], "big"),
            mdt_year=((raw[13] & 0x0F) << 4) | (raw[14] >> 4),
            mdt_month=raw[14] & 0x0F,
            crc=raw[15] >> 1,
        )


def card_size(csd: bytes) -> int:
    """Return the number of 512-byte blocks described by a CSD register."""
    raw = _register(csd, "CSD")
    version = raw[0] >> 6
    if version == 0:
        read_bl_len = raw[5] & 0x0F
        c_size = ((raw[6] & 0x03) << 10) | (raw[7] << 2) | (raw[8] >> 6)
        c_size_mult = ((raw[9] & 0x03) << 1) | (raw[10] >> 7)
        return (c_size + 1) << (c_size_mult + read_bl_len - 7)
    if version == 1:
        c_size = ((raw[7] & 0x3F) << 16) | (raw[8] << 8) | raw[9]
        return (c_size + 1) << 10
    raise CardError(SD_CARD_ERROR_BAD_CSD, message=f"unsupported CSD version {version}")


class BlockDevice:
    """Reads 512-byte blocks, or parts of them, from a card image."""

    def __init__(self, fileobj: BinaryIO) -> None:
        self._file = fileobj
        self._owns_file = False
        self._closed = False
        self._cached_block: int | None = None
        self._cached_data = b""
        self.card_type = CardType.SDHC

    @classmethod
    def open(cls, path: str | os.PathLike[str]) -> BlockDevice:
        """Open an image file; the device closes it when it is closed."""
        device = cls(open(path, "rb"))
        device._owns_file = True
        return device

    def _load(self, block: int) -> bytes:
        if block == self._cached_block:
            return self._cached_data
        if block < 0:
            raise CardError(SD_CARD_ERROR_CMD17, message=f"invalid block {block}")
        self._file.seek(block * BLOCK_SIZE)
        data = self._file.read(BLOCK_SIZE)
        if len(data) != BLOCK_SIZE:
            raise CardError(SD_CARD_ERROR_READ, message=f"block {block} is beyond the end of the card")
        self._cached_block = block
        self._cached_data = data
        return data

    def read_data(self, block: int, offset: int, count: int) -> bytes:
        """Return ``count`` bytes starting at ``offset`` within ``block``."""
        if self._closed:
            raise ValueError("device is closed")
        if count == 0:
            return b""
        if offset < 0 or count < 0 or offset + count > BLOCK_SIZE:
            raise ValueError(f"range {offset}+{count} does not fit in a {BLOCK_SIZE}-byte block")
        return self._load(block)[offset:offset + count]

    def read_block(self, block: int) -> bytes:
        """Return a whole 512-byte block."""
        return self.read_data(block, 0, BLOCK_SIZE)

    def close(self) -> None:
        """Release the device, closing the image file if it was opened here."""
        if self._closed:
            return
        self._closed = True
        self._cached_block = None
        self._cached_data = b""
        if self._owns_file:
            self._file.close()

    def __enter__(self) -> BlockDevice:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()