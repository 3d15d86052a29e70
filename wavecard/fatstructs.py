"""On-disk FAT structures: partition entries, BIOS parameter blocks and directory entries."""

from __future__ import annotations

import struct
from dataclasses import dataclass

# Boot block / MBR signature bytes (offsets 510 and 511).
BOOTSIG0 = 0x55
BOOTSIG1 = 0xAA

# End-of-chain values for FAT entries.
FAT16EOC_MIN = 0xFFF8
FAT32EOC_MIN = 0x0FFFFFF8
FAT16EOC = 0xFFFF
FAT32EOC = 0x0FFFFFFF
FAT32MASK = 0x0FFFFFFF

# Special values of the first name byte.
DIR_NAME_0XE5 = 0x05
DIR_NAME_DELETED = 0xE5
DIR_NAME_FREE = 0x00

# Directory entry attribute bits.
DIR_ATT_READ_ONLY = 0x01
DIR_ATT_HIDDEN = 0x02
DIR_ATT_SYSTEM = 0x04
DIR_ATT_VOLUME_ID = 0x08
DIR_ATT_DIRECTORY = 0x10
DIR_ATT_ARCHIVE = 0x20
DIR_ATT_LONG_NAME = 0x0F
DIR_ATT_LONG_NAME_MASK = 0x3F
DIR_ATT_DEFINED_BITS = 0x3F
DIR_ATT_FILE_TYPE_MASK = DIR_ATT_VOLUME_ID | DIR_ATT_DIRECTORY

_PARTITION = struct.Struct("<BBBBBBBBII")
_BPB_CORE = struct.Struct("<HBHBHHBHHHIIIHHI")
_BPB_TAIL = struct.Struct("<HH")
_DIR_ENTRY = struct.Struct("<11sBBBHHHHHHHI")

PARTITION_ENTRY_SIZE = _PARTITION.size
BPB_MIN_SIZE = _BPB_CORE.size
DIR_ENTRY_SIZE = _DIR_ENTRY.size


def _require(data: bytes, size: int, what: str) -> bytes:
    if len(data) < size:
        raise ValueError(f"{what} needs {size} bytes, got {len(data)}")
    return bytes(data[:size])


@dataclass(frozen=True)
class PartitionEntry:
    """One of the four entries in an MBR partition table."""

    boot: int
    begin_head: int
    begin_sector: int
    begin_cylinder_high: int
    begin_cylinder_low: int
    type: int
    end_head: int
    end_sector: int
    end_cylinder_high: int
    end_cylinder_low: int
    first_sector: int
    total_sectors: int

    @classmethod
    def from_bytes(cls, data: bytes) -> PartitionEntry:
        """Parse a 16-byte partition table entry."""
        (boot, begin_head, begin_bits, begin_cyl_low, ptype, end_head,
         end_bits, end_cyl_low, first_sector, total_sectors) = _PARTITION.unpack(
            _require(data, _PARTITION.size, "partition entry"))
        return cls(
            boot=boot,
            begin_head=begin_head,
            begin_sector=begin_bits & 0x3F,
            begin_cylinder_high=begin_bits >> 6,
            begin_cylinder_low=begin_cyl_low,
            type=ptype,
            end_head=end_head,
            end_sector=end_bits & 0x3F,
            end_cylinder_high=end_bits >> 6,
            end_cylinder_low=end_cyl_low,
            first_sector=first_sector,
            total_sectors=total_sectors,
        )


@dataclass(frozen=True)
class BiosParameterBlock:
    """The BIOS parameter block describing the layout of a FAT volume."""

    bytes_per_sector: int
    sectors_per_cluster: int
    reserved_sector_count: int
    fat_count: int
    root_dir_entry_count: int
    total_sectors16: int
    media_type: int
    sectors_per_fat16: int
    sectors_per_track: int
    head_count: int
    hidden_sectors: int
    total_sectors32: int
    sectors_per_fat32: int
    fat32_flags: int
    fat32_version: int
    fat32_root_cluster: int
    fat32_fs_info: int = 0
    fat32_back_boot_block: int = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> BiosParameterBlock:
        """Parse a BPB starting at byte 11 of a boot sector.

        At least 37 bytes are needed; the FSInfo and backup boot sector
        fields are read when present.
        """
        core = _BPB_CORE.unpack(_require(data, _BPB_CORE.size, "BIOS parameter block"))
        tail_end = _BPB_CORE.size + _BPB_TAIL.size
        if len(data) >= tail_end:
            tail = _BPB_TAIL.unpack(bytes(data[_BPB_CORE.size:tail_end]))
        else:
            tail = (0, 0)
        return cls(*core, *tail)


@dataclass(frozen=True)
class DirEntry:
    """A 32-byte FAT short (8.3) directory entry."""

    name: bytes
    attributes: int = 0
    reserved_nt: int = 0
    creation_time_tenths: int = 0
    creation_time: int = 0
    creation_date: int = 0
    last_access_date: int = 0
    first_cluster_high: int = 0
    last_write_time: int = 0
    last_write_date: int = 0
    first_cluster_low: int = 0
    file_size: int = 0

    def __post_init__(self) -> None:
        if len(self.name) != 11:
            raise ValueError(f"directory entry name must be 11 bytes, got {len(self.name)}")

    @classmethod
    def from_bytes(cls, data: bytes) -> DirEntry:
        """Parse a 32-byte directory entry."""
        return cls(*_DIR_ENTRY.unpack(_require(data, _DIR_ENTRY.size, "directory entry")))

    def to_bytes(self) -> bytes:
        """Encode this entry as its 32-byte on-disk form."""
        return _DIR_ENTRY.pack(
            bytes(self.name), self.attributes, self.reserved_nt,
            self.creation_time_tenths, self.creation_time, self.creation_date,
            self.last_access_date, self.first_cluster_high, self.last_write_time,
            self.last_write_date, self.first_cluster_low, self.file_size,
        )

    def first_cluster(self) -> int:
        """The first cluster number, combining the high and low words."""
        return (self.first_cluster_high << 16) | self.first_cluster_low

    def is_file(self) -> bool:
        return self.attributes & DIR_ATT_FILE_TYPE_MASK == 0

    def is_subdir(self) -> bool:
        return self.attributes & DIR_ATT_FILE_TYPE_MASK == DIR_ATT_DIRECTORY

    def is_file_or_subdir(self) -> bool:
        return self.attributes & DIR_ATT_VOLUME_ID == 0

    def is_long_name(self) -> bool:
        return self.attributes & DIR_ATT_LONG_NAME_MASK == DIR_ATT_LONG_NAME

    def short_name(self) -> str:
        """The name in 8.3 form, blanks removed and a dot before the extension."""
        parts = []
        for i, byte in enumerate(self.name):
            if byte == 0x20:
                continue
            if i == 8:
                parts.append(".")
            parts.append(chr(byte))
        return "".join(parts)

    def display_name(self) -> str:
        """The 8.3 name, followed by '/' for a subdirectory."""
        name = self.short_name()
        return name + "/" if self.is_subdir() else name