"""Read-only access to FAT16 and FAT32 volumes and the files on them."""

from __future__ import annotations

import enum
import sys
from typing import Iterator, Protocol, TextIO

from wavecard.fatstructs import (
    DIR_ENTRY_SIZE,
    DIR_NAME_DELETED,
    DIR_NAME_FREE,
    FAT16EOC_MIN,
    FAT32EOC_MIN,
    BiosParameterBlock,
    DirEntry,
    PartitionEntry,
)
from wavecard.sdcard import BLOCK_SIZE, CardError

# Offset of the BIOS parameter block in a FAT boot sector.
BPB_OFFSET = 11
# Number of BPB bytes read when a volume is mounted.
BPB_COUNT = 37
# Offset of the partition table in an MBR.
PART_OFFSET = 512 - 64 - 2

_FILE_IS_CONTIGUOUS = 0x08
_FILE_TYPE_MASK = 0x07
_UINT32 = 0xFFFFFFFF


class FatError(Exception):
    """The volume or file cannot be read as requested."""


class LsFlag(enum.IntFlag):
    """Options for :meth:`FatReader.ls`."""

    NONE = 0
    FRAGMENTED = 1
    SIZE = 2
    R = 4


class FileType(enum.IntEnum):
    """What an open :class:`FatReader` refers to."""

    CLOSED = 0
    NORMAL = 1
    ROOT16 = 2
    ROOT32 = 3
    SUBDIR = 4


class _Device(Protocol):
    def read_data(self, block: int, offset: int, count: int) -> bytes: ...


class FatVolume:
    """A FAT volume on a block device."""

    def __init__(self, device: _Device, part: int = 0) -> None:
        """Mount partition ``part`` (1-4), or a super floppy volume when ``part`` is 0."""
        if not 0 <= part <= 4:
            raise FatError(f"invalid partition number {part}")
        self.device = device
        volume_start = 0
        if part:
            entry = PartitionEntry.from_bytes(
                self.raw_read(0, PART_OFFSET + 16 * (part - 1), 16))
            if (entry.boot & 0x7F) != 0 or entry.total_sectors < 100 or entry.first_sector == 0:
                raise FatError(f"partition {part} is not a valid partition")
            volume_start = entry.first_sector
        bpb = BiosParameterBlock.from_bytes(self.raw_read(volume_start, BPB_OFFSET, BPB_COUNT))
        spc = bpb.sectors_per_cluster
        if (bpb.bytes_per_sector != 512 or bpb.fat_count == 0
                or bpb.reserved_sector_count == 0 or spc == 0 or spc & (spc - 1)):
            raise FatError("not a valid FAT volume")
        self.volume_start_block = volume_start
        self.fat_count = bpb.fat_count
        self.blocks_per_cluster = spc
        self.blocks_per_fat = bpb.sectors_per_fat16 or bpb.sectors_per_fat32
        self.root_dir_entry_count = bpb.root_dir_entry_count
        self.fat_start_block = volume_start + bpb.reserved_sector_count
        self.root_dir_start = self.fat_start_block + bpb.fat_count * self.blocks_per_fat
        self.data_start_block = self.root_dir_start + (32 * bpb.root_dir_entry_count + 511) // 512
        self.total_blocks = bpb.total_sectors16 or bpb.total_sectors32
        self.cluster_count = (
            (self.total_blocks - (self.data_start_block - volume_start)) & _UINT32) // spc
        if self.cluster_count < 4085:
            self.fat_type = 12
        elif self.cluster_count < 65525:
            self.fat_type = 16
        else:
            self.root_dir_start = bpb.fat32_root_cluster
            self.fat_type = 32

    @classmethod
    def mount(cls, device: _Device) -> FatVolume:
        """Mount partition one, falling back to a super floppy volume."""
        try:
            return cls(device, 1)
        except (FatError, CardError):
            return cls(device, 0)

    def raw_read(self, block: int, offset: int, count: int) -> bytes:
        """Read ``count`` bytes at ``offset`` within ``block`` of the device."""
        return self.device.read_data(block, offset, count)

    def valid_cluster(self, cluster: int) -> bool:
        return 1 < cluster < self.cluster_count + 2

    def is_eoc(self, cluster: int) -> bool:
        """True if ``cluster`` is an end-of-chain marker."""
        return cluster >= (FAT16EOC_MIN if self.fat_type == 16 else FAT32EOC_MIN)

    def next_cluster(self, cluster: int) -> int:
        """The FAT entry for ``cluster``, or 0 if there is none."""
        if not self.valid_cluster(cluster):
            return 0
        if self.fat_type == 32:
            block = self.fat_start_block + (cluster >> 7)
            offset = 0x1FF & (cluster << 2)
            return int.from_bytes(self.raw_read(block, offset, 4), "little")
        if self.fat_type == 16:
            block = self.fat_start_block + (cluster >> 8)
            offset = 0x1FF & (cluster << 1)
            return int.from_bytes(self.raw_read(block, offset, 2), "little")
        return 0

    def chain_is_contiguous(self, cluster: int) -> bool:
        """True if the chain starting at ``cluster`` is one run ending in an EOC mark."""
        while nxt := self.next_cluster(cluster):
            if nxt != cluster + 1:
                return self.is_eoc(nxt)
            cluster = nxt
        return False

    def chain_size(self, cluster: int) -> int:
        """Number of bytes in the cluster chain starting at ``cluster``."""
        size = 0
        while cluster := self.next_cluster(cluster):
            size += BLOCK_SIZE * self.blocks_per_cluster
        return size


class FatReader:
    """A read-only file or directory on a FAT16 or FAT32 volume."""

    def __init__(self) -> None:
        self._type = FileType.CLOSED.value
        self.file_size = 0
        self.read_cluster = 0
        self.read_position = 0
        self.first_cluster = 0
        self.volume: FatVolume | None = None

    def _setup(self, volume: FatVolume, ftype: FileType, first_cluster: int, size: int) -> None:
        self._type = ftype.value
        self.first_cluster = first_cluster
        self.file_size = size
        self.volume = volume
        self.rewind()

    @classmethod
    def open_root(cls, volume: FatVolume) -> FatReader:
        """Open the root directory of ``volume``."""
        reader = cls()
        if volume.fat_type == 16:
            reader._setup(volume, FileType.ROOT16, 0, 32 * volume.root_dir_entry_count)
        elif volume.fat_type == 32:
            first = volume.root_dir_start
            reader._setup(volume, FileType.ROOT32, first, volume.chain_size(first))
        else:
            raise FatError(f"FAT{volume.fat_type} volumes are not supported")
        return reader

    @classmethod
    def open_entry(cls, volume: FatVolume, entry: DirEntry) -> FatReader:
        """Open the file or subdirectory described by ``entry``."""
        if volume.fat_type < 16:
            raise FatError(f"FAT{volume.fat_type} volumes are not supported")
        if entry.name[0] in (0, DIR_NAME_DELETED):
            raise FatError("directory entry is free or deleted")
        reader = cls()
        first = entry.first_cluster()
        if entry.is_file():
            reader._setup(volume, FileType.NORMAL, first, entry.file_size)
        elif entry.is_subdir():
            reader._setup(volume, FileType.SUBDIR, first, volume.chain_size(first))
        else:
            raise FatError("directory entry is neither a file nor a subdirectory")
        return reader

    @classmethod
    def open_name(cls, directory: FatReader, name: str) -> FatReader:
        """Open the entry of ``directory`` whose 8.3 name matches ``name``, ignoring case."""
        wanted = name.lower()
        directory.rewind()
        while (entry := directory.read_dir()) is not None:
            if entry.short_name().lower() == wanted:
                return cls.open_entry(directory._volume(), entry)
        raise FatError(f"{name!r} not found")

    @classmethod
    def open_index(cls, directory: FatReader, index: int) -> FatReader:
        """Open the entry at byte offset ``32 * index`` of ``directory``."""
        directory.seek_set(DIR_ENTRY_SIZE * index)
        data = directory.read(DIR_ENTRY_SIZE)
        if len(data) != DIR_ENTRY_SIZE:
            raise FatError(f"no directory entry at index {index}")
        entry = DirEntry.from_bytes(data)
        if (not entry.is_file_or_subdir()
                or entry.name[0] in (DIR_NAME_FREE, DIR_NAME_DELETED)):
            raise FatError(f"entry {index} is not a file or subdirectory")
        return cls.open_entry(directory._volume(), entry)

    def _volume(self) -> FatVolume:
        if not self.is_open() or self.volume is None:
            raise FatError("file is not open")
        return self.volume

    @property
    def file_type(self) -> FileType:
        return FileType(self._type & _FILE_TYPE_MASK)

    def optimize_contiguous(self) -> None:
        """Mark the file contiguous if its cluster chain is one run."""
        if self.is_open() and self.first_cluster:
            if self._volume().chain_is_contiguous(self.first_cluster):
                self._type |= _FILE_IS_CONTIGUOUS

    def _read_block_data(self, count: int) -> bytes:
        volume = self._volume()
        offset = self.read_position & 0x1FF
        count = min(count, BLOCK_SIZE - offset, self.file_size - self.read_position)
        if count <= 0:
            return b""
        if self.file_type == FileType.ROOT16:
            block = volume.root_dir_start + (self.read_position >> 9)
        else:
            bpc = volume.blocks_per_cluster
            block = (volume.data_start_block + (self.read_cluster - 2) * bpc
                     + ((self.read_position >> 9) & (bpc - 1)))
        return volume.raw_read(block, offset, count)

    def read(self, count: int) -> bytes:
        """Read up to ``count`` bytes from the current position."""
        if count < 0:
            raise ValueError("count must not be negative")
        self._volume()
        chunks = []
        remaining = count
        while remaining > 0:
            data = self._read_block_data(remaining)
            if not data:
                break
            self.seek_cur(len(data))
            chunks.append(data)
            remaining -= len(data)
        return b"".join(chunks)

    def read_dir(self) -> DirEntry | None:
        """Return the next file or subdirectory entry, or None at the end."""
        if not self.is_dir():
            raise FatError("not a directory")
        while len(data := self.read(DIR_ENTRY_SIZE)) == DIR_ENTRY_SIZE:
            entry = DirEntry.from_bytes(data)
            first = entry.name[0]
            if first == DIR_NAME_FREE:
                return None
            if first == DIR_NAME_DELETED or first == ord("."):
                continue
            if entry.is_file() or entry.is_subdir():
                return entry
        return None

    def __iter__(self) -> Iterator[DirEntry]:
        """Yield every file and subdirectory entry, starting from the beginning."""
        self.rewind()
        while (entry := self.read_dir()) is not None:
            yield entry

    def rewind(self) -> None:
        """Set the read position to the start of the file."""
        self.read_cluster = self.first_cluster
        self.read_position = 0

    def seek_cur(self, offset: int) -> None:
        """Advance the read position by ``offset`` bytes."""
        volume = self._volume()
        new_pos = self.read_position + offset
        if offset < 0 or new_pos > self.file_size:
            raise FatError(f"cannot seek to {new_pos}: file has {self.file_size} bytes")
        bpc = volume.blocks_per_cluster
        clusters = (new_pos >> 9) // bpc - (self.read_position >> 9) // bpc
        self.read_position = new_pos
        if self.file_type == FileType.ROOT16:
            return
        if self.is_contiguous():
            self.read_cluster += clusters
            return
        for _ in range(clusters):
            self.read_cluster = volume.next_cluster(self.read_cluster)
            if not self.read_cluster:
                raise FatError("broken cluster chain")

    def seek_set(self, pos: int) -> None:
        """Set the read position to ``pos`` bytes from the start."""
        if pos >= self.read_position:
            self.seek_cur(pos - self.read_position)
        else:
            self.rewind()
            self.seek_cur(pos)

    def close(self) -> None:
        self._type = FileType.CLOSED.value

    def is_dir(self) -> bool:
        return self.file_type >= FileType.ROOT16

    def is_file(self) -> bool:
        return self.file_type == FileType.NORMAL

    def is_open(self) -> bool:
        return self.file_type != FileType.CLOSED

    def is_contiguous(self) -> bool:
        return bool(self._type & _FILE_IS_CONTIGUOUS)

    def ls(self, flags: int = LsFlag.NONE, file: TextIO | None = None) -> None:
        """List the directory's entries, one per line."""
        if self.is_dir():
            self._ls(LsFlag(flags), 0, file if file is not None else sys.stdout)

    def _ls(self, flags: LsFlag, indent: int, out: TextIO) -> None:
        volume = self._volume()
        while (entry := self.read_dir()) is not None:
            out.write(" " * indent + entry.display_name())
            if entry.is_subdir():
                out.write("\n")
                if flags & LsFlag.R:
                    try:
                        sub = FatReader.open_entry(volume, entry)
                    except FatError:
                        continue
                    sub._ls(flags, indent + 2, out)
                continue
            if flags & LsFlag.FRAGMENTED:
                cluster = entry.first_cluster()
                fragmented = cluster and not volume.chain_is_contiguous(cluster)
                out.write(" " + ("*" if fragmented else " "))
            if flags & LsFlag.SIZE:
                out.write(f" {entry.file_size}")
            out.write("\n")