"""WAVE file reading for playback from a FAT volume."""

from __future__ import annotations

import struct
import warnings
from typing import Iterator

from wavecard.fatreader import FatError, FatReader

# Size of one play buffer; reads are aligned to it.
PLAYBUFFLEN = 512
# Highest sustained read rate, in bytes per second, for a contiguous file.
MAX_BYTE_RATE = 88200
# Highest DAC clock rate, in samples per second.
MAX_CLOCK_RATE = 44100
# Highest read rate a fragmented file can sustain.
FRAGMENTED_BYTE_RATE = 44100
# Limits applied by clamp_sample_rate().
MIN_SAMPLE_RATE = 500
MAX_SAMPLE_RATE = 50000

_RIFF = struct.Struct("<4sI4s")
_CHUNK = struct.Struct("<4sI")
_FMT = struct.Struct("<HHIIHH")


class WaveError(Exception):
    """The file is not a WAVE file that can be played."""


class WaveFile:
    """An uncompressed mono or stereo WAVE file, positioned at its sample data."""

    def __init__(self, reader: FatReader) -> None:
        """Read the header of the open file ``reader`` and find its data chunk."""
        self.reader = reader
        reader.optimize_contiguous()

        head = reader.read(_RIFF.size)
        if len(head) != _RIFF.size:
            raise WaveError("not a WAVE file")
        riff_id, _, wave_id = _RIFF.unpack(head)
        if riff_id != b"RIFF" or wave_id != b"WAVE":
            raise WaveError("not a WAVE file")

        chunk = reader.read(_CHUNK.size)
        if len(chunk) != _CHUNK.size:
            raise WaveError("missing fmt chunk")
        chunk_id, size = _CHUNK.unpack(chunk)
        if chunk_id != b"fmt ":
            raise WaveError("missing fmt chunk")

        if size not in (16, 18):
            raise WaveError("Compression not supported")
        fmt = reader.read(size)
        if len(fmt) != size:
            raise WaveError("truncated fmt chunk")
        compress, channels, sample_rate, _, _, bits = _FMT.unpack(fmt[:_FMT.size])
        extra = int.from_bytes(fmt[16:18], "little") if size == 18 else 0
        if compress != 1 or extra != 0:
            raise WaveError("Compression not supported")

        if channels > 2:
            raise WaveError("Not mono/stereo!")
        if channels > 1:
            warnings.warn("stereo file is played as interleaved mono", stacklevel=2)
        if bits > 16:
            raise WaveError("More than 16 bits per sample!")

        clock_rate = sample_rate * channels
        byte_rate = clock_rate * bits // 8
        if clock_rate > MAX_CLOCK_RATE or byte_rate > MAX_BYTE_RATE:
            raise WaveError("Sample rate too high!")
        if byte_rate > FRAGMENTED_BYTE_RATE and not reader.is_contiguous():
            raise WaveError("High rate fragmented file!")

        self.channels = channels
        self.sample_rate = sample_rate
        self.bits_per_sample = bits
        self.errors = 0
        self.remaining_bytes_in_chunk = 0
        if not self._find_data_chunk():
            raise WaveError("no data chunk")

    def _find_data_chunk(self) -> bool:
        """Skip chunks until a data chunk; False if none is left."""
        while True:
            header = self.reader.read(_CHUNK.size)
            if len(header) != _CHUNK.size:
                return False
            chunk_id, size = _CHUNK.unpack(header)
            if chunk_id == b"data":
                self.remaining_bytes_in_chunk = size
                return True
            try:
                self.reader.seek_cur(size)
            except FatError:
                return False

    def read_wave_data(self, length: int) -> bytes:
        """Read up to ``length`` sample bytes, never crossing a buffer boundary.

        Returns an empty result when no sample data is left.
        """
        if self.remaining_bytes_in_chunk == 0 and not self._find_data_chunk():
            return b""
        max_len = PLAYBUFFLEN - self.reader.read_position % PLAYBUFFLEN
        data = self.reader.read(min(length, max_len, self.remaining_bytes_in_chunk))
        self.remaining_bytes_in_chunk -= len(data)
        return data

    def chunks(self) -> Iterator[bytes]:
        """Yield the remaining sample data one play buffer at a time."""
        while data := self.read_wave_data(PLAYBUFFLEN):
            yield data

    def seek(self, pos: int) -> None:
        """Move near byte ``pos`` of the file, on a buffer boundary past the header."""
        pos -= pos % PLAYBUFFLEN
        pos = max(pos, PLAYBUFFLEN)
        max_pos = min(self.reader.read_position + self.remaining_bytes_in_chunk,
                      self.reader.file_size)
        pos = min(pos, max_pos)
        try:
            self.reader.seek_set(pos)
        except FatError:
            return
        self.remaining_bytes_in_chunk = max_pos - pos

    def size(self) -> int:
        """Size of the whole file in bytes."""
        return self.reader.file_size


def dac_code(frame: bytes, bits_per_sample: int) -> int:
    """The 12-bit DAC value for one sample frame.

    16-bit samples are signed little-endian; 8-bit samples are unsigned.
    """
    if bits_per_sample == 16:
        if len(frame) < 2:
            raise ValueError("a 16-bit sample needs 2 bytes")
        high = 0x80 ^ frame[1]
        low = frame[0]
    else:
        if len(frame) < 1:
            raise ValueError("an 8-bit sample needs 1 byte")
        high = frame[0]
        low = 0
    return (high << 4) | (low >> 4)


def clamp_sample_rate(rate: int) -> int:
    """Limit a playback sample rate to the range the player supports."""
    return max(MIN_SAMPLE_RATE, min(MAX_SAMPLE_RATE, rate))