# wavecard

Read-only access to FAT16 and FAT32 volumes stored in SD card images,
plus a WAVE file reader and a DHT11 sensor signal decoder.

## Install

    pip install .

## Reading a card image

`BlockDevice` (in `wavecard.sdcard`) wraps a binary file object holding
a raw image and reads it in 512-byte blocks. `BlockDevice.open(path)`
opens an image file and closes it again when the device is closed; the
device is also a context manager. `read_data(block, offset, count)`
returns part of one block and raises `ValueError` if the range does not
fit in 512 bytes; reading past the end of the image raises `CardError`.

`FatVolume(device, part)` mounts partition `part` (1 to 4) of an MBR, or
a "super floppy" layout with the boot sector in block zero when `part`
is 0. `FatVolume.mount(device)` tries partition one first and falls back
to the super floppy layout. FAT12 volumes are recognised, but opening
anything on them raises `FatError`.

```python
from wavecard.sdcard import BlockDevice
from wavecard.fatreader import FatVolume, FatReader, LsFlag

with BlockDevice.open("card.img") as device:
    volume = FatVolume.mount(device)
    root = FatReader.open_root(volume)

    root.ls(LsFlag.SIZE | LsFlag.R)

    for entry in root:
        print(entry.display_name())

    song = FatReader.open_name(root, "SONG.WAV")
    data = song.read(64)
```

A `FatReader` is opened with `open_root`, `open_entry` (from a
`DirEntry`), `open_name` (8.3 name, case ignored) or `open_index`
(entry number within a directory). It supports `read`, `read_dir`,
`seek_cur`, `seek_set`, `rewind` and iteration over a directory's
entries. `ls` writes one line per entry to standard output or to the
`file` given; the flags are `LsFlag.SIZE` (append the file size),
`LsFlag.FRAGMENTED` (mark non-contiguous files with `*`) and `LsFlag.R`
(list subdirectories recursively).

`wavecard.fatstructs` parses the on-disk structures: `PartitionEntry`,
`BiosParameterBlock` and `DirEntry` (which can also be encoded back to
its 32 bytes with `to_bytes`).

`wavecard.sdcard` also decodes SD card registers: `Cid.from_bytes` for
the identification register and `card_size(csd)` for the number of
512-byte blocks described by a CSD register.

## WAVE files

`WaveFile` (in `wavecard.wave`) takes an open `FatReader` for a `.WAV`
file. It accepts uncompressed PCM with one or two channels and at most
16 bits per sample, and positions itself at the start of the `data`
chunk. Files whose rate is too high, or whose rate needs a contiguous
file when theirs is fragmented, are rejected with `WaveError`; stereo
files give a warning.

```python
from wavecard.wave import WaveFile, dac_code

wave = WaveFile(song)
for chunk in wave.chunks():
    ...
```

`read_wave_data` and `chunks` never return data that crosses a 512-byte
buffer boundary. `seek(pos)` moves to a buffer boundary near `pos`,
never before the first buffer. `dac_code` turns one sample frame into
the 12-bit value a DAC would receive. `clamp_sample_rate` limits a rate
to the range from 500 to 50000 samples per second.

## DHT11 decoding

`Dht11Decoder` (in `wavecard.dht11`) is a state machine fed with the
timestamps of falling edges in microseconds:

```python
from wavecard.dht11 import Dht11Decoder

decoder = Dht11Decoder()
decoder.start(now_us)
for t in edge_times:
    decoder.on_falling_edge(t)
if not decoder.acquiring():
    print(decoder.celsius(), decoder.humidity(), decoder.dew_point())
```

`start` raises `Dht11Error` while a reading is still in progress. The
readings (`celsius`, `fahrenheit`, `kelvin`, `humidity`, `dew_point`,
`dew_point_slow`) raise `Dht11Error` when no valid sample has been
taken; its `status` is a `Dht11Status` saying why.

## What it does not do

- It only reads: nothing is ever written to a volume or image.
- Only short 8.3 names are supported; long file names are not.
- It works on image files, not on cards attached over SPI, and does not
  play audio or talk to a DAC or a sensor; it only prepares and decodes
  the data.
- There is no command-line program.

## Tests

    pip install .[test]
    pytest