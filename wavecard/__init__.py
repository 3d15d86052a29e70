"""FAT16/FAT32 card image reading, WAVE file parsing and DHT11 signal decoding."""

__version__ = "0.1.0"
__all__ = ["fatstructs", "sdcard", "fatreader", "wave", "dht11"]