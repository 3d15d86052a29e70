import io

import pytest

from wavecard.sdcard import (
    BLOCK_SIZE,
    SD_CARD_ERROR_BAD_CSD,
    SD_CARD_ERROR_READ,
    BlockDevice,
    CardError,
    Cid,
    card_size,
)


def _csd_v1(read_bl_len, c_size, c_size_mult):
    raw = bytearray(16)
    raw[5] = read_bl_len & 0x0F
    raw[6] = (c_size >> 10) & 0x03
    raw[7] = (c_size >> 2) & 0xFF
    raw[8] = (c_size & 0x03) << 6
    raw[9] = (c_size_mult >> 1) & 0x03
    raw[10] = (c_size_mult & 0x01) << 7
    return bytes(raw)


def _csd_v2(c_size):
    raw = bytearray(16)
    raw[0] = 0x40
    raw[7] = (c_size >> 16) & 0x3F
    raw[8] = (c_size >> 8) & 0xFF
    raw[9] = c_size & 0xFF
    return bytes(raw)


def _image(blocks):
    return b"".join(bytes([i]) * BLOCK_SIZE for i in range(blocks))


def test_card_size_v2_minimum():
    assert card_size(_csd_v2(0)) == 1024


def test_card_size_v2_grows_by_1024_blocks_per_unit():
    assert card_size(_csd_v2(4001)) - card_size(_csd_v2(4000)) == 1024


def test_card_size_v1_doubles_with_block_length():
    small = card_size(_csd_v1(9, 3000, 5))
    assert card_size(_csd_v1(10, 3000, 5)) == 2 * small


def test_card_size_v1_doubles_with_multiplier():
    small = card_size(_csd_v1(9, 1234, 3))
    assert card_size(_csd_v1(9, 1234, 4)) == 2 * small


def test_card_size_v1_proportional_to_c_size_plus_one():
    assert card_size(_csd_v1(9, 3, 7)) == 2 * card_size(_csd_v1(9, 1, 7))


def test_card_size_bad_version():
    raw = bytearray(_csd_v2(10))
    raw[0] = 0x80
    with pytest.raises(CardError) as info:
        card_size(bytes(raw))
    assert info.value.code == SD_CARD_ERROR_BAD_CSD


def test_card_size_short_register():
    with pytest.raises(ValueError):
        card_size(b"\x00" * 15)


def test_cid_fields():
    raw = bytes([0x03]) + b"SD" + b"SU02G" + bytes([0x80]) + (0x12345678).to_bytes(4, "big")
    raw += bytes([0x00, 0x9A, (0x2B << 1) | 1])
    cid = Cid.from_bytes(raw)
    assert cid.mid == 0x03
    assert cid.oid == "SD"
    assert cid.pnm == "SU02G"
    assert (cid.prv_n, cid.prv_m) == (8, 0)
    assert cid.psn == 0x12345678
    assert cid.mdt_year == 9
    assert cid.mdt_month == 0xA
    assert cid.crc == 0x2B


def test_cid_short_register():
    with pytest.raises(ValueError):
        Cid.from_bytes(b"\x00" * 10)


def test_read_block_returns_whole_block():
    device = BlockDevice(io.BytesIO(_image(4)))
    assert device.read_block(2) == bytes([2]) * BLOCK_SIZE


def test_read_data_slice():
    data = bytes(range(256)) * 2
    device = BlockDevice(io.BytesIO(data))
    assert device.read_data(0, 10, 5) == data[10:15]
    assert device.read_data(0, 0, 3) == data[0:3]


def test_read_data_zero_count():
    device = BlockDevice(io.BytesIO(b""))
    assert device.read_data(7, 100, 0) == b""


def test_read_data_past_block_end():
    device = BlockDevice(io.BytesIO(_image(1)))
    with pytest.raises(ValueError):
        device.read_data(0, 500, 13)


def test_read_beyond_image():
    device = BlockDevice(io.BytesIO(_image(2)))
    with pytest.raises(CardError) as info:
        device.read_block(2)
    assert info.value.code == SD_CARD_ERROR_READ


def test_open_path_and_context(tmp_path):
    path = tmp_path / "card.img"
    path.write_bytes(_image(3))
    with BlockDevice.open(path) as device:
        assert device.read_data(1, 0, 4) == b"\x01" * 4
        handle = device._file
    assert handle.closed


def test_read_after_close():
    device = BlockDevice(io.BytesIO(_image(1)))
    device.close()
    with pytest.raises(ValueError):
        device.read_block(0)