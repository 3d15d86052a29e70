import pytest

from wavecard.dht11 import Dht11Decoder, Dht11Error, Dht11Status


def edge_times(data, start=1000):
    """Falling edge times for a full response carrying the five bytes ``data``."""
    t = start + 20
    times = [t]
    t += 160
    times.append(t)
    for byte in data:
        for bit in range(7, -1, -1):
            t += 120 if byte & (1 << bit) else 80
            times.append(t)
    return times


def decode(data, start=1000):
    decoder = Dht11Decoder()
    decoder.start(start)
    for t in edge_times(data, start):
        decoder.on_falling_edge(t)
    return decoder


def reading(hum, temp):
    return [hum, 0, temp, 0, (hum + temp) & 0xFF]


def test_valid_reading():
    decoder = decode(reading(45, 23))
    assert decoder.status == Dht11Status.OK
    assert not decoder.acquiring()
    assert decoder.humidity() == 45.0
    assert decoder.celsius() == 23.0


def test_temperature_conversions_agree():
    decoder = decode(reading(40, 30))
    assert (decoder.fahrenheit() - 32) / 1.8 == pytest.approx(decoder.celsius())
    assert decoder.kelvin() - 273.15 == pytest.approx(decoder.celsius())


def test_checksum_error():
    decoder = decode([45, 0, 23, 0, 1])
    assert decoder.status == Dht11Status.ERROR_CHECKSUM
    with pytest.raises(Dht11Error) as info:
        decoder.celsius()
    assert info.value.status == Dht11Status.ERROR_CHECKSUM


def test_not_started():
    decoder = Dht11Decoder()
    assert not decoder.acquiring()
    with pytest.raises(Dht11Error) as info:
        decoder.humidity()
    assert info.value.status == Dht11Status.ERROR_NOTSTARTED


def test_reading_in_progress():
    decoder = Dht11Decoder()
    assert decoder.start(0) == Dht11Status.ACQUIRING
    assert decoder.acquiring()
    with pytest.raises(Dht11Error) as info:
        decoder.celsius()
    assert info.value.status == Dht11Status.ERROR_ACQUIRING
    with pytest.raises(Dht11Error) as info:
        decoder.start(10)
    assert info.value.status == Dht11Status.ERROR_ACQUIRING


def test_restart_after_reading():
    decoder = decode(reading(45, 23))
    decoder.start(50000)
    assert decoder.acquiring()
    for t in edge_times(reading(60, 18), 50000):
        decoder.on_falling_edge(t)
    assert decoder.humidity() == 60.0
    assert decoder.celsius() == 18.0


def test_edge_timeout():
    decoder = Dht11Decoder()
    decoder.start(0)
    decoder.on_falling_edge(7000)
    assert decoder.status == Dht11Status.ERROR_ISR_TIMEOUT
    assert not decoder.acquiring()


def test_bad_response():
    decoder = Dht11Decoder()
    decoder.start(0)
    decoder.on_falling_edge(100)
    assert decoder.status == Dht11Status.ERROR_RESPONSE_TIMEOUT


@pytest.mark.parametrize("gap, status", [
    (5, Dht11Status.ERROR_DELTA),
    (200, Dht11Status.ERROR_DATA_TIMEOUT),
])
def test_bad_data_bit(gap, status):
    decoder = Dht11Decoder()
    decoder.start(0)
    decoder.on_falling_edge(160)
    decoder.on_falling_edge(160 + gap)
    assert decoder.status == status
    assert not decoder.acquiring()


def test_edges_after_reading_are_ignored():
    decoder = decode(reading(45, 23))
    decoder.on_falling_edge(10 ** 9)
    assert decoder.status == Dht11Status.OK
    assert decoder.celsius() == 23.0


def test_dew_point_at_saturation_equals_temperature():
    decoder = decode(reading(100, 20))
    assert decoder.dew_point() == pytest.approx(decoder.celsius())
    assert abs(decoder.dew_point_slow() - decoder.celsius()) < 1.0


def test_dew_point_methods_agree():
    decoder = decode(reading(50, 25))
    assert abs(decoder.dew_point() - decoder.dew_point_slow()) < 0.6544
    assert decoder.dew_point() < decoder.celsius()