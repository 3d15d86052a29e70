"""Decoding of DHT11 temperature and humidity readings from edge timings."""

from __future__ import annotations

import enum
import math


class Dht11Status(enum.IntEnum):
    """Status and error codes of a DHT11 reading."""

    OK = 0
    ACQUIRING = 1
    ACQUIRED = 2
    RESPONSE_OK = 3
    ERROR_CHECKSUM = -1
    ERROR_ISR_TIMEOUT = -2
    ERROR_RESPONSE_TIMEOUT = -3
    ERROR_DATA_TIMEOUT = -4
    ERROR_ACQUIRING = -5
    ERROR_DELTA = -6
    ERROR_NOTSTARTED = -7


class Dht11Error(Exception):
    """No valid reading is available; ``status`` tells why."""

    def __init__(self, status: Dht11Status) -> None:
        self.status = status
        super().__init__(f"DHT11 reading unavailable: {status.name}")


class _State(enum.Enum):
    RESPONSE = 0
    DATA = 1
    ACQUIRED = 2
    STOPPED = 3


_EDGE_TIMEOUT_US = 6000


class Dht11Decoder:
    """State machine fed with the times, in microseconds, of falling edges."""

    def __init__(self) -> None:
        self._state = _State.STOPPED
        self.status = Dht11Status.ERROR_NOTSTARTED
        self._bits = [0] * 5
        self._cnt = 7
        self._idx = 0
        self._us = 0
        self._hum = 0
        self._temp = 0

    def start(self, now_us: int) -> Dht11Status:
        """Begin a new reading; the start request ended at ``now_us``."""
        if self._state not in (_State.STOPPED, _State.ACQUIRED):
            raise Dht11Error(Dht11Status.ERROR_ACQUIRING)
        self._state = _State.RESPONSE
        self._bits = [0] * 5
        self._cnt = 7
        self._idx = 0
        self._hum = 0
        self._temp = 0
        self._us = now_us
        return Dht11Status.ACQUIRING

    def _stop(self, status: Dht11Status) -> None:
        self.status = status
        self._state = _State.STOPPED

    def on_falling_edge(self, now_us: int) -> None:
        """Process a falling edge on the data line at ``now_us``."""
        if self._state not in (_State.RESPONSE, _State.DATA):
            return
        delta = now_us - self._us
        self._us = now_us
        if delta > _EDGE_TIMEOUT_US:
            self._stop(Dht11Status.ERROR_ISR_TIMEOUT)
            return
        if self._state is _State.RESPONSE:
            if delta < 25:
                self._us -= delta
            elif 125 < delta < 190:
                self._state = _State.DATA
            else:
                self._stop(Dht11Status.ERROR_RESPONSE_TIMEOUT)
            return
        if delta < 10:
            self._stop(Dht11Status.ERROR_DELTA)
        elif 60 < delta < 155:
            if delta > 90:
                self._bits[self._idx] |= 1 << self._cnt
            if self._cnt == 0:
                self._cnt = 7
                finished = self._idx == 4
                self._idx += 1
                if finished:
                    self._finish()
            else:
                self._cnt -= 1
        else:
            self._stop(Dht11Status.ERROR_DATA_TIMEOUT)

    def _finish(self) -> None:
        # Bytes 1 and 3 are always zero on a DHT11.
        self._hum = self._bits[0]
        self._temp = self._bits[2]
        if self._bits[4] != (self._bits[0] + self._bits[2]) & 0xFF:
            self._stop(Dht11Status.ERROR_CHECKSUM)
        else:
            self.status = Dht11Status.OK
            self._state = _State.ACQUIRED

    def acquiring(self) -> bool:
        """True while a reading is in progress."""
        return self._state not in (_State.ACQUIRED, _State.STOPPED)

    def _check(self) -> None:
        if self._state is _State.STOPPED:
            raise Dht11Error(self.status)
        if self._state is not _State.ACQUIRED:
            raise Dht11Error(Dht11Status.ERROR_ACQUIRING)

    def celsius(self) -> float:
        self._check()
        return float(self._temp)

    def humidity(self) -> float:
        """Relative humidity in percent."""
        self._check()
        return float(self._hum)

    def fahrenheit(self) -> float:
        self._check()
        return self._temp * 1.8 + 32

    def kelvin(self) -> float:
        self._check()
        return self._temp + 273.15

    def dew_point(self) -> float:
        """Dew point in Celsius by the fast Magnus approximation."""
        self._check()
        a = 17.271
        b = 237.7
        t = (a * self._temp) / (b + self._temp) + math.log(self._hum / 100)
        return (b * t) / (a - t)

    def dew_point_slow(self) -> float:
        """Dew point in Celsius by the NOAA vapour pressure formula."""
        self._check()
        a0 = 373.15 / (273.15 + self._temp)
        total = -7.90298 * (a0 - 1)
        total += 5.02808 * math.log10(a0)
        total += -1.3816e-7 * (10 ** (11.344 * (1 - 1 / a0)) - 1)
        total += 8.1328e-3 * (10 ** (-3.49149 * (a0 - 1)) - 1)
        total += math.log10(1013.246)
        vp = 10 ** (total - 3) * self._hum
        t = math.log(vp / 0.61078)
        return (241.88 * t) / (17.558 - t)