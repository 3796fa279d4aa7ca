"""Fake serial port that simulates the DLP-TH1C sensor's ASCII command mode.

The simulator answers each known command byte with the same free-form text
the device sends, and can reproduce the transport faults seen on hardware:
garbled fields, silent fields, truncated batches and disconnects.
"""

import logging
import threading
from typing import Dict, Iterable, Optional, Sequence, Set, Tuple

from th1c_lib import protocol
from th1c_lib.errors import InvalidCommand
from th1c_lib.models import ReadingKind

logger = logging.getLogger(__name__)

Bands = Sequence[Tuple[int, float]]

DEFAULT_VIBRATION: Dict[ReadingKind, Bands] = {
    ReadingKind.VIBRATION_X: [(120, 0.53), (240, 0.21), (360, 0.11), (480, 0.07), (600, 0.04), (720, 0.02)],
    ReadingKind.VIBRATION_Y: [(110, 0.48), (220, 0.19), (330, 0.12), (440, 0.06), (550, 0.03), (660, 0.01)],
    ReadingKind.VIBRATION_Z: [(100, 0.97), (200, 0.44), (300, 0.25), (400, 0.13), (500, 0.08), (600, 0.05)],
}

DEFAULT_SOUND: Bands = [(250, 12.5), (500, 20.25), (1000, 31.0), (2000, 18.75), (4000, 9.5), (8000, 4.125)]

GARBLED = b"\x00\xff?!\r\n"


# ============================================================================
# Response Text (as the device prints it)
# ============================================================================


def temperature_response(value: float) -> bytes:
    return f"Temperature = {value}\xb0C\r\n".encode("latin-1")


def humidity_response(value: float) -> bytes:
    return f"Humidity = {value}%\r\n".encode("latin-1")


def pressure_response(value: float) -> bytes:
    return f"Pressure = {value}\r\n".encode("latin-1")


def tilt_response(x: int, y: int, z: int) -> bytes:
    return f"Tilt X:{x} Y:{y} Z:{z}\r\n".encode("latin-1")


def spectral_response(label: str, bands: Bands) -> bytes:
    """Blank separator line followed by six "label Peak n: <hz>Hz: <amp>" lines."""
    lines = [f"{label} Peak {i}: {peak}Hz: {amp}\r\n" for i, (peak, amp) in enumerate(bands, start=1)]
    return ("\r\n" + "".join(lines)).encode("latin-1")


def light_response(value: int) -> bytes:
    return f"Light: {value}\r\n".encode("latin-1")


def broadband_response(value: float) -> bytes:
    return f"Broadband: {value}\r\n".encode("latin-1")


class FakeSerial:
    """Deterministic simulator of the DLP-TH1C ASCII command protocol.

    Implements:
    - One response per command byte, queued in command order
    - The aggregate request as ten back-to-back commands
    - Optional garbling or silencing of individual fields
    - Optional truncation of each answer batch (transport data loss)
    - Optional read failure (disconnect)
    """

    def __init__(
        self,
        temperature: float = 23.45,
        humidity: float = 45.6,
        pressure: float = 1013.25,
        tilt: Tuple[int, int, int] = (-12, 5, 1003),
        vibration: Optional[Dict[ReadingKind, Bands]] = None,
        light: int = 87,
        sound: Bands = DEFAULT_SOUND,
        broadband: float = 52.3,
        garbled: Iterable[ReadingKind] = (),
        silent: Iterable[ReadingKind] = (),
        truncate_to: Optional[int] = None,
    ) -> None:
        """Initialize fake sensor.

        Args:
            temperature, humidity, pressure, tilt, vibration, light, sound, broadband:
                Values the device reports.
            garbled: Kinds answered with noise instead of their normal text.
            silent: Kinds the device does not answer at all.
            truncate_to: If set, only this many bytes of each write's answers arrive.
        """
        self.temperature = temperature
        self.humidity = humidity
        self.pressure = pressure
        self.tilt = tilt
        self.vibration = dict(DEFAULT_VIBRATION if vibration is None else vibration)
        self.light = light
        self.sound = list(sound)
        self.broadband = broadband

        self.garbled: Set[ReadingKind] = set(garbled)
        self.silent: Set[ReadingKind] = set(silent)
        self.truncate_to = truncate_to
        self.fail_reads = False

        # Host -> device writes, in order
        self.written: list[bytes] = []

        # Device -> host bytes not yet read
        self._output = bytearray()
        self._lock = threading.Lock()

        # Port state
        self.is_open = True
        self.timeout = 0.2

    def response_for(self, kind: ReadingKind) -> bytes:
        """Text the device sends for one command."""
        if kind in self.silent:
            return b""
        if kind in self.garbled:
            return GARBLED

        if kind is ReadingKind.TEMPERATURE:
            return temperature_response(self.temperature)
        if kind is ReadingKind.HUMIDITY:
            return humidity_response(self.humidity)
        if kind is ReadingKind.PRESSURE:
            return pressure_response(self.pressure)
        if kind is ReadingKind.TILT:
            return tilt_response(*self.tilt)
        if kind in self.vibration:
            return spectral_response(kind.value[-1].upper(), self.vibration[kind])
        if kind is ReadingKind.LIGHT:
            return light_response(self.light)
        if kind is ReadingKind.SOUND:
            return spectral_response("Sound", self.sound)
        return broadband_response(self.broadband)

    def aggregate_response(self) -> bytes:
        """Text the device sends for the ten-command batch request."""
        return b"".join(self.response_for(kind) for kind in protocol.AGGREGATE_ORDER)

    def close(self) -> None:
        """Close the fake serial port."""
        self.is_open = False
        logger.debug("FakeSerial closed")

    def write(self, data: bytes) -> int:
        """Accept command bytes and queue the device's answers.

        Returns:
            Number of bytes written
        """
        if not self.is_open:
            raise RuntimeError("Port is closed")

        self.written.append(bytes(data))
        logger.debug(f"FakeSerial received: {data!r}")

        answer = bytearray()
        for byte in data:
            try:
                kind = protocol.kind_of(byte)
            except InvalidCommand:
                # Unknown commands are ignored by the device
                continue
            answer.extend(self.response_for(kind))

        if self.truncate_to is not None:
            del answer[self.truncate_to :]

        with self._lock:
            self._output.extend(answer)
        return len(data)

    def read(self, size: int = 1) -> bytes:
        """Read up to size pending bytes; b"" when idle."""
        if not self.is_open:
            raise RuntimeError("Port is closed")
        if self.fail_reads:
            raise OSError("device disconnected")

        with self._lock:
            chunk = bytes(self._output[:size])
            del self._output[:size]
        return chunk

    def flush(self) -> None:
        """Flush output buffer (no-op for fake serial)."""
        pass

    def reset_input_buffer(self) -> None:
        """Discard answers not yet read."""
        with self._lock:
            self._output.clear()
        logger.debug("FakeSerial input buffer flushed")

    @property
    def pending(self) -> int:
        """Number of answer bytes waiting to be read."""
        with self._lock:
            return len(self._output)
