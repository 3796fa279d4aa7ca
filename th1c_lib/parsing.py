"""Pure functions for decoding DLP-TH1C ASCII responses.

The transport loses bytes, injects stray line terminators and sometimes pads
answers with NUL, so every decoder isolates its value by delimiter and strips
known noise before parsing. Failures raise DecodeError subclasses carrying
the offending text.
"""

import functools
import logging
import math
from typing import Callable, Dict, List, Tuple

from th1c_lib.errors import DataMissing, InvalidByteLength, MalformedNumber
from th1c_lib.models import (
    SPECTRAL_BANDS,
    Reading,
    ReadingKind,
    ScalarReading,
    SpectralReading,
    TiltReading,
)

logger = logging.getLogger(__name__)

# Delimiters and noise as the device emits them
VALUE_SEP = "= "
LABEL_SEP = ": "
FIELD_SEP = ":"
DEGREE_CELSIUS = "\xb0C"
PERCENT = "%"
HERTZ = "Hz"
CR = "\r"
LF = "\n"
NUL = "\x00"

# Spellings float() accepts for infinity; any other inf result is an overflow
INFINITY_LITERALS = frozenset({"inf", "+inf", "-inf", "infinity", "+infinity", "-infinity"})

Decoder = Callable[[str], Reading]


def response_text(raw: bytes) -> str:
    """Decode a raw response to text.

    latin-1 maps every byte to one character, so the degree sign (0xB0) and
    stray binary noise survive unchanged.
    """
    return raw.decode("latin-1")


def _after(text: str, sep: str) -> str:
    """Return the text following the first sep, or raise DataMissing."""
    _, found, rest = text.partition(sep)
    if not found:
        raise DataMissing(f"Delimiter {sep!r} not found", text)
    return rest


def _cut(text: str, *terminators: str) -> str:
    """Cut text at each terminator in turn, keeping the part before it."""
    for term in terminators:
        text = text.split(term, 1)[0]
    return text


def _parse_float(value: str, fragment: str) -> float:
    if "_" in value:
        raise MalformedNumber(f"Not a number: {value!r}", fragment)
    try:
        number = float(value)
    except ValueError as e:
        raise MalformedNumber(f"Not a number: {value!r}", fragment) from e

    if math.isinf(number) and value.strip().lower() not in INFINITY_LITERALS:
        raise MalformedNumber(f"{value!r} overflows a float", fragment)
    return number


def _parse_int(value: str, bits: int, fragment: str) -> int:
    if "_" in value:
        raise MalformedNumber(f"Not an integer: {value!r}", fragment)
    try:
        number = int(value, 10)
    except ValueError as e:
        raise MalformedNumber(f"Not an integer: {value!r}", fragment) from e

    low, high = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    if not low <= number <= high:
        raise MalformedNumber(f"{number} does not fit in int{bits}", fragment)
    return number


# ============================================================================
# Scalar Decoders
# ============================================================================


def parse_temperature(text: str) -> ScalarReading:
    """Parse a temperature answer.

    Example: "Temperature = 23.45\\xb0C\\r\\n" -> 23.45

    Raises:
        DataMissing: If "= " is absent
        MalformedNumber: If the value is not a float
    """
    value = _cut(_after(text, VALUE_SEP), DEGREE_CELSIUS)
    return ScalarReading(ReadingKind.TEMPERATURE, _parse_float(value, text))


def parse_humidity(text: str) -> ScalarReading:
    """Parse a humidity answer.

    Example: "Humidity = 45.60%\\r\\n" -> 45.6

    Raises:
        DataMissing: If "= " is absent
        MalformedNumber: If the value is not a float
    """
    value = _cut(_after(text, VALUE_SEP), PERCENT)
    return ScalarReading(ReadingKind.HUMIDITY, _parse_float(value, text))


def parse_pressure(text: str) -> ScalarReading:
    """Parse a pressure answer.

    Example: "Pressure = 1013.25\\r\\n\\x00" -> 1013.25

    Raises:
        DataMissing: If "= " is absent
        MalformedNumber: If the value is not a float
    """
    value = _cut(_after(text, VALUE_SEP), CR, NUL).strip()
    return ScalarReading(ReadingKind.PRESSURE, _parse_float(value, text))


def parse_light(text: str) -> ScalarReading:
    """Parse a light level answer; the device reports a signed 8-bit value.

    Example: "Light: 87\\r\\n" -> 87

    Raises:
        DataMissing: If ": " is absent
        MalformedNumber: If the value is not an integer in [-128, 127]
    """
    value = _cut(_after(text, LABEL_SEP), CR, LF, NUL)
    return ScalarReading(ReadingKind.LIGHT, _parse_int(value, 8, text))


def parse_broadband(text: str) -> ScalarReading:
    """Parse a broadband sound level answer.

    Example: "Broadband: 52.3\\r\\n" -> 52.3

    Raises:
        DataMissing: If ": " is absent
        MalformedNumber: If the value is not a float
    """
    value = _cut(_after(text, LABEL_SEP), CR, LF, NUL)
    return ScalarReading(ReadingKind.BROADBAND, _parse_float(value, text))


# ============================================================================
# Tilt
# ============================================================================


def parse_tilt(text: str) -> TiltReading:
    """Parse a tilt answer with three colon-separated axis values.

    Example: "Tilt X:-12 Y:5 Z:1003\\r\\n" -> TiltReading(-12, 5, 1003)

    Raises:
        DataMissing: If fewer than four ":"-separated fields are present
        MalformedNumber: If an axis value is not an int64
    """
    fields = text.split(FIELD_SEP)
    if len(fields) < 4:
        raise DataMissing(f"Tilt needs 4 fields, got {len(fields)}", text)

    x, y, z = (
        _parse_int(_cut(field, " ", CR).strip(), 64, text) for field in fields[1:4]
    )
    return TiltReading(x=x, y=y, z=z)


# ============================================================================
# Spectral (Vibration / Sound)
# ============================================================================


def _parse_bands(text: str) -> Tuple[Tuple[int, ...], Tuple[float, ...]]:
    """Collect six (peak, amplitude) pairs from the answer's data lines.

    The device injects blank separator lines; only lines with exactly three
    ":"-separated fields count as data.
    """
    peaks: List[int] = []
    amplitudes: List[float] = []

    for line in text.split(LF):
        fields = line.split(FIELD_SEP)
        if len(fields) != 3:
            continue

        peak_str = _cut(fields[1], HERTZ).lstrip(" ")
        amp_str = _cut(fields[2], CR, NUL)
        peaks.append(_parse_int(peak_str, 64, text))
        amplitudes.append(_parse_float(amp_str, text))

        if len(peaks) == SPECTRAL_BANDS:
            return tuple(peaks), tuple(amplitudes)

    raise DataMissing(
        f"Expected {SPECTRAL_BANDS} spectral lines, found {len(peaks)}", text
    )


def parse_vibration(text: str, axis: ReadingKind) -> SpectralReading:
    """Parse a vibration spectrum for one axis.

    Args:
        text: Response text
        axis: VIBRATION_X, VIBRATION_Y or VIBRATION_Z (tags the reading)

    Raises:
        DataMissing: If fewer than six data lines are found
        MalformedNumber: If a data line holds a bad number
    """
    peaks, amplitudes = _parse_bands(text)
    return SpectralReading(kind=axis, peaks=peaks, amplitudes=amplitudes)


def parse_sound(text: str) -> SpectralReading:
    """Parse a sound spectrum (same layout as vibration)."""
    peaks, amplitudes = _parse_bands(text)
    return SpectralReading(kind=ReadingKind.SOUND, peaks=peaks, amplitudes=amplitudes)


# ============================================================================
# Decoder Table
# ============================================================================

DECODERS: Dict[ReadingKind, Decoder] = {
    ReadingKind.TEMPERATURE: parse_temperature,
    ReadingKind.HUMIDITY: parse_humidity,
    ReadingKind.PRESSURE: parse_pressure,
    ReadingKind.TILT: parse_tilt,
    ReadingKind.VIBRATION_X: functools.partial(
        parse_vibration, axis=ReadingKind.VIBRATION_X
    ),
    ReadingKind.VIBRATION_Y: functools.partial(
        parse_vibration, axis=ReadingKind.VIBRATION_Y
    ),
    ReadingKind.VIBRATION_Z: functools.partial(
        parse_vibration, axis=ReadingKind.VIBRATION_Z
    ),
    ReadingKind.LIGHT: parse_light,
    ReadingKind.SOUND: parse_sound,
    ReadingKind.BROADBAND: parse_broadband,
}


def decode(kind: ReadingKind, text: str) -> Reading:
    """Decode text with the decoder registered for kind."""
    return DECODERS[kind](text)


# ============================================================================
# Binary Helpers
# ============================================================================


def _combine_le(data: bytes, width: int) -> int:
    if len(data) != width:
        raise InvalidByteLength(f"Expected {width} bytes, got {len(data)}", data)
    return int.from_bytes(data, "little", signed=False)


def le_uint16(data: bytes) -> int:
    """Combine two little-endian bytes into an unsigned int."""
    return _combine_le(data, 2)


def le_uint24(data: bytes) -> int:
    """Combine three little-endian bytes into an unsigned int."""
    return _combine_le(data, 3)


def le_uint32(data: bytes) -> int:
    """Combine four little-endian bytes into an unsigned int."""
    return _combine_le(data, 4)
