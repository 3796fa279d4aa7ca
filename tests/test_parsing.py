"""Tests for the per-reading ASCII decoders."""

import pytest

from fakes.fake_serial import DEFAULT_SOUND, DEFAULT_VIBRATION, spectral_response
from th1c_lib import parsing
from th1c_lib.errors import DataMissing, InvalidByteLength, MalformedNumber
from th1c_lib.models import ReadingKind, ScalarReading, SpectralReading, TiltReading

VIBRATION_X_TEXT = spectral_response("X", DEFAULT_VIBRATION[ReadingKind.VIBRATION_X]).decode("latin-1")


# =============================================================================
# Scalars
# =============================================================================

def test_parse_temperature() -> None:
    reading = parsing.parse_temperature("Temperature = 23.45\xb0C\r\n")
    assert reading == ScalarReading(ReadingKind.TEMPERATURE, 23.45)


def test_parse_temperature_from_raw_bytes() -> None:
    """The degree sign byte survives response_text()."""
    text = parsing.response_text(b"Temperature = -4.5\xb0C\r\n")
    assert parsing.parse_temperature(text).value == -4.5


def test_parse_humidity() -> None:
    assert parsing.parse_humidity("Humidity = 45.60%\r\n").value == 45.6


def test_parse_pressure_strips_cr_and_nul() -> None:
    reading = parsing.parse_pressure("Pressure = 1013.25\r\n\x00\x00")
    assert reading == ScalarReading(ReadingKind.PRESSURE, 1013.25)


def test_parse_pressure_nul_before_cr() -> None:
    assert parsing.parse_pressure("Pressure =  998.1\x00\r\n").value == 998.1


def test_parse_light() -> None:
    reading = parsing.parse_light("Light: 87\r\n")
    assert reading == ScalarReading(ReadingKind.LIGHT, 87)
    assert isinstance(reading.value, int)


def test_parse_light_negative() -> None:
    assert parsing.parse_light("Light: -128\x00").value == -128


def test_parse_light_out_of_int8_range() -> None:
    with pytest.raises(MalformedNumber):
        parsing.parse_light("Light: 128\r\n")


def test_parse_broadband() -> None:
    assert parsing.parse_broadband("Broadband: 52.3\n\r").value == 52.3


def test_literal_infinity_is_not_an_overflow() -> None:
    assert parsing.parse_broadband("Broadband: -inf\r\n").value == float("-inf")


@pytest.mark.parametrize(
    "decoder, text",
    [
        (parsing.parse_temperature, "Temperature 23.45\xb0C\r\n"),
        (parsing.parse_humidity, "Humidity 45%"),
        (parsing.parse_pressure, ""),
        (parsing.parse_light, "Light 87"),
        (parsing.parse_broadband, "\r\n"),
    ],
)
def test_missing_delimiter_is_data_missing(decoder, text: str) -> None:
    with pytest.raises(DataMissing) as exc_info:
        decoder(text)
    assert exc_info.value.fragment == text


@pytest.mark.parametrize(
    "decoder, text",
    [
        (parsing.parse_temperature, "Temperature = abc\xb0C\r\n"),
        (parsing.parse_humidity, "Humidity = %\r\n"),
        (parsing.parse_pressure, "Pressure = 10x3\r\n"),
        (parsing.parse_light, "Light: 8.7\r\n"),
        (parsing.parse_broadband, "Broadband: loud\r\n"),
        (parsing.parse_temperature, "Temperature = 1e400\xb0C\r\n"),
        (parsing.parse_broadband, "Broadband: -1e999\r\n"),
        (parsing.parse_pressure, "Pressure = 9e9999\r\n"),
        (parsing.parse_humidity, "Humidity = 1_0%\r\n"),
        (parsing.parse_light, "Light: 1_2\r\n"),
    ],
)
def test_bad_payload_is_malformed_number(decoder, text: str) -> None:
    with pytest.raises(MalformedNumber):
        decoder(text)


# =============================================================================
# Tilt
# =============================================================================

def test_parse_tilt() -> None:
    assert parsing.parse_tilt("Tilt X:-12 Y:5 Z:1003\r\n") == TiltReading(x=-12, y=5, z=1003)


def test_parse_tilt_too_few_fields() -> None:
    with pytest.raises(DataMissing):
        parsing.parse_tilt("Tilt X:-12 Y:5\r\n")


def test_parse_tilt_bad_axis() -> None:
    with pytest.raises(MalformedNumber):
        parsing.parse_tilt("Tilt X:-12 Y:?? Z:1003\r\n")


def test_parse_tilt_int64_overflow() -> None:
    with pytest.raises(MalformedNumber):
        parsing.parse_tilt(f"Tilt X:{2 ** 63} Y:0 Z:0\r\n")


# =============================================================================
# Spectral
# =============================================================================

def test_parse_vibration_skips_separator_lines() -> None:
    """Nine lines: two blank separators plus six data lines (and a trailing CR)."""
    text = (
        "\r\n"
        "X Peak 1: 120Hz: 0.53\r\n"
        "X Peak 2: 240Hz: 0.21\r\n"
        "X Peak 3: 360Hz: 0.11\r\n"
        "\r\n"
        "X Peak 4: 480Hz: 0.07\r\n"
        "X Peak 5: 600Hz: 0.04\r\n"
        "X Peak 6: 720Hz: 0.02\x00\r\n"
        "\r"
    )
    assert len(text.split("\n")) == 9

    reading = parsing.parse_vibration(text, ReadingKind.VIBRATION_X)

    assert reading.kind is ReadingKind.VIBRATION_X
    assert reading.axis == "X"
    assert reading.peaks == (120, 240, 360, 480, 600, 720)
    assert reading.amplitudes == (0.53, 0.21, 0.11, 0.07, 0.04, 0.02)


def test_parse_vibration_five_lines_is_data_missing() -> None:
    lines = VIBRATION_X_TEXT.split("\n")
    text = "\n".join(lines[:6])  # separator + five data lines

    with pytest.raises(DataMissing):
        parsing.parse_vibration(text, ReadingKind.VIBRATION_X)


def test_parse_vibration_uses_first_six_lines() -> None:
    text = VIBRATION_X_TEXT + "X Peak 7: 840Hz: 0.01\r\n"
    reading = parsing.parse_vibration(text, ReadingKind.VIBRATION_Z)
    assert reading.kind is ReadingKind.VIBRATION_Z
    assert reading.peaks[-1] == 720


def test_parse_vibration_amplitude_overflow() -> None:
    text = VIBRATION_X_TEXT.replace("0.21", "2e308")
    with pytest.raises(MalformedNumber):
        parsing.parse_vibration(text, ReadingKind.VIBRATION_X)


def test_parse_vibration_peak_with_underscore() -> None:
    text = VIBRATION_X_TEXT.replace("240Hz", "2_40Hz")
    with pytest.raises(MalformedNumber):
        parsing.parse_vibration(text, ReadingKind.VIBRATION_X)


def test_parse_vibration_bad_peak() -> None:
    text = VIBRATION_X_TEXT.replace("240Hz", "2x0Hz")
    with pytest.raises(MalformedNumber):
        parsing.parse_vibration(text, ReadingKind.VIBRATION_X)


def test_parse_sound() -> None:
    text = spectral_response("Sound", DEFAULT_SOUND).decode("latin-1")
    reading = parsing.parse_sound(text)

    assert isinstance(reading, SpectralReading)
    assert reading.axis is None
    assert reading.bands == list(DEFAULT_SOUND)


def test_parse_sound_empty_input() -> None:
    with pytest.raises(DataMissing):
        parsing.parse_sound("")


# =============================================================================
# Decoder Table
# =============================================================================

def test_every_kind_has_a_decoder() -> None:
    assert set(parsing.DECODERS) == set(ReadingKind)


def test_vibration_decoders_tag_their_axis() -> None:
    for kind in (ReadingKind.VIBRATION_X, ReadingKind.VIBRATION_Y, ReadingKind.VIBRATION_Z):
        assert parsing.decode(kind, VIBRATION_X_TEXT).kind is kind


@pytest.mark.parametrize("kind", list(ReadingKind))
def test_decoders_never_crash_on_empty_or_short_input(kind: ReadingKind) -> None:
    """Short input is always DataMissing, never another exception."""
    for text in ("", "\r", "\n\n", "\x00", "="):
        with pytest.raises(DataMissing):
            parsing.decode(kind, text)


def test_decode_is_idempotent() -> None:
    text = "Temperature = 23.45\xb0C\r\n"
    assert parsing.decode(ReadingKind.TEMPERATURE, text) == parsing.decode(
        ReadingKind.TEMPERATURE, text
    )
    assert parsing.decode(ReadingKind.VIBRATION_Y, VIBRATION_X_TEXT) == parsing.decode(
        ReadingKind.VIBRATION_Y, VIBRATION_X_TEXT
    )


# =============================================================================
# Binary Helpers
# =============================================================================

def test_little_endian_helpers() -> None:
    assert parsing.le_uint16(b"\x34\x12") == 0x1234
    assert parsing.le_uint24(b"\x56\x34\x12") == 0x123456
    assert parsing.le_uint32(b"\x78\x56\x34\x12") == 0x12345678


@pytest.mark.parametrize(
    "helper, data",
    [(parsing.le_uint16, b"\x01"), (parsing.le_uint24, b"\x01\x02"), (parsing.le_uint32, b"")],
)
def test_little_endian_wrong_width(helper, data: bytes) -> None:
    with pytest.raises(InvalidByteLength):
        helper(data)
