"""Wire protocol constants and command catalog for the DLP-TH1C sensor.

The sensor answers single-byte ASCII commands with free-form text. There is no
frame length or checksum, so framing relies on the delimiters handled in
parsing.py and on the settle delays below.
"""

from typing import Dict, Final, FrozenSet, Optional, Tuple, Union

from th1c_lib.errors import InvalidCommand
from th1c_lib.models import ReadingKind, SessionMode, VIBRATION_KINDS

# ============================================================================
# Serial Settings
# ============================================================================

DEFAULT_PORT: Final[str] = "/dev/ttyACM0"
DEFAULT_BAUD: Final[int] = 115200

# Per-read timeout; a read returning nothing within this window means "idle"
DEFAULT_READ_TIMEOUT: Final[float] = 0.2

# ============================================================================
# ASCII Commands (single byte, no terminator)
# ============================================================================

PING_CMD: Final[bytes] = b"'"
HELP_CMD: Final[bytes] = b"?"

ASCII_COMMANDS: Final[Dict[ReadingKind, bytes]] = {
    ReadingKind.TEMPERATURE: b"t",
    ReadingKind.HUMIDITY: b"h",
    ReadingKind.PRESSURE: b"p",
    ReadingKind.TILT: b"a",
    ReadingKind.VIBRATION_X: b"x",
    ReadingKind.VIBRATION_Y: b"v",
    ReadingKind.VIBRATION_Z: b"w",
    ReadingKind.LIGHT: b"l",
    ReadingKind.SOUND: b"f",
    ReadingKind.BROADBAND: b"b",
}

_KIND_BY_COMMAND: Final[Dict[bytes, ReadingKind]] = {
    cmd: kind for kind, cmd in ASCII_COMMANDS.items()
}

# Order in which the aggregate request asks for (and the device answers) fields
AGGREGATE_ORDER: Final[Tuple[ReadingKind, ...]] = (
    ReadingKind.TEMPERATURE,
    ReadingKind.HUMIDITY,
    ReadingKind.PRESSURE,
    ReadingKind.TILT,
    ReadingKind.VIBRATION_X,
    ReadingKind.VIBRATION_Y,
    ReadingKind.VIBRATION_Z,
    ReadingKind.LIGHT,
    ReadingKind.SOUND,
    ReadingKind.BROADBAND,
)

AGGREGATE_REQUEST: Final[bytes] = b"".join(ASCII_COMMANDS[k] for k in AGGREGATE_ORDER)

AGGREGATE_KEYWORD: Final[str] = "all"

# ============================================================================
# Aggregate Response Layout
# ============================================================================

# Spectral answers start with one blank separator line before six data lines
SPECTRAL_GROUP_LINES: Final[int] = 7
SCALAR_GROUP_LINES: Final[int] = 1

GROUP_LINES: Final[Dict[ReadingKind, int]] = {
    kind: (
        SPECTRAL_GROUP_LINES
        if kind in VIBRATION_KINDS or kind is ReadingKind.SOUND
        else SCALAR_GROUP_LINES
    )
    for kind in AGGREGATE_ORDER
}

AGGREGATE_MIN_LINES: Final[int] = sum(GROUP_LINES.values())

# ============================================================================
# Read Sizes (bytes drained per response)
# ============================================================================

RESPONSE_SIZES: Final[Dict[ReadingKind, int]] = {
    ReadingKind.TEMPERATURE: 64,
    ReadingKind.HUMIDITY: 2048,
    ReadingKind.PRESSURE: 64,
    ReadingKind.TILT: 64,
    ReadingKind.VIBRATION_X: 256,
    ReadingKind.VIBRATION_Y: 256,
    ReadingKind.VIBRATION_Z: 256,
    ReadingKind.LIGHT: 32,
    ReadingKind.SOUND: 256,
    ReadingKind.BROADBAND: 32,
}

AGGREGATE_RESPONSE_SIZE: Final[int] = 2048

# ============================================================================
# Timing Constants (seconds)
# ============================================================================

# Worst-case latency for a single field answer
SINGLE_SETTLE_DELAY: Final[float] = 2.0

# The batched request loses data if read early; the slowest field needs ~30s
BATCH_SETTLE_DELAY: Final[float] = 30.0

# ============================================================================
# Catalog Operations
# ============================================================================

CommandLike = Union[bytes, str, int]


def wire_command(kind: ReadingKind) -> bytes:
    """Return the one-byte ASCII command that requests kind."""
    return ASCII_COMMANDS[kind]


def kind_of(command: CommandLike) -> ReadingKind:
    """Map a command byte back to its reading kind.

    Args:
        command: One byte as bytes, a one-character str, or an int 0-255

    Returns:
        ReadingKind requested by that command

    Raises:
        InvalidCommand: If command is not one of the ten reading commands
    """
    if isinstance(command, int):
        if not 0 <= command <= 0xFF:
            raise InvalidCommand(f"Command byte out of range: {command}", command)
        key = bytes([command])
    elif isinstance(command, str):
        key = command.encode("latin-1", errors="replace")
    else:
        key = bytes(command)

    kind = _KIND_BY_COMMAND.get(key)
    if kind is None:
        raise InvalidCommand(f"Unknown command: {command!r}", command)
    return kind


def resolve_command(
    text: str,
) -> Tuple[SessionMode, Optional[FrozenSet[ReadingKind]]]:
    """Resolve a user command string into a polling mode.

    - "all" selects the aggregate loop with no filter.
    - One command letter selects the single-kind loop for that kind.
    - Two to ten letters select the aggregate loop filtered to those kinds.

    Returns:
        (mode, kinds). kinds is None for "all".

    Raises:
        InvalidCommand: For an empty string, unknown letter, or more than ten letters
    """
    if text == AGGREGATE_KEYWORD:
        return SessionMode.AGGREGATE, None

    if not text or len(text) > len(ASCII_COMMANDS):
        raise InvalidCommand(f"Invalid command: {text!r}", text)

    kinds = frozenset(kind_of(ch) for ch in text)
    if len(text) == 1:
        return SessionMode.SINGLE, kinds
    return SessionMode.AGGREGATE, kinds
