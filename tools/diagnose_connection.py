"""Diagnose what the sensor sends back for each command.

Sends ping, help and every reading command one at a time and prints the raw
answer, then tries to decode it. Useful when a field keeps failing to decode.

Usage:
    python tools/diagnose_connection.py [PORT] [SETTLE_S]
"""

import sys
import time
from typing import List, Tuple

from th1c_lib import parsing, protocol
from th1c_lib.errors import DecodeError, SerialIOError
from th1c_lib.models import ReadingKind
from th1c_lib.transport import Transport


def probe(transport: Transport, command: bytes, settle_s: float, max_bytes: int) -> bytes:
    """Send one command and return everything received after settle_s."""
    transport.flush_input()
    transport.write_bytes(command)
    time.sleep(settle_s)
    return transport.read_until_idle(max_bytes)


def diagnose(transport: Transport, settle_s: float = protocol.SINGLE_SETTLE_DELAY) -> List[Tuple[str, bytes, str]]:
    """Probe every command and return (label, raw answer, decode result) rows."""
    rows = []

    for label, command in (("ping", protocol.PING_CMD), ("help", protocol.HELP_CMD)):
        raw = probe(transport, command, settle_s, protocol.AGGREGATE_RESPONSE_SIZE)
        rows.append((label, raw, "-"))

    for kind in ReadingKind:
        raw = probe(transport, protocol.wire_command(kind), settle_s, protocol.RESPONSE_SIZES[kind])
        try:
            result = repr(parsing.decode(kind, parsing.response_text(raw)))
        except DecodeError as e:
            result = f"{type(e).__name__}: {e}"
        rows.append((kind.value, raw, result))

    return rows


def main(port: str = protocol.DEFAULT_PORT, settle_s: float = protocol.SINGLE_SETTLE_DELAY) -> int:
    print(f"\n=== Opening {port} ===")
    try:
        transport = Transport.open(port, protocol.DEFAULT_BAUD)
    except SerialIOError as e:
        print(f"*** {e} ***")
        return 1

    try:
        for label, raw, result in diagnose(transport, settle_s):
            print(f"\n=== {label} ===")
            print(f"RX ({len(raw)} bytes): {raw!r}")
            print(f"Decoded: {result}")
    finally:
        transport.close()
        print("\nPort closed")
    return 0


if __name__ == "__main__":
    port = sys.argv[1] if len(sys.argv) > 1 else protocol.DEFAULT_PORT
    settle = float(sys.argv[2]) if len(sys.argv) > 2 else protocol.SINGLE_SETTLE_DELAY
    sys.exit(main(port, settle))
