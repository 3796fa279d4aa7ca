"""Command-line front end: poll the sensor and print snapshots.

Usage:
    th1c all                      # every reading, one batch per ~30s
    th1c t                        # temperature only, every ~2s
    th1c thl --port /dev/ttyACM1  # batch request, print only t, h and l
"""

import argparse
import logging
import sys
from typing import List, Optional, TextIO

from th1c_lib import protocol
from th1c_lib.config import SessionConfig
from th1c_lib.errors import DecodeError, InvalidCommand, SerialIOError
from th1c_lib.formatting import format_snapshot
from th1c_lib.models import ReadingKind
from th1c_lib.session import PollingSession
from th1c_lib.transport import Transport

logger = logging.getLogger(__name__)

USAGE = """
===============================================================
USAGE: th1c COMMAND [options]
all:\t\t\t\tRead All Data
(COMBINE BELOW COMMANDS):\tRead Customized Data but takes 30 secs
t:\t\t\t\tRead Temperature Data Only
h:\t\t\t\tRead Humidity Data Only
p:\t\t\t\tRead Pressure Data Only
a:\t\t\t\tRead Tilt Data Only
x:\t\t\t\tRead Vibration (X Axis) Data Only
v:\t\t\t\tRead Vibration (Y Axis) Data Only
w:\t\t\t\tRead Vibration (Z Axis) Data Only
l:\t\t\t\tRead Light Level Data Only
f:\t\t\t\tRead Sound Data Only
b:\t\t\t\tRead Broadband Data Only
===============================================================
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="th1c",
        description="Read DLP-TH1C sensor data over a serial port",
        add_help=True,
    )
    parser.add_argument("command", nargs="?", help="'all', a command letter, or several letters")
    parser.add_argument("--port", default=protocol.DEFAULT_PORT, help="Serial port")
    parser.add_argument("--baud", type=int, default=protocol.DEFAULT_BAUD, help="Baud rate")
    parser.add_argument(
        "--settle",
        type=float,
        default=protocol.SINGLE_SETTLE_DELAY,
        help="Seconds to wait for a single reading",
    )
    parser.add_argument(
        "--batch-settle",
        type=float,
        default=protocol.BATCH_SETTLE_DELAY,
        help="Seconds to wait for the all-readings batch",
    )
    parser.add_argument(
        "--count", type=int, default=None, help="Stop after this many snapshots"
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    return parser


def display_order(command: str) -> List[ReadingKind]:
    """Kinds in the order the user typed them; request order for "all"."""
    if command == protocol.AGGREGATE_KEYWORD:
        return list(protocol.AGGREGATE_ORDER)
    order: List[ReadingKind] = []
    for ch in command:
        kind = protocol.kind_of(ch)
        if kind not in order:
            order.append(kind)
    return order


def main(argv: Optional[List[str]] = None, out: Optional[TextIO] = None) -> int:
    """Entry point. Returns the process exit code."""
    out = out or sys.stdout
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if not args.command:
        out.write(USAGE)
        return 0

    try:
        protocol.resolve_command(args.command)
        order = display_order(args.command)
        config = SessionConfig(
            settle_delay_s=args.settle,
            batch_settle_delay_s=args.batch_settle,
        )
    except (InvalidCommand, ValueError) as e:
        logger.debug(f"Rejected command line: {e}")
        out.write(USAGE)
        return 0

    try:
        transport = Transport.open(args.port, args.baud)
    except SerialIOError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    session = PollingSession(transport, config)
    printed = 0
    try:
        session.start(args.command)
        for snapshot in session.snapshots():
            out.write(format_snapshot(snapshot, order) + "\n\n")
            out.flush()
            printed += 1
            if args.count is not None and printed >= args.count:
                break
    except (DecodeError, SerialIOError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        session.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
