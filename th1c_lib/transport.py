"""Serial transport layer for DLP-TH1C sensor communication."""

import logging
from typing import Protocol

from th1c_lib import protocol
from th1c_lib.errors import SerialIOError

logger = logging.getLogger(__name__)


class SerialLike(Protocol):
    """Protocol for serial port interface (allows test doubles)."""

    def write(self, data: bytes) -> int:
        """Write bytes to serial port."""
        ...

    def read(self, size: int = 1) -> bytes:
        """Read up to size bytes; returns fewer (or none) on timeout."""
        ...

    def flush(self) -> None:
        """Flush output buffer (force transmission)."""
        ...

    def reset_input_buffer(self) -> None:
        """Flush input buffer."""
        ...

    def close(self) -> None:
        """Close serial port."""
        ...

    @property
    def is_open(self) -> bool:
        """Check if port is open."""
        ...


class Transport:
    """Wrapper around pyserial for the sensor's byte-command protocol.

    Commands are single bytes with no terminator. Responses carry no length,
    so reads drain the port until it goes idle.
    """

    # Bytes requested per read() call while draining
    CHUNK_SIZE = 64

    def __init__(self, serial_port: SerialLike) -> None:
        """Initialize transport with a serial port instance.

        Args:
            serial_port: Object implementing SerialLike protocol
                        (e.g., serial.Serial or FakeSerial for testing)
        """
        self._port = serial_port

    @classmethod
    def open(
        cls,
        port: str = protocol.DEFAULT_PORT,
        baud: int = protocol.DEFAULT_BAUD,
        timeout_s: float = protocol.DEFAULT_READ_TIMEOUT,
    ) -> "Transport":
        """Open a real serial port (requires pyserial).

        Args:
            port: Serial port device name (e.g., "/dev/ttyACM0")
            baud: Baud rate. Default 115200 matches the DLP-TH1C.
            timeout_s: Read timeout in seconds; a read that times out empty ends a drain.

        Returns:
            Transport instance wrapping opened serial port

        Raises:
            SerialIOError: If port cannot be opened
        """
        try:
            import serial  # type: ignore
        except ImportError as e:
            raise SerialIOError("pyserial not installed. Run: pip install pyserial") from e

        try:
            ser = serial.Serial(
                port=port,
                baudrate=baud,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=timeout_s,
                rtscts=False,
                dsrdtr=False,
                xonxoff=False,
            )
            logger.info(f"Opened serial port {port} at {baud} baud, timeout={timeout_s}s")
            return cls(ser)
        except (serial.SerialException, ValueError, OSError) as e:
            raise SerialIOError(f"Failed to open {port} at {baud} baud: {e}") from e

    def close(self) -> None:
        """Close the serial port."""
        if self._port.is_open:
            self._port.close()
            logger.info("Closed serial port")

    @property
    def is_open(self) -> bool:
        """Check if port is currently open."""
        return self._port.is_open

    def write_bytes(self, data: bytes) -> None:
        """Write raw command bytes to port.

        Args:
            data: Raw bytes to send

        Raises:
            SerialIOError: If write fails
        """
        if not self._port.is_open:
            raise SerialIOError("Serial port is not open")

        try:
            sent = self._port.write(data)
            self._port.flush()  # Force immediate transmission
            logger.debug(f"Sent {sent} bytes: {data!r}")
        except Exception as e:
            raise SerialIOError(f"Failed to write to port: {e}") from e

    def read_until_idle(self, max_bytes: int = protocol.AGGREGATE_RESPONSE_SIZE) -> bytes:
        """Read everything the device sends until a read times out empty.

        Args:
            max_bytes: Stop after this many bytes even if more are pending

        Returns:
            Bytes received (empty if the device stayed silent)

        Raises:
            SerialIOError: If port is closed or read fails
        """
        if not self._port.is_open:
            raise SerialIOError("Serial port is not open")

        buf = bytearray()
        try:
            while len(buf) < max_bytes:
                chunk = self._port.read(min(self.CHUNK_SIZE, max_bytes - len(buf)))
                if not chunk:
                    break
                buf.extend(chunk)
        except Exception as e:
            raise SerialIOError(f"Failed to read from port: {e}") from e

        logger.debug(f"Received {len(buf)} bytes: {bytes(buf)!r}")
        return bytes(buf)

    def flush_input(self) -> None:
        """Discard all pending input from device.

        Raises:
            SerialIOError: If port is closed
        """
        if not self._port.is_open:
            raise SerialIOError("Serial port is not open")

        try:
            self._port.reset_input_buffer()
            logger.debug("Flushed input buffer")
        except Exception as e:
            raise SerialIOError(f"Failed to flush input: {e}") from e
