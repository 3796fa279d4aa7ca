"""Polling session driving request -> wait -> read -> decode -> publish cycles."""

import logging
import queue
import threading
import time
from datetime import datetime, timezone
from typing import FrozenSet, Iterator, Optional, Tuple

from th1c_lib import parsing, protocol
from th1c_lib.aggregator import AggregationEngine
from th1c_lib.config import SessionConfig
from th1c_lib.errors import DecodeError, InvalidCommand, ResponseTooShort, SerialIOError
from th1c_lib.models import (
    VIBRATION_KINDS,
    ReadingKind,
    SessionMode,
    SessionState,
    Snapshot,
)
from th1c_lib.transport import Transport

logger = logging.getLogger(__name__)


class PollingSession:
    """Owns one transport and produces snapshots for a consumer.

    Two loop variants exist. The single-kind loop asks for one reading per
    cycle and stops on the first decode error. The aggregate loop asks for all
    ten readings in one write, publishes whatever decoded, and silently retries
    when the response is too short to hold every field.
    """

    def __init__(
        self,
        transport: Transport,
        config: Optional[SessionConfig] = None,
        engine: Optional[AggregationEngine] = None,
    ) -> None:
        """Initialize session.

        Args:
            transport: Open transport. The session owns it from here on.
            config: Timing, filter and queue settings. Defaults to SessionConfig().
            engine: Aggregation engine for the batch request. Created if None.
        """
        self._transport = transport
        self._config = config or SessionConfig()
        self._engine = engine or AggregationEngine()

        self._state = SessionState.IDLE
        self._state_lock = threading.Lock()

        # Consumer queue; ownership of a snapshot passes to whoever gets it
        self._queue: "queue.Queue[Snapshot]" = queue.Queue(maxsize=self._config.queue_size)

        self._worker: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._done_event = threading.Event()
        self._done_event.set()  # nothing running yet
        self._error: Optional[BaseException] = None
        self._command: Optional[str] = None

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def state(self) -> SessionState:
        """Current state of the polling state machine."""
        return self._state

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def command(self) -> Optional[str]:
        """Command string the running loop was started with."""
        return self._command

    @property
    def error(self) -> Optional[BaseException]:
        """Fatal error that ended the loop, if any."""
        return self._error

    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    # ========================================================================
    # Single Cycles
    # ========================================================================

    def read_single(self, kind: ReadingKind) -> Snapshot:
        """Run one single-kind cycle.

        Returns:
            Snapshot with exactly one reading

        Raises:
            DecodeError: If the answer cannot be decoded
            SerialIOError: If the transport fails
        """
        if kind in VIBRATION_KINDS:
            return self.read_vibration(protocol.wire_command(kind))
        return self._single_cycle(kind)

    def read_vibration(self, command: protocol.CommandLike) -> Snapshot:
        """Run one vibration cycle for the axis selected by command.

        Raises:
            InvalidCommand: If command is not one of the three axis commands.
                            Raised before anything is written to the transport.
        """
        try:
            kind = protocol.kind_of(command)
        except InvalidCommand as e:
            raise InvalidCommand(f"Not a vibration axis command: {command!r}", command) from e

        if kind not in VIBRATION_KINDS:
            raise InvalidCommand(f"Not a vibration axis command: {command!r}", command)
        return self._single_cycle(kind)

    def read_aggregate(self) -> Optional[Snapshot]:
        """Run one aggregate cycle.

        Returns:
            Snapshot with up to ten readings, or None if the response was too
            short to hold every field (the cycle is discarded)

        Raises:
            SerialIOError: If the transport fails
        """
        ts, raw = self._exchange(
            protocol.AGGREGATE_REQUEST,
            self._config.batch_settle_delay_s,
            protocol.AGGREGATE_RESPONSE_SIZE,
        )

        self._set_state(SessionState.DECODING)
        try:
            return self._engine.decode(raw, ts)
        except ResponseTooShort as e:
            logger.warning(f"Discarding aggregate cycle: {e}")
            return None

    def _single_cycle(self, kind: ReadingKind) -> Snapshot:
        ts, raw = self._exchange(
            protocol.wire_command(kind),
            self._config.settle_delay_s,
            protocol.RESPONSE_SIZES[kind],
        )

        self._set_state(SessionState.DECODING)
        reading = parsing.decode(kind, parsing.response_text(raw))
        return Snapshot(ts=ts, readings={kind: reading})

    def _exchange(
        self, request: bytes, settle_s: float, max_bytes: int
    ) -> Tuple[datetime, bytes]:
        """Write request, wait the settle delay, then drain the answer."""
        self._set_state(SessionState.REQUESTING)
        self._transport.write_bytes(request)
        ts = datetime.now(timezone.utc)

        self._set_state(SessionState.WAITING)
        time.sleep(settle_s)

        self._set_state(SessionState.READING)
        raw = self._transport.read_until_idle(max_bytes)
        return ts, raw

    # ========================================================================
    # Producer Loop
    # ========================================================================

    def start(self, command: str) -> None:
        """Start the producer loop for command in a background thread.

        Args:
            command: "all", one command letter, or a combination of letters

        Raises:
            InvalidCommand: If command cannot be resolved
            SerialIOError: If a loop is already running
        """
        single_kind, output_kinds = self._plan(command)

        with self._state_lock:
            if self.is_running():
                raise SerialIOError("Polling loop already running")
            self._prepare(command)
            self._worker = threading.Thread(
                target=self._run_loop,
                args=(single_kind, output_kinds),
                name="PollingSession",
                daemon=True,
            )
            self._worker.start()

        mode = SessionMode.SINGLE if single_kind is not None else SessionMode.AGGREGATE
        logger.info(f"Started {mode.value} polling for command {command!r}")

    def run(self, command: str) -> None:
        """Run the producer loop in the calling thread until stopped or failed.

        Raises:
            InvalidCommand: If command cannot be resolved
            DecodeError: If a single-kind cycle fails to decode
            SerialIOError: If the transport fails
        """
        single_kind, output_kinds = self._plan(command)
        self._prepare(command)
        self._run_loop(single_kind, output_kinds)
        if self._error is not None:
            raise self._error

    def stop(self, timeout: Optional[float] = None) -> None:
        """Ask the loop to stop after the current cycle and wait for it.

        Args:
            timeout: Max seconds to wait for the thread. Defaults to one
                     full batch settle delay plus a margin.
        """
        self._stop_event.set()
        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            if timeout is None:
                timeout = self._config.batch_settle_delay_s + 5.0
            worker.join(timeout=timeout)
            if worker.is_alive():
                logger.warning("Polling thread did not stop in time")
            else:
                self._worker = None

    def close(self) -> None:
        """Stop the loop, release the decoder pool and close the transport."""
        self.stop()
        self._engine.close()
        self._transport.close()

    def snapshots(self, poll_interval: float = 0.1) -> Iterator[Snapshot]:
        """Yield published snapshots until the loop ends.

        Raises:
            DecodeError, SerialIOError: The fatal error that ended the loop,
                                        after all earlier snapshots were yielded
        """
        while True:
            try:
                yield self._queue.get(timeout=poll_interval)
            except queue.Empty:
                if self._done_event.is_set() and self._queue.empty():
                    if self._error is not None:
                        raise self._error
                    return

    def _plan(
        self, command: str
    ) -> Tuple[Optional[ReadingKind], Optional[FrozenSet[ReadingKind]]]:
        """Resolve command into (single-loop kind, aggregate output filter).

        Exactly one of the two drives the loop: a kind selects the single-kind
        loop, otherwise the aggregate loop runs. The configured kinds filter
        only applies to aggregate snapshots.
        """
        mode, kinds = protocol.resolve_command(command)
        if mode is SessionMode.SINGLE and kinds:
            (kind,) = kinds
            return kind, None
        if self._config.kinds is not None:
            return None, self._config.kinds
        return None, kinds

    def _prepare(self, command: str) -> None:
        self._command = command
        self._error = None
        self._stop_event.clear()
        self._done_event.clear()

    def _run_loop(
        self,
        single_kind: Optional[ReadingKind],
        output_kinds: Optional[FrozenSet[ReadingKind]],
    ) -> None:
        """Producer loop. Stop requests are honoured between cycles only."""
        logger.info(f"Polling loop started (thread {threading.get_ident()})")

        try:
            while not self._stop_event.is_set():
                if single_kind is not None:
                    snapshot = self.read_single(single_kind)
                else:
                    aggregate = self.read_aggregate()
                    if aggregate is None:
                        continue
                    snapshot = aggregate
                    if output_kinds is not None:
                        snapshot = snapshot.filtered(output_kinds)
                self._publish(snapshot)

            self._set_state(SessionState.STOPPED)

        except DecodeError as e:
            logger.error(f"Decode failed, stopping loop: {e} (fragment={e.fragment!r})")
            self._fail(e)
        except SerialIOError as e:
            logger.error(f"Transport failed, closing session: {e}")
            self._fail(e)
            self._transport.close()
        except Exception as e:
            logger.error(f"Unexpected error in polling loop: {e}", exc_info=True)
            self._fail(e)
        finally:
            self._done_event.set()
            logger.info("Polling loop stopped")

    def _publish(self, snapshot: Snapshot) -> None:
        """Hand snapshot to the consumer queue, giving up only on stop."""
        self._set_state(SessionState.PUBLISHING)
        while not self._stop_event.is_set():
            try:
                self._queue.put(snapshot, timeout=0.1)
                logger.debug(
                    f"Published snapshot at {snapshot.ts.isoformat()} "
                    f"with {len(snapshot)} readings"
                )
                return
            except queue.Full:
                continue
        logger.debug("Stop requested while consumer queue was full, snapshot dropped")

    def _fail(self, error: BaseException) -> None:
        self._error = error
        self._set_state(SessionState.FAILED)

    def _set_state(self, state: SessionState) -> None:
        if state is not self._state:
            logger.debug(f"State {self._state.value} -> {state.value}")
            self._state = state
