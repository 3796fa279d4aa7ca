"""Tests for PollingSession cycles and producer loops using FakeSerial."""

import itertools
import time

import pytest

from fakes.fake_serial import FakeSerial
from th1c_lib import protocol
from th1c_lib.config import SessionConfig
from th1c_lib.errors import DataMissing, InvalidCommand, SerialIOError
from th1c_lib.models import ReadingKind, SessionState
from th1c_lib.session import PollingSession
from th1c_lib.transport import Transport


@pytest.fixture
def session(fake_serial: FakeSerial, fast_config: SessionConfig):
    sess = PollingSession(Transport(fake_serial), fast_config)
    yield sess
    sess.close()


def take(session: PollingSession, n: int):
    return list(itertools.islice(session.snapshots(), n))


def wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


# =============================================================================
# Single Cycles
# =============================================================================

def test_read_single_temperature(session: PollingSession, fake_serial: FakeSerial) -> None:
    snapshot = session.read_single(ReadingKind.TEMPERATURE)

    assert fake_serial.written == [b"t"]
    assert len(snapshot) == 1
    assert snapshot.get(ReadingKind.TEMPERATURE).value == 23.45
    assert session.state == SessionState.DECODING


def test_read_single_routes_vibration(session: PollingSession, fake_serial: FakeSerial) -> None:
    snapshot = session.read_single(ReadingKind.VIBRATION_Y)

    assert fake_serial.written == [b"v"]
    assert snapshot.get(ReadingKind.VIBRATION_Y).axis == "Y"


def test_read_single_decode_error(fake_serial: FakeSerial, fast_config: SessionConfig) -> None:
    fake_serial.garbled.add(ReadingKind.HUMIDITY)
    session = PollingSession(Transport(fake_serial), fast_config)
    try:
        with pytest.raises(DataMissing) as exc_info:
            session.read_single(ReadingKind.HUMIDITY)
        assert exc_info.value.fragment is not None
    finally:
        session.close()


@pytest.mark.parametrize("command", [b"t", b"f", "a", ord("z"), b"X"])
def test_read_vibration_rejects_non_axis_before_io(
    session: PollingSession, fake_serial: FakeSerial, command
) -> None:
    with pytest.raises(InvalidCommand):
        session.read_vibration(command)
    assert fake_serial.written == []


def test_read_vibration_accepts_axis_commands(session: PollingSession) -> None:
    for command, axis in ((b"x", "X"), ("v", "Y"), (ord("w"), "Z")):
        snapshot = session.read_vibration(command)
        (reading,) = snapshot.readings.values()
        assert reading.axis == axis


def test_read_aggregate(session: PollingSession, fake_serial: FakeSerial) -> None:
    snapshot = session.read_aggregate()

    assert fake_serial.written == [protocol.AGGREGATE_REQUEST]
    assert snapshot is not None
    assert set(snapshot) == set(ReadingKind)


def test_read_aggregate_too_short_returns_none(fast_config: SessionConfig) -> None:
    fake = FakeSerial(truncate_to=200)
    session = PollingSession(Transport(fake), fast_config)
    try:
        assert session.read_aggregate() is None
    finally:
        session.close()


# =============================================================================
# Producer Loops
# =============================================================================

def test_single_kind_loop_publishes(session: PollingSession, fake_serial: FakeSerial) -> None:
    session.start("p")
    snapshots = take(session, 3)

    assert all(list(s.readings) == [ReadingKind.PRESSURE] for s in snapshots)
    assert all(s.get(ReadingKind.PRESSURE).value == 1013.25 for s in snapshots)
    assert snapshots[0].ts <= snapshots[1].ts <= snapshots[2].ts
    assert set(fake_serial.written) == {b"p"}
    assert session.command == "p"

    session.stop()
    assert session.state == SessionState.STOPPED
    assert not session.is_running()


def test_single_kind_decode_error_is_fatal(fake_serial: FakeSerial, fast_config: SessionConfig) -> None:
    fake_serial.garbled.add(ReadingKind.HUMIDITY)
    session = PollingSession(Transport(fake_serial), fast_config)
    try:
        session.start("h")
        with pytest.raises(DataMissing):
            list(session.snapshots())

        assert session.state == SessionState.FAILED
        assert isinstance(session.error, DataMissing)
        assert not wait_for(lambda: len(fake_serial.written) > 1, timeout=0.2)
    finally:
        session.close()


def test_run_raises_in_calling_thread(fake_serial: FakeSerial, fast_config: SessionConfig) -> None:
    fake_serial.garbled.add(ReadingKind.LIGHT)
    session = PollingSession(Transport(fake_serial), fast_config)
    try:
        with pytest.raises(DataMissing):
            session.run("l")
        assert session.state == SessionState.FAILED
    finally:
        session.close()


def test_aggregate_loop_publishes_full_snapshots(session: PollingSession, fake_serial: FakeSerial) -> None:
    session.start("all")
    (snapshot,) = take(session, 1)

    assert set(snapshot) == set(ReadingKind)
    assert fake_serial.written[0] == protocol.AGGREGATE_REQUEST


def test_aggregate_loop_retries_too_short_responses(fast_config: SessionConfig) -> None:
    """Short batches are discarded silently and the loop keeps polling."""
    fake = FakeSerial(truncate_to=200)
    session = PollingSession(Transport(fake), fast_config)
    try:
        session.start("all")
        assert wait_for(lambda: len(fake.written) >= 3)
        assert session.is_running()
        assert session.error is None

        fake.truncate_to = None
        (snapshot,) = take(session, 1)
        assert len(snapshot) == 10
    finally:
        session.close()


def test_aggregate_loop_keeps_partial_snapshots(fast_config: SessionConfig) -> None:
    fake = FakeSerial(garbled=[ReadingKind.TILT, ReadingKind.LIGHT])
    session = PollingSession(Transport(fake), fast_config)
    try:
        session.start("all")
        snapshots = take(session, 2)

        for snapshot in snapshots:
            assert len(snapshot) == 8
            assert ReadingKind.TILT not in snapshot
            assert ReadingKind.LIGHT not in snapshot
    finally:
        session.close()


def test_letter_combination_filters_aggregate(session: PollingSession, fake_serial: FakeSerial) -> None:
    session.start("thl")
    (snapshot,) = take(session, 1)

    assert fake_serial.written[0] == protocol.AGGREGATE_REQUEST
    assert set(snapshot) == {ReadingKind.TEMPERATURE, ReadingKind.HUMIDITY, ReadingKind.LIGHT}


def test_config_kinds_filter(fake_serial: FakeSerial) -> None:
    config = SessionConfig(
        settle_delay_s=0,
        batch_settle_delay_s=0,
        kinds={ReadingKind.BROADBAND, ReadingKind.VIBRATION_Z},
    )
    session = PollingSession(Transport(fake_serial), config)
    try:
        session.start("all")
        (snapshot,) = take(session, 1)
        assert set(snapshot) == {ReadingKind.BROADBAND, ReadingKind.VIBRATION_Z}
    finally:
        session.close()


def test_config_kinds_filter_leaves_single_kind_alone(fake_serial: FakeSerial) -> None:
    """A single-kind loop publishes its reading even when the filter excludes it."""
    config = SessionConfig(settle_delay_s=0, batch_settle_delay_s=0, kinds={ReadingKind.HUMIDITY})
    session = PollingSession(Transport(fake_serial), config)
    try:
        session.start("t")
        snapshots = take(session, 3)

        for snapshot in snapshots:
            assert len(snapshot) == 1
            assert snapshot.get(ReadingKind.TEMPERATURE).value == 23.45
    finally:
        session.close()


def test_serial_error_is_fatal_and_closes_transport(fake_serial: FakeSerial, fast_config: SessionConfig) -> None:
    fake_serial.fail_reads = True
    session = PollingSession(Transport(fake_serial), fast_config)
    try:
        session.start("t")
        with pytest.raises(SerialIOError):
            list(session.snapshots())

        assert session.state == SessionState.FAILED
        assert not fake_serial.is_open
    finally:
        session.close()


def test_start_invalid_command_does_no_io(session: PollingSession, fake_serial: FakeSerial) -> None:
    with pytest.raises(InvalidCommand):
        session.start("tz")
    assert not session.is_running()
    assert fake_serial.written == []


def test_start_twice_raises(session: PollingSession) -> None:
    session.start("t")
    with pytest.raises(SerialIOError):
        session.start("t")


def test_snapshots_without_start_is_empty(session: PollingSession) -> None:
    assert list(session.snapshots()) == []
    assert session.state == SessionState.IDLE


def test_close_closes_transport(fake_serial: FakeSerial, fast_config: SessionConfig) -> None:
    session = PollingSession(Transport(fake_serial), fast_config)
    session.start("b")
    take(session, 1)

    session.close()

    assert not session.is_running()
    assert not fake_serial.is_open


def test_restart_after_stop(session: PollingSession) -> None:
    session.start("t")
    take(session, 1)
    session.stop()

    session.start("l")
    deadline = time.time() + 2.0
    for snapshot in session.snapshots():
        if ReadingKind.LIGHT in snapshot or time.time() > deadline:
            break
    assert ReadingKind.LIGHT in snapshot
