"""Shared fixtures and helpers for the DLP-TH1C test suite."""

import pytest

from fakes.fake_serial import FakeSerial
from th1c_lib.config import SessionConfig
from th1c_lib.transport import Transport


@pytest.fixture
def fake_serial() -> FakeSerial:
    """FakeSerial with the default readings."""
    return FakeSerial()


@pytest.fixture
def transport(fake_serial: FakeSerial) -> Transport:
    return Transport(fake_serial)


@pytest.fixture
def fast_config() -> SessionConfig:
    """No settle delays; the fake answers immediately."""
    return SessionConfig(settle_delay_s=0, batch_settle_delay_s=0)
