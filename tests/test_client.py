from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from conftest import ScriptedTransport, SimulatedStreetlight
from streetlight.core.client import DeviceClient
from streetlight.core.errors import (
    ExchangeCancelledError,
    ProtocolFailure,
    TransportReceiveError,
    TransportSendError,
    TransportTimeoutError,
    ValidationError,
)
from streetlight.core.model import (
    DeviceParameters,
    ExchangeState,
    FailureKind,
    GetParameters,
    Mode,
    SetAliveTime,
    SetLuminosity,
    TimeSlot,
)


class SilentTransport(ScriptedTransport):
    def __init__(self) -> None:
        super().__init__(reply=b"")


class ShortReadTransport(ScriptedTransport):
    def read(self, size: int) -> bytes:
        return super().read(size)[: size - 1]


class BrokenWriteTransport(ScriptedTransport):
    def write(self, data: bytes) -> None:
        raise TransportSendError("link down")


class SlowTransport(ScriptedTransport):
    """Replies after a few polls and fails if two exchanges overlap."""

    def __init__(self, polls_before_reply: int = 3) -> None:
        super().__init__(b"A")
        self.polls_before_reply = polls_before_reply
        self._polls = 0
        self.in_flight = False
        self.overlaps = 0

    def write(self, data: bytes) -> None:
        if self.in_flight:
            self.overlaps += 1
        self.in_flight = True
        self._polls = 0
        super().write(data)

    def available(self) -> int:
        self._polls += 1
        if self._polls <= self.polls_before_reply:
            return 0
        return super().available()

    def read(self, size: int) -> bytes:
        data = super().read(size)
        self.in_flight = False
        return data


def _setters(client: DeviceClient) -> list[bool]:
    return [
        client.set_mode(Mode.ON),
        client.set_time_slot(TimeSlot(20, 0, 6, 30)),
        client.set_luminosity(128),
        client.set_alive_time(15),
        client.set_clock(datetime(2024, 6, 1, 12, 0, 0)),
    ]


def test_every_setter_succeeds_on_ack(ack_transport: ScriptedTransport) -> None:
    client = DeviceClient(ack_transport, timeout_s=1.0, poll_interval_s=0.001)
    assert _setters(client) == [True] * 5
    assert ack_transport.writes[0] == b"m\x01"
    assert ack_transport.writes[1] == bytes([0x74, 20, 0, 6, 30])
    assert ack_transport.writes[4] == bytes([0x67, 0, 0, 12, 1, 5, 7, 0xE8])
    assert client.state is ExchangeState.COMPLETED


@pytest.mark.parametrize("reply", [b"N", b"\x00", b"a", b"\xff"])
def test_every_setter_reports_failure_on_non_ack(reply: bytes) -> None:
    client = DeviceClient(ScriptedTransport(reply), timeout_s=1.0, poll_interval_s=0.001)
    assert _setters(client) == [False] * 5


def test_alive_time_above_limit_never_reaches_transport(ack_transport: ScriptedTransport) -> None:
    client = DeviceClient(ack_transport, timeout_s=1.0, poll_interval_s=0.001)
    for minutes in range(241, 256):
        with pytest.raises(ValidationError):
            client.set_alive_time(minutes)
    assert ack_transport.bytes_written == 0
    assert client.state is ExchangeState.IDLE


def test_get_parameters_decodes_response() -> None:
    transport = ScriptedTransport(bytes([1, 8, 30, 18, 0, 120, 60]))
    client = DeviceClient(transport, timeout_s=1.0, poll_interval_s=0.001)

    parameters = client.get_parameters()

    assert parameters == DeviceParameters(
        mode=1,
        time_slot=TimeSlot(8, 30, 18, 0),
        luminosity=120,
        alive_time=60,
    )
    assert transport.writes == [b"p"]


_EDGE_TIMES = [(0, 0), (6, 30), (12, 59), (23, 59)]


@pytest.mark.parametrize("hour", range(24))
def test_every_start_time_round_trips_through_device(device_client: DeviceClient, hour: int) -> None:
    for minute in range(60):
        for end_hour, end_minute in _EDGE_TIMES:
            slot = TimeSlot(hour, minute, end_hour, end_minute)
            assert device_client.set_time_slot(slot) is True
            assert device_client.get_parameters().time_slot == slot


@pytest.mark.parametrize("hour", range(24))
def test_every_end_time_round_trips_through_device(device_client: DeviceClient, hour: int) -> None:
    for minute in range(60):
        for start_hour, start_minute in _EDGE_TIMES:
            slot = TimeSlot(start_hour, start_minute, hour, minute)
            assert device_client.set_time_slot(slot) is True
            assert device_client.get_parameters().time_slot == slot


def test_device_state_follows_setters(device: SimulatedStreetlight, device_client: DeviceClient) -> None:
    device_client.set_mode(Mode.AUTO)
    device_client.set_luminosity(42)
    device_client.set_alive_time(240)

    parameters = device_client.get_parameters()
    assert parameters.mode == Mode.AUTO
    assert parameters.luminosity == 42
    assert parameters.alive_time == 240


def test_timeout_is_bounded() -> None:
    transport = SilentTransport()
    client = DeviceClient(transport, timeout_s=0.2, poll_interval_s=0.005)

    started = time.monotonic()
    with pytest.raises(TransportTimeoutError):
        client.get_parameters()
    assert time.monotonic() - started < 2.0

    with pytest.raises(TransportTimeoutError):
        client.set_luminosity(10)

    assert client.state is ExchangeState.TIMED_OUT
    assert client.needs_resync is True


def test_timeout_uses_injected_clock() -> None:
    ticks = iter([0.0, 1.0, 2.0, 10.0])
    client = DeviceClient(SilentTransport(), timeout_s=5.0, poll_interval_s=0, clock=lambda: next(ticks))
    with pytest.raises(TransportTimeoutError):
        client.set_mode(0)


def test_resynchronize_flushes_and_clears_flag() -> None:
    transport = SilentTransport()
    client = DeviceClient(transport, timeout_s=0.05, poll_interval_s=0.005)
    with pytest.raises(TransportTimeoutError):
        client.set_mode(1)

    transport.reply = b"A"
    client.resynchronize()

    assert transport.resets == 1
    assert client.needs_resync is False
    assert client.state is ExchangeState.IDLE
    assert client.set_mode(1) is True


def test_short_read_is_transport_failure() -> None:
    client = DeviceClient(ShortReadTransport(bytes(7)), timeout_s=1.0, poll_interval_s=0.001)
    with pytest.raises(TransportReceiveError):
        client.get_parameters()
    assert client.state is ExchangeState.FAILED


def test_write_failure_propagates() -> None:
    client = DeviceClient(BrokenWriteTransport(), timeout_s=1.0, poll_interval_s=0.001)
    with pytest.raises(TransportSendError):
        client.set_luminosity(1)
    assert client.state is ExchangeState.FAILED


def test_cancel_aborts_waiting_exchange() -> None:
    client = DeviceClient(SilentTransport(), timeout_s=5.0, poll_interval_s=0.01)
    errors: list[BaseException] = []

    def _run() -> None:
        try:
            client.get_parameters()
        except ExchangeCancelledError as exc:
            errors.append(exc)

    worker = threading.Thread(target=_run)
    worker.start()
    deadline = time.monotonic() + 2.0
    while client.state is not ExchangeState.AWAITING and time.monotonic() < deadline:
        time.sleep(0.005)
    client.cancel()
    worker.join(timeout=2.0)

    assert not worker.is_alive()
    assert len(errors) == 1
    assert client.state is ExchangeState.CANCELLED
    assert client.needs_resync is True


def test_concurrent_callers_are_serialized() -> None:
    transport = SlowTransport(polls_before_reply=3)
    client = DeviceClient(transport, timeout_s=2.0, poll_interval_s=0.001)
    results: list[bool] = []
    lock = threading.Lock()

    def _run(level: int) -> None:
        ok = client.set_luminosity(level)
        with lock:
            results.append(ok)

    threads = [threading.Thread(target=_run, args=(level,)) for level in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5.0)

    assert results == [True] * 8
    assert transport.overlaps == 0
    assert len(transport.writes) == 8


def test_execute_reports_discriminated_results() -> None:
    ok = DeviceClient(ScriptedTransport(b"A"), timeout_s=1.0, poll_interval_s=0.001)
    result = ok.execute(SetLuminosity(5))
    assert result.success is True
    assert result.request == b"l\x05"
    assert result.response == b"A"
    assert result.message == "Luminosity threshold set"

    rejected = DeviceClient(ScriptedTransport(b"N"), timeout_s=1.0, poll_interval_s=0.001)
    result = rejected.execute(SetLuminosity(5))
    assert result.success is False
    assert result.failure is FailureKind.PROTOCOL
    assert result.message == "Error setting luminosity threshold"
    with pytest.raises(ProtocolFailure):
        result.raise_for_failure()

    spy = ScriptedTransport(b"A")
    result = DeviceClient(spy, timeout_s=1.0, poll_interval_s=0.001).execute(SetAliveTime(241))
    assert result.failure is FailureKind.VALIDATION
    assert result.request is None
    assert spy.bytes_written == 0

    silent = DeviceClient(SilentTransport(), timeout_s=0.05, poll_interval_s=0.005)
    result = silent.execute(GetParameters())
    assert result.failure is FailureKind.TIMEOUT
    assert isinstance(result.error, TransportTimeoutError)

    broken = DeviceClient(BrokenWriteTransport(), timeout_s=1.0, poll_interval_s=0.001)
    assert broken.execute(SetLuminosity(1)).failure is FailureKind.TRANSPORT


def test_execute_get_parameters_returns_decoded_values() -> None:
    client = DeviceClient(ScriptedTransport(bytes([2, 19, 0, 7, 0, 80, 30])), timeout_s=1.0, poll_interval_s=0.001)
    result = client.execute(GetParameters())
    assert result.success is True
    assert result.parameters is not None
    assert result.parameters.time_slot == TimeSlot(19, 0, 7, 0)
    assert result.parameters.mode_name == "auto"
    result.raise_for_failure()


def test_client_stays_usable_after_failure() -> None:
    transport = ScriptedTransport(b"N")
    client = DeviceClient(transport, timeout_s=1.0, poll_interval_s=0.001)
    assert client.set_mode(0) is False
    transport.reply = b"A"
    assert client.set_mode(0) is True


def test_invalid_client_settings() -> None:
    with pytest.raises(ValidationError):
        DeviceClient(ScriptedTransport(), timeout_s=0)
    with pytest.raises(ValidationError):
        DeviceClient(ScriptedTransport(), poll_interval_s=-1)


class RawErrorTransport(ScriptedTransport):
    def available(self) -> int:
        raise OSError(5, "Input/output error")


def test_unexpected_transport_error_marks_exchange_failed() -> None:
    client = DeviceClient(RawErrorTransport(), timeout_s=1.0, poll_interval_s=0.001)
    with pytest.raises(OSError):
        client.get_parameters()
    assert client.state is ExchangeState.FAILED
    assert client.needs_resync is True


def test_timeout_is_a_builtin_timeout_error() -> None:
    client = DeviceClient(SilentTransport(), timeout_s=0.05, poll_interval_s=0.005)
    with pytest.raises(TimeoutError):
        client.set_mode(Mode.OFF)


def test_set_clock_converts_aware_moment_to_utc(ack_transport: ScriptedTransport) -> None:
    client = DeviceClient(ack_transport, timeout_s=1.0, poll_interval_s=0.001)
    moment = datetime(2024, 1, 1, 1, 30, 0, tzinfo=timezone(timedelta(hours=2)))

    assert client.set_clock(moment, utc=True) is True
    assert client.set_clock(moment) is True

    # 01:30+02:00 on Jan 1 is 23:30 UTC on Dec 31 of the previous year.
    assert ack_transport.writes[0] == bytes([0x67, 0, 30, 23, 31, 11, 0x07, 0xE7])
    assert ack_transport.writes[1] == bytes([0x67, 0, 30, 1, 1, 0, 0x07, 0xE8])
