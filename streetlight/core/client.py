"""Blocking command/acknowledgement client for the streetlight controller."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone

from streetlight.core.codec import decode_ack, decode_parameters, encode_command, expected_response_length
from streetlight.core.errors import (
    ExchangeCancelledError,
    ProtocolError,
    StreetlightError,
    TransportError,
    TransportReceiveError,
    TransportTimeoutError,
    ValidationError,
)
from streetlight.core.model import (
    Command,
    DeviceParameters,
    ExchangeResult,
    ExchangeState,
    FailureKind,
    GetParameters,
    Mode,
    SetAliveTime,
    SetClock,
    SetLuminosity,
    SetMode,
    SetTimeSlot,
    TimeSlot,
)
from streetlight.transports.base import Transport

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 5.0
DEFAULT_POLL_INTERVAL_S = 0.01


class DeviceClient:
    """Protocol client that owns one transport and runs one exchange at a time.

    Every operation writes a full command, waits until the expected number of
    response bytes is available (or ``timeout_s`` elapses), then reads and
    decodes them. Concurrent callers are serialized by an internal lock.

    The protocol carries no resynchronization marker. After a timeout or a
    cancellation the stream may still hold a late response, so ``needs_resync``
    is set and the caller decides whether to call :meth:`resynchronize`.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if timeout_s <= 0:
            raise ValidationError(f"timeout_s must be positive, got {timeout_s}")
        if poll_interval_s < 0:
            raise ValidationError(f"poll_interval_s must not be negative, got {poll_interval_s}")
        self.transport = transport
        self.timeout_s = timeout_s
        self.poll_interval_s = poll_interval_s
        self._clock = clock
        self._lock = threading.Lock()
        self._cancelled = threading.Event()
        self._state = ExchangeState.IDLE
        self._needs_resync = False

    @property
    def state(self) -> ExchangeState:
        return self._state

    @property
    def needs_resync(self) -> bool:
        return self._needs_resync

    def exchange(self, command: Command) -> bytes:
        """Send ``command`` and return the raw response bytes."""
        request = encode_command(command)
        expected = expected_response_length(command)

        with self._lock:
            if self._needs_resync:
                LOGGER.warning(
                    "Sending %r while the response stream may be misaligned; call resynchronize() first",
                    request,
                )
            self._cancelled.clear()
            self._state = ExchangeState.IDLE
            try:
                self.transport.write(request)
                self._state = ExchangeState.SENT
                LOGGER.debug("Sent %s, awaiting %d byte(s)", request.hex(), expected)

                self._state = ExchangeState.AWAITING
                self._wait_for(expected)

                response = self.transport.read(expected)
                if len(response) != expected:
                    self._needs_resync = True
                    raise TransportReceiveError(
                        f"Short read: expected {expected} byte(s), got {len(response)}"
                    )
            except TransportTimeoutError:
                self._state = ExchangeState.TIMED_OUT
                self._needs_resync = True
                raise
            except ExchangeCancelledError:
                self._state = ExchangeState.CANCELLED
                self._needs_resync = True
                raise
            except TransportError:
                self._state = ExchangeState.FAILED
                raise
            except Exception:
                self._state = ExchangeState.FAILED
                self._needs_resync = True
                raise

            self._state = ExchangeState.COMPLETED
            LOGGER.debug("Received %s for %s", response.hex(), command.description)
            return response

    def _wait_for(self, expected: int) -> None:
        deadline = self._clock() + self.timeout_s
        while True:
            available = self.transport.available()
            if available >= expected:
                return
            if self._cancelled.is_set():
                raise ExchangeCancelledError("Exchange cancelled while waiting for response")
            if self._clock() >= deadline:
                raise TransportTimeoutError(
                    f"Timed out after {self.timeout_s:.2f}s waiting for {expected} byte(s) "
                    f"({available} received)"
                )
            # Event.wait doubles as the poll sleep and wakes early on cancel().
            self._cancelled.wait(self.poll_interval_s)

    def cancel(self) -> None:
        """Abort the exchange currently waiting for a response, if any."""
        self._cancelled.set()

    def resynchronize(self) -> None:
        """Discard unread input so the next response lines up with the next command."""
        with self._lock:
            self.transport.reset_input_buffer()
            self._needs_resync = False
            self._state = ExchangeState.IDLE
            LOGGER.info("Input buffer flushed; response stream resynchronized")

    def execute(self, command: Command) -> ExchangeResult:
        """Run one exchange and report the outcome without raising library errors."""
        try:
            request = encode_command(command)
        except ValidationError as exc:
            return ExchangeResult(
                command=command,
                request=None,
                response=None,
                success=False,
                failure=FailureKind.VALIDATION,
                error=exc,
            )

        try:
            response = self.exchange(command)
        except TransportTimeoutError as exc:
            return _failed(command, request, FailureKind.TIMEOUT, exc)
        except TransportError as exc:
            return _failed(command, request, FailureKind.TRANSPORT, exc)

        if isinstance(command, GetParameters):
            try:
                parameters = decode_parameters(response)
            except ProtocolError as exc:
                return _failed(command, request, FailureKind.PROTOCOL, exc, response=response)
            return ExchangeResult(
                command=command,
                request=request,
                response=response,
                success=True,
                parameters=parameters,
            )

        if decode_ack(response):
            return ExchangeResult(command=command, request=request, response=response, success=True)
        LOGGER.debug("Device rejected %s with ack %s", command.description, response.hex())
        return ExchangeResult(
            command=command,
            request=request,
            response=response,
            success=False,
            failure=FailureKind.PROTOCOL,
        )

    def get_parameters(self) -> DeviceParameters:
        return decode_parameters(self.exchange(GetParameters()))

    def set_mode(self, mode: Mode | int) -> bool:
        return self._set(SetMode(mode))

    def set_time_slot(self, time_slot: TimeSlot) -> bool:
        return self._set(SetTimeSlot(time_slot))

    def set_luminosity(self, level: int) -> bool:
        return self._set(SetLuminosity(level))

    def set_alive_time(self, minutes: int) -> bool:
        return self._set(SetAliveTime(minutes))

    def set_clock(self, moment: datetime | None = None, *, utc: bool = False) -> bool:
        if moment is None:
            moment = datetime.now(timezone.utc) if utc else datetime.now()
        elif utc:
            # Naive values are taken as local time, as astimezone() does.
            moment = moment.astimezone(timezone.utc)
        return self._set(SetClock.from_datetime(moment))

    def _set(self, command: Command) -> bool:
        return decode_ack(self.exchange(command))


def _failed(
    command: Command,
    request: bytes,
    failure: FailureKind,
    error: StreetlightError,
    *,
    response: bytes | None = None,
) -> ExchangeResult:
    return ExchangeResult(
        command=command,
        request=request,
        response=response,
        success=False,
        failure=failure,
        error=error,
    )
