"""Core data models used across codec, client, service, and CLI."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import ClassVar

from streetlight.core.errors import ProtocolFailure, StreetlightError, ValidationError

ACK = 0x41
MAX_ALIVE_TIME = 240
PARAMETERS_RESPONSE_LENGTH = 7


def check_range(name: str, value: int, low: int, high: int) -> int:
    """Return ``value`` if it is an int within ``[low, high]``, else raise."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if not low <= value <= high:
        raise ValidationError(f"{name} must be in [{low}, {high}], got {value}")
    return value


def split_year(year: int) -> tuple[int, int]:
    """Big-endian high and low bytes of a 16-bit year."""
    check_range("year", year, 0, 0xFFFF)
    return (year >> 8) & 0xFF, year & 0xFF


class Mode(IntEnum):
    OFF = 0
    ON = 1
    AUTO = 2

    @classmethod
    def parse(cls, text: str) -> int:
        """Resolve a mode name (case-insensitive) or a raw wire index."""
        normalized = text.strip()
        if normalized.isdecimal():
            return check_range("mode", int(normalized), 0, 0xFF)
        try:
            return cls[normalized.upper()]
        except KeyError:
            allowed = ", ".join(m.name.lower() for m in cls)
            raise ValidationError(f"Unknown mode '{text}'. Allowed: {allowed} or a numeric index") from None


@dataclass(frozen=True)
class TimeSlot:
    start_hour: int
    start_minute: int
    end_hour: int
    end_minute: int

    def validate(self) -> None:
        check_range("time_slot.start_hour", self.start_hour, 0, 23)
        check_range("time_slot.start_minute", self.start_minute, 0, 59)
        check_range("time_slot.end_hour", self.end_hour, 0, 23)
        check_range("time_slot.end_minute", self.end_minute, 0, 59)

    def format(self) -> str:
        return (
            f"{self.start_hour:02d}:{self.start_minute:02d}-"
            f"{self.end_hour:02d}:{self.end_minute:02d}"
        )


@dataclass(frozen=True)
class DeviceParameters:
    mode: int
    time_slot: TimeSlot
    luminosity: int
    alive_time: int

    @property
    def mode_name(self) -> str | None:
        try:
            return Mode(self.mode).name.lower()
        except ValueError:
            return None


@dataclass(frozen=True)
class Command:
    """One outbound instruction. Subclasses define the tag and payload."""

    tag: ClassVar[bytes] = b""
    response_length: ClassVar[int] = 1
    description: ClassVar[str] = ""

    def validate(self) -> None:
        """Raise ``ValidationError`` if any field cannot be encoded."""

    def payload(self) -> tuple[int, ...]:
        return ()


@dataclass(frozen=True)
class GetParameters(Command):
    tag: ClassVar[bytes] = b"p"
    response_length: ClassVar[int] = PARAMETERS_RESPONSE_LENGTH
    description: ClassVar[str] = "parameters"


@dataclass(frozen=True)
class SetMode(Command):
    mode: int
    tag: ClassVar[bytes] = b"m"
    description: ClassVar[str] = "mode"

    def validate(self) -> None:
        check_range("mode", self.mode, 0, 0xFF)

    def payload(self) -> tuple[int, ...]:
        return (int(self.mode),)


@dataclass(frozen=True)
class SetTimeSlot(Command):
    time_slot: TimeSlot
    tag: ClassVar[bytes] = b"t"
    description: ClassVar[str] = "time slot"

    def validate(self) -> None:
        self.time_slot.validate()

    def payload(self) -> tuple[int, ...]:
        slot = self.time_slot
        return (slot.start_hour, slot.start_minute, slot.end_hour, slot.end_minute)


@dataclass(frozen=True)
class SetLuminosity(Command):
    level: int
    tag: ClassVar[bytes] = b"l"
    description: ClassVar[str] = "luminosity threshold"

    def validate(self) -> None:
        check_range("luminosity", self.level, 0, 0xFF)

    def payload(self) -> tuple[int, ...]:
        return (self.level,)


@dataclass(frozen=True)
class SetAliveTime(Command):
    minutes: int
    tag: ClassVar[bytes] = b"a"
    description: ClassVar[str] = "alive time"

    def validate(self) -> None:
        check_range("alive_time", self.minutes, 0, MAX_ALIVE_TIME)

    def payload(self) -> tuple[int, ...]:
        return (self.minutes,)


@dataclass(frozen=True)
class SetClock(Command):
    """Device clock. ``month`` is 0-based (January is 0) and sent as-is."""

    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int
    tag: ClassVar[bytes] = b"g"
    description: ClassVar[str] = "clock"

    @classmethod
    def from_datetime(cls, moment: datetime) -> SetClock:
        return cls(
            year=moment.year,
            month=moment.month - 1,
            day=moment.day,
            hour=moment.hour,
            minute=moment.minute,
            second=moment.second,
        )

    def validate(self) -> None:
        check_range("clock.year", self.year, 0, 0xFFFF)
        check_range("clock.month", self.month, 0, 11)
        check_range("clock.day", self.day, 1, 31)
        check_range("clock.hour", self.hour, 0, 23)
        check_range("clock.minute", self.minute, 0, 59)
        check_range("clock.second", self.second, 0, 59)

    def payload(self) -> tuple[int, ...]:
        year_high, year_low = split_year(self.year)
        return (self.second, self.minute, self.hour, self.day, self.month, year_high, year_low)


@dataclass(frozen=True)
class TransportSpec:
    type: str
    mac: str | None = None
    channel: int = 1
    connect_timeout_s: float = 10.0
    port: str | None = None
    baudrate: int = 9600


@dataclass(frozen=True)
class ExchangeSpec:
    timeout_s: float = 5.0
    poll_interval_s: float = 0.01


@dataclass(frozen=True)
class Profile:
    id: str
    name: str
    transport: TransportSpec
    exchange: ExchangeSpec


class ExchangeState(Enum):
    IDLE = "idle"
    SENT = "sent"
    AWAITING = "awaiting"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FailureKind(Enum):
    VALIDATION = "validation"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    PROTOCOL = "protocol"


@dataclass(frozen=True)
class ExchangeResult:
    command: Command
    request: bytes | None
    response: bytes | None
    success: bool
    parameters: DeviceParameters | None = None
    failure: FailureKind | None = None
    error: StreetlightError | None = None

    @property
    def message(self) -> str:
        if self.success:
            if isinstance(self.command, GetParameters):
                return "Parameters retrieved"
            return f"{self.command.description.capitalize()} set"
        if self.error is not None:
            return f"Error {_verb(self.command)} {self.command.description}: {self.error}"
        return f"Error {_verb(self.command)} {self.command.description}"

    def raise_for_failure(self) -> None:
        if self.success:
            return
        if self.error is not None:
            raise self.error
        raise ProtocolFailure(
            f"Device rejected {self.command.description} "
            f"(ack={self.response.hex() if self.response else '<none>'})"
        )


def _verb(command: Command) -> str:
    return "retrieving" if isinstance(command, GetParameters) else "setting"
