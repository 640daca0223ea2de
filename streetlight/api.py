"""Stable public API for building tooling on top of streetlightctl.

This module is the supported integration surface for third-party callers
(GUI front ends, scripts, services). Avoid importing from internal modules
unless intentionally depending on non-stable internals.
"""

from __future__ import annotations

from streetlight.core.client import DeviceClient
from streetlight.core.codec import (
    decode_ack,
    decode_parameters,
    encode_command,
    expected_response_length,
)
from streetlight.core.errors import (
    ExchangeCancelledError,
    MalformedResponseError,
    ProfileLoadError,
    ProfileValidationError,
    ProtocolError,
    ProtocolFailure,
    StreetlightError,
    TransportConnectError,
    TransportError,
    TransportReceiveError,
    TransportSendError,
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
    Profile,
    SetAliveTime,
    SetClock,
    SetLuminosity,
    SetMode,
    SetTimeSlot,
    TimeSlot,
    split_year,
)
from streetlight.core.service import StreetlightService
from streetlight.transports.base import Transport
from streetlight.transports.rfcomm import RFCOMMTransport
from streetlight.transports.serial_port import SerialTransport

__all__ = [
    "StreetlightError",
    "ValidationError",
    "ProfileLoadError",
    "ProfileValidationError",
    "ProtocolError",
    "ProtocolFailure",
    "MalformedResponseError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportReceiveError",
    "TransportTimeoutError",
    "ExchangeCancelledError",
    "Command",
    "GetParameters",
    "SetMode",
    "SetTimeSlot",
    "SetLuminosity",
    "SetAliveTime",
    "SetClock",
    "DeviceParameters",
    "ExchangeResult",
    "ExchangeState",
    "FailureKind",
    "Mode",
    "Profile",
    "TimeSlot",
    "encode_command",
    "expected_response_length",
    "decode_ack",
    "decode_parameters",
    "split_year",
    "Transport",
    "RFCOMMTransport",
    "SerialTransport",
    "DeviceClient",
    "StreetlightService",
    "connect",
]


def connect(
    profile_id: str | None = None,
    *,
    mac: str | None = None,
    port: str | None = None,
    timeout_s: float | None = None,
) -> StreetlightService:
    """Build a service for ``profile_id`` and open its connection."""
    service = StreetlightService(profile_id, mac=mac, port=port, timeout_s=timeout_s)
    service.connect()
    return service
