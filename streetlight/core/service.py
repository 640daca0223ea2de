"""Service layer used by the CLI and other front ends."""

from __future__ import annotations

import logging
import socket
from dataclasses import replace
from datetime import datetime

from streetlight.core.client import DeviceClient
from streetlight.core.errors import ProfileValidationError, TransportConnectError, ValidationError
from streetlight.core.model import DeviceParameters, Mode, Profile, TimeSlot
from streetlight.core.profile_loader import default_profile_id, load_profiles, normalize_mac
from streetlight.transports.base import Transport
from streetlight.transports.rfcomm import RFCOMMTransport
from streetlight.transports.serial_port import SerialTransport

LOGGER = logging.getLogger(__name__)


class StreetlightService:
    """Resolves a device profile, opens its transport, and owns one client.

    Pass ``transport`` to bypass profile-driven transport construction (tests,
    custom links). The connection is opened by :meth:`connect` or on entering
    the context manager and closed by :meth:`close`.
    """

    def __init__(
        self,
        profile_id: str | None = None,
        *,
        mac: str | None = None,
        channel: int | None = None,
        port: str | None = None,
        timeout_s: float | None = None,
        transport: Transport | None = None,
    ) -> None:
        loaded = load_profiles()
        self.profiles = loaded.profiles
        self.load_warnings = loaded.warnings
        self.profile = self._resolve_profile(
            profile_id or default_profile_id(),
            mac=mac,
            channel=channel,
            port=port,
            timeout_s=timeout_s,
        )
        self.runtime_warnings = _runtime_warnings(self.profile.transport.type)
        self._transport = transport
        self._client: DeviceClient | None = None

    def list_profiles(self) -> list[Profile]:
        return sorted(self.profiles.values(), key=lambda p: p.id)

    def _resolve_profile(
        self,
        profile_id: str,
        *,
        mac: str | None,
        channel: int | None,
        port: str | None,
        timeout_s: float | None,
    ) -> Profile:
        profile = self.profiles.get(profile_id)
        if profile is None:
            available = ", ".join(sorted(self.profiles)) or "<none>"
            raise ProfileValidationError(f"Unknown profile '{profile_id}'. Available: {available}")

        transport = profile.transport
        if port:
            transport = replace(transport, type="serial", port=port)
        if mac:
            transport = replace(transport, type="rfcomm", mac=normalize_mac(mac, context="--mac"))
        if channel is not None:
            transport = replace(transport, channel=channel)

        exchange = profile.exchange
        if timeout_s is not None:
            exchange = replace(exchange, timeout_s=timeout_s)
        if exchange.timeout_s <= 0:
            raise ValidationError(f"timeout must be positive, got {exchange.timeout_s}")
        if exchange.poll_interval_s < 0:
            raise ValidationError(f"poll interval must not be negative, got {exchange.poll_interval_s}")

        return replace(profile, transport=transport, exchange=exchange)

    def _build_transport(self) -> RFCOMMTransport | SerialTransport:
        spec = self.profile.transport
        if spec.type == "rfcomm":
            if not spec.mac:
                raise TransportConnectError(
                    f"Profile '{self.profile.id}' has no device address. Pass --mac or set transport.mac."
                )
            transport: RFCOMMTransport | SerialTransport = RFCOMMTransport(spec.mac, spec.channel, connect_timeout_s=spec.connect_timeout_s)
        elif spec.type == "serial":
            if not spec.port:
                raise TransportConnectError(f"Profile '{self.profile.id}' has no serial port configured.")
            transport = SerialTransport(spec.port, spec.baudrate)
        else:
            raise ProfileValidationError(
                f"Unsupported transport type '{spec.type}' for profile '{self.profile.id}'."
            )
        return transport

    @property
    def client(self) -> DeviceClient:
        if self._client is None:
            self.connect()
        assert self._client is not None
        return self._client

    def connect(self) -> DeviceClient:
        if self._client is not None:
            return self._client
        owns_transport = self._transport is None
        transport = self._build_transport() if owns_transport else self._transport
        client = DeviceClient(
            transport,
            timeout_s=self.profile.exchange.timeout_s,
            poll_interval_s=self.profile.exchange.poll_interval_s,
        )
        if owns_transport:
            transport.open()
        self._transport = transport
        self._client = client
        LOGGER.debug("Client ready for profile %s", self.profile.id)
        return self._client

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
        self._transport = None
        self._client = None

    def __enter__(self) -> StreetlightService:
        self.connect()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get_parameters(self) -> DeviceParameters:
        return self.client.get_parameters()

    def set_mode(self, mode: Mode | int) -> bool:
        return self.client.set_mode(mode)

    def set_time_slot(self, time_slot: TimeSlot) -> bool:
        return self.client.set_time_slot(time_slot)

    def set_luminosity(self, level: int) -> bool:
        return self.client.set_luminosity(level)

    def set_alive_time(self, minutes: int) -> bool:
        return self.client.set_alive_time(minutes)

    def set_clock(self, moment: datetime | None = None, *, utc: bool = False) -> bool:
        return self.client.set_clock(moment, utc=utc)

    def resynchronize(self) -> None:
        self.client.resynchronize()

    def sync(self, *, utc: bool = False) -> tuple[bool, DeviceParameters]:
        """Push the host clock, then read back the current parameters."""
        clock_ok = self.set_clock(utc=utc)
        if not clock_ok:
            LOGGER.warning("Device did not acknowledge the clock update")
        return clock_ok, self.get_parameters()


def _runtime_warnings(transport_type: str) -> tuple[str, ...]:
    warnings: list[str] = []
    if transport_type != "rfcomm":
        return ()
    if not hasattr(socket, "AF_BLUETOOTH") or not hasattr(socket, "BTPROTO_RFCOMM"):
        warnings.append(
            "Python runtime missing AF_BLUETOOTH/BTPROTO_RFCOMM; RFCOMM transport will fail, use --port instead."
        )
    return tuple(warnings)
