"""Serial-port transport for a bound /dev/rfcommN device or a USB-serial adapter."""

from __future__ import annotations

import logging

import serial

from streetlight.core.errors import (
    TransportConnectError,
    TransportReceiveError,
    TransportSendError,
)

LOGGER = logging.getLogger(__name__)


class SerialTransport:
    def __init__(self, port: str, baudrate: int = 9600, *, timeout_s: float = 1.0) -> None:
        self.port = port
        self.baudrate = baudrate
        self.timeout_s = timeout_s
        self._serial: serial.Serial | None = None

    @property
    def connected(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def open(self) -> None:
        if self.connected:
            return
        try:
            self._serial = serial.Serial(self.port, self.baudrate, timeout=self.timeout_s)
        except (serial.SerialException, ValueError) as exc:
            raise TransportConnectError(f"Could not open serial port {self.port}: {exc}") from exc
        LOGGER.info("Opened serial port %s at %d baud", self.port, self.baudrate)

    def close(self) -> None:
        if self._serial is None:
            return
        try:
            self._serial.close()
        finally:
            self._serial = None
            LOGGER.info("Closed serial port %s", self.port)

    def __enter__(self) -> SerialTransport:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def write(self, data: bytes) -> None:
        port = self._require_port()
        try:
            port.write(data)
            port.flush()
        except serial.SerialException as exc:
            raise TransportSendError(f"Serial write to {self.port} failed: {exc}") from exc

    def available(self) -> int:
        port = self._require_port()
        try:
            return port.in_waiting
        except (serial.SerialException, OSError) as exc:
            raise TransportReceiveError(f"Serial poll on {self.port} failed: {exc}") from exc

    def read(self, size: int) -> bytes:
        port = self._require_port()
        try:
            return port.read(size)
        except serial.SerialException as exc:
            raise TransportReceiveError(f"Serial read from {self.port} failed: {exc}") from exc

    def reset_input_buffer(self) -> None:
        port = self._require_port()
        try:
            port.reset_input_buffer()
        except serial.SerialException as exc:
            raise TransportReceiveError(f"Serial flush on {self.port} failed: {exc}") from exc

    def _require_port(self) -> serial.Serial:
        if self._serial is None:
            raise TransportConnectError(f"Serial port {self.port} is not open")
        return self._serial
