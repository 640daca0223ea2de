"""RFCOMM transport implementation using Python sockets."""

from __future__ import annotations

import logging
import select
import socket

from streetlight.core.errors import (
    TransportConnectError,
    TransportReceiveError,
    TransportSendError,
    TransportTimeoutError,
)

LOGGER = logging.getLogger(__name__)
_RECV_CHUNK = 1024


class RFCOMMTransport:
    """Serial-port-profile link to an HC-05 style module.

    The socket is connected once by :meth:`open` and kept for the lifetime of
    the transport. Incoming bytes are drained into an internal buffer by
    :meth:`available`, so waiting for a response never blocks on ``recv``.
    """

    def __init__(self, mac: str, channel: int = 1, *, connect_timeout_s: float = 10.0) -> None:
        self.mac = mac
        self.channel = channel
        self.connect_timeout_s = connect_timeout_s
        self._socket: socket.socket | None = None
        self._buffer = bytearray()
        self._peer_closed = False

    @property
    def connected(self) -> bool:
        return self._socket is not None

    def open(self) -> None:
        if self._socket is not None:
            return
        try:
            af_bluetooth = socket.AF_BLUETOOTH
            btproto_rfcomm = socket.BTPROTO_RFCOMM
        except AttributeError as exc:
            raise TransportConnectError(
                "This Python build does not expose Bluetooth socket APIs (AF_BLUETOOTH/BTPROTO_RFCOMM)."
            ) from exc

        try:
            bt_socket = socket.socket(af_bluetooth, socket.SOCK_STREAM, btproto_rfcomm)
        except OSError as exc:
            raise TransportConnectError(f"Could not create RFCOMM socket: {exc}") from exc

        bt_socket.settimeout(self.connect_timeout_s)
        try:
            bt_socket.connect((self.mac, self.channel))
        except TimeoutError as exc:
            bt_socket.close()
            raise TransportTimeoutError(
                f"RFCOMM connect timed out for {self.mac} on channel {self.channel}"
            ) from exc
        except OSError as exc:
            bt_socket.close()
            raise TransportConnectError(
                f"RFCOMM connect failed for {self.mac} on channel {self.channel}: {exc}"
            ) from exc

        # Writes stay blocking; reads only happen once select reports data.
        bt_socket.settimeout(None)
        self._socket = bt_socket
        self._buffer.clear()
        self._peer_closed = False
        LOGGER.info("Connected to %s on RFCOMM channel %d", self.mac, self.channel)

    def close(self) -> None:
        if self._socket is None:
            return
        try:
            self._socket.close()
        finally:
            self._socket = None
            self._buffer.clear()
            self._peer_closed = False
            LOGGER.info("Closed RFCOMM connection to %s", self.mac)

    def __enter__(self) -> RFCOMMTransport:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def write(self, data: bytes) -> None:
        bt_socket = self._require_socket()
        try:
            bt_socket.sendall(data)
        except OSError as exc:
            raise TransportSendError(f"RFCOMM send failed: {exc}") from exc

    def available(self) -> int:
        self._drain()
        if not self._buffer and self._peer_closed:
            raise TransportReceiveError(f"RFCOMM connection to {self.mac} closed by peer")
        return len(self._buffer)

    def read(self, size: int) -> bytes:
        self._drain()
        if not self._buffer and self._peer_closed:
            raise TransportReceiveError(f"RFCOMM connection to {self.mac} closed by peer")
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def reset_input_buffer(self) -> None:
        self._drain()
        if self._buffer:
            LOGGER.debug("Discarding %d buffered bytes: %s", len(self._buffer), self._buffer.hex())
        self._buffer.clear()

    def _drain(self) -> None:
        bt_socket = self._require_socket()
        while not self._peer_closed:
            try:
                readable, _, _ = select.select([bt_socket], [], [], 0)
            except (OSError, ValueError) as exc:
                raise TransportReceiveError(f"RFCOMM poll failed: {exc}") from exc
            if not readable:
                return
            try:
                chunk = bt_socket.recv(_RECV_CHUNK)
            except OSError as exc:
                raise TransportReceiveError(f"RFCOMM receive failed: {exc}") from exc
            if not chunk:
                # Bytes received before the hang-up stay readable.
                LOGGER.info("RFCOMM peer %s closed the connection", self.mac)
                self._peer_closed = True
                return
            self._buffer.extend(chunk)

    def _require_socket(self) -> socket.socket:
        if self._socket is None:
            raise TransportConnectError(f"RFCOMM transport for {self.mac} is not connected")
        return self._socket
