from __future__ import annotations

import pytest

from streetlight.core.client import DeviceClient


class ScriptedTransport:
    """Transport spy that answers every write with a fixed reply."""

    def __init__(self, reply: bytes = b"A") -> None:
        self.reply = reply
        self.writes: list[bytes] = []
        self.resets = 0
        self.closed = False
        self._pending = bytearray()

    @property
    def bytes_written(self) -> int:
        return sum(len(w) for w in self.writes)

    def write(self, data: bytes) -> None:
        self.writes.append(bytes(data))
        self._pending.extend(self.reply)

    def available(self) -> int:
        return len(self._pending)

    def read(self, size: int) -> bytes:
        data = bytes(self._pending[:size])
        del self._pending[:size]
        return data

    def reset_input_buffer(self) -> None:
        self.resets += 1
        self._pending.clear()

    def close(self) -> None:
        self.closed = True


class SimulatedStreetlight(ScriptedTransport):
    """Minimal firmware stand-in: stores setter values and echoes them on 'p'."""

    def __init__(self) -> None:
        super().__init__()
        self.state = {
            "mode": 0,
            "time_slot": (0, 0, 0, 0),
            "luminosity": 0,
            "alive_time": 0,
            "clock": None,
        }

    def write(self, data: bytes) -> None:
        self.writes.append(bytes(data))
        tag, payload = data[:1], data[1:]
        if tag == b"p":
            self._pending.extend(
                bytes(
                    [
                        self.state["mode"],
                        *self.state["time_slot"],
                        self.state["luminosity"],
                        self.state["alive_time"],
                    ]
                )
            )
            return
        if tag == b"m":
            self.state["mode"] = payload[0]
        elif tag == b"t":
            self.state["time_slot"] = tuple(payload)
        elif tag == b"l":
            self.state["luminosity"] = payload[0]
        elif tag == b"a":
            self.state["alive_time"] = payload[0]
        elif tag == b"g":
            self.state["clock"] = tuple(payload)
        else:
            self._pending.extend(b"N")
            return
        self._pending.extend(b"A")


@pytest.fixture
def ack_transport() -> ScriptedTransport:
    return ScriptedTransport(b"A")


@pytest.fixture
def device() -> SimulatedStreetlight:
    return SimulatedStreetlight()


@pytest.fixture
def device_client(device: SimulatedStreetlight) -> DeviceClient:
    return DeviceClient(device, timeout_s=1.0, poll_interval_s=0.001)
