"""Wire encoding and decoding for the streetlight controller protocol.

Each command is a single ASCII tag byte followed by unsigned 8-bit payload
bytes. Setters answer with one acknowledgement byte (``'A'`` on success);
``GetParameters`` answers with seven positional bytes. There is no framing,
escaping, or checksum beyond these fixed sizes.
"""

from __future__ import annotations

from streetlight.core.errors import MalformedResponseError
from streetlight.core.model import (
    ACK,
    PARAMETERS_RESPONSE_LENGTH,
    Command,
    DeviceParameters,
    TimeSlot,
    check_range,
)


def encode_command(command: Command) -> bytes:
    """Validate ``command`` and return the exact bytes to write."""
    command.validate()
    payload = command.payload()
    for index, value in enumerate(payload):
        check_range(f"{command.description} byte {index}", value, 0, 0xFF)
    return command.tag + bytes(payload)


def expected_response_length(command: Command) -> int:
    return command.response_length


def decode_ack(raw: bytes) -> bool:
    return len(raw) == 1 and raw[0] == ACK


def decode_parameters(raw: bytes) -> DeviceParameters:
    if len(raw) != PARAMETERS_RESPONSE_LENGTH:
        raise MalformedResponseError(
            f"Parameters response must be {PARAMETERS_RESPONSE_LENGTH} bytes, got {len(raw)}"
        )
    mode, start_hour, start_minute, end_hour, end_minute, luminosity, alive_time = raw
    return DeviceParameters(
        mode=mode,
        time_slot=TimeSlot(start_hour, start_minute, end_hour, end_minute),
        luminosity=luminosity,
        alive_time=alive_time,
    )
