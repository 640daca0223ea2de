"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol


class Transport(Protocol):
    """Ordered byte stream to the controller, held open for the client lifetime."""

    def write(self, data: bytes) -> None:
        """Write the whole buffer in one call."""

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes that are already available."""

    def available(self) -> int:
        """Return the number of bytes that can be read without blocking."""

    def reset_input_buffer(self) -> None:
        """Discard any bytes received but not yet read."""

    def close(self) -> None:
        """Release the underlying connection."""
