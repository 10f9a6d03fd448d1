# Power Logger
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License

"""Abstract transport protocol for register reads.

Defines the RegisterTransport interface that the Modbus RTU and mock
transports implement. The poller only ever asks for one block of
holding registers per cycle, so the interface stays small.
"""

from typing import Protocol, runtime_checkable


class TransportError(Exception):
    """Raised when a register read fails."""


@runtime_checkable
class RegisterTransport(Protocol):
    """Protocol for meter communication transports.

    Implementations: ModbusTransport, MockMeter.
    """

    async def connect(self) -> None:
        """Open the connection to the meter."""
        ...

    async def read_registers(self, address: int, count: int) -> bytes:
        """Read ``count`` holding registers starting at ``address``.

        Returns the raw big-endian register bytes. Raises TransportError.
        """
        ...

    def get_health(self) -> dict:
        """Return transport health metrics."""
        ...

    def close(self) -> None:
        """Close the transport connection."""
        ...
