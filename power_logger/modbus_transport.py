# Power Logger
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License

"""Modbus RTU transport for the power meter.

Wraps pymodbus' AsyncModbusSerialClient. Reads are serialized with an
asyncio.Lock since the RS-485 bus carries one request at a time, and the
connection is reopened lazily after the port drops.

Typical hardware setup: meter RS-485 A/B -> USB RS-485 adapter ->
/dev/ttyUSBN (or the on-board UART at /dev/ttyS0).
"""

import asyncio
import logging
import struct
import time

from pymodbus import FramerType
from pymodbus.client import AsyncModbusSerialClient
from pymodbus.exceptions import ModbusException

from .config import Config
from .transport import TransportError

logger = logging.getLogger(__name__)


class ModbusTransport:
    """RegisterTransport implementation over Modbus RTU."""

    def __init__(
        self,
        port: str,
        slave_id: int = 1,
        baud: int = 9600,
        bytesize: int = 8,
        parity: str = "N",
        stopbits: int = 1,
        timeout: float = 5.0,
        retries: int = 0,
    ):
        self._port = port
        self._slave_id = slave_id
        self._baud = baud
        self._serial_params = {
            "baudrate": baud,
            "bytesize": bytesize,
            "parity": parity,
            "stopbits": stopbits,
            "timeout": timeout,
            "retries": retries,
        }
        # pymodbus needs a running loop to build a client, so it is
        # created on first connect()
        self._client: AsyncModbusSerialClient | None = None
        self._lock = asyncio.Lock()

        # Health tracking
        self._total_reads = 0
        self._failed_reads = 0
        self._consecutive_failures = 0
        self._last_success_time: float | None = None
        self._last_error_time: float | None = None
        self._last_error_msg: str | None = None
        self._last_read_duration: float | None = None

    @classmethod
    def from_config(cls, config: Config) -> "ModbusTransport":
        return cls(
            config.serial_port,
            slave_id=config.slave_id,
            baud=config.serial_baud,
            bytesize=config.serial_bytesize,
            parity=config.serial_parity,
            stopbits=config.serial_stopbits,
            timeout=config.modbus_timeout,
        )

    @property
    def port(self) -> str:
        return self._port

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def is_connected(self) -> bool:
        return self._client is not None and bool(self._client.connected)

    def get_health(self) -> dict:
        """Return Modbus link health metrics."""
        return {
            "port": self._port,
            "baud": self._baud,
            "slave_id": self._slave_id,
            "connected": self.is_connected,
            "total_reads": self._total_reads,
            "failed_reads": self._failed_reads,
            "consecutive_failures": self._consecutive_failures,
            "last_success": self._last_success_time,
            "last_error": self._last_error_time,
            "last_error_msg": self._last_error_msg,
            "last_read_duration_ms": (
                round(self._last_read_duration * 1000, 1)
                if self._last_read_duration is not None else None
            ),
            "reachable": self._consecutive_failures < 10,
        }

    def reset_health(self) -> None:
        """Zero out failure counters after recovery."""
        self._consecutive_failures = 0
        self._failed_reads = 0
        self._last_error_msg = None
        self._last_error_time = None

    def _record_success(self):
        self._consecutive_failures = 0
        self._last_success_time = time.time()

    def _record_failure(self, msg: str):
        self._failed_reads += 1
        self._consecutive_failures += 1
        self._last_error_time = time.time()
        self._last_error_msg = msg
        if self._consecutive_failures == 1:
            logger.warning("Modbus: %s", msg)
        elif self._consecutive_failures <= 5:
            logger.error("Modbus: %s (failure %d)", msg, self._consecutive_failures)
        elif self._consecutive_failures % 30 == 0:
            logger.error(
                "Modbus: meter unreachable for %d consecutive failures: %s",
                self._consecutive_failures, msg,
            )

    async def connect(self) -> None:
        """Open the serial port."""
        if self._client is None:
            self._client = AsyncModbusSerialClient(
                self._port, framer=FramerType.RTU, **self._serial_params,
            )
        if not await self._client.connect():
            raise TransportError(f"could not open {self._port}")
        logger.info("Modbus: opened %s at %d baud, slave %d",
                    self._port, self._baud, self._slave_id)

    async def read_registers(self, address: int, count: int) -> bytes:
        """Read holding registers and return them as big-endian bytes."""
        async with self._lock:
            self._total_reads += 1
            start = time.monotonic()
            try:
                if not self.is_connected:
                    await self.connect()
                response = await self._client.read_holding_registers(
                    address, count=count, device_id=self._slave_id,
                )
            except TransportError as e:
                self._record_failure(str(e))
                raise
            except (ModbusException, OSError, asyncio.TimeoutError) as e:
                self._record_failure(f"read {count}@{address}: {e}")
                raise TransportError(f"read {count}@{address}: {e}") from e
            finally:
                self._last_read_duration = time.monotonic() - start

            if response.isError():
                self._record_failure(f"read {count}@{address}: {response}")
                raise TransportError(f"device returned error: {response}")

            self._record_success()
            registers = response.registers
            return struct.pack(f">{len(registers)}H", *registers)

    def close(self) -> None:
        """Close the serial connection."""
        if self._client is None:
            return
        try:
            self._client.close()
            logger.info("Modbus: closed %s", self._port)
        except Exception:
            logger.debug("Error closing Modbus client", exc_info=True)
        finally:
            self._client = None
