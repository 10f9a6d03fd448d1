# Power Logger
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License

"""Simulated power meter for running without hardware.

Produces register frames in the same layout as the real device: a
slowly wandering mains voltage and frequency, a load that follows a
daily-ish sine curve, and energy totals that accumulate from the
simulated power. Faults can be injected to exercise the error paths.
"""

import logging
import math
import random
import struct
import time

from .registers import (
    ACTIVE_ENERGY_REG,
    ACTIVE_POWER_REG,
    APPARENT_POWER_REG,
    CURRENT_REG,
    FRAME_SIZE,
    FREQUENCY_REG,
    POWER_FACTOR_REG,
    REACTIVE_ENERGY_REG,
    REACTIVE_POWER_REG,
    TEMPERATURE_REG,
    VOLTAGE_REG,
)
from .transport import TransportError

logger = logging.getLogger(__name__)


class MockMeter:
    """Simulates a single-phase Modbus energy meter."""

    def __init__(self, base_load_w: float = 400.0, seed: int | None = None,
                 clock=time.time):
        self._base_load = base_load_w
        self._rng = random.Random(seed)
        self._clock = clock
        self._start_time = clock()
        self._last_energy_update = self._start_time
        self._active_kwh = 1234.56
        self._reactive_kvarh = 87.65

        # Fault injection
        self._fail_remaining = 0
        self.short_frames = False
        self.glitch_energy = False

        self._reads = 0
        self._failed = 0
        self._connected = False

    async def connect(self) -> None:
        self._connected = True
        logger.info("Mock meter connected (base load %.0f W)", self._base_load)

    def fail_next(self, n: int = 1) -> None:
        """Make the next n reads raise TransportError."""
        self._fail_remaining = n

    def _sample(self) -> dict:
        now = self._clock()
        elapsed = now - self._start_time
        voltage = 230.0 + 3.0 * math.sin(elapsed / 600) + self._rng.uniform(-0.5, 0.5)
        frequency = 50.0 + self._rng.uniform(-0.05, 0.05)
        load = self._base_load * (1.0 + 0.5 * math.sin(elapsed / 3600))
        load = max(0.0, load + self._rng.uniform(-10, 10))
        pf = 0.95 + self._rng.uniform(-0.03, 0.03)
        apparent = load / pf
        reactive = math.sqrt(max(apparent ** 2 - load ** 2, 0.0))
        current = apparent / voltage

        dt_h = (now - self._last_energy_update) / 3600
        self._active_kwh += load * dt_h / 1000
        self._reactive_kvarh += reactive * dt_h / 1000
        self._last_energy_update = now

        return {
            "voltage": voltage,
            "current": current,
            "frequency": frequency,
            "active_power": load,
            "reactive_power": reactive,
            "apparent_power": apparent,
            "power_factor": pf,
            "active_energy": self._active_kwh,
            "reactive_energy": self._reactive_kvarh,
            "temperature": 31 + self._rng.uniform(-1, 1),
        }

    def build_frame(self) -> bytes:
        """Encode a fresh sample into a full register frame."""
        s = self._sample()
        frame = bytearray(FRAME_SIZE)
        struct.pack_into(">H", frame, VOLTAGE_REG, round(s["voltage"] * 10))
        struct.pack_into(">H", frame, CURRENT_REG, round(s["current"] * 10))
        struct.pack_into(">H", frame, FREQUENCY_REG, round(s["frequency"] * 10))
        struct.pack_into(">H", frame, ACTIVE_POWER_REG, round(s["active_power"]))
        struct.pack_into(">H", frame, REACTIVE_POWER_REG, round(s["reactive_power"]))
        struct.pack_into(">H", frame, APPARENT_POWER_REG, round(s["apparent_power"]))
        struct.pack_into(">H", frame, POWER_FACTOR_REG, round(s["power_factor"] * 1000))
        active = 0 if self.glitch_energy else round(s["active_energy"] * 100)
        struct.pack_into(">I", frame, ACTIVE_ENERGY_REG, active)
        struct.pack_into(">I", frame, REACTIVE_ENERGY_REG, round(s["reactive_energy"] * 100))
        struct.pack_into(">H", frame, TEMPERATURE_REG, round(s["temperature"]))
        return bytes(frame)

    async def read_registers(self, address: int, count: int) -> bytes:
        self._reads += 1
        if self._fail_remaining > 0:
            self._fail_remaining -= 1
            self._failed += 1
            raise TransportError("simulated read timeout")

        frame = self.build_frame()[address * 2:(address + count) * 2]
        if self.short_frames:
            return frame[:len(frame) // 2]
        return frame

    def get_health(self) -> dict:
        return {
            "port": "mock",
            "connected": self._connected,
            "total_reads": self._reads,
            "failed_reads": self._failed,
            "reachable": True,
        }

    def close(self) -> None:
        self._connected = False
