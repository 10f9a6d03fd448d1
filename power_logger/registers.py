# Power Logger
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License

"""Register layout, codec and metric table for the power meter."""

import enum
import struct
from dataclasses import dataclass

# Byte offsets into the holding-register read buffer (big endian)
VOLTAGE_REG = 0             # 16 bit, 0.1 V
CURRENT_REG = 2             # 16 bit, 0.1 A
FREQUENCY_REG = 4           # 16 bit, 0.1 Hz
ACTIVE_POWER_REG = 6        # 16 bit, W
REACTIVE_POWER_REG = 8      # 16 bit, var
APPARENT_POWER_REG = 10     # 16 bit, VA
POWER_FACTOR_REG = 12       # 16 bit, 0.001
ACTIVE_ENERGY_REG = 14      # 5 x 32 bit: total + 4 tariffs, 0.01 kWh
REACTIVE_ENERGY_REG = 34    # 5 x 32 bit: total + 4 tariffs, 0.01 kvarh
TIME_SLOT_REG = 54          # 4 x 24 bit tariff time slots
CLOCK_REG = 66              # 64 bit device real time clock
TEMPERATURE_REG = 74        # 16 bit, degrees C

ENERGY_TARIFFS = 4

# Registers read per poll, starting at address 0
READ_SIZE = 39
FRAME_SIZE = READ_SIZE * 2

DEVICE_LABEL = "device_name"
ERROR_COUNT_NAME = "sensor_read_errors_count"
ERROR_COUNT_HELP = "Sensor read errors"


class Width(enum.Enum):
    """Raw register field width."""
    BITS16 = 2
    BITS32 = 4

    @property
    def size(self) -> int:
        return self.value


def decode16(frame: bytes, offset: int, scale: float) -> float:
    """Decode an unsigned 16-bit big-endian field and divide by scale."""
    (raw,) = struct.unpack_from(">H", frame, offset)
    return raw / scale


def decode32(frame: bytes, offset: int, scale: float) -> float:
    """Decode an unsigned 32-bit big-endian field and divide by scale.

    Energy blocks are 5 x 32 bit: the total followed by four tariff bins.
    Only the total is used; the tariff bins depend on the device clock,
    which is never set.
    """
    (raw,) = struct.unpack_from(">I", frame, offset)
    return raw / scale


_DECODERS = {
    Width.BITS16: decode16,
    Width.BITS32: decode32,
}


@dataclass(frozen=True)
class MetricDescriptor:
    name: str
    help: str
    offset: int
    scale: float
    width: Width = Width.BITS16
    sticky: bool = False     # keep last value when a poll fails
    filtered: bool = False   # gate through an EnergyFilter

    @property
    def end(self) -> int:
        return self.offset + self.width.size


def decode(frame: bytes, descriptor: MetricDescriptor) -> float:
    """Decode the field described by descriptor from frame."""
    return _DECODERS[descriptor.width](frame, descriptor.offset, descriptor.scale)


METRICS: tuple[MetricDescriptor, ...] = (
    MetricDescriptor("mains_voltage_v", "Mains voltage",
                     VOLTAGE_REG, 10),
    MetricDescriptor("mains_current_a", "Mains current",
                     CURRENT_REG, 10),
    MetricDescriptor("mains_frequency_hz", "Mains frequency",
                     FREQUENCY_REG, 10),
    MetricDescriptor("mains_active_power_w", "Mains active power",
                     ACTIVE_POWER_REG, 1),
    MetricDescriptor("mains_reactive_power_var", "Mains reactive power",
                     REACTIVE_POWER_REG, 1),
    MetricDescriptor("mains_apparent_power_va", "Mains apparent power",
                     APPARENT_POWER_REG, 1),
    MetricDescriptor("mains_power_factor_pf", "Mains power factor",
                     POWER_FACTOR_REG, 1000),
    MetricDescriptor("mains_active_energy_kwh", "Mains active energy",
                     ACTIVE_ENERGY_REG, 100, Width.BITS32,
                     sticky=True, filtered=True),
    MetricDescriptor("mains_reactive_energy_kvarh", "Mains reactive energy",
                     REACTIVE_ENERGY_REG, 100, Width.BITS32,
                     sticky=True, filtered=True),
    MetricDescriptor("mains_device_temperature_c", "Mains device temperature",
                     TEMPERATURE_REG, 1),
)


def tariff_offsets(energy_reg: int) -> list[int]:
    """Byte offsets of the tariff bins following an energy total."""
    return [energy_reg + 4 * (n + 1) for n in range(ENERGY_TARIFFS)]
