#!/usr/bin/env python3
# Power Logger
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License

"""One-shot register probe for a Modbus power meter.

Reads the full register block once, prints a hex dump, the decoded value
of every exported metric and the raw tariff bins that follow each energy
total. Useful for checking wiring, slave id and scaling before running
the exporter.

Usage:
    python3 tools/register_probe.py /dev/ttyUSB0
    python3 tools/register_probe.py /dev/ttyS0 --slave 2 --baud 19200
"""

import argparse
import asyncio
import struct
import sys
from pathlib import Path

# Add repository root to path
ROOT_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT_DIR))

from power_logger.modbus_transport import ModbusTransport
from power_logger.registers import (
    ACTIVE_ENERGY_REG,
    FRAME_SIZE,
    METRICS,
    READ_SIZE,
    REACTIVE_ENERGY_REG,
    decode,
    tariff_offsets,
)
from power_logger.transport import TransportError


def banner(text: str):
    width = 60
    print(f"\n{'=' * width}")
    print(f"  {text}")
    print(f"{'=' * width}")


def section(text: str):
    print(f"\n--- {text} ---")


def dump_frame(frame: bytes):
    for reg in range(len(frame) // 2):
        hi, lo = frame[2 * reg], frame[2 * reg + 1]
        print(f"  reg {reg:2d} (byte {2 * reg:2d}): {hi:02x} {lo:02x}  {hi << 8 | lo:5d}")


def dump_metrics(frame: bytes):
    for d in METRICS:
        print(f"  {d.name:32s} {decode(frame, d):12.3f}   (byte {d.offset}, /{d.scale:g})")


def dump_tariffs(frame: bytes, name: str, energy_reg: int):
    for n, offset in enumerate(tariff_offsets(energy_reg), start=1):
        (raw,) = struct.unpack_from(">I", frame, offset)
        print(f"  T{n} ({name}): {frame[offset:offset + 4].hex()} {raw}")


async def probe(args) -> int:
    transport = ModbusTransport(
        args.port, slave_id=args.slave, baud=args.baud,
        parity=args.parity, timeout=args.timeout,
    )
    banner(f"Probing {args.port} slave {args.slave} at {args.baud} baud")
    try:
        await transport.connect()
        frame = await transport.read_registers(0, READ_SIZE)
    except TransportError as e:
        print(f"  FAILED: {e}")
        return 1
    finally:
        transport.close()

    if len(frame) != FRAME_SIZE:
        print(f"  FAILED: got {len(frame)} bytes, expected {FRAME_SIZE}")
        return 1

    section("Raw registers")
    dump_frame(frame)
    section("Decoded metrics")
    dump_metrics(frame)
    section("Tariff bins (raw, device clock not interpreted)")
    dump_tariffs(frame, "active", ACTIVE_ENERGY_REG)
    dump_tariffs(frame, "reactive", REACTIVE_ENERGY_REG)
    return 0


def main():
    parser = argparse.ArgumentParser(description="Dump meter registers once")
    parser.add_argument("port", help="Serial device, e.g. /dev/ttyUSB0")
    parser.add_argument("--slave", type=int, default=1)
    parser.add_argument("--baud", type=int, default=9600)
    parser.add_argument("--parity", default="N", choices=["N", "E", "O"])
    parser.add_argument("--timeout", type=float, default=5.0)
    args = parser.parse_args()
    sys.exit(asyncio.run(probe(args)))


if __name__ == "__main__":
    main()
