# Power Logger
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License

"""Tests for the simulated meter."""

import os
import sys

import pytest
from prometheus_client import CollectorRegistry

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from power_logger.metrics import MetricSet
from power_logger.mock_meter import MockMeter
from power_logger.poller import MeterPoller
from power_logger.registers import FRAME_SIZE, METRICS, READ_SIZE, decode
from power_logger.transport import RegisterTransport, TransportError


class FakeClock:
    def __init__(self, t: float = 1_000_000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t


def _decoded(frame: bytes) -> dict[str, float]:
    return {d.name: decode(frame, d) for d in METRICS}


class TestMockMeterFrames:
    def test_satisfies_protocol(self):
        assert isinstance(MockMeter(), RegisterTransport)

    @pytest.mark.asyncio
    async def test_full_frame(self):
        frame = await MockMeter(seed=1).read_registers(0, READ_SIZE)
        assert len(frame) == FRAME_SIZE

    @pytest.mark.asyncio
    async def test_partial_read(self):
        frame = await MockMeter(seed=1).read_registers(0, 2)
        assert len(frame) == 4

    def test_values_realistic(self):
        values = _decoded(MockMeter(seed=7).build_frame())
        assert 220 <= values["mains_voltage_v"] <= 240
        assert 49.9 <= values["mains_frequency_hz"] <= 50.1
        assert 0.9 <= values["mains_power_factor_pf"] <= 1.0
        assert values["mains_apparent_power_va"] >= values["mains_active_power_w"]
        assert values["mains_active_energy_kwh"] == pytest.approx(1234.56, abs=0.01)

    def test_energy_accumulates(self):
        clock = FakeClock()
        meter = MockMeter(base_load_w=1000, seed=3, clock=clock)
        first = _decoded(meter.build_frame())["mains_active_energy_kwh"]
        clock.t += 3600
        second = _decoded(meter.build_frame())["mains_active_energy_kwh"]
        # Roughly one hour at 0.5-1.5 kW
        assert 0.4 <= second - first <= 1.6


class TestMockMeterFaults:
    @pytest.mark.asyncio
    async def test_fail_next(self):
        meter = MockMeter(seed=1)
        meter.fail_next(2)
        for _ in range(2):
            with pytest.raises(TransportError):
                await meter.read_registers(0, READ_SIZE)
        assert len(await meter.read_registers(0, READ_SIZE)) == FRAME_SIZE
        assert meter.get_health()["failed_reads"] == 2
        assert meter.get_health()["total_reads"] == 3

    @pytest.mark.asyncio
    async def test_short_frames(self):
        meter = MockMeter(seed=1)
        meter.short_frames = True
        assert len(await meter.read_registers(0, READ_SIZE)) == FRAME_SIZE // 2

    @pytest.mark.asyncio
    async def test_energy_glitch_filtered_end_to_end(self):
        clock = FakeClock()
        meter = MockMeter(seed=5, clock=clock)
        metrics = MetricSet(CollectorRegistry(), "mock")
        poller = MeterPoller(meter, metrics, clock=clock)

        await poller.update()
        good = metrics.get("mains_active_energy_kwh")

        meter.glitch_energy = True
        clock.t += 10
        await poller.update()
        assert metrics.get("mains_active_energy_kwh") == good
        assert metrics.read_failures == 0

    @pytest.mark.asyncio
    async def test_connect_and_close(self):
        meter = MockMeter()
        await meter.connect()
        assert meter.get_health()["connected"] is True
        meter.close()
        assert meter.get_health()["connected"] is False
