# Power Logger
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License

"""Tests for the register layout and codec."""

import os
import struct
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from power_logger.registers import (
    ACTIVE_ENERGY_REG,
    FRAME_SIZE,
    METRICS,
    READ_SIZE,
    REACTIVE_ENERGY_REG,
    TEMPERATURE_REG,
    MetricDescriptor,
    Width,
    decode,
    decode16,
    decode32,
    tariff_offsets,
)

from frames import DEFAULT_READING, make_frame


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------

class TestDecode16:
    def test_unscaled(self):
        assert decode16(bytes([0x01, 0x10]), 0, 1) == pytest.approx(272)

    def test_scaled(self):
        assert decode16(bytes([0x01, 0x10]), 0, 100) == pytest.approx(2.72)

    def test_offset(self):
        assert decode16(bytes([0xff, 0xff, 0x00, 0x0a]), 2, 10) == pytest.approx(1.0)

    def test_unsigned(self):
        assert decode16(bytes([0xff, 0xff]), 0, 1) == 65535

    def test_past_end_raises(self):
        with pytest.raises(struct.error):
            decode16(bytes([0x01]), 0, 1)


class TestDecode32:
    def test_unscaled(self):
        assert decode32(bytes([0x00, 0x01, 0x02, 0x10]), 0, 1) == pytest.approx(66064)

    def test_scaled(self):
        assert decode32(bytes([0x00, 0x01, 0x02, 0x10]), 0, 100) == pytest.approx(660.64)

    def test_unsigned(self):
        assert decode32(bytes([0xff] * 4), 0, 1) == 4294967295

    def test_ignores_following_tariff_bins(self):
        frame = bytes([0x00, 0x00, 0x00, 0x64]) + bytes([0xff] * 16)
        assert decode32(frame, 0, 100) == pytest.approx(1.0)


class TestDecodeDispatch:
    def test_16_bit_descriptor(self):
        d = MetricDescriptor("x", "x", offset=0, scale=10)
        assert decode(bytes([0x09, 0x00]), d) == pytest.approx(230.4)

    def test_32_bit_descriptor(self):
        d = MetricDescriptor("x", "x", offset=0, scale=100, width=Width.BITS32)
        assert decode(bytes([0x00, 0x01, 0x02, 0x10]), d) == pytest.approx(660.64)

    def test_width_sizes(self):
        assert Width.BITS16.size == 2
        assert Width.BITS32.size == 4

    def test_descriptor_end(self):
        d = MetricDescriptor("x", "x", offset=14, scale=100, width=Width.BITS32)
        assert d.end == 18


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------

class TestLayout:
    def test_read_span(self):
        assert READ_SIZE == 39
        assert FRAME_SIZE == 78

    def test_metric_names_unique(self):
        names = [d.name for d in METRICS]
        assert len(names) == len(set(names))

    def test_all_fields_inside_frame(self):
        for d in METRICS:
            assert d.end <= FRAME_SIZE, d.name

    def test_only_energy_is_sticky_and_filtered(self):
        sticky = {d.name for d in METRICS if d.sticky}
        filtered = {d.name for d in METRICS if d.filtered}
        assert sticky == {"mains_active_energy_kwh", "mains_reactive_energy_kvarh"}
        assert filtered == sticky

    def test_energy_fields_are_32_bit(self):
        by_offset = {d.offset: d for d in METRICS}
        assert by_offset[ACTIVE_ENERGY_REG].width is Width.BITS32
        assert by_offset[REACTIVE_ENERGY_REG].width is Width.BITS32
        assert by_offset[TEMPERATURE_REG].width is Width.BITS16

    def test_scales(self):
        scales = {d.name: d.scale for d in METRICS}
        assert scales["mains_voltage_v"] == 10
        assert scales["mains_current_a"] == 10
        assert scales["mains_frequency_hz"] == 10
        assert scales["mains_active_power_w"] == 1
        assert scales["mains_power_factor_pf"] == 1000
        assert scales["mains_active_energy_kwh"] == 100
        assert scales["mains_device_temperature_c"] == 1

    def test_tariff_offsets(self):
        assert tariff_offsets(ACTIVE_ENERGY_REG) == [18, 22, 26, 30]
        assert tariff_offsets(REACTIVE_ENERGY_REG) == [38, 42, 46, 50]

    def test_full_frame_decodes(self):
        frame = make_frame()
        for d in METRICS:
            assert decode(frame, d) == pytest.approx(DEFAULT_READING[d.name]), d.name
