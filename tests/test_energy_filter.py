# Power Logger
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License

"""Tests for the cumulative energy noise filter."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from power_logger.energy_filter import DEFAULT_RATE_LIMIT, EnergyFilter

POLL_STEP = 10.0


def run_sequence(f: EnergyFilter, values, step=POLL_STEP, start=0.0):
    got = None
    now = start
    for v in values:
        got = f.filter(v, now)
        now += step
    return got


# ---------------------------------------------------------------------------
# Reference sequences at a 10 s poll period
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("values,want", [
    pytest.param([10, 10.01, 10.02, 10.03], 10.03, id="happy-path"),
    pytest.param([10, 10.01, 9], 10.01, id="disallow-decrease"),
    pytest.param([10, 10, 0], 10, id="disallow-zero"),
    pytest.param([10, 20], 10, id="disallow-large-increase"),
    pytest.param([10] * 8 + [10.5], 10.5, id="allow-occasional-update"),
])
def test_reference_sequences(values, want):
    assert run_sequence(EnergyFilter(DEFAULT_RATE_LIMIT), values) == want


# ---------------------------------------------------------------------------
# State transitions
# ---------------------------------------------------------------------------

class TestFirstObservation:
    def test_accepted_unconditionally(self):
        f = EnergyFilter()
        assert f.filter(5000.0, 0.0) == 5000.0
        assert f.last_accepted == 5000.0
        assert f.last_accept_time == 0.0

    def test_starts_empty(self):
        f = EnergyFilter()
        assert f.last_accepted is None
        assert f.last_accept_time is None


class TestRejection:
    def test_negative_rejected(self):
        f = EnergyFilter()
        f.filter(10, 0)
        assert f.filter(-1, 10) == 10

    def test_rejection_leaves_state_unchanged(self):
        f = EnergyFilter()
        f.filter(10, 0)
        f.filter(0, 10)
        f.filter(9, 20)
        f.filter(50, 30)
        assert f.last_accepted == 10
        assert f.last_accept_time == 0
        assert f.rejected == 3

    def test_jump_accepted_once_budget_accrues(self):
        f = EnergyFilter(rate_limit=0.1)
        f.filter(10, 0)
        # +2 needs 20 s of budget at 0.1/s
        assert f.filter(12, 10) == 10
        assert f.filter(12, 30) == 12
        assert f.last_accept_time == 30

    def test_single_spike_never_published(self):
        f = EnergyFilter(rate_limit=0.1)
        f.filter(10, 0)
        assert f.filter(5000, 10) == 10
        assert f.filter(10.01, 20) == 10.01


class TestEqualReading:
    def test_refreshes_accept_time(self):
        f = EnergyFilter()
        f.filter(10, 0)
        assert f.filter(10, 40) == 10
        assert f.last_accept_time == 40
        assert f.rejected == 0

    def test_budget_measured_from_latest_equal_reading(self):
        f = EnergyFilter(rate_limit=0.1)
        f.filter(10, 0)
        f.filter(10, 100)
        # 100 s of credit would allow +10, but the clock restarted at t=100
        assert f.filter(15, 110) == 10


class TestConstruction:
    @pytest.mark.parametrize("rate", [0, -0.5])
    def test_rate_limit_must_be_positive(self, rate):
        with pytest.raises(ValueError):
            EnergyFilter(rate)

    def test_default_rate_limit(self):
        assert EnergyFilter().rate_limit == DEFAULT_RATE_LIMIT
