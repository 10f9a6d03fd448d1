# Power Logger
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License

"""Noise rejection for cumulative energy counters.

Energy registers read over a noisy RS-485 line occasionally come back as
zero, as a smaller value than before, or with an implausible jump when a
frame is garbled. EnergyFilter sits in front of the published value and
only lets a reading through when it is consistent with a monotonic
counter growing no faster than ``rate_limit`` units per second.

A rejected reading leaves the filter state untouched, so the allowance
keeps growing from the last accepted observation: a real step change is
accepted once enough time has passed, a one-off spike never is.
"""

import logging

logger = logging.getLogger(__name__)

# kWh per second; calibrated so a 10 s poll accepts +0.5 but not +10
DEFAULT_RATE_LIMIT = 0.1


class EnergyFilter:
    """Accept/reject gate for a single monotonic counter."""

    def __init__(self, rate_limit: float = DEFAULT_RATE_LIMIT):
        if rate_limit <= 0:
            raise ValueError(f"rate_limit must be positive, got {rate_limit}")
        self.rate_limit = rate_limit
        self.last_accepted: float | None = None
        self.last_accept_time: float | None = None
        self.rejected = 0

    def filter(self, candidate: float, now: float) -> float:
        """Return the value to publish for ``candidate`` observed at ``now``."""
        if self.last_accepted is None:
            return self._accept(candidate, now)

        if candidate <= 0:
            return self._reject(candidate, "non-positive")

        if candidate < self.last_accepted:
            return self._reject(candidate, "decreasing")

        if candidate == self.last_accepted:
            self.last_accept_time = now
            return self.last_accepted

        delta = candidate - self.last_accepted
        budget = self.rate_limit * (now - self.last_accept_time)
        if delta <= budget:
            return self._accept(candidate, now)
        return self._reject(candidate, f"jump of {delta:.2f} exceeds {budget:.2f}")

    def _accept(self, candidate: float, now: float) -> float:
        self.last_accepted = candidate
        self.last_accept_time = now
        return candidate

    def _reject(self, candidate: float, reason: str) -> float:
        self.rejected += 1
        logger.debug("Rejected reading %.2f (%s), keeping %.2f",
                     candidate, reason, self.last_accepted)
        return self.last_accepted
