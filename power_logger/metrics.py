# Power Logger
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License

"""Prometheus gauges bound to meter registers.

MetricSet owns one gauge per MetricDescriptor plus the read error
counter, all registered on a registry passed in by the caller. It knows
how to publish a decoded frame and what to do with each gauge when a
poll fails: instantaneous readings drop to zero, cumulative counters
keep their last accepted value.
"""

import logging
import time
from dataclasses import dataclass

from prometheus_client import CollectorRegistry, Gauge

from .energy_filter import DEFAULT_RATE_LIMIT, EnergyFilter
from .registers import (
    DEVICE_LABEL,
    ERROR_COUNT_HELP,
    ERROR_COUNT_NAME,
    FRAME_SIZE,
    METRICS,
    MetricDescriptor,
    decode,
)

logger = logging.getLogger(__name__)


class DuplicateMetricError(ValueError):
    """Raised when a gauge name is already registered on the registry."""

    def __init__(self, name: str):
        super().__init__(f"could not register gauge {name!r}: already registered")
        self.name = name


@dataclass
class BoundMetric:
    descriptor: MetricDescriptor
    gauge: Gauge                     # labelled child for this device
    filter: EnergyFilter | None = None


class MetricSet:
    """Fixed set of gauges for one metering device."""

    def __init__(
        self,
        registry: CollectorRegistry,
        device_name: str,
        *,
        rate_limit: float = DEFAULT_RATE_LIMIT,
        descriptors: tuple[MetricDescriptor, ...] = METRICS,
        frame_size: int = FRAME_SIZE,
    ):
        self.registry = registry
        self.device_name = device_name
        self.frame_size = frame_size

        for d in descriptors:
            if d.end > frame_size:
                raise ValueError(
                    f"{d.name}: field at {d.offset}..{d.end} "
                    f"outside {frame_size}-byte frame"
                )

        # Gauges are created unregistered and added to the registry as a
        # unit, so a duplicate name leaves the registry as it was.
        collectors: list[tuple[str, Gauge]] = []
        self._bound: list[BoundMetric] = []
        for d in descriptors:
            parent = Gauge(d.name, d.help, labelnames=[DEVICE_LABEL], registry=None)
            collectors.append((d.name, parent))
            self._bound.append(BoundMetric(
                descriptor=d,
                gauge=parent.labels(**{DEVICE_LABEL: device_name}),
                filter=EnergyFilter(rate_limit) if d.filtered else None,
            ))

        failures = Gauge(ERROR_COUNT_NAME, ERROR_COUNT_HELP,
                         labelnames=[DEVICE_LABEL], registry=None)
        collectors.append((ERROR_COUNT_NAME, failures))
        self._read_failures = failures.labels(**{DEVICE_LABEL: device_name})

        self._register(collectors)

    def _register(self, collectors: list[tuple[str, Gauge]]):
        registered = []
        for name, collector in collectors:
            try:
                self.registry.register(collector)
            except ValueError:
                for done in registered:
                    self.registry.unregister(done)
                raise DuplicateMetricError(name) from None
            registered.append(collector)
        logger.debug("Registered %d gauges for %s", len(registered), self.device_name)

    @property
    def bound(self) -> list[BoundMetric]:
        return list(self._bound)

    def apply(self, frame: bytes, now: float | None = None) -> None:
        """Publish every metric from a validated frame."""
        if now is None:
            now = time.monotonic()
        for b in self._bound:
            value = decode(frame, b.descriptor)
            if b.filter is not None:
                value = b.filter.filter(value, now)
            b.gauge.set(value)

    def on_failure(self) -> None:
        """Count a failed poll and zero every non-sticky gauge."""
        self._read_failures.inc()
        for b in self._bound:
            if not b.descriptor.sticky:
                b.gauge.set(0)

    def get(self, name: str) -> float | None:
        """Current value of a gauge by metric name."""
        return self.registry.get_sample_value(name, {DEVICE_LABEL: self.device_name})

    @property
    def read_failures(self) -> float:
        return self.get(ERROR_COUNT_NAME) or 0.0

    def values(self) -> dict[str, float | None]:
        """Snapshot of all published values keyed by metric name."""
        result = {b.descriptor.name: self.get(b.descriptor.name) for b in self._bound}
        result[ERROR_COUNT_NAME] = self.read_failures
        return result
