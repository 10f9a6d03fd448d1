"""Modbus power meter to Prometheus exporter."""

__version__ = "1.0.0"
