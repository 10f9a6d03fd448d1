# Power Logger
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License

"""Configuration from environment variables with validation.

Command-line flags (--addr, --dev) are applied on top by main() through
apply_overrides().
"""

import logging
import os

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration is invalid."""


class Config:
    def __init__(self):
        self.device_name = os.environ.get("POWER_LOGGER_DEVICE_NAME", "power-meter")

        # Modbus RTU link
        self.serial_port = os.environ.get("POWER_LOGGER_SERIAL_PORT", "/dev/ttyS0")
        self.serial_baud = self._int("POWER_LOGGER_SERIAL_BAUD", "9600", 300, 115200)
        self.serial_parity = os.environ.get("POWER_LOGGER_SERIAL_PARITY", "N").upper()
        self.serial_bytesize = self._int("POWER_LOGGER_SERIAL_BYTESIZE", "8", 5, 8)
        self.serial_stopbits = self._int("POWER_LOGGER_SERIAL_STOPBITS", "1", 1, 2)
        self.slave_id = self._int("POWER_LOGGER_SLAVE_ID", "1", 1, 247)
        self.modbus_timeout = self._float("POWER_LOGGER_MODBUS_TIMEOUT", "5.0", 0.5, 60)

        self.listen_host, self.listen_port = self.parse_listen(
            os.environ.get("POWER_LOGGER_LISTEN", ":8080")
        )

        self.poll_interval = self._float("POWER_LOGGER_POLL_INTERVAL", "10", 1, 3600)
        # Max credible energy growth in kWh/s; see energy_filter
        self.energy_rate_limit = self._float(
            "POWER_LOGGER_ENERGY_RATE_LIMIT", "0.1", 0.0001, 1000,
        )
        self.mock_mode = os.environ.get(
            "POWER_LOGGER_MOCK_MODE", "false"
        ).lower() in ("true", "1", "yes")
        self.log_level = os.environ.get("POWER_LOGGER_LOG_LEVEL", "INFO").upper()

        if self.serial_parity not in ("N", "E", "O"):
            raise ConfigError(
                f"POWER_LOGGER_SERIAL_PARITY={self.serial_parity!r} must be N, E or O"
            )

        # The device name ends up as a Prometheus label value
        if not self.device_name or any(c.isspace() for c in self.device_name):
            raise ConfigError(
                f"POWER_LOGGER_DEVICE_NAME is empty or contains whitespace: "
                f"{self.device_name!r}"
            )

    @staticmethod
    def _int(env: str, default: str, min_val: int, max_val: int) -> int:
        raw = os.environ.get(env, default)
        try:
            val = int(raw)
        except (ValueError, TypeError):
            raise ConfigError(f"{env}={raw!r} is not a valid integer")
        if not (min_val <= val <= max_val):
            raise ConfigError(f"{env}={val} out of range [{min_val}, {max_val}]")
        return val

    @staticmethod
    def _float(env: str, default: str, min_val: float, max_val: float) -> float:
        raw = os.environ.get(env, default)
        try:
            val = float(raw)
        except (ValueError, TypeError):
            raise ConfigError(f"{env}={raw!r} is not a valid number")
        if not (min_val <= val <= max_val):
            raise ConfigError(f"{env}={val} out of range [{min_val}, {max_val}]")
        return val

    @staticmethod
    def parse_listen(addr: str) -> tuple[str, int]:
        """Parse ``:8080``, ``host:8080`` or ``8080`` into (host, port).

        An empty host means all interfaces.
        """
        addr = addr.strip()
        host, _, port_s = addr.rpartition(":")
        try:
            port = int(port_s)
        except ValueError:
            raise ConfigError(f"listen address {addr!r} has no valid port")
        if not (1 <= port <= 65535):
            raise ConfigError(f"listen port {port} out of range [1, 65535]")
        return host or "0.0.0.0", port

    def apply_overrides(self, addr: str | None = None, dev: str | None = None):
        """Apply command-line overrides for listen address and serial device."""
        if addr:
            self.listen_host, self.listen_port = self.parse_listen(addr)
        if dev:
            self.serial_port = dev

    def log_config(self):
        logger.info(
            "Config: device=%s port=%s %d%s%d slave=%d mock=%s poll=%.1fs "
            "listen=%s:%d rate_limit=%g",
            self.device_name, self.serial_port, self.serial_baud,
            self.serial_parity, self.serial_stopbits, self.slave_id,
            self.mock_mode, self.poll_interval,
            self.listen_host, self.listen_port, self.energy_rate_limit,
        )
