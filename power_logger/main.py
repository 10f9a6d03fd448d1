# Power Logger
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License

"""Entry point -- Modbus power meter to Prometheus exporter.

Architecture
------------
PowerLogger  -- wires the transport, metric set, poller and HTTP exporter
                together and owns the shutdown sequence.
MeterPoller  -- polls the meter on a fixed period (see poller.py).
"""

import argparse
import asyncio
import logging
import signal
import sys

from prometheus_client import CollectorRegistry

from . import __version__
from .config import Config, ConfigError
from .metrics import MetricSet
from .mock_meter import MockMeter
from .modbus_transport import ModbusTransport
from .poller import MeterPoller
from .transport import RegisterTransport
from .web import WebServer

logger = logging.getLogger("power_logger")


class PowerLogger:
    """Top-level orchestrator for one meter."""

    def __init__(self, config: Config,
                 transport: RegisterTransport | None = None,
                 registry: CollectorRegistry | None = None):
        self.config = config
        self.registry = registry if registry is not None else CollectorRegistry()
        self.transport = transport if transport is not None else self._create_transport()
        self.metrics = MetricSet(
            self.registry, config.device_name,
            rate_limit=config.energy_rate_limit,
        )
        self.poller = MeterPoller(
            self.transport, self.metrics, interval=config.poll_interval,
        )
        self.web = WebServer(
            self.registry, self.poller,
            host=config.listen_host, port=config.listen_port,
        )
        self._shutdown: asyncio.Event | None = None

    def _create_transport(self) -> RegisterTransport:
        if self.config.mock_mode:
            logger.info("Mock mode: using simulated meter")
            return MockMeter()
        return ModbusTransport.from_config(self.config)

    async def run(self):
        """Connect, serve and poll until request_stop() is called."""
        self._shutdown = asyncio.Event()

        # A failed connect is not fatal: the poller reconnects on each read
        # and counts the failures in the meantime.
        try:
            await self.transport.connect()
        except Exception:
            logger.exception("[%s] Transport connect failed", self.config.device_name)

        await self.web.start()
        await self.poller.start()
        try:
            await self._shutdown.wait()
        finally:
            await self._async_stop()

    def request_stop(self):
        if self._shutdown is not None:
            self._shutdown.set()

    async def _async_stop(self):
        await self.poller.stop()
        await self.web.stop()
        self.transport.close()


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export Modbus power meter readings as Prometheus metrics",
    )
    parser.add_argument("--addr", help="TCP address to listen on (e.g. :8080)")
    parser.add_argument("--dev", help="TTY device to use (e.g. /dev/ttyS0)")
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


async def _serve(app: PowerLogger):
    loop = asyncio.get_running_loop()

    def _shutdown(sig):
        logger.info("Received signal %s, shutting down...", sig.name)
        app.request_stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _shutdown, sig)

    await app.run()


def main(argv: list[str] | None = None):
    args = _parse_args(argv)
    try:
        config = Config()
        config.apply_overrides(addr=args.addr, dev=args.dev)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    logging.getLogger("pymodbus").setLevel(logging.WARNING)
    config.log_config()

    app = PowerLogger(config)
    try:
        asyncio.run(_serve(app))
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("Power logger stopped.")


if __name__ == "__main__":
    main()
