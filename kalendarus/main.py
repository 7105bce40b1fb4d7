from __future__ import annotations

import logging
import queue
import signal
import sys
import threading
from typing import Any

import click

from kalendarus import __version__
from kalendarus.backends import create_backend
from kalendarus.config_manager import ConfigManager, resolve_config_path
from kalendarus.errors import ConfigError, KalendarusError
from kalendarus.messengers import create_messenger
from kalendarus.models import AppConfig
from kalendarus.processor import Processor
from kalendarus.web_admin import create_app, serve_in_background

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _log_next_error(errors: "queue.Queue[Exception]", timeout: float | None) -> None:
    try:
        exc = errors.get(timeout=timeout) if timeout is not None else errors.get_nowait()
    except queue.Empty:
        return
    logger.error("%s", exc)


def run(
    processor: Processor,
    config: AppConfig,
    shutdown: threading.Event | None = None,
    config_manager: ConfigManager | None = None,
) -> int:
    """Run both loops until ``shutdown`` is set, then save state one last time.

    Returns the process exit code.
    """
    shutdown = shutdown or threading.Event()
    server = None
    if config.web.enabled:
        server = serve_in_background(create_app(processor, config, config_manager), config.web.host, config.web.port)
        logger.info("Admin API listening on http://%s:%s", config.web.host, config.web.port)

    processor.start()
    while not shutdown.is_set():
        _log_next_error(processor.errors, timeout=0.5)

    processor.stop()
    if server is not None:
        server.should_exit = True
    while not processor.errors.empty():
        _log_next_error(processor.errors, timeout=None)

    try:
        processor.save_state()
    except KalendarusError as exc:
        logger.critical("Final state save failed, cached state is lost: %s", exc)
        return 1
    logger.info("Stopped")
    return 0


def _install_signal_handlers(shutdown: threading.Event) -> None:
    def _handle(signum: int, _frame: Any) -> None:
        logger.info("Captured %s. Exiting...", signal.Signals(signum).name)
        shutdown.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


@click.command()
@click.option("--config-file", "config_file", default=None, help="kalendarus config file")
@click.option("--calendar-url", default=None, help="url of the calendar")
@click.option("--pull-interval", type=int, default=None, help="calendar polling interval in seconds")
@click.option("--log-level", default=None, help="level which kalendarus should log messages")
@click.version_option(version=__version__, prog_name="kalendarus")
def main(config_file: str | None, calendar_url: str | None, pull_interval: int | None, log_level: str | None) -> None:
    """Pull a calendar feed and announce upcoming events."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    overrides = {
        "calendar_url": calendar_url,
        "pull_interval": pull_interval,
        "log_level": log_level,
    }
    try:
        config_manager = ConfigManager(resolve_config_path(config_file), overrides)
        config = config_manager.load()
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        sys.exit(1)
    logging.getLogger().setLevel(config.log_level_value())

    logger.info("Starting kalendarus %s", __version__)
    logger.debug("Configuration: %s", config_manager.masked(config))

    processor = Processor(config, create_messenger(config), create_backend(config))
    shutdown = threading.Event()
    _install_signal_handlers(shutdown)
    sys.exit(run(processor, config, shutdown, config_manager=config_manager))


if __name__ == "__main__":
    main()
