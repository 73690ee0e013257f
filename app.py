# app.py
from __future__ import annotations

import logging
import signal
import sys
import threading
from importlib.metadata import PackageNotFoundError, version as dist_version

import structlog

from config import ControllerConfig
from controller import Controller
from k8s import ClusterClient, NAME, load_kube

logger = logging.getLogger("setup")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def json_formatter() -> logging.Formatter:
    """One JSON object per record, rendered by structlog."""
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
        foreign_pre_chain=[
            structlog.processors.TimeStamper(fmt="iso", key="ts"),
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.format_exc_info,
        ],
    )


def configure_logging(level: str = "INFO", json_lines: bool = False) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(json_formatter() if json_lines else logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)


def operator_version() -> str:
    try:
        return dist_version(NAME)
    except PackageNotFoundError:
        # running from a source checkout
        return "unknown"


def main() -> int:
    try:
        cfg = ControllerConfig.from_env()
    except ValueError as e:
        configure_logging()
        logger.error("invalid configuration: %s", e)
        return 1

    configure_logging(cfg.log_level, cfg.log_json)

    try:
        source = load_kube()
    except Exception:
        logger.exception("unable to load kubernetes configuration")
        return 1
    logger.info("using %s config", source)

    for label, value in cfg.describe():
        logger.info("%s: %s", label, value)
    logger.info("Starting %s version=%s", NAME, operator_version())

    controller = Controller(ClusterClient(), cfg)

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    controller.start()
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        pass

    logger.info("shutting down")
    controller.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
