from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import Any, Dict, List, Optional

from fastapi import FastAPI

from .config.config_parser import normalize_statistics_config, parse_config_file
from .config.logging_config import init_logging
from .stats import (
    DiskConfig,
    StatsConfig,
    StatsContext,
    StatsStorageError,
    load_disk_config,
    new_stats,
    save_disk_config,
)
from .webserver import FastAPIRouteRegistrar, create_app, start_webserver

logger = logging.getLogger("dnsstats.main")


def build_stats(
    cfg: Dict[str, Any], config_path: str, app: Optional[FastAPI] = None
) -> Optional[StatsContext]:
    """
    Build the statistics context described by ``cfg``.

    Args:
        cfg: Parsed configuration mapping.
        config_path: Config file path; the retention interval is read from
            and written back to its ``statistics_interval`` key.
        app: Optional FastAPI app the statistics HTTP handlers are added to.

    Returns:
        A running StatsContext, or None when statistics are disabled.

    Example use:
        >>> ctx = build_stats({"statistics": {"persistence": False}}, "config.yaml")  # doctest: +SKIP
    """
    stats_opts = normalize_statistics_config(cfg, config_path)
    if not stats_opts["enabled"]:
        logger.info("Statistics disabled by configuration")
        return None

    disk = load_disk_config(config_path)
    holder: List[StatsContext] = []

    def _config_modified() -> None:
        dc = DiskConfig()
        holder[0].write_disk_config(dc)
        save_disk_config(config_path, dc)

    ctx = new_stats(
        StatsConfig(
            limit_days=disk.interval,
            filename=stats_opts["db_path"],
            config_modified=_config_modified,
            http_register=FastAPIRouteRegistrar(app) if app is not None else None,
            top_n=stats_opts["top_n"],
            rotation_interval_seconds=stats_opts["rotation_interval_seconds"],
        )
    )
    holder.append(ctx)
    logger.info(
        "Statistics enabled: interval=%d day(s), db=%s",
        ctx.limit_days,
        stats_opts["db_path"],
    )
    return ctx


def main(argv: List[str] | None = None) -> int:
    """
    Entry point: load config, start statistics and the admin webserver, and
    run until SIGINT/SIGTERM.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code.

    Example use:
        CLI:
            PYTHONPATH=src python -m dnsstats.main --config config.yaml
    """
    parser = argparse.ArgumentParser(description="DNS query statistics service")
    parser.add_argument("--config", default="config.yaml", help="Path to YAML config")
    args = parser.parse_args(argv)

    try:
        cfg = parse_config_file(args.config)
    except (OSError, ValueError) as exc:
        print(str(exc))
        return 1

    init_logging(cfg.get("logging"))
    logger.info("Loaded config from %s", args.config)

    app = create_app(cfg)
    try:
        stats = build_stats(cfg, args.config, app)
    except StatsStorageError as exc:
        logger.error("Cannot initialize statistics: %s", exc)
        return 1

    web_handle = start_webserver(app, cfg)

    shutdown = threading.Event()

    def _handle_signal(signum, frame) -> None:
        logger.info("Received signal %d, shutting down", signum)
        shutdown.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        while not shutdown.wait(1.0):
            pass
    finally:
        # Drain the HTTP side before closing the engine; close() must not
        # overlap any other call on the stats context.
        if web_handle is not None:
            logger.info("Stopping webserver")
            web_handle.stop()
        if stats is not None:
            logger.info("Closing statistics")
            stats.close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())  # pragma: no cover
