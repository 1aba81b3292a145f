"""Per-run operational logging."""

from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def configure_stdio_utf8() -> None:
    """Force stdout/stderr to UTF-8 so status lines never crash on legacy Windows consoles."""
    for stream in (sys.stdout, sys.stderr):
        reconfigure = getattr(stream, "reconfigure", None)
        if reconfigure is None:
            continue
        try:
            reconfigure(encoding="utf-8", errors="replace")
        except (OSError, ValueError):
            continue


def operational_log_path(log_dir: str, product_id: str, run_id: str) -> str:
    return os.path.join(log_dir, f"{product_id}-{run_id}.log")


def setup_operational_logger(
    log_dir: str, product_id: str, run_id: str
) -> tuple[logging.Logger, str]:
    """
    Configure a logger that writes the operational log for one installer run.

    Logs go to both the console (INFO) and a UTF-8 file under ``log_dir`` (DEBUG).
    The file name starts with the product id so the retention sweep picks it up.
    """
    os.makedirs(log_dir, exist_ok=True)
    log_file = operational_log_path(log_dir, product_id, run_id)

    logger = logging.getLogger(f"avd_installers.{product_id}.{run_id}")
    logger.setLevel(logging.DEBUG)
    close_logger_handlers(logger)

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(logging.INFO)
    stream_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)
    logger.propagate = False

    logger.info("Operational logging initialized for %s run %s", product_id, run_id)
    logger.debug("Operational log file: %s", log_file)

    return logger, log_file


def close_logger_handlers(logger: logging.Logger) -> None:
    # File handlers keep the log open on Windows, which blocks pruning it later.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
