# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/logging/log.py

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
import uuid

from gcpboot.config import settings

# transport chatter from these only goes to the run file
LIBRARY_LOGGERS = ("paramiko", "google", "urllib3")

_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"


def log_dir() -> Path:
    return settings.workdir() / "logs"


def _route_library_loggers(fh: logging.Handler) -> None:
    for name in LIBRARY_LOGGERS:
        lib = logging.getLogger(name)
        lib.handlers.clear()
        lib.addHandler(fh)
        lib.setLevel(logging.INFO)
        lib.propagate = False


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "gcpboot",
    verbose: bool = False,
) -> tuple[logging.Logger, str, Path]:
    """
    One log file per run under ``<OMS_WORKDIR>/logs`` holding everything,
    including paramiko and google client messages, plus a console handler
    that only shows gcpboot's own records (DEBUG with ``--debug``).

    Returns the logger, the run id observers tag their events with, and the
    file path.
    """
    run_id = str(uuid.uuid4())

    base_dir = Path(base_dir) if base_dir is not None else log_dir()
    base_dir.mkdir(parents=True, exist_ok=True)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{name}-{ts}-{run_id[:8]}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    for h in logger.handlers:
        h.close()
    logger.handlers.clear()
    logger.propagate = False

    fh = logging.FileHandler(log_path)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt="%H:%M:%S"))

    logger.addHandler(fh)
    logger.addHandler(ch)
    _route_library_loggers(fh)

    logger.debug("run %s started, logging to %s", run_id, log_path)
    return logger, run_id, log_path
