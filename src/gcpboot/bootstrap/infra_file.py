# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/bootstrap/infra_file.py

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from gcpboot.config import settings
from gcpboot.errors import ConfigurationError
from gcpboot.remote.executor import RemoteExecutor
from .environment import Environment

log = logging.getLogger("gcpboot")


def write_infra_file(env: Environment, path: Optional[Path] = None) -> Path:
    path = Path(path) if path else settings.infra_file_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(env.to_infra_dict(), indent=2))
    log.debug("Wrote infra file %s", path)
    return path


def load_infra_file(path: Optional[Path] = None, executor: Optional[RemoteExecutor] = None) -> Environment:
    path = Path(path) if path else settings.infra_file_path()
    if not path.is_file():
        raise ConfigurationError(f"infra file {path} not found")
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"infra file {path} is not valid JSON: {exc}") from exc
    return Environment.from_infra_dict(data, executor=executor)


def remove_infra_file(path: Optional[Path] = None) -> None:
    path = Path(path) if path else settings.infra_file_path()
    path.unlink(missing_ok=True)
