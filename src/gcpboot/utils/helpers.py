# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import os
import secrets
import shlex
import string
from pathlib import Path

_SHORT_ALPHABET = string.ascii_letters + string.digits


def q(s: str) -> str:
    """Quote for a POSIX shell."""
    return shlex.quote(str(s))


def expand_path(path: str | os.PathLike) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(str(path))))


def short_id(length: int = 22) -> str:
    return "".join(secrets.choice(_SHORT_ALPHABET) for _ in range(length))


def truncate(s: str, limit: int = 200) -> str:
    s = s.strip()
    return s if len(s) <= limit else s[:limit] + "..."
