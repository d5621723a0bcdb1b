# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/config/settings.py

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

DEFAULT_PORTAL_API = "https://oms-portal.codesphere.com/api"
DEFAULT_WORKDIR = "./oms-workdir"
INFRA_FILE_NAME = "gcp-infra.json"

PORTAL_API_KEY_ENV = "OMS_PORTAL_API_KEY"


def workdir() -> Path:
    return Path(os.environ.get("OMS_WORKDIR") or DEFAULT_WORKDIR)


def infra_file_path() -> Path:
    return workdir() / INFRA_FILE_NAME


def portal_api_url() -> str:
    return (os.environ.get("OMS_PORTAL_API") or DEFAULT_PORTAL_API).rstrip("/")


def portal_api_key() -> Optional[str]:
    return os.environ.get(PORTAL_API_KEY_ENV) or None


def ssh_auth_sock() -> Optional[str]:
    return os.environ.get("SSH_AUTH_SOCK") or None


def google_credentials_file() -> Optional[str]:
    return os.environ.get("GOOGLE_APPLICATION_CREDENTIALS") or None
