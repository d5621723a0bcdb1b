# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/portal/client.py

from __future__ import annotations

from typing import List, Optional

import requests
from pydantic import BaseModel, Field

from gcpboot.config import settings
from gcpboot.errors import GcpBootError


class PortalError(GcpBootError):
    pass


class Artifact(BaseModel):
    md5sum: str = ""
    filename: str
    name: str = ""


class Build(BaseModel):
    version: str
    date: str = ""
    hash: str = ""
    artifacts: List[Artifact] = Field(default_factory=list)
    internal: bool = False

    def artifact_filenames(self) -> List[str]:
        return [a.filename for a in self.artifacts]


class PortalClient:
    """
    Read-only client for the package portal:
      - list builds of a product
      - resolve a version (and optional hash) to one build
    """

    def __init__(self, *, base_url: Optional[str] = None, api_key: Optional[str] = None, timeout: float = 30):
        self.base_url = (base_url or settings.portal_api_url()).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.portal_api_key()
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise PortalError(f"{settings.PORTAL_API_KEY_ENV} is not set")
        return {"X-API-Key": self.api_key, "Accept": "application/json"}

    def list_builds(self, product: str) -> List[Build]:
        url = f"{self.base_url}/packages/{product}"
        r = requests.get(url, headers=self._headers(), timeout=self.timeout)
        if r.status_code >= 300:
            raise PortalError(f"portal request {url} failed: {r.status_code} {r.text}")
        builds = [Build.model_validate(b) for b in r.json().get("builds", [])]
        return sorted(builds, key=lambda b: b.date)

    def get_build(self, product: str, version: str = "", hash: str = "") -> Build:
        builds = self.list_builds(product)
        if not builds:
            raise PortalError(f"no builds available for {product}")

        if version in ("", "latest"):
            return builds[-1]

        matches = [
            b for b in builds
            if b.version == version and (not hash or (b.hash and hash.startswith(b.hash)))
        ]
        if not matches:
            detail = f"{version}" + (f" ({hash})" if hash else "")
            raise PortalError(f"version {detail} not found for {product}")
        return matches[-1]
