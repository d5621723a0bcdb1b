# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/config/loader.py

from __future__ import annotations

import logging
import os
import secrets
import string
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import yaml

from gcpboot.errors import ConfigurationError
from .models import (
    InstallConfig,
    InstallVault,
    PostgresPrimaryConfig,
    SecretEntry,
    SecretFields,
)

log = logging.getLogger("gcpboot")

POSTGRES_SERVICES = ["auth", "deployment", "ide", "marketplace", "payment", "public_api", "team", "workspace"]

CONFIG_HEADER = """\
# Codesphere Installer Configuration
# Generated by gcpboot
#
# This file contains the main configuration for installing Codesphere Private Cloud.
# Review and modify as needed before running the installer.

"""

VAULT_HEADER = """\
# Codesphere Installer Secrets
# Generated by gcpboot
#
# IMPORTANT: This file contains sensitive information!
# Encrypt it with sops/age before storing it anywhere shared.

"""


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    return yaml.safe_load(expanded) or {}


def _write_yaml(path: Path, data: dict, header: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    body = yaml.safe_dump(data, sort_keys=False, default_flow_style=False)
    path.write_text(header + body)


def generate_password(length: int = 32) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def _capitalize(s: str) -> str:
    return s[:1].upper() + s[1:]


def load_install_config(path: str | Path) -> InstallConfig:
    return InstallConfig.model_validate(_load_yaml(Path(path)))


def load_vault(path: str | Path) -> InstallVault:
    return InstallVault.model_validate(_load_yaml(Path(path)))


class InstallConfigManager(ABC):
    """
    Holds the install configuration and its vault for one run.

    The bootstrapper only populates fields; the schema itself belongs to the
    installer.
    """

    @property
    @abstractmethod
    def config(self) -> InstallConfig: ...

    @abstractmethod
    def load_install_config_from_file(self, path: str) -> None: ...

    @abstractmethod
    def apply_profile(self, profile: str) -> None: ...

    @abstractmethod
    def load_vault_from_file(self, path: str) -> None: ...

    @abstractmethod
    def merge_vault_into_config(self) -> None: ...

    @abstractmethod
    def generate_secrets(self) -> None: ...

    @abstractmethod
    def write_install_config(self, path: str, with_comments: bool = True) -> None: ...

    @abstractmethod
    def write_vault(self, path: str, with_comments: bool = True) -> None: ...


class YamlInstallConfigManager(InstallConfigManager):
    def __init__(self, config: Optional[InstallConfig] = None):
        self._config = config or InstallConfig()
        self._vault: Optional[InstallVault] = None

    @property
    def config(self) -> InstallConfig:
        return self._config

    @property
    def vault(self) -> Optional[InstallVault]:
        return self._vault

    def load_install_config_from_file(self, path: str) -> None:
        log.debug("Loading install config from %s", path)
        self._config = load_install_config(path)

    def apply_profile(self, profile: str) -> None:
        if profile != "dev":
            raise ConfigurationError(f"unknown install config profile {profile!r}")

        cfg = self._config
        cfg.datacenter.id = 1
        cfg.datacenter.city = "Karlsruhe"
        cfg.datacenter.country_code = "DE"
        cfg.postgres.mode = "install"
        cfg.postgres.primary = PostgresPrimaryConfig()
        cfg.ceph.osds = [
            {
                "specId": "default",
                "placement": {"host_pattern": "*"},
                "dataDevices": {"size": "240G:300G", "limit": 1},
                "dbDevices": {"size": "120G:150G", "limit": 1},
            }
        ]
        cfg.kubernetes.managed_by_codesphere = True
        cfg.cluster.certificates = {"ca": {"algorithm": "RSA", "keySizeBits": 2048}}
        cfg.cluster.gateway.service_type = "LoadBalancer"
        cfg.cluster.public_gateway.service_type = "LoadBalancer"
        cfg.codesphere.experiments = []

    def load_vault_from_file(self, path: str) -> None:
        log.debug("Loading vault from %s", path)
        self._vault = load_vault(path)

    def merge_vault_into_config(self) -> None:
        if self._vault is None:
            raise ConfigurationError("vault not loaded")

        vault = self._vault
        cfg = self._config

        def password(name: str) -> Optional[str]:
            entry = vault.get(name)
            if entry is not None and entry.fields is not None:
                return entry.fields.password
            return None

        if (v := password("postgresPassword")) is not None:
            cfg.postgres.admin_password = v
        if (v := password("postgresReplicaPassword")) is not None:
            cfg.postgres.replica_password = v
        for service in POSTGRES_SERVICES:
            if (v := password(f"postgresPassword{_capitalize(service)}")) is not None:
                cfg.postgres.user_passwords[service] = v

        if (v := password("registryUsername")) is not None:
            cfg.registry.username = v
        if (v := password("registryPassword")) is not None:
            cfg.registry.password = v

        if (v := password("githubAppsClientId")) is not None:
            cfg.codesphere.github_app_client_id = v
        if (v := password("githubAppsClientSecret")) is not None:
            cfg.codesphere.github_app_client_secret = v

    def generate_secrets(self) -> None:
        # certificates and keys are produced by the installer on the jumpbox
        pg = self._config.postgres
        pg.admin_password = generate_password()
        pg.replica_password = generate_password()
        pg.user_passwords = {svc: generate_password() for svc in POSTGRES_SERVICES}

    def extract_vault(self) -> InstallVault:
        cfg = self._config
        entries = []

        def add(name: str, value: str) -> None:
            if value:
                entries.append(SecretEntry(name=name, fields=SecretFields(password=value)))

        add("githubAppsClientId", cfg.codesphere.github_app_client_id)
        add("githubAppsClientSecret", cfg.codesphere.github_app_client_secret)
        add("postgresPassword", cfg.postgres.admin_password)
        add("postgresReplicaPassword", cfg.postgres.replica_password)
        for service in POSTGRES_SERVICES:
            add(f"postgresPassword{_capitalize(service)}", cfg.postgres.user_passwords.get(service, ""))
        add("registryUsername", cfg.registry.username)
        add("registryPassword", cfg.registry.password)
        return InstallVault(secrets=entries)

    def write_install_config(self, path: str, with_comments: bool = True) -> None:
        data = self._config.model_dump(by_alias=True, exclude_none=True)
        _write_yaml(Path(path), data, CONFIG_HEADER if with_comments else "")
        log.debug("Wrote install config to %s", path)

    def write_vault(self, path: str, with_comments: bool = True) -> None:
        data = self.extract_vault().model_dump(by_alias=True, exclude_none=True)
        _write_yaml(Path(path), data, VAULT_HEADER if with_comments else "")
        log.debug("Wrote vault to %s", path)
