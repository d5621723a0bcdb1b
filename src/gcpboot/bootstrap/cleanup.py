# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/bootstrap/cleanup.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from gcpboot.config import settings
from gcpboot.errors import ConfigurationError, GcpBootError
from gcpboot.provisioning.client import MANAGED_LABEL, ProvisioningClient
from .bootstrapper import CLOUD_CONTROLLER_SA
from .environment import Environment
from .infra_file import load_infra_file, remove_infra_file
from .step_logger import StepLogger

log = logging.getLogger("gcpboot")


@dataclass
class CleanupOptions:
    project_id: str = ""
    force: bool = False
    skip_dns_cleanup: bool = False
    base_domain: str = ""
    dns_zone_name: str = ""


class ProjectCleanup:
    """
    Deletes a project created by the bootstrapper.

    The project ID comes from the options or the local infra file. Unless
    forced, the project must carry the oms-managed label and the operator must
    type the project ID back through *confirm*.
    """

    def __init__(
        self,
        client: ProvisioningClient,
        opts: CleanupOptions,
        *,
        stlog: Optional[StepLogger] = None,
        confirm: Optional[Callable[[str], str]] = None,
        infra_file: Optional[Path] = None,
    ):
        self.client = client
        self.opts = opts
        self.stlog = stlog or StepLogger()
        self.confirm = confirm
        self.infra_file = Path(infra_file) if infra_file else settings.infra_file_path()

    def _load_infra(self) -> tuple[Optional[Environment], bool]:
        """(env, file_exists). A broken file is fatal only when it is our only source of the project ID."""
        if not self.infra_file.is_file():
            return None, False
        try:
            return load_infra_file(self.infra_file), True
        except ConfigurationError:
            if not self.opts.project_id:
                raise
            log.warning("Ignoring unreadable infra file %s", self.infra_file)
            return None, True

    def _confirm_deletion(self, project_id: str) -> None:
        if self.confirm is None:
            raise ConfigurationError("deletion must be confirmed interactively or forced with --force")
        log.warning("This will permanently delete the GCP project '%s' and all its resources.", project_id)
        answer = self.confirm(project_id)
        if (answer or "").strip() != project_id:
            raise GcpBootError("confirmation did not match project ID, aborting cleanup")

    def run(self) -> str:
        opts = self.opts
        project_id = opts.project_id

        infra: Optional[Environment] = None
        needs_infra = not project_id or (not opts.skip_dns_cleanup and not opts.base_domain)
        exists = False
        if needs_infra:
            infra, exists = self._load_infra()

        if not project_id:
            if infra is None or not infra.project_id:
                if exists:
                    raise ConfigurationError(f"infra file at {self.infra_file} contains empty project ID")
                raise ConfigurationError(f"no project ID provided and no infra file found at {self.infra_file}")
            project_id = infra.project_id
            log.info("Using project ID from infra file: %s", project_id)
        elif infra is not None and infra.project_id != project_id:
            log.warning(
                "Infra file describes project '%s' but deleting '%s'; ignoring infra file",
                infra.project_id,
                project_id,
            )
            infra = None

        base_domain = opts.base_domain or (infra.base_domain if infra else "")
        dns_zone_name = opts.dns_zone_name or (infra.dns_zone_name if infra else "")
        dns_project_id = (infra.dns_project_id if infra else "") or project_id

        if opts.force:
            log.info("Skipping %s verification (--force)", MANAGED_LABEL)
        else:
            if not self.client.is_oms_managed_project(project_id):
                raise GcpBootError(
                    f"project {project_id} was not bootstrapped by OMS (missing '{MANAGED_LABEL}' label). "
                    "Use --force to override this check"
                )
            self._confirm_deletion(project_id)

        if not opts.skip_dns_cleanup and base_domain and dns_zone_name:
            try:
                self.stlog.step(
                    "Cleaning up DNS records",
                    lambda: self.client.delete_dns_record_sets(dns_project_id, dns_zone_name, base_domain),
                )
            except Exception as exc:
                log.warning("Failed to clean up DNS records: %s", exc)
                log.warning("You may need to manually delete DNS records for %s in project %s", base_domain, dns_project_id)
        elif not opts.skip_dns_cleanup and not base_domain:
            log.info("Skipping DNS cleanup: no base domain available")

        if infra is not None and infra.dns_project_id and infra.dns_project_service_account:
            try:
                self.stlog.step(
                    "Revoking DNS project impersonation",
                    lambda: self.client.revoke_impersonation(
                        CLOUD_CONTROLLER_SA, project_id, infra.dns_project_service_account, infra.dns_project_id
                    ),
                )
            except Exception as exc:
                log.warning("Failed to revoke impersonation on DNS project %s: %s", infra.dns_project_id, exc)

        try:
            self.stlog.step("Deleting GCP project", lambda: self.client.delete_project(project_id))
        except Exception as exc:
            raise GcpBootError(f"failed to delete project: {exc}") from exc

        if infra is not None and infra.project_id == project_id:
            remove_infra_file(self.infra_file)
            log.info("Removed local infra file: %s", self.infra_file)

        log.info("Project '%s' has been scheduled for deletion.", project_id)
        return project_id
