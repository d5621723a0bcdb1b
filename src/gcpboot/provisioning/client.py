# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/provisioning/client.py

from __future__ import annotations

import logging
import secrets
import string
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence, Tuple

from gcpboot.errors import ProvisioningError, is_already_exists, is_not_found
from . import iam
from .dns import gateway_record_names
from .models import (
    Address,
    BillingInfo,
    DnsRecordSet,
    FirewallRule,
    InstanceInfo,
    InstanceRequest,
    ManagedZone,
    Policy,
    Project,
    Repository,
)

log = logging.getLogger("gcpboot")

MANAGED_LABEL = "oms-managed"

_ID_ALPHABET = string.ascii_lowercase + string.digits


class ProvisioningClient(ABC):
    """
    Cloud resource operations used by the bootstrapper.

    Subclasses implement the primitive calls. The composite "ensure" helpers
    (exact-name project lookup, parallel API enablement, IAM binding edits,
    DNS record replacement) live here so every backend behaves the same.
    """

    # ------------------ projects ------------------

    @abstractmethod
    def search_projects(self, parent: str, display_name: str) -> List[Project]:
        """Projects under *parent* whose display name starts with *display_name*."""

    @abstractmethod
    def get_project(self, project_id: str) -> Project: ...

    @abstractmethod
    def create_project(self, parent: str, project_id: str, display_name: str) -> str: ...

    @abstractmethod
    def delete_project(self, project_id: str) -> None: ...

    def get_project_by_name(self, folder_id: str, display_name: str) -> Optional[Project]:
        parent = f"folders/{folder_id}" if folder_id else ""
        # search is prefix based, only an exact display name counts
        for project in self.search_projects(parent, display_name):
            if project.display_name == display_name:
                return project
        return None

    def create_project_id(self, project_name: str) -> str:
        suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(8))
        return f"{project_name}-{suffix}"

    def is_oms_managed_project(self, project_id: str) -> bool:
        project = self.get_project(project_id)
        return project.labels.get(MANAGED_LABEL) == "true"

    # ------------------ billing ------------------

    @abstractmethod
    def get_billing_info(self, project_id: str) -> BillingInfo: ...

    @abstractmethod
    def enable_billing(self, project_id: str, billing_account: str) -> None: ...

    # ------------------ APIs ------------------

    @abstractmethod
    def enable_api(self, project_id: str, api: str) -> None: ...

    def enable_apis(
        self,
        project_id: str,
        apis: Sequence[str],
        logf: Optional[Callable[..., None]] = None,
    ) -> None:
        logf = logf or (lambda fmt, *a: log.debug(fmt, *a))
        errors: List[str] = []

        def _enable(api: str) -> str:
            logf("Enabling API %s", api)
            try:
                self.enable_api(project_id, api)
            except Exception as exc:
                if is_already_exists(exc):
                    return f"API {api} already enabled"
                raise
            return f"API {api} enabled"

        with ThreadPoolExecutor(max_workers=max(1, len(apis))) as pool:
            futures = {pool.submit(_enable, api): api for api in apis}
            for future in as_completed(futures):
                api = futures[future]
                try:
                    logf(future.result())
                except Exception as exc:
                    errors.append(f"failed to enable API {api}: {exc}")

        if errors:
            raise ProvisioningError("errors occurred while enabling APIs: " + "; ".join(sorted(errors)))

    # ------------------ artifact registry ------------------

    @abstractmethod
    def get_artifact_registry(self, project_id: str, region: str, repo_name: str) -> Optional[Repository]:
        """None when the repository does not exist."""

    @abstractmethod
    def create_artifact_registry(self, project_id: str, region: str, repo_name: str) -> Repository: ...

    # ------------------ service accounts & IAM ------------------

    @abstractmethod
    def create_service_account(self, project_id: str, name: str, display_name: str) -> Tuple[str, bool]:
        """Returns (email, newly_created). An existing account is not an error."""

    @abstractmethod
    def create_service_account_key(self, project_id: str, sa_email: str) -> str: ...

    @abstractmethod
    def get_project_iam_policy(self, project_id: str) -> Policy: ...

    @abstractmethod
    def set_project_iam_policy(self, project_id: str, policy: Policy) -> None: ...

    @abstractmethod
    def get_service_account_iam_policy(self, resource: str) -> Policy: ...

    @abstractmethod
    def set_service_account_iam_policy(self, resource: str, policy: Policy) -> None: ...

    def assign_iam_role(self, project_id: str, sa_name: str, sa_project_id: str, roles: Sequence[str]) -> None:
        member = iam.service_account_member(sa_name, sa_project_id)
        policy = self.get_project_iam_policy(project_id)
        if iam.add_role_binding(policy, member, roles):
            self.set_project_iam_policy(project_id, policy)

    @staticmethod
    def _impersonation_target(
        impersonating_sa: str, impersonating_project: str, impersonated_sa: str, impersonated_project: str
    ) -> Tuple[str, str]:
        impersonated_email = iam.service_account_email(impersonated_sa, impersonated_project)
        resource = f"projects/{impersonated_project}/serviceAccounts/{impersonated_email}"
        member = iam.service_account_member(impersonating_sa, impersonating_project)
        return resource, member

    def grant_impersonation(
        self, impersonating_sa: str, impersonating_project: str, impersonated_sa: str, impersonated_project: str
    ) -> None:
        resource, member = self._impersonation_target(
            impersonating_sa, impersonating_project, impersonated_sa, impersonated_project
        )
        policy = self.get_service_account_iam_policy(resource)
        if iam.add_role_binding(policy, member, [iam.TOKEN_CREATOR_ROLE]):
            self.set_service_account_iam_policy(resource, policy)

    def revoke_impersonation(
        self, impersonating_sa: str, impersonating_project: str, impersonated_sa: str, impersonated_project: str
    ) -> None:
        resource, member = self._impersonation_target(
            impersonating_sa, impersonating_project, impersonated_sa, impersonated_project
        )
        try:
            policy = self.get_service_account_iam_policy(resource)
        except Exception as exc:
            if is_not_found(exc):
                return
            raise
        if iam.remove_role_binding(policy, member, [iam.TOKEN_CREATOR_ROLE]):
            self.set_service_account_iam_policy(resource, policy)

    # ------------------ network ------------------

    @abstractmethod
    def create_vpc(
        self, project_id: str, region: str, network: str, subnet: str, router: str, nat: str
    ) -> None:
        """Create network, subnet, router and NAT; existing pieces are left alone."""

    @abstractmethod
    def create_firewall_rule(self, project_id: str, rule: FirewallRule) -> None: ...

    @abstractmethod
    def create_instance(self, project_id: str, zone: str, request: InstanceRequest) -> None: ...

    @abstractmethod
    def get_instance(self, project_id: str, zone: str, name: str) -> InstanceInfo: ...

    @abstractmethod
    def create_address(self, project_id: str, region: str, name: str) -> str: ...

    @abstractmethod
    def get_address(self, project_id: str, region: str, name: str) -> Optional[Address]:
        """None when the address does not exist."""

    # ------------------ DNS ------------------

    @abstractmethod
    def get_managed_zone(self, project_id: str, zone_name: str) -> Optional[ManagedZone]: ...

    @abstractmethod
    def create_managed_zone(self, project_id: str, zone: ManagedZone) -> None: ...

    @abstractmethod
    def get_record_set(self, project_id: str, zone_name: str, name: str, rtype: str) -> Optional[DnsRecordSet]: ...

    @abstractmethod
    def change_record_sets(
        self,
        project_id: str,
        zone_name: str,
        *,
        additions: Sequence[DnsRecordSet] = (),
        deletions: Sequence[DnsRecordSet] = (),
    ) -> None:
        """Apply one atomic change batch."""

    def ensure_dns_managed_zone(self, project_id: str, zone_name: str, dns_name: str, description: str) -> None:
        if self.get_managed_zone(project_id, zone_name) is not None:
            return
        try:
            self.create_managed_zone(project_id, ManagedZone(zone_name, dns_name, description))
        except Exception as exc:
            if not is_already_exists(exc):
                raise ProvisioningError(f"failed to create DNS zone: {exc}") from exc

    def ensure_dns_record_sets(self, project_id: str, zone_name: str, records: Sequence[DnsRecordSet]) -> None:
        # replace, never merge: drop whatever sits at name+type, then add
        deletions = []
        for record in records:
            existing = self.get_record_set(project_id, zone_name, record.name, record.type)
            if existing is not None:
                deletions.append(existing)

        if deletions:
            try:
                self.change_record_sets(project_id, zone_name, deletions=deletions)
            except Exception as exc:
                raise ProvisioningError(f"failed to delete existing DNS records: {exc}") from exc

        try:
            self.change_record_sets(project_id, zone_name, additions=list(records))
        except Exception as exc:
            raise ProvisioningError(f"failed to create DNS records: {exc}") from exc

    def delete_dns_record_sets(self, project_id: str, zone_name: str, base_domain: str) -> None:
        deletions = []
        for name, rtype in gateway_record_names(base_domain):
            existing = self.get_record_set(project_id, zone_name, name, rtype)
            if existing is not None:
                deletions.append(existing)
        if not deletions:
            return
        try:
            self.change_record_sets(project_id, zone_name, deletions=deletions)
        except Exception as exc:
            raise ProvisioningError(f"failed to delete DNS records: {exc}") from exc
