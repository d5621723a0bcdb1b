# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/provisioning/gcp.py

from __future__ import annotations

import base64
import contextlib
import logging
from functools import cached_property
from typing import Iterator, List, Optional, Sequence, Tuple

from gcpboot.errors import AlreadyExistsError, NotFoundError, ProvisioningError
from .client import MANAGED_LABEL, ProvisioningClient
from .models import (
    Address,
    BillingInfo,
    Binding,
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

SUBNET_CIDR = "10.10.0.0/20"


@contextlib.contextmanager
def _api_errors(what: str) -> Iterator[None]:
    """Map google.api_core errors onto the provider-neutral ones."""
    from google.api_core import exceptions as gexc  # type: ignore[reportMissingImports]

    try:
        yield
    except (gexc.AlreadyExists, gexc.Conflict) as exc:
        raise AlreadyExistsError(f"{what}: {exc.message}") from exc
    except gexc.NotFound as exc:
        raise NotFoundError(f"{what}: {exc.message}") from exc
    except gexc.GoogleAPICallError as exc:
        raise ProvisioningError(f"{what}: {exc.message}") from exc


def _policy_from_pb(pb) -> Policy:
    return Policy(
        bindings=[Binding(role=b.role, members=list(b.members)) for b in pb.bindings],
        etag=base64.b64encode(pb.etag).decode() if pb.etag else None,
        version=pb.version,
    )


def _policy_to_pb(policy: Policy):
    from google.iam.v1 import policy_pb2  # type: ignore[reportMissingImports]

    return policy_pb2.Policy(
        bindings=[policy_pb2.Binding(role=b.role, members=b.members) for b in policy.bindings],
        etag=base64.b64decode(policy.etag) if policy.etag else b"",
        version=policy.version,
    )


class GcpProvisioningClient(ProvisioningClient):
    """
    Google Cloud backend.

    Clients are created on first use. Credentials come from
    GOOGLE_APPLICATION_CREDENTIALS unless a key file is given explicitly.
    """

    def __init__(self, credentials_file: Optional[str] = None):
        self.credentials_file = credentials_file

    @cached_property
    def _credentials(self):
        if not self.credentials_file:
            return None
        from google.oauth2 import service_account  # type: ignore[reportMissingImports]

        return service_account.Credentials.from_service_account_file(
            self.credentials_file,
            scopes=["https://www.googleapis.com/auth/cloud-platform"],
        )

    # ------------------ clients ------------------

    @cached_property
    def _projects(self):
        from google.cloud import resourcemanager_v3  # type: ignore[reportMissingImports]

        return resourcemanager_v3.ProjectsClient(credentials=self._credentials)

    @cached_property
    def _billing(self):
        from google.cloud import billing_v1  # type: ignore[reportMissingImports]

        return billing_v1.CloudBillingClient(credentials=self._credentials)

    @cached_property
    def _service_usage(self):
        from google.cloud import service_usage_v1  # type: ignore[reportMissingImports]

        return service_usage_v1.ServiceUsageClient(credentials=self._credentials)

    @cached_property
    def _artifacts(self):
        from google.cloud import artifactregistry_v1  # type: ignore[reportMissingImports]

        return artifactregistry_v1.ArtifactRegistryClient(credentials=self._credentials)

    @cached_property
    def _iam(self):
        from google.cloud import iam_admin_v1  # type: ignore[reportMissingImports]

        return iam_admin_v1.IAMClient(credentials=self._credentials)

    def _compute(self, name: str):
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        return getattr(compute_v1, name)(credentials=self._credentials)

    def _dns(self, project_id: str):
        from google.cloud import dns  # type: ignore[reportMissingImports]

        return dns.Client(project=project_id, credentials=self._credentials)

    # ------------------ projects ------------------

    def search_projects(self, parent: str, display_name: str) -> List[Project]:
        query = f"displayName:{display_name}"
        if parent:
            query += f" parent:{parent}"
        with _api_errors(f"failed to search projects for {display_name}"):
            return [
                Project(
                    project_id=p.project_id,
                    display_name=p.display_name,
                    name=p.name,
                    parent=p.parent,
                    labels=dict(p.labels),
                )
                for p in self._projects.search_projects(query=query)
            ]

    def get_project(self, project_id: str) -> Project:
        with _api_errors(f"failed to get project {project_id}"):
            p = self._projects.get_project(name=f"projects/{project_id}")
        return Project(
            project_id=p.project_id,
            display_name=p.display_name,
            name=p.name,
            parent=p.parent,
            labels=dict(p.labels),
        )

    def create_project(self, parent: str, project_id: str, display_name: str) -> str:
        from google.cloud import resourcemanager_v3  # type: ignore[reportMissingImports]

        project = resourcemanager_v3.Project(
            project_id=project_id,
            display_name=display_name,
            parent=parent,
            labels={MANAGED_LABEL: "true"},
        )
        with _api_errors(f"failed to create project {project_id}"):
            created = self._projects.create_project(project=project).result()
        return created.project_id

    def delete_project(self, project_id: str) -> None:
        with _api_errors(f"failed to delete project {project_id}"):
            self._projects.delete_project(name=f"projects/{project_id}").result()

    # ------------------ billing ------------------

    def get_billing_info(self, project_id: str) -> BillingInfo:
        with _api_errors(f"failed to get billing info for {project_id}"):
            info = self._billing.get_project_billing_info(name=f"projects/{project_id}")
        return BillingInfo(billing_enabled=info.billing_enabled, billing_account_name=info.billing_account_name)

    def enable_billing(self, project_id: str, billing_account: str) -> None:
        from google.cloud import billing_v1  # type: ignore[reportMissingImports]

        name = billing_account if billing_account.startswith("billingAccounts/") else f"billingAccounts/{billing_account}"
        with _api_errors(f"failed to enable billing for {project_id}"):
            self._billing.update_project_billing_info(
                name=f"projects/{project_id}",
                project_billing_info=billing_v1.ProjectBillingInfo(billing_account_name=name),
            )

    # ------------------ APIs ------------------

    def enable_api(self, project_id: str, api: str) -> None:
        with _api_errors(f"failed to enable API {api}"):
            op = self._service_usage.enable_service(request={"name": f"projects/{project_id}/services/{api}"})
            op.result()

    # ------------------ artifact registry ------------------

    @staticmethod
    def _repository(repo, project_id: str, region: str, repo_name: str) -> Repository:
        uri = getattr(repo, "registry_uri", "") or f"{region}-docker.pkg.dev/{project_id}/{repo_name}"
        return Repository(name=repo.name, registry_uri=uri)

    def get_artifact_registry(self, project_id: str, region: str, repo_name: str) -> Optional[Repository]:
        name = f"projects/{project_id}/locations/{region}/repositories/{repo_name}"
        try:
            with _api_errors(f"failed to get artifact registry {repo_name}"):
                repo = self._artifacts.get_repository(name=name)
        except NotFoundError:
            return None
        return self._repository(repo, project_id, region, repo_name)

    def create_artifact_registry(self, project_id: str, region: str, repo_name: str) -> Repository:
        from google.cloud import artifactregistry_v1  # type: ignore[reportMissingImports]

        repository = artifactregistry_v1.Repository(
            format_=artifactregistry_v1.Repository.Format.DOCKER,
            description="Codesphere managed registry",
        )
        with _api_errors(f"failed to create artifact registry {repo_name}"):
            repo = self._artifacts.create_repository(
                parent=f"projects/{project_id}/locations/{region}",
                repository_id=repo_name,
                repository=repository,
            ).result()
        return self._repository(repo, project_id, region, repo_name)

    # ------------------ service accounts & IAM ------------------

    def create_service_account(self, project_id: str, name: str, display_name: str) -> Tuple[str, bool]:
        from google.cloud import iam_admin_v1  # type: ignore[reportMissingImports]

        email = f"{name}@{project_id}.iam.gserviceaccount.com"
        request = iam_admin_v1.CreateServiceAccountRequest(
            name=f"projects/{project_id}",
            account_id=name,
            service_account=iam_admin_v1.ServiceAccount(display_name=display_name),
        )
        try:
            with _api_errors(f"failed to create service account {name}"):
                self._iam.create_service_account(request=request)
        except AlreadyExistsError:
            return email, False
        return email, True

    def create_service_account_key(self, project_id: str, sa_email: str) -> str:
        with _api_errors(f"failed to create key for {sa_email}"):
            key = self._iam.create_service_account_key(
                name=f"projects/{project_id}/serviceAccounts/{sa_email}"
            )
        return base64.b64encode(key.private_key_data).decode()

    def get_project_iam_policy(self, project_id: str) -> Policy:
        with _api_errors(f"failed to get IAM policy of {project_id}"):
            return _policy_from_pb(self._projects.get_iam_policy(request={"resource": f"projects/{project_id}"}))

    def set_project_iam_policy(self, project_id: str, policy: Policy) -> None:
        with _api_errors(f"failed to set IAM policy of {project_id}"):
            self._projects.set_iam_policy(
                request={"resource": f"projects/{project_id}", "policy": _policy_to_pb(policy)}
            )

    def get_service_account_iam_policy(self, resource: str) -> Policy:
        with _api_errors("failed to get IAM policy for service account"):
            return _policy_from_pb(self._iam.get_iam_policy(request={"resource": resource}))

    def set_service_account_iam_policy(self, resource: str, policy: Policy) -> None:
        with _api_errors("failed to set IAM policy for service account"):
            self._iam.set_iam_policy(request={"resource": resource, "policy": _policy_to_pb(policy)})

    # ------------------ network ------------------

    def _insert_tolerant(self, what: str, fn, **kwargs) -> None:
        try:
            with _api_errors(f"failed to create {what}"):
                fn(**kwargs).result()
        except AlreadyExistsError:
            log.debug("%s already exists", what)

    def create_vpc(self, project_id: str, region: str, network: str, subnet: str, router: str, nat: str) -> None:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        network_url = f"projects/{project_id}/global/networks/{network}"

        self._insert_tolerant(
            f"network {network}",
            self._compute("NetworksClient").insert,
            project=project_id,
            network_resource=compute_v1.Network(name=network, auto_create_subnetworks=False),
        )
        self._insert_tolerant(
            f"subnetwork {subnet}",
            self._compute("SubnetworksClient").insert,
            project=project_id,
            region=region,
            subnetwork_resource=compute_v1.Subnetwork(
                name=subnet,
                ip_cidr_range=SUBNET_CIDR,
                region=region,
                network=network_url,
            ),
        )
        self._insert_tolerant(
            f"router {router}",
            self._compute("RoutersClient").insert,
            project=project_id,
            region=region,
            router_resource=compute_v1.Router(
                name=router,
                network=network_url,
                region=region,
                nats=[
                    compute_v1.RouterNat(
                        name=nat,
                        source_subnetwork_ip_ranges_to_nat="ALL_SUBNETWORKS_ALL_IP_RANGES",
                        nat_ip_allocate_option="AUTO_ONLY",
                    )
                ],
            ),
        )

    def create_firewall_rule(self, project_id: str, rule: FirewallRule) -> None:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        firewall = compute_v1.Firewall(
            name=rule.name,
            network=rule.network,
            direction=rule.direction,
            priority=rule.priority,
            allowed=[
                compute_v1.Allowed(I_p_protocol=a["protocol"], ports=list(a.get("ports", [])))
                for a in rule.allowed
            ],
            source_ranges=rule.source_ranges,
            destination_ranges=rule.destination_ranges,
            target_tags=rule.target_tags,
            description=rule.description,
        )
        with _api_errors(f"failed to create firewall rule {rule.name}"):
            self._compute("FirewallsClient").insert(project=project_id, firewall_resource=firewall).result()

    def create_instance(self, project_id: str, zone: str, request: InstanceRequest) -> None:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        disks = []
        for d in request.disks:
            params = compute_v1.AttachedDiskInitializeParams(
                disk_size_gb=d.size_gb,
                disk_type=d.disk_type,
            )
            if d.source_image:
                params.source_image = d.source_image
            disks.append(
                compute_v1.AttachedDisk(
                    boot=d.boot,
                    auto_delete=True,
                    type_="PERSISTENT",
                    initialize_params=params,
                )
            )

        interface = compute_v1.NetworkInterface(network=request.network, subnetwork=request.subnetwork)
        if request.external_ip:
            interface.access_configs = [compute_v1.AccessConfig(name="External NAT", type_="ONE_TO_ONE_NAT")]

        instance = compute_v1.Instance(
            name=request.name,
            machine_type=request.machine_type,
            tags=compute_v1.Tags(items=request.tags),
            disks=disks,
            network_interfaces=[interface],
            metadata=compute_v1.Metadata(
                items=[compute_v1.Items(key=k, value=v) for k, v in request.metadata.items()]
            ),
            scheduling=compute_v1.Scheduling(preemptible=request.preemptible),
            service_accounts=[
                compute_v1.ServiceAccount(email=request.service_account_email, scopes=request.scopes)
            ] if request.service_account_email else [],
        )
        with _api_errors(f"failed to create instance {request.name}"):
            self._compute("InstancesClient").insert(
                project=project_id, zone=zone, instance_resource=instance
            ).result()

    def get_instance(self, project_id: str, zone: str, name: str) -> InstanceInfo:
        with _api_errors(f"failed to get instance {name}"):
            inst = self._compute("InstancesClient").get(project=project_id, zone=zone, instance=name)
        internal_ip = external_ip = ""
        if inst.network_interfaces:
            nic = inst.network_interfaces[0]
            internal_ip = nic.network_i_p
            if nic.access_configs:
                external_ip = nic.access_configs[0].nat_i_p
        return InstanceInfo(name=name, internal_ip=internal_ip, external_ip=external_ip)

    def create_address(self, project_id: str, region: str, name: str) -> str:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        with _api_errors(f"failed to create address {name}"):
            self._compute("AddressesClient").insert(
                project=project_id,
                region=region,
                address_resource=compute_v1.Address(name=name, address_type="EXTERNAL"),
            ).result()
        address = self.get_address(project_id, region, name)
        return address.address if address else ""

    def get_address(self, project_id: str, region: str, name: str) -> Optional[Address]:
        try:
            with _api_errors(f"failed to get address {name}"):
                addr = self._compute("AddressesClient").get(project=project_id, region=region, address=name)
        except NotFoundError:
            return None
        return Address(name=name, address=addr.address)

    # ------------------ DNS ------------------

    def get_managed_zone(self, project_id: str, zone_name: str) -> Optional[ManagedZone]:
        zone = self._dns(project_id).zone(zone_name)
        with _api_errors(f"failed to get DNS zone {zone_name}"):
            if not zone.exists():
                return None
            zone.reload()
        return ManagedZone(name=zone_name, dns_name=zone.dns_name, description=zone.description or "")

    def create_managed_zone(self, project_id: str, zone: ManagedZone) -> None:
        z = self._dns(project_id).zone(zone.name, dns_name=zone.dns_name, description=zone.description)
        with _api_errors(f"failed to create DNS zone {zone.name}"):
            z.create()

    def get_record_set(self, project_id: str, zone_name: str, name: str, rtype: str) -> Optional[DnsRecordSet]:
        zone = self._dns(project_id).zone(zone_name)
        with _api_errors(f"failed to get DNS record {name}"):
            for rrs in zone.list_resource_record_sets():
                if rrs.name == name and rrs.record_type == rtype:
                    return DnsRecordSet(name=rrs.name, type=rrs.record_type, ttl=rrs.ttl, rrdatas=list(rrs.rrdatas))
        return None

    def change_record_sets(
        self,
        project_id: str,
        zone_name: str,
        *,
        additions: Sequence[DnsRecordSet] = (),
        deletions: Sequence[DnsRecordSet] = (),
    ) -> None:
        zone = self._dns(project_id).zone(zone_name)
        changes = zone.changes()
        for r in deletions:
            changes.delete_record_set(zone.resource_record_set(r.name, r.type, r.ttl, r.rrdatas))
        for r in additions:
            changes.add_record_set(zone.resource_record_set(r.name, r.type, r.ttl, r.rrdatas))
        with _api_errors(f"failed to change DNS records in {zone_name}"):
            changes.create()
