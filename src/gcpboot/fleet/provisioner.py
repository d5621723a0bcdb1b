# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/fleet/provisioner.py

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from gcpboot.errors import FleetProvisioningError, GcpBootError, is_already_exists
from gcpboot.node.node import Node
from gcpboot.provisioning.client import ProvisioningClient
from gcpboot.provisioning.iam import service_account_email
from gcpboot.provisioning.models import DiskSpec, InstanceRequest
from gcpboot.remote.executor import RemoteExecutor
from .specs import ROLE_CEPH, ROLE_CONTROL_PLANE, ROLE_JUMPBOX, ROLE_POSTGRES, VMSpec

log = logging.getLogger("gcpboot")

BOOT_IMAGE = "projects/ubuntu-os-cloud/global/images/family/ubuntu-2204-lts"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
DEFAULT_BOOT_DISK_GB = 200


@dataclass(frozen=True)
class VMResult:
    """What a worker hands back. Immutable; workers share nothing else."""
    role: str
    name: str
    external_ip: str
    internal_ip: str


@dataclass
class Fleet:
    jumpbox: Node
    postgres: Node
    ceph: List[Node] = field(default_factory=list)
    control_planes: List[Node] = field(default_factory=list)


class ConcurrentFleetProvisioner:
    """
    Creates every VMSpec in parallel, then builds the Node tree on the
    calling thread once all workers are done.
    """

    def __init__(
        self,
        client: ProvisioningClient,
        executor: Optional[RemoteExecutor],
        *,
        project_id: str,
        region: str,
        zone: str,
        ssh_public_key: str,
        preemptible: bool = False,
        boot_disk_gb: int = DEFAULT_BOOT_DISK_GB,
        max_workers: Optional[int] = None,
        logf: Optional[Callable[..., None]] = None,
    ):
        self.client = client
        self.executor = executor
        self.project_id = project_id
        self.region = region
        self.zone = zone
        self.ssh_public_key = ssh_public_key.strip()
        self.preemptible = preemptible
        self.boot_disk_gb = boot_disk_gb
        self.max_workers = max_workers
        self.logf = logf or (lambda fmt, *a: log.debug(fmt, *a))

    # ------------------ request building ------------------

    def _disk_type(self) -> str:
        return f"projects/{self.project_id}/zones/{self.zone}/diskTypes/pd-ssd"

    def build_request(self, spec: VMSpec) -> InstanceRequest:
        p, r, z = self.project_id, self.region, self.zone
        disks = [DiskSpec(size_gb=self.boot_disk_gb, disk_type=self._disk_type(), boot=True, source_image=BOOT_IMAGE)]
        disks += [DiskSpec(size_gb=size, disk_type=self._disk_type()) for size in spec.additional_disks_gb]
        pub = self.ssh_public_key
        return InstanceRequest(
            name=spec.name,
            machine_type=f"zones/{z}/machineTypes/{spec.machine_type}",
            tags=list(spec.tags),
            disks=disks,
            network=f"projects/{p}/global/networks/{p}-vpc",
            subnetwork=f"projects/{p}/regions/{r}/subnetworks/{p}-{r}-subnet",
            external_ip=spec.external_ip,
            service_account_email=service_account_email("cloud-controller", p),
            scopes=[CLOUD_PLATFORM_SCOPE],
            metadata={"ssh-keys": f"root:{pub} root\nubuntu:{pub} ubuntu"},
            preemptible=self.preemptible,
        )

    # ------------------ worker ------------------

    def _provision_one(self, spec: VMSpec) -> VMResult:
        request = self.build_request(spec)
        try:
            self.client.create_instance(self.project_id, self.zone, request)
        except Exception as exc:
            if not is_already_exists(exc):
                raise GcpBootError(f"failed to create instance {spec.name}: {exc}") from exc
            self.logf("Instance %s already exists", spec.name)

        try:
            info = self.client.get_instance(self.project_id, self.zone, spec.name)
        except Exception as exc:
            raise GcpBootError(f"failed to get instance {spec.name}: {exc}") from exc

        if not info.internal_ip:
            raise GcpBootError(f"instance {spec.name} has no internal IP")
        if spec.external_ip and not info.external_ip:
            raise GcpBootError(f"instance {spec.name} has no external IP")

        return VMResult(
            role=spec.role,
            name=spec.name,
            external_ip=info.external_ip,
            internal_ip=info.internal_ip,
        )

    # ------------------ fan-out / fan-in ------------------

    def provision_fleet(self, specs: Sequence[VMSpec]) -> Fleet:
        results: List[VMResult] = []
        errors: List[Exception] = []

        workers = self.max_workers or max(1, len(specs))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="vm") as pool:
            futures = {pool.submit(self._provision_one, spec): spec for spec in specs}
            for future in as_completed(futures):
                spec = futures[future]
                try:
                    results.append(future.result())
                    self.logf("Instance %s ready", spec.name)
                except Exception as exc:
                    errors.append(exc)

        if errors:
            raise FleetProvisioningError(errors)

        return self._assemble(results)

    def _assemble(self, results: Sequence[VMResult]) -> Fleet:
        by_role = {}
        for res in results:
            by_role.setdefault(res.role, []).append(res)

        for role in (ROLE_JUMPBOX, ROLE_POSTGRES):
            if len(by_role.get(role, [])) != 1:
                raise GcpBootError(f"fleet must contain exactly one {role} instance")

        jb = by_role[ROLE_JUMPBOX][0]
        jumpbox = Node(jb.name, jb.external_ip, jb.internal_ip, executor=self.executor)

        pg = by_role[ROLE_POSTGRES][0]
        postgres = jumpbox.sub_node(pg.name, pg.external_ip, pg.internal_ip)

        ceph = sorted(
            (jumpbox.sub_node(r.name, r.external_ip, r.internal_ip) for r in by_role.get(ROLE_CEPH, [])),
            key=lambda n: n.name,
        )
        control_planes = sorted(
            (jumpbox.sub_node(r.name, r.external_ip, r.internal_ip) for r in by_role.get(ROLE_CONTROL_PLANE, [])),
            key=lambda n: n.name,
        )
        return Fleet(jumpbox=jumpbox, postgres=postgres, ceph=ceph, control_planes=control_planes)
