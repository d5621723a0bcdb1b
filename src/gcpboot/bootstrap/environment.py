# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/bootstrap/environment.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from gcpboot.config.models import InstallConfig
from gcpboot.node.node import Node
from gcpboot.remote.executor import RemoteExecutor

DEFAULT_EXPERIMENTS = [
    "managed-services",
    "vcluster",
    "custom-service-image",
    "ms-in-ls",
    "secret-management",
    "sub-path-mount",
]


class RegistryType(str, Enum):
    LOCAL_CONTAINER = "local-container"
    ARTIFACT_REGISTRY = "artifact-registry"
    GITHUB = "github"


@dataclass
class Environment:
    """
    State of one bootstrap run. Only the bootstrapper writes to it.
    """
    # identifiers
    project_name: str = ""
    project_id: str = ""
    project_display_name: str = ""
    folder_id: str = ""
    billing_account: str = ""
    dns_project_id: str = ""
    dns_project_service_account: str = ""

    # placement
    region: str = "europe-west4"
    zone: str = "europe-west4-a"
    dns_zone_name: str = "oms-testing"
    base_domain: str = ""

    # run options
    ssh_public_key_path: str = "~/.ssh/id_rsa.pub"
    ssh_private_key_path: str = "~/.ssh/id_rsa"
    preemptible: bool = False
    write_config: bool = True
    registry_type: RegistryType = RegistryType.LOCAL_CONTAINER
    github_pat: str = ""
    registry_user: str = ""
    github_app_client_id: str = ""
    github_app_client_secret: str = ""
    install_version: str = ""
    install_hash: str = ""
    install_skip_steps: List[str] = field(default_factory=list)
    datacenter_id: int = 1
    secrets_dir: str = "/etc/codesphere/secrets"
    install_config_path: str = "config.yaml"
    secrets_file_path: str = "prod.vault.yaml"
    experiments: List[str] = field(default_factory=lambda: list(DEFAULT_EXPERIMENTS))
    feature_flags: List[str] = field(default_factory=list)
    custom_pg_ip: str = ""

    # topology
    jumpbox: Optional[Node] = None
    postgres_node: Optional[Node] = None
    ceph_nodes: List[Node] = field(default_factory=list)
    control_plane_nodes: List[Node] = field(default_factory=list)
    gateway_ip: str = ""
    public_gateway_ip: str = ""

    # derived config
    install_config: InstallConfig = field(default_factory=InstallConfig)
    existing_config_used: bool = False

    # ------------------ infra file ------------------

    def to_infra_dict(self) -> Dict[str, Any]:
        def node(n: Optional[Node]) -> Optional[Dict[str, Any]]:
            return n.to_dict() if n is not None else None

        return {
            "project_id": self.project_id,
            "project_name": self.project_name,
            "project_display_name": self.project_display_name,
            "dns_project_id": self.dns_project_id,
            "dns_project_service_account": self.dns_project_service_account,
            "jumpbox": node(self.jumpbox),
            "postgres_node": node(self.postgres_node),
            "control_plane_nodes": [n.to_dict() for n in self.control_plane_nodes],
            "ceph_nodes": [n.to_dict() for n in self.ceph_nodes],
            "install_version": self.install_version,
            "install_hash": self.install_hash,
            "install_skip_steps": list(self.install_skip_steps),
            "preemptible": self.preemptible,
            "gateway_ip": self.gateway_ip,
            "public_gateway_ip": self.public_gateway_ip,
            "registry_type": self.registry_type.value,
            "experiments": list(self.experiments),
            "feature_flags": list(self.feature_flags),
            "billing_account": self.billing_account,
            "base_domain": self.base_domain,
            "secrets_dir": self.secrets_dir,
            "folder_id": self.folder_id,
            "custom_pg_ip": self.custom_pg_ip,
            "region": self.region,
            "zone": self.zone,
            "dns_zone_name": self.dns_zone_name,
        }

    @classmethod
    def from_infra_dict(cls, data: Dict[str, Any], executor: Optional[RemoteExecutor] = None) -> "Environment":
        env = cls()
        for key in (
            "project_id", "project_name", "project_display_name", "dns_project_id",
            "dns_project_service_account", "install_version", "install_hash",
            "gateway_ip", "public_gateway_ip", "billing_account", "base_domain",
            "secrets_dir", "folder_id", "custom_pg_ip", "region", "zone", "dns_zone_name",
        ):
            if data.get(key) is not None:
                setattr(env, key, data[key])
        env.preemptible = bool(data.get("preemptible", False))
        env.install_skip_steps = list(data.get("install_skip_steps") or [])
        env.experiments = list(data.get("experiments") or [])
        env.feature_flags = list(data.get("feature_flags") or [])
        if data.get("registry_type"):
            env.registry_type = RegistryType(data["registry_type"])

        jb = data.get("jumpbox")
        if jb:
            env.jumpbox = Node(jb["name"], jb.get("external_ip", ""), jb.get("internal_ip", ""), executor=executor)

        def sub(d: Dict[str, Any]) -> Node:
            if env.jumpbox is None:
                return Node(d["name"], d.get("external_ip", ""), d.get("internal_ip", ""), executor=executor)
            return env.jumpbox.sub_node(d["name"], d.get("external_ip", ""), d.get("internal_ip", ""))

        if data.get("postgres_node"):
            env.postgres_node = sub(data["postgres_node"])
        env.control_plane_nodes = [sub(d) for d in data.get("control_plane_nodes") or []]
        env.ceph_nodes = [sub(d) for d in data.get("ceph_nodes") or []]
        return env
