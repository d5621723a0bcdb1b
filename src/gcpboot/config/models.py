# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/config/models.py

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Model(BaseModel):
    # unknown keys survive a load/write cycle
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


# ------------------ install config ------------------

class DatacenterConfig(_Model):
    id: int = 0
    name: str = ""
    city: str = ""
    country_code: str = ""


class SecretsConfig(_Model):
    base_dir: str = ""


class RegistryConfig(_Model):
    server: str = ""
    replace_images_in_bom: bool = False
    load_container_images: bool = False

    # vault only
    username: str = Field(default="", exclude=True)
    password: str = Field(default="", exclude=True)


class PostgresPrimaryConfig(_Model):
    ip: str = ""
    hostname: str = ""


class PostgresConfig(_Model):
    mode: Optional[str] = None
    primary: Optional[PostgresPrimaryConfig] = None

    admin_password: str = Field(default="", exclude=True)
    replica_password: str = Field(default="", exclude=True)
    user_passwords: Dict[str, str] = Field(default_factory=dict, exclude=True)


class CephHost(_Model):
    hostname: str
    ip_address: str
    is_master: bool = False


class CephConfig(_Model):
    csi_kubelet_dir: Optional[str] = None
    nodes_subnet: str = ""
    hosts: List[CephHost] = Field(default_factory=list)
    osds: List[Dict[str, Any]] = Field(default_factory=list, alias="osds")


class K8sNode(_Model):
    ip_address: str


class KubernetesConfig(_Model):
    managed_by_codesphere: bool = False
    api_server_host: Optional[str] = None
    control_planes: List[K8sNode] = Field(default_factory=list)
    workers: List[K8sNode] = Field(default_factory=list)


class GatewayConfig(_Model):
    service_type: str = ""
    annotations: Dict[str, str] = Field(default_factory=dict)


class ClusterConfig(_Model):
    certificates: Dict[str, Any] = Field(default_factory=dict)
    monitoring: Optional[Dict[str, Any]] = None
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    public_gateway: GatewayConfig = Field(default_factory=GatewayConfig)


class CodesphereConfig(_Model):
    domain: str = ""
    workspace_hosting_base_domain: str = ""
    public_ip: str = ""
    custom_domains: Dict[str, Any] = Field(default_factory=dict)
    dns_servers: List[str] = Field(default_factory=list)
    experiments: List[str] = Field(default_factory=list)
    features: List[str] = Field(default_factory=list)
    cert_issuer: Dict[str, Any] = Field(default_factory=dict)
    deploy_config: Dict[str, Any] = Field(default_factory=dict)
    plans: Dict[str, Any] = Field(default_factory=dict)
    git_providers: Optional[Dict[str, Any]] = None
    managed_services: List[Dict[str, Any]] = Field(default_factory=list)

    github_app_client_id: str = Field(default="", exclude=True)
    github_app_client_secret: str = Field(default="", exclude=True)


class InstallConfig(_Model):
    datacenter: DatacenterConfig = Field(default_factory=DatacenterConfig, alias="dataCenter")
    secrets: SecretsConfig = Field(default_factory=SecretsConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    ceph: CephConfig = Field(default_factory=CephConfig)
    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)
    cluster: ClusterConfig = Field(default_factory=ClusterConfig)
    codesphere: CodesphereConfig = Field(default_factory=CodesphereConfig)


# ------------------ vault ------------------

class SecretFile(_Model):
    name: str
    content: str


class SecretFields(_Model):
    password: str


class SecretEntry(_Model):
    name: str
    file: Optional[SecretFile] = None
    fields: Optional[SecretFields] = None


class InstallVault(_Model):
    secrets: List[SecretEntry] = Field(default_factory=list)

    def get(self, name: str) -> Optional[SecretEntry]:
        for entry in self.secrets:
            if entry.name == name:
                return entry
        return None
