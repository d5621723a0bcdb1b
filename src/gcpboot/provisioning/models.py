# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/provisioning/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class Project:
    project_id: str
    display_name: str
    name: str = ""       # provider resource name, e.g. projects/123
    parent: str = ""
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class BillingInfo:
    billing_enabled: bool
    billing_account_name: str = ""


@dataclass
class Repository:
    name: str
    registry_uri: str = ""


@dataclass
class Binding:
    role: str
    members: List[str] = field(default_factory=list)


@dataclass
class Policy:
    bindings: List[Binding] = field(default_factory=list)
    etag: Optional[str] = None
    version: int = 0


@dataclass(frozen=True)
class DiskSpec:
    size_gb: int
    disk_type: str
    boot: bool = False
    source_image: Optional[str] = None


@dataclass
class InstanceRequest:
    name: str
    machine_type: str
    tags: List[str]
    disks: List[DiskSpec]
    network: str
    subnetwork: str
    external_ip: bool = False
    service_account_email: str = ""
    scopes: List[str] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)
    preemptible: bool = False


@dataclass(frozen=True)
class InstanceInfo:
    name: str
    internal_ip: str = ""
    external_ip: str = ""


@dataclass(frozen=True)
class Address:
    name: str
    address: str


@dataclass
class FirewallRule:
    name: str
    network: str
    direction: str = "INGRESS"
    priority: int = 1000
    allowed: List[Dict[str, object]] = field(default_factory=list)   # [{"protocol": "tcp", "ports": ["22"]}]
    source_ranges: List[str] = field(default_factory=list)
    destination_ranges: List[str] = field(default_factory=list)
    target_tags: List[str] = field(default_factory=list)
    description: str = ""


@dataclass
class DnsRecordSet:
    name: str
    type: str
    ttl: int
    rrdatas: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ManagedZone:
    name: str
    dns_name: str
    description: str = ""
