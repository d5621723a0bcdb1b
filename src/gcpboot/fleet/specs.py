# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/fleet/specs.py

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

ROLE_JUMPBOX = "jumpbox"
ROLE_POSTGRES = "postgres"
ROLE_CEPH = "ceph"
ROLE_CONTROL_PLANE = "k0s"


@dataclass(frozen=True)
class VMSpec:
    """
    One instance of the fleet. The first tag names the node's role.
    """
    name: str
    machine_type: str
    tags: Tuple[str, ...]
    additional_disks_gb: Tuple[int, ...] = ()
    external_ip: bool = False

    @property
    def role(self) -> str:
        return self.tags[0] if self.tags else ""


def _ceph(i: int) -> VMSpec:
    return VMSpec(f"ceph-{i}", "e2-standard-8", ("ceph",), additional_disks_gb=(20, 200))


def _k0s(i: int) -> VMSpec:
    return VMSpec(f"k0s-{i}", "e2-standard-16", ("k0s",))


DEFAULT_FLEET: List[VMSpec] = [
    VMSpec("jumpbox", "e2-medium", ("jumpbox", "ssh"), external_ip=True),
    VMSpec("postgres", "e2-standard-8", ("postgres",), external_ip=True),
    *[_ceph(i) for i in range(1, 5)],
    *[_k0s(i) for i in range(1, 4)],
]
