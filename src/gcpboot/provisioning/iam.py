# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/provisioning/iam.py

from __future__ import annotations

from typing import Iterable

from .models import Binding, Policy

TOKEN_CREATOR_ROLE = "roles/iam.serviceAccountTokenCreator"


def service_account_email(name: str, project_id: str) -> str:
    return f"{name}@{project_id}.iam.gserviceaccount.com"


def service_account_member(name: str, project_id: str) -> str:
    return f"serviceAccount:{service_account_email(name, project_id)}"


def add_role_binding(policy: Policy, member: str, roles: Iterable[str]) -> bool:
    """
    Union *member* into each role's binding. Returns True when the policy changed.
    """
    updated = False
    for role in roles:
        binding = next((b for b in policy.bindings if b.role == role), None)
        if binding is None:
            policy.bindings.append(Binding(role=role, members=[member]))
            updated = True
        elif member not in binding.members:
            binding.members.append(member)
            updated = True
    return updated


def remove_role_binding(policy: Policy, member: str, roles: Iterable[str]) -> bool:
    """
    Drop *member* from each role's binding; bindings left empty are removed.
    Returns True when the policy changed.
    """
    updated = False
    roles = set(roles)
    kept = []
    for binding in policy.bindings:
        if binding.role in roles and member in binding.members:
            binding.members = [m for m in binding.members if m != member]
            updated = True
            if not binding.members:
                continue
        kept.append(binding)
    policy.bindings = kept
    return updated
