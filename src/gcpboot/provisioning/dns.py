# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/provisioning/dns.py

from __future__ import annotations

from typing import List, Tuple

from .models import DnsRecordSet

RECORD_TTL = 300


def gateway_record_names(base_domain: str) -> List[Tuple[str, str]]:
    """(fqdn, type) pairs for the records a bootstrap owns under *base_domain*."""
    return [
        (f"cs.{base_domain}.", "A"),
        (f"*.cs.{base_domain}.", "A"),
        (f"*.ws.{base_domain}.", "A"),
        (f"ws.{base_domain}.", "A"),
    ]


def gateway_records(base_domain: str, gateway_ip: str, public_gateway_ip: str) -> List[DnsRecordSet]:
    return [
        DnsRecordSet(name=f"cs.{base_domain}.", type="A", ttl=RECORD_TTL, rrdatas=[gateway_ip]),
        DnsRecordSet(name=f"*.cs.{base_domain}.", type="A", ttl=RECORD_TTL, rrdatas=[gateway_ip]),
        DnsRecordSet(name=f"*.ws.{base_domain}.", type="A", ttl=RECORD_TTL, rrdatas=[public_gateway_ip]),
        DnsRecordSet(name=f"ws.{base_domain}.", type="A", ttl=RECORD_TTL, rrdatas=[public_gateway_ip]),
    ]
