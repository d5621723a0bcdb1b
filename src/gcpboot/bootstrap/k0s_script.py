# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/bootstrap/k0s_script.py

from __future__ import annotations

from typing import Sequence

from .template_renderer import TemplateRenderer

SCRIPT_NAME = "configure-k0s.sh"
REMOTE_SCRIPT_PATH = "/root/configure-k0s.sh"


def render_k0s_config_script(
    *,
    project_id: str,
    gateway_ip: str,
    public_gateway_ip: str,
    control_plane_ips: Sequence[str],
    renderer: TemplateRenderer | None = None,
) -> str:
    """
    Script run on the first control-plane node: deploys the GCP cloud
    controller, pins the gateway load balancer IPs and enables the cloud
    provider on every k0s node. The first IP is the controller itself; the
    rest are reached over SSH as workers.
    """
    renderer = renderer or TemplateRenderer()
    return renderer.render(
        f"{SCRIPT_NAME}.j2",
        {
            "project_id": project_id,
            "gateway_ip": gateway_ip,
            "public_gateway_ip": public_gateway_ip,
            "worker_ips": list(control_plane_ips[1:]),
        },
    )
