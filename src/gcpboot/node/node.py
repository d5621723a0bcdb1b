# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/node/node.py

from __future__ import annotations

import logging
import weakref
from typing import Any, Dict, List, Optional, Tuple

from gcpboot.errors import GcpBootError
from gcpboot.remote.executor import JUMPBOX_USER, RemoteExecutor
from gcpboot.utils.helpers import q

log = logging.getLogger("gcpboot")

INOTIFY_WATCHES_LINE = "fs.inotify.max_user_watches=1048576"
MAX_MAP_COUNT_LINE = "vm.max_map_count=262144"

OMS_INSTALL_COMMANDS = [
    "wget -qO- 'https://api.github.com/repos/codesphere-cloud/oms/releases/latest' "
    "| jq -r '.assets[] | select(.name | match(\"oms-cli.*linux_amd64\")) | .browser_download_url' "
    "| xargs wget -O oms-cli",
    "chmod +x oms-cli; sudo mv oms-cli /usr/local/bin/",
    "curl -LO https://github.com/getsops/sops/releases/download/v3.11.0/sops-v3.11.0.linux.amd64; "
    "sudo mv sops-v3.11.0.linux.amd64 /usr/local/bin/sops; sudo chmod +x /usr/local/bin/sops",
    "wget https://dl.filippo.io/age/latest?for=linux/amd64 -O age.tar.gz; "
    "tar -xvf age.tar.gz; sudo mv age/age* /usr/local/bin/",
]


class Node:
    """
    A provisioned host.

    Nodes without a jumpbox are reached on their external IP. Nodes with one are
    reached on their internal IP through the jumpbox's external IP. The jumpbox
    is held weakly and may not itself sit behind another jumpbox.
    """

    def __init__(
        self,
        name: str,
        external_ip: str = "",
        internal_ip: str = "",
        *,
        executor: Optional[RemoteExecutor] = None,
        jumpbox: Optional["Node"] = None,
    ):
        self.name = name
        self.external_ip = external_ip
        self.internal_ip = internal_ip
        self.executor = executor
        self._jumpbox_ref = None
        if jumpbox is not None:
            if jumpbox.jumpbox is not None:
                raise GcpBootError(
                    f"node {jumpbox.name} is behind a jumpbox and cannot serve as jumpbox for {name}"
                )
            self._jumpbox_ref = weakref.ref(jumpbox)

    def __repr__(self) -> str:
        return f"Node(name={self.name!r}, external_ip={self.external_ip!r}, internal_ip={self.internal_ip!r})"

    @property
    def jumpbox(self) -> Optional["Node"]:
        if self._jumpbox_ref is None:
            return None
        jb = self._jumpbox_ref()
        if jb is None:
            raise GcpBootError(f"jumpbox of node {self.name} no longer exists")
        return jb

    def sub_node(self, name: str, external_ip: str, internal_ip: str) -> "Node":
        return Node(name, external_ip, internal_ip, executor=self.executor, jumpbox=self)

    def route(self) -> Tuple[Optional[str], str]:
        """(hop ip, target ip) this node is reached on."""
        jb = self.jumpbox
        if jb is None:
            return None, self.external_ip
        return jb.external_ip, self.internal_ip

    def _executor(self) -> RemoteExecutor:
        if self.executor is None:
            raise GcpBootError(f"node {self.name} has no remote executor")
        return self.executor

    # ------------------ primitives ------------------

    def run_command(self, user: str, command: str) -> None:
        hop, target = self.route()
        self._executor().run_command(hop, target, user, command)

    def run_commands(self, user: str, commands: List[str]) -> None:
        for cmd in commands:
            try:
                self.run_command(user, cmd)
            except Exception as exc:
                raise GcpBootError(f"failed to run command '{cmd}': {exc}") from exc

    def check(self, user: str, command: str) -> bool:
        """Run a read-only predicate; any failure counts as false."""
        try:
            self.run_command(user, command)
            return True
        except Exception as exc:
            log.debug("[%s] predicate false: %s (%s)", self.name, command, exc)
            return False

    def copy_file(self, local_path: str, remote_path: str, user: str = "root") -> None:
        hop, target = self.route()
        self._executor().copy_file(hop, target, user, local_path, remote_path)

    def wait_ready(self, timeout: float) -> None:
        self._executor().wait_ready(self, timeout)

    # ------------------ capabilities ------------------

    def has_file(self, path: str) -> bool:
        return self.check(JUMPBOX_USER, f"test -f {q(path)}")

    def has_command(self, command: str) -> bool:
        return self.check("root", f"command -v {q(command)} >/dev/null 2>&1")

    def install_oms(self) -> None:
        self.run_commands("root", OMS_INSTALL_COMMANDS)

    def has_accept_env_configured(self) -> bool:
        return self.check(JUMPBOX_USER, "sudo grep -E '^AcceptEnv OMS_PORTAL_API_KEY' /etc/ssh/sshd_config >/dev/null 2>&1")

    def configure_accept_env(self) -> None:
        self.run_commands(JUMPBOX_USER, [
            "sudo sed -i 's/^#\\?AcceptEnv.*/AcceptEnv OMS_PORTAL_API_KEY/' /etc/ssh/sshd_config",
            "sudo systemctl restart sshd",
        ])

    def has_root_login_enabled(self) -> bool:
        if not self.check(JUMPBOX_USER, "sudo grep -E '^PermitRootLogin yes' /etc/ssh/sshd_config >/dev/null 2>&1"):
            return False
        # a forced-command prefix in root's authorized_keys still blocks login
        return not self.check(JUMPBOX_USER, "sudo grep -E '^no-port-forwarding' /root/.ssh/authorized_keys >/dev/null 2>&1")

    def enable_root_login(self) -> None:
        self.run_commands(JUMPBOX_USER, [
            "sudo sed -i 's/^#\\?PermitRootLogin.*/PermitRootLogin yes/' /etc/ssh/sshd_config",
            "sudo sed -i 's/no-port-forwarding.*$//g' /root/.ssh/authorized_keys",
            "sudo systemctl restart sshd",
        ])

    def has_sysctl_line(self, line: str) -> bool:
        return self.check("root", f"sudo grep -E '^{line}' /etc/sysctl.conf >/dev/null 2>&1")

    def configure_sysctl_line(self, line: str) -> None:
        self.run_commands("root", [
            f"echo '{line}' | sudo tee -a /etc/sysctl.conf",
            "sudo sysctl -p",
        ])

    def has_inotify_watches_configured(self) -> bool:
        return self.has_sysctl_line(INOTIFY_WATCHES_LINE)

    def configure_inotify_watches(self) -> None:
        self.configure_sysctl_line(INOTIFY_WATCHES_LINE)

    def has_memory_map_configured(self) -> bool:
        return self.has_sysctl_line(MAX_MAP_COUNT_LINE)

    def configure_memory_map(self) -> None:
        self.configure_sysctl_line(MAX_MAP_COUNT_LINE)

    # ------------------ serialisation ------------------

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "external_ip": self.external_ip, "internal_ip": self.internal_ip}

