# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/remote/executor.py

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Optional

from gcpboot.errors import GcpBootError

if TYPE_CHECKING:
    from gcpboot.node.node import Node

log = logging.getLogger("gcpboot")

JUMPBOX_USER = "ubuntu"


class RemoteExecutor(ABC):
    """
    Runs commands on cluster hosts, either directly or through a jumpbox.

    jumpbox_ip is None (or empty) for a direct connection; otherwise target_ip
    is reached from the jumpbox.
    """

    sleep: Callable[[float], None] = staticmethod(time.sleep)
    clock: Callable[[], float] = staticmethod(time.monotonic)

    @abstractmethod
    def run_command(self, jumpbox_ip: Optional[str], target_ip: str, user: str, command: str) -> None: ...

    @abstractmethod
    def copy_file(
        self,
        jumpbox_ip: Optional[str],
        target_ip: str,
        user: str,
        local_path: str,
        remote_path: str,
    ) -> None: ...

    @abstractmethod
    def check_connection(self, jumpbox_ip: Optional[str], target_ip: str, user: str) -> None:
        """Open and close one session; raise when the host is unreachable."""

    def wait_ready(self, node: "Node", timeout: float, poll_interval: float = 5.0) -> None:
        jumpbox_ip, target_ip = node.route()
        start = self.clock()
        attempt = 0
        while True:
            attempt += 1
            try:
                self.check_connection(jumpbox_ip, target_ip, JUMPBOX_USER)
                return
            except Exception as exc:
                if self.clock() - start > timeout:
                    raise GcpBootError(
                        f"timeout waiting for SSH on node {node.name} ({node.external_ip or target_ip})"
                    ) from exc
                log.debug("SSH not ready on %s (attempt %d): %s", node.name, attempt, exc)
            self.sleep(poll_interval)
