# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/remote/ssh.py

from __future__ import annotations

import contextlib
import logging
import os
import posixpath
from pathlib import Path
from typing import Callable, Iterator, List, Optional

import paramiko
from paramiko.agent import AgentRequestHandler

from gcpboot.config import settings
from gcpboot.errors import AuthenticationError, GcpBootError, RemoteCommandError
from gcpboot.utils.helpers import q
from .credentials import CredentialResolver
from .executor import JUMPBOX_USER, RemoteExecutor

log = logging.getLogger("gcpboot")

# lines of combined output attached to a failed command
_ERROR_TAIL_LINES = 20


def default_known_hosts() -> Path:
    return Path.home() / ".ssh" / "known_hosts"


class SSHRemoteExecutor(RemoteExecutor):
    """
    paramiko based executor.

    Nodes behind the jumpbox are reached by opening a direct-tcpip channel on
    the jumpbox connection and running a second SSH handshake over it.
    Host keys are checked against known_hosts; unknown hosts are recorded
    there, changed keys are rejected.
    """

    def __init__(
        self,
        credentials: CredentialResolver,
        *,
        known_hosts: Optional[Path] = None,
        connect_timeout: float = 10.0,
        forward_agent: bool = True,
        quiet: bool = True,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ):
        self.credentials = credentials
        self.known_hosts = Path(known_hosts) if known_hosts else default_known_hosts()
        self.connect_timeout = connect_timeout
        self.forward_agent = forward_agent
        self.quiet = quiet
        self._client_factory = client_factory

    # ------------------ connection ------------------

    def _ensure_known_hosts(self) -> str:
        path = self.known_hosts
        if not path.exists():
            path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            path.touch(mode=0o600)
        return str(path)

    def _connect(self, host: str, user: str, open_sock: Optional[Callable[[], object]] = None) -> paramiko.SSHClient:
        signers = self.credentials.signers()
        known_hosts = self._ensure_known_hosts()

        last_exc: Optional[Exception] = None
        for signer in signers:
            # a rejected attempt closes its socket, so every attempt gets its own tunnel
            sock = open_sock() if open_sock else None
            client = self._client_factory()
            client.load_host_keys(known_hosts)
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            try:
                client.connect(
                    hostname=host,
                    port=22,
                    username=user,
                    pkey=signer,
                    sock=sock,
                    timeout=self.connect_timeout,
                    allow_agent=False,
                    look_for_keys=False,
                )
                return client
            except paramiko.BadHostKeyException:
                client.close()
                raise
            except paramiko.AuthenticationException as exc:
                client.close()
                last_exc = exc
                continue
        raise AuthenticationError(f"authentication failed for {user}@{host}") from last_exc

    @contextlib.contextmanager
    def _session(self, jumpbox_ip: Optional[str], target_ip: str, user: str) -> Iterator[paramiko.SSHClient]:
        if not jumpbox_ip:
            client = self._connect(target_ip, user)
            try:
                yield client
            finally:
                client.close()
            return

        try:
            jump = self._connect(jumpbox_ip, JUMPBOX_USER)
        except (paramiko.SSHException, OSError) as exc:
            raise GcpBootError(f"failed to connect to jumpbox {jumpbox_ip}: {exc}") from exc
        try:
            transport = jump.get_transport()
            client = self._connect(
                target_ip,
                user,
                open_sock=lambda: transport.open_channel("direct-tcpip", (target_ip, 22), ("127.0.0.1", 0)),
            )
            try:
                yield client
            finally:
                client.close()
        finally:
            jump.close()

    # ------------------ commands ------------------

    def _exec(self, client: paramiko.SSHClient, host: str, command: str) -> str:
        channel = client.get_transport().open_session(timeout=self.connect_timeout)
        try:
            if self.forward_agent:
                try:
                    AgentRequestHandler(channel)
                except Exception as exc:
                    log.debug("agent forwarding not available on %s: %s", host, exc)

            api_key = settings.portal_api_key()
            if api_key:
                try:
                    channel.update_environment({settings.PORTAL_API_KEY_ENV: api_key})
                except paramiko.SSHException as exc:
                    log.debug("remote %s rejected environment: %s", host, exc)

            log.debug("[%s] $ %s", host, command)
            channel.set_combine_stderr(True)
            channel.exec_command(command)

            level = logging.DEBUG if self.quiet else logging.INFO
            lines: List[str] = []
            for raw in channel.makefile("rb"):
                line = raw.decode("utf-8", errors="replace")
                lines.append(line)
                log.log(level, "[%s] %s", host, line.rstrip("\n"))
            status = channel.recv_exit_status()
        finally:
            channel.close()

        out = "".join(lines)
        if status != 0:
            raise RemoteCommandError(host, command, status, "".join(lines[-_ERROR_TAIL_LINES:]))
        return out

    def run_command(self, jumpbox_ip: Optional[str], target_ip: str, user: str, command: str) -> None:
        with self._session(jumpbox_ip, target_ip, user) as client:
            self._exec(client, target_ip, command)

    def copy_file(
        self,
        jumpbox_ip: Optional[str],
        target_ip: str,
        user: str,
        local_path: str,
        remote_path: str,
    ) -> None:
        if not os.path.isfile(local_path):
            raise GcpBootError(f"failed to open source file {local_path}")

        with self._session(jumpbox_ip, target_ip, user) as client:
            self._exec(client, target_ip, f"mkdir -p {q(posixpath.dirname(remote_path) or '.')}")
            sftp = client.open_sftp()
            try:
                sftp.put(local_path, remote_path)
            finally:
                sftp.close()
        log.debug("[%s] copied %s -> %s", target_ip, local_path, remote_path)

    def check_connection(self, jumpbox_ip: Optional[str], target_ip: str, user: str) -> None:
        with self._session(jumpbox_ip, target_ip, user):
            pass
