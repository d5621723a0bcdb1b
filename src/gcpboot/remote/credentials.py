# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/remote/credentials.py

from __future__ import annotations

import base64
import getpass
import logging
from pathlib import Path
from typing import Callable, List, Optional

import paramiko

from gcpboot.config import settings
from gcpboot.errors import AuthenticationError
from gcpboot.utils.helpers import expand_path

log = logging.getLogger("gcpboot")

_KEY_CLASSES = (paramiko.Ed25519Key, paramiko.RSAKey, paramiko.ECDSAKey)


def _prompt_passphrase(path: str) -> bytearray:
    return bytearray(getpass.getpass(f"Enter passphrase for key '{path}': ").encode())


class CredentialResolver:
    """
    Collects SSH signers: agent keys first, then the configured key file.

    The key file is loaded at most once per resolver; a passphrase is asked for
    only when the key is encrypted and is wiped after use.
    """

    def __init__(
        self,
        key_path: Optional[str] = None,
        *,
        agent_factory: Optional[Callable[[], object]] = None,
        prompt: Callable[[str], bytearray] = _prompt_passphrase,
    ):
        self.key_path = str(expand_path(key_path)) if key_path else None
        self._agent_factory = agent_factory or self._default_agent
        self._prompt = prompt
        self._cached_key: Optional[paramiko.PKey] = None

    @staticmethod
    def _default_agent():
        if not settings.ssh_auth_sock():
            return None
        return paramiko.Agent()

    def _agent_keys(self) -> List[paramiko.PKey]:
        try:
            agent = self._agent_factory()
            if agent is None:
                return []
            return list(agent.get_keys())
        except Exception as exc:
            log.debug("SSH agent unavailable: %s", exc)
            return []

    def _public_blob(self) -> Optional[bytes]:
        pub = Path(self.key_path + ".pub")
        try:
            parts = pub.read_text().split()
            return base64.b64decode(parts[1])
        except (OSError, IndexError, ValueError):
            return None

    def _load_key(self) -> paramiko.PKey:
        path = self.key_path
        if not Path(path).is_file():
            raise AuthenticationError(f"failed to read private key file {path}")

        passphrase: Optional[bytearray] = None
        try:
            while True:
                last_exc: Optional[Exception] = None
                for key_cls in _KEY_CLASSES:
                    try:
                        return key_cls.from_private_key_file(
                            path, password=bytes(passphrase) if passphrase else None
                        )
                    except OSError as exc:
                        raise AuthenticationError(f"failed to read private key file {path}: {exc}") from exc
                    except paramiko.PasswordRequiredException as exc:
                        last_exc = exc
                        break
                    except (paramiko.SSHException, ValueError) as exc:
                        last_exc = exc
                        continue
                if isinstance(last_exc, paramiko.PasswordRequiredException) and passphrase is None:
                    passphrase = self._prompt(path)
                    continue
                raise AuthenticationError(f"failed to parse private key {path}: {last_exc}") from last_exc
        finally:
            if passphrase is not None:
                for i in range(len(passphrase)):
                    passphrase[i] = 0

    def signers(self) -> List[paramiko.PKey]:
        signers = self._agent_keys()

        if self.key_path:
            if self._cached_key is not None:
                signers.append(self._cached_key)
            else:
                blob = self._public_blob() if signers else None
                in_agent = blob is not None and any(s.asbytes() == blob for s in signers)
                if not in_agent:
                    try:
                        self._cached_key = self._load_key()
                        signers.append(self._cached_key)
                    except AuthenticationError as exc:
                        if not signers:
                            raise
                        log.warning("failed to load private key: %s", exc)

        if not signers:
            raise AuthenticationError(
                "no valid authentication methods configured. Check SSH_AUTH_SOCK and private key path"
            )
        return signers
