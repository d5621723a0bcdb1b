# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/errors.py

from __future__ import annotations

from typing import Any, List, Optional


class GcpBootError(RuntimeError):
    pass


class ConfigurationError(GcpBootError):
    """Fatal misconfiguration. Never retried."""


class AuthenticationError(GcpBootError):
    pass


class RemoteCommandError(GcpBootError):
    def __init__(self, host: str, command: str, exit_status: int, stderr: str = ""):
        self.host = host
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr
        msg = f"command failed on {host} (exit={exit_status}): {command}"
        if stderr:
            msg += f"\n{stderr.strip()}"
        super().__init__(msg)


class ProvisioningError(GcpBootError):
    pass


class AlreadyExistsError(ProvisioningError):
    pass


class NotFoundError(ProvisioningError):
    pass


class FleetProvisioningError(GcpBootError):
    """Every failed VM task of a fleet run, reported together."""

    def __init__(self, errors: List[Exception]):
        self.errors = list(errors)
        lines = "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(f"{len(self.errors)} instance task(s) failed:\n{lines}")


class StepError(GcpBootError):
    def __init__(self, step: str, action: str, cause: BaseException, env: Optional[Any] = None):
        self.step = step
        self.action = action
        self.env = env
        super().__init__(f"failed to {action}: {cause}")
        self.__cause__ = cause


class BootstrapTimeoutError(GcpBootError):
    pass


def _status_code(err: BaseException) -> Optional[int]:
    code = getattr(err, "code", None)
    if callable(code):
        try:
            code = code()
        except Exception:
            return None
    if isinstance(code, int):
        return code
    # google.api_core exceptions expose grpc_status_code, requests exposes response.status_code
    resp = getattr(err, "response", None)
    if resp is not None and isinstance(getattr(resp, "status_code", None), int):
        return resp.status_code
    return None


def is_already_exists(err: BaseException) -> bool:
    if isinstance(err, AlreadyExistsError):
        return True
    if _status_code(err) == 409:
        return True
    grpc_code = getattr(err, "grpc_status_code", None)
    if grpc_code is not None and getattr(grpc_code, "name", "") == "ALREADY_EXISTS":
        return True
    return "already exists" in str(err).lower()


def is_not_found(err: BaseException) -> bool:
    if isinstance(err, NotFoundError):
        return True
    if _status_code(err) == 404:
        return True
    grpc_code = getattr(err, "grpc_status_code", None)
    return grpc_code is not None and getattr(grpc_code, "name", "") == "NOT_FOUND"
