# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/bootstrap/step_logger.py

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

from gcpboot.observers.dispatcher import EventBus
from gcpboot.observers.events import (
    StepFailed,
    StepMessage,
    StepRetried,
    StepStarted,
    StepSucceeded,
    new_ctx,
)

log = logging.getLogger("gcpboot")


class StepLogger:
    """
    Announces pipeline steps and their substeps.

    Each instance carries its own step stack; nothing is module level, so two
    runs in one process never see each other's state.
    """

    def __init__(
        self,
        bus: Optional[EventBus] = None,
        *,
        run_id: Optional[str] = None,
        project: Optional[str] = None,
        silent: bool = False,
    ):
        self.bus = bus or EventBus()
        self.run_id = run_id
        self.project = project
        self.silent = silent
        self._stack: List[str] = []

    @property
    def current(self) -> Optional[str]:
        return self._stack[-1] if self._stack else None

    def _ctx(self) -> dict:
        return new_ctx(self.project, self.run_id)

    def _run(self, name: str, fn: Callable[[], None]) -> None:
        if self.silent:
            fn()
            return

        depth = len(self._stack)
        self._stack.append(name)
        self.bus.emit(StepStarted(**self._ctx(), name=name, depth=depth))
        start = time.monotonic()
        try:
            fn()
        except Exception as exc:
            elapsed = int((time.monotonic() - start) * 1000)
            self.bus.emit(StepFailed(**self._ctx(), name=name, error=str(exc), duration_ms=elapsed, depth=depth))
            raise
        else:
            elapsed = int((time.monotonic() - start) * 1000)
            self.bus.emit(StepSucceeded(**self._ctx(), name=name, duration_ms=elapsed, depth=depth))
        finally:
            self._stack.pop()

    def step(self, name: str, fn: Callable[[], None]) -> None:
        self._run(name, fn)

    def substep(self, name: str, fn: Callable[[], None]) -> None:
        self._run(name, fn)

    def log_retry(self, attempt: int = 0, exc: Optional[Exception] = None) -> None:
        """Hook for retry_call(on_retry=...)."""
        if self.silent:
            return
        self.bus.emit(
            StepRetried(
                **self._ctx(),
                name=self.current or "",
                attempt=attempt,
                error=str(exc) if exc else None,
            )
        )

    def logf(self, fmt: str, *args) -> None:
        message = fmt % args if args else fmt
        if self.silent:
            log.debug(message)
            return
        self.bus.emit(StepMessage(**self._ctx(), name=self.current, message=message))
