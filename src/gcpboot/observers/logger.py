# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gcpboot/observers/logger.py

from __future__ import annotations

import logging

from .events import (
    BaseEvent,
    StepFailed,
    StepMessage,
    StepRetried,
    StepStarted,
    StepSucceeded,
)


class LoggerObserver:
    """Renders step lifecycle events as log lines."""

    def __init__(self, logger: logging.Logger | None = None):
        self.log = logger or logging.getLogger("gcpboot")

    def notify(self, event: BaseEvent) -> None:
        if isinstance(event, StepStarted):
            indent = "  " * event.depth
            self.log.info("%s-> %s", indent, event.name)
        elif isinstance(event, StepSucceeded):
            indent = "  " * event.depth
            self.log.info("%s   %s done (%dms)", indent, event.name, event.duration_ms)
        elif isinstance(event, StepFailed):
            indent = "  " * event.depth
            self.log.error("%s   %s failed: %s", indent, event.name, event.error)
        elif isinstance(event, StepRetried):
            self.log.warning("   retrying %s (attempt %d): %s", event.name, event.attempt, event.error)
        elif isinstance(event, StepMessage):
            self.log.info("   %s", event.message)
