# src/gcpboot/observers/interface.py
from __future__ import annotations

from typing import Protocol, runtime_checkable

from .events import BaseEvent


@runtime_checkable
class Observer(Protocol):
    """Anything the EventBus can hand step events to."""

    def notify(self, event: BaseEvent) -> None: ...
