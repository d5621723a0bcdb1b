# src/gcpboot/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single bootstrap invocation
    project: Optional[str]

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(project: Optional[str], run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "project": project,
    }


# ---------------------------------------------------------------------
# Step lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class StepStarted(BaseEvent):
    name: str
    depth: int = 0

@dataclass(frozen=True)
class StepSucceeded(BaseEvent):
    name: str
    duration_ms: int
    depth: int = 0

@dataclass(frozen=True)
class StepFailed(BaseEvent):
    name: str
    error: str
    duration_ms: int
    depth: int = 0

@dataclass(frozen=True)
class StepRetried(BaseEvent):
    name: str
    attempt: int
    error: Optional[str] = None

@dataclass(frozen=True)
class StepMessage(BaseEvent):
    name: Optional[str]
    message: str
