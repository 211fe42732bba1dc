from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from certwatch.core.models import DELETE_PAYLOADS, ChangeEvent, EventKind


class CommandStatus(str, Enum):
    """Outcome classes for one reload command run."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    SPAWN_ERROR = "spawn_error"


class CommandResult(BaseModel):
    """Captured result of running the reload command."""

    model_config = ConfigDict(extra="forbid")

    command: str
    status: CommandStatus
    returncode: int | None = None
    output: str = ""


class SupervisorState(str, Enum):
    """High-level states of the retry supervisor."""

    STOPPED = "stopped"
    RECONCILING = "reconciling"
    LISTENING = "listening"
    BACKING_OFF = "backing_off"


def classify_event(key: str, payload: str) -> ChangeEvent:
    """Map a keyspace notification payload onto a closed event kind."""

    if payload == "set":
        kind = EventKind.SET
    elif payload in DELETE_PAYLOADS:
        kind = EventKind.DELETE
    else:
        kind = EventKind.UNKNOWN
    return ChangeEvent(key=key, kind=kind, payload=payload)
