from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class JobState(Enum):
    """Lifecycle of a per-store sync run"""
    IDLE = "idle"
    RUNNING = "running"
    REPROCESSING = "reprocessing"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.IDLE, JobState.DONE, JobState.ERROR)


@dataclass
class SyncStatus:
    """Polled status record for one store (tenant)."""
    dbName: str
    state: JobState = JobState.IDLE
    total: int = 0
    done: int = 0
    progress: int = 0
    startedAt: Optional[str] = None
    finishedAt: Optional[str] = None
    stoppedAt: Optional[str] = None
    updatedAt: Optional[str] = None
    logs: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dbName": self.dbName,
            "state": self.state.value,
            "total": self.total,
            "done": self.done,
            "progress": self.progress,
            "startedAt": self.startedAt,
            "finishedAt": self.finishedAt,
            "stoppedAt": self.stoppedAt,
            "updatedAt": self.updatedAt,
            "logs": list(self.logs),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncStatus":
        return cls(
            dbName=data["dbName"],
            state=JobState(data.get("state", "idle")),
            total=int(data.get("total") or 0),
            done=int(data.get("done") or 0),
            progress=int(data.get("progress") or 0),
            startedAt=data.get("startedAt"),
            finishedAt=data.get("finishedAt"),
            stoppedAt=data.get("stoppedAt"),
            updatedAt=data.get("updatedAt"),
            logs=list(data.get("logs") or []),
        )
