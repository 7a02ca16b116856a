# models.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

RUNNING = "running"
EXITED = "exited"
KILLED = "killed"
FAILED = "failed"

TERMINAL_STATES = (EXITED, KILLED, FAILED)


@dataclass(frozen=True)
class JobState:
    name: str = RUNNING   # running | exited | killed | failed
    exit_code: Optional[int] = None
    signal: Optional[int] = None
    reason: Optional[str] = None

    @classmethod
    def running(cls):
        return cls(RUNNING)

    @classmethod
    def exited(cls, code):
        return cls(EXITED, exit_code=code)

    @classmethod
    def killed(cls, signal=None, exit_code=None):
        return cls(KILLED, exit_code=exit_code, signal=signal)

    @classmethod
    def failed(cls, reason):
        return cls(FAILED, reason=reason)

    @property
    def is_terminal(self) -> bool:
        return self.name in TERMINAL_STATES

    def to_dict(self):
        return {"name": self.name, "exit_code": self.exit_code, "signal": self.signal, "reason": self.reason}

    def __str__(self):
        if self.name == EXITED:
            return f"Exited({self.exit_code})"
        if self.name == KILLED:
            return f"Killed(signal={self.signal})" if self.signal is not None else "Killed"
        if self.name == FAILED:
            return f"Failed({self.reason})"
        return "Running"


@dataclass(frozen=True)
class OutputChunk:
    data: bytes
    offset: int
    new_offset: int
    is_final: bool


@dataclass(frozen=True)
class JobStatus:
    id: str
    command: str
    state: JobState
    started_at: datetime
    elapsed_seconds: float
    output_length: int
    is_final: bool
    ended_at: Optional[datetime] = None
    pid: Optional[int] = None
    workdir: Optional[str] = None
    argv: tuple = field(default_factory=tuple)

    def to_dict(self):
        return {
            "id": self.id,
            "command": self.command,
            "argv": list(self.argv),
            "workdir": self.workdir,
            "pid": self.pid,
            "state": self.state.to_dict(),
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "output_length": self.output_length,
            "is_final": self.is_final,
        }
