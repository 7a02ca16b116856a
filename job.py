# job.py
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from errors import InvalidState
from models import JobState, JobStatus


def _utcnow():
    return datetime.now(timezone.utc)


@dataclass
class Job:
    id: str
    command: str
    argv: tuple
    process: object   # ProcessHandle
    output: object    # OutputBuffer
    workdir: Optional[str] = None
    state: JobState = field(default_factory=JobState.running)
    started_at: datetime = field(default_factory=_utcnow)
    ended_at: Optional[datetime] = None
    _started: float = field(default_factory=time.monotonic, repr=False)
    _ended: Optional[float] = field(default=None, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)
    _done: threading.Event = field(default_factory=threading.Event, repr=False, compare=False)

    @property
    def is_terminal(self) -> bool:
        with self._lock:
            return self.state.is_terminal

    def finish(self, state: JobState):
        """
        Move from running to a terminal state and freeze the output.

        The state is recorded before the buffer is finalized, so a reader that
        sees the final byte never sees a running job. Only the drain task calls this.
        """
        if not state.is_terminal:
            raise InvalidState(f"job {self.id}: {state} is not a terminal state")
        with self._lock:
            if self.state.is_terminal:
                raise InvalidState(f"job {self.id} is already {self.state}, cannot become {state}")
            self.state = state
            self.ended_at = _utcnow()
            self._ended = time.monotonic()
        self.output.finalize()
        self._done.set()

    @property
    def is_done(self) -> bool:
        """True once the state is terminal and the output is final."""
        return self._done.is_set()

    def wait(self, timeout=None) -> bool:
        return self._done.wait(timeout)

    def elapsed_seconds(self) -> float:
        with self._lock:
            end = self._ended if self._ended is not None else time.monotonic()
        return end - self._started

    def snapshot(self) -> JobStatus:
        with self._lock:
            state, ended_at = self.state, self.ended_at
        return JobStatus(
            id=self.id,
            command=self.command,
            argv=self.argv,
            workdir=self.workdir,
            pid=getattr(self.process, "pid", None),
            state=state,
            started_at=self.started_at,
            ended_at=ended_at,
            elapsed_seconds=self.elapsed_seconds(),
            output_length=len(self.output),
            is_final=self.output.is_final,
        )
