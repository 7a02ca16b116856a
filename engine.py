# engine.py
import shlex
from pathlib import Path

from config import Settings
from errors import JobBusy, SpawnError
from job import Job
from output_buffer import OutputBuffer
from process import ProcessHandle
from registry import JobRegistry
from worker import DrainWorker, log_transition


def parse_command(command):
    """Turn a submitted command (string or argv list) into (display, argv)."""
    if isinstance(command, str):
        try:
            argv = shlex.split(command)
        except ValueError as e:
            raise SpawnError(f"Cannot parse command {command!r}: {e}") from e
        display = command
    else:
        argv = [str(a) for a in command]
        display = shlex.join(argv)
    if not argv or not argv[0]:
        raise SpawnError("Command must not be empty")
    return display, tuple(argv)


def prepare_workdir(workdir):
    if workdir is None:
        return None
    if "~" in workdir or not workdir.startswith("/"):
        raise SpawnError(f"Working directory must be an absolute path, got {workdir!r}")
    path = Path(workdir)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SpawnError(f"Cannot create working directory {workdir!r}: {e}") from e
    return str(path)


class ExecutionEngine:
    def __init__(self, settings=None, registry=None):
        self.settings = settings or Settings()
        self.registry = registry if registry is not None else JobRegistry()

    # ---------------- Submit ----------------
    def submit(self, command, workdir=None) -> str:
        """Start `command` and return the new job id without waiting for it."""
        display, argv = parse_command(command)
        cwd = prepare_workdir(workdir)
        process = ProcessHandle.spawn(argv, cwd=cwd)

        job = Job(
            id=self.registry.new_id(),
            command=display,
            argv=argv,
            process=process,
            output=OutputBuffer(),
            workdir=cwd,
        )
        self.registry.insert(job)
        log_transition(job.id, "new", "running", f"(pid={process.pid}, command={display!r}, workdir={cwd or '-'})")
        DrainWorker(
            job,
            read_size=self.settings.read_size,
            kill_grace_seconds=self.settings.kill_grace_seconds,
        ).start()
        return job.id

    # ---------------- Queries ----------------
    def status(self, job_id):
        return self.registry.require(job_id).snapshot()

    def list_jobs(self):
        return [job.snapshot() for job in self.registry.jobs()]

    def fetch_output(self, job_id, from_offset=0, wait=None, max_bytes=None):
        job = self.registry.require(job_id)
        if wait is None:
            wait = self.settings.fetch_wait_seconds
        wait = self.wait_timeout(wait)
        limit = self.settings.max_chunk_bytes
        if max_bytes is not None and max_bytes > 0:
            limit = min(limit, max_bytes)
        return job.output.read_from(from_offset, wait=wait, max_bytes=limit)

    def wait(self, job_id, timeout=None):
        """Block until the job is terminal or `timeout` (capped) elapses; return its status."""
        job = self.registry.require(job_id)
        job.wait(self.wait_timeout(timeout))
        return job.snapshot()

    def is_done(self, job_id) -> bool:
        return self.registry.require(job_id).is_done

    def wait_timeout(self, timeout=None) -> float:
        """Clamp a requested wait to [0, max_wait_seconds]; None means the maximum."""
        if timeout is None:
            return self.settings.max_wait_seconds
        return max(0.0, min(timeout, self.settings.max_wait_seconds))

    # ---------------- Control ----------------
    def kill(self, job_id):
        job = self.registry.require(job_id)
        if not job.is_terminal and job.process.kill(self.settings.kill_grace_seconds):
            log_transition(job.id, "running", "killing", f"(pid={job.process.pid}, grace={self.settings.kill_grace_seconds}s)")
        return job.snapshot()

    def remove(self, job_id):
        job = self.registry.require(job_id)
        if not job.is_terminal:
            raise JobBusy(f"Job {job_id} is still running; kill it first")
        self.registry.remove(job_id)
        log_transition(job_id, job.state, "removed")
        return job.snapshot()

    def shutdown(self, timeout=None):
        """Kill every running job and wait (up to `timeout` each) for it to finish."""
        running = [job for job in self.registry.jobs() if not job.is_terminal]
        for job in running:
            job.process.kill(self.settings.kill_grace_seconds)
        for job in running:
            job.wait(timeout)
        return len(running)
