# worker.py
import sys
import threading
from datetime import datetime, timezone

from errors import InvalidState
from models import JobState


def log_transition(job_id, old_state, new_state, extra=""):
    now = datetime.now(timezone.utc).isoformat()
    print(f"[{now}] Job {job_id}: {old_state} → {new_state} {extra}".rstrip(), flush=True)


def log_error(message):
    now = datetime.now(timezone.utc).isoformat()
    print(f"[{now}] ERROR {message}", file=sys.stderr, flush=True)


class DrainWorker:
    """
    Copies one job's process output into its buffer until the process exits,
    then records the final state. Runs on its own daemon thread.
    """

    def __init__(self, job, read_size=65536, kill_grace_seconds=5.0):
        self.job = job
        self.read_size = read_size
        self.kill_grace_seconds = kill_grace_seconds
        self._thread = None

    def start(self):
        self._thread = threading.Thread(target=self.run, name=f"drain-{self.job.id[:8]}", daemon=True)
        self._thread.start()
        return self

    def join(self, timeout=None):
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self):
        failure = "drain task stopped unexpectedly"
        try:
            self._copy_output()
            failure = None
        except OSError as e:
            failure = f"error reading output: {e}"
        except InvalidState as e:
            failure = f"internal error: {e}"
        except Exception as e:
            failure = f"unexpected error: {e!r}"
            raise
        finally:
            self._finish(failure)

    def _copy_output(self):
        while True:
            chunk = self.job.process.read_chunk(self.read_size)
            if not chunk:
                return
            self.job.output.append(chunk)

    def _finish(self, failure):
        job = self.job
        if failure is not None:
            log_error(f"Job {job.id}: {failure}")
            # Nobody reads the pipe anymore; make sure wait_status() returns.
            job.process.kill(self.kill_grace_seconds)

        code = job.process.wait_status()
        job.process.close()

        state = self._final_state(code, failure)
        job.finish(state)
        log_transition(job.id, "running", state,
                       f"(pid={job.process.pid}, output={len(job.output)}B, duration={job.elapsed_seconds():.3f}s)")

    def _final_state(self, code, failure):
        if failure is not None:
            return JobState.failed(failure)
        if code < 0:
            return JobState.killed(signal=-code)
        if self.job.process.kill_requested:
            return JobState.killed(exit_code=code)
        return JobState.exited(code)
