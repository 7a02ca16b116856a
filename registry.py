# registry.py
import threading
import uuid

from errors import InvalidState, NotFound


class JobRegistry:
    """Thread-safe map of job id -> Job. Jobs stay until explicitly removed."""

    def __init__(self):
        self._jobs = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id):
        with self._lock:
            return job_id in self._jobs

    @staticmethod
    def new_id() -> str:
        return str(uuid.uuid4())

    def insert(self, job) -> str:
        with self._lock:
            if job.id in self._jobs:
                raise InvalidState(f"job id {job.id} is already registered")
            self._jobs[job.id] = job
        return job.id

    def get(self, job_id):
        with self._lock:
            return self._jobs.get(job_id)

    def require(self, job_id):
        job = self.get(job_id)
        if job is None:
            raise NotFound(f"Job {job_id} not found")
        return job

    def remove(self, job_id):
        with self._lock:
            job = self._jobs.pop(job_id, None)
        if job is None:
            raise NotFound(f"Job {job_id} not found")
        return job

    def jobs(self):
        with self._lock:
            return list(self._jobs.values())
