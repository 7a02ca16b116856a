# client.py
import base64
import hashlib
import time
from pathlib import Path

import requests


class ClientError(Exception):
    def __init__(self, status_code, message, error_type=None):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.error_type = error_type


class RemoteRunClient:
    """Thin HTTP client for a remoterun server (usually reached through an SSH-forwarded port)."""

    def __init__(self, base_url="http://127.0.0.1:7000", timeout=30.0, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method, path, timeout=None, **kwargs):
        resp = self.session.request(method, self.base_url + path, timeout=timeout or self.timeout, **kwargs)
        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and "error" in body:
                raise ClientError(resp.status_code, body["error"], body.get("type"))
            raise ClientError(resp.status_code, resp.text)
        return resp

    # ---------------- Jobs ----------------
    def ping(self) -> str:
        return self._request("GET", "/ping").text

    def run(self, command, workdir=None) -> str:
        payload = {"command": command}
        if workdir:
            payload["workdir"] = workdir
        return self._request("POST", "/run", json=payload).json()["job_id"]

    def status(self, job_id):
        return self._request("GET", f"/jobs/{job_id}").json()

    def jobs(self):
        return self._request("GET", "/jobs").json()

    def fetch_output(self, job_id, offset=0, wait=None):
        """Return (data, new_offset, is_final)."""
        params = {"offset": offset}
        if wait is not None:
            params["wait"] = wait
        resp = self._request("GET", f"/jobs/{job_id}/output", params=params)
        return resp.content, int(resp.headers["X-Next-Offset"]), resp.headers.get("X-Final") == "1"

    def follow(self, job_id, offset=0, poll_interval=0.5):
        """Yield output chunks from `offset` until the job's output is final."""
        while True:
            data, offset, final = self.fetch_output(job_id, offset, wait=poll_interval)
            if data:
                yield data
            if final:
                return
            if not data:
                time.sleep(poll_interval / 5)

    def kill(self, job_id):
        return self._request("POST", f"/jobs/{job_id}/kill").json()

    def wait(self, job_id, timeout=None):
        """
        Wait for the job to finish; `timeout=None` waits as long as it takes.

        Each server-side wait is kept shorter than the HTTP timeout, so long
        jobs are waited for in several requests. Returns the last status seen,
        which is still running if `timeout` ran out first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        step = max(self.timeout / 2, 0.1)
        while True:
            server_wait = step if deadline is None else max(0.0, min(step, deadline - time.monotonic()))
            status = self._request("GET", f"/jobs/{job_id}/wait", params={"timeout": server_wait}).json()
            if status["state"]["name"] != "running":
                return status
            if deadline is not None and time.monotonic() >= deadline:
                return status

    def remove(self, job_id):
        return self._request("DELETE", f"/jobs/{job_id}").json()

    # ---------------- Files ----------------
    def push(self, workdir, paths, base_dir=None):
        """Upload local files whose content differs on the server. Returns the names sent."""
        base_dir = Path(base_dir or Path.cwd())
        local = {}
        for p in paths:
            path = Path(p)
            if path.is_absolute():
                name = path.relative_to(base_dir).as_posix()
            else:
                name, path = path.as_posix(), base_dir / path
            local[name] = path
        hashes = {name: hashlib.md5(path.read_bytes()).hexdigest() for name, path in local.items()}
        wanted = self._request("POST", "/offer-files", json={"workdir": workdir, "hashes": hashes}).json()
        if wanted:
            payload = {
                name: {
                    "data": base64.b64encode(local[name].read_bytes()).decode("ascii"),
                    "executable": bool(local[name].stat().st_mode & 0o111),
                }
                for name in wanted
            }
            self._request("POST", "/send-files", json={"workdir": workdir, "files": payload})
        return wanted

    def pull(self, workdir, path) -> bytes:
        text = self._request("POST", "/get-file", json={"workdir": workdir, "path": path}).text
        return base64.b64decode(text)
