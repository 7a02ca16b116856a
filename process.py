# process.py
import os
import signal
import subprocess
import threading

from errors import SpawnError


class ProcessHandle:
    """
    One child process with stdout and stderr merged into a single pipe.

    The child is started in its own session, so signals go to the whole
    process group (a shell and everything it launched). POSIX only.
    """

    def __init__(self, popen):
        self._popen = popen
        self._lock = threading.Lock()
        self._exited = False
        self._kill_requested = False
        self._escalation = None

    @classmethod
    def spawn(cls, argv, cwd=None):
        argv = list(argv)
        try:
            popen = subprocess.Popen(
                argv,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            raise SpawnError(f"Error when starting process {argv[0] if argv else ''!r}: {e}") from e
        return cls(popen)

    @property
    def pid(self) -> int:
        return self._popen.pid

    @property
    def kill_requested(self) -> bool:
        with self._lock:
            return self._kill_requested

    def read_chunk(self, size=65536) -> bytes:
        # read1 returns as soon as any bytes are available; b"" means EOF.
        return self._popen.stdout.read1(size)

    def wait_status(self) -> int:
        code = self._popen.wait()
        with self._lock:
            self._exited = True
            if self._escalation is not None:
                self._escalation.cancel()
        return code

    def close(self):
        if self._popen.stdout is not None:
            self._popen.stdout.close()

    def kill(self, grace_seconds=5.0) -> bool:
        """
        SIGTERM the process group, escalating to SIGKILL after `grace_seconds`.

        Returns False when there was nothing to do: the process has already
        exited (even if not yet reaped) or a kill is already in progress.
        """
        with self._lock:
            if self._kill_requested or self._has_exited():
                return False
            self._kill_requested = True
            self._signal(signal.SIGTERM)
            self._escalation = threading.Timer(grace_seconds, self._escalate)
            self._escalation.daemon = True
            self._escalation.start()
        return True

    def _has_exited(self):
        if self._exited or self._popen.returncode is not None:
            return True
        # Look for a zombie without reaping it; the drain task owns wait().
        try:
            info = os.waitid(os.P_PID, self._popen.pid, os.WEXITED | os.WNOHANG | os.WNOWAIT)
        except ChildProcessError:
            return True
        return info is not None

    def _escalate(self):
        with self._lock:
            if not self._exited:
                self._signal(signal.SIGKILL)

    def _signal(self, sig):
        try:
            os.killpg(self._popen.pid, sig)
        except ProcessLookupError:
            pass  # group already gone
