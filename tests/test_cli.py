import pytest
from click.testing import CliRunner

import cli as cli_module
from client import ClientError


def _status(name="exited", exit_code=0, signal=None):
    return {
        "id": "job-1",
        "command": "echo hello",
        "workdir": None,
        "pid": 4242,
        "state": {"name": name, "exit_code": exit_code, "signal": signal, "reason": None},
        "started_at": "2026-01-01T00:00:00+00:00",
        "ended_at": None if name == "running" else "2026-01-01T00:00:01+00:00",
        "elapsed_seconds": 1.0,
        "output_length": 6,
        "is_final": name != "running",
    }


class _ClientStub:
    calls = []
    final_status = _status()

    def __init__(self, url):
        self.url = url

    def run(self, command, workdir=None):
        self.calls.append(("run", command, workdir))
        return "job-1"

    def follow(self, job_id, offset=0):
        yield b"hel"
        yield b"lo\n"

    def wait(self, job_id, timeout=None):
        return self.final_status

    def status(self, job_id):
        if job_id != "job-1":
            raise ClientError(404, f"Job {job_id} not found", "NotFound")
        return _status()

    def fetch_output(self, job_id, offset=0, wait=None):
        return b"hello\n"[offset:], 6, True

    def kill(self, job_id):
        return _status("running", None)

    def jobs(self):
        return [_status()]


@pytest.fixture
def runner(monkeypatch):
    _ClientStub.calls = []
    _ClientStub.final_status = _status()
    monkeypatch.setattr(cli_module, "RemoteRunClient", _ClientStub)
    return CliRunner()


def _invoke(runner, *args):
    return runner.invoke(cli_module.cli, ["--url", "http://remote:7000", *args])


def test_run_prints_job_id(runner):
    result = _invoke(runner, "run", "--workdir", "/tmp/w", "echo", "hello")
    assert result.exit_code == 0
    assert result.output.strip() == "job-1"
    assert _ClientStub.calls == [("run", ["echo", "hello"], "/tmp/w")]


def test_run_follow_streams_and_uses_exit_code(runner):
    _ClientStub.final_status = _status(exit_code=3)
    result = _invoke(runner, "run", "--follow", "sh", "-c", "exit 3")
    assert result.exit_code == 3
    assert "hello\n" in result.output
    assert _ClientStub.calls == [("run", ["sh", "-c", "exit 3"], None)]


def test_wait_on_killed_job(runner):
    _ClientStub.final_status = _status("killed", None, 15)
    result = _invoke(runner, "wait", "job-1")
    assert result.exit_code == 143
    assert "killed(signal=15)" in result.output


def test_logs_from_offset(runner):
    result = _invoke(runner, "logs", "job-1", "--offset", "2")
    assert result.exit_code == 0
    assert result.output == "llo\n"


def test_status_of_unknown_job_fails(runner):
    result = _invoke(runner, "status", "other")
    assert result.exit_code == 1
    assert "not found" in result.output


def test_list_and_kill(runner):
    listed = _invoke(runner, "list")
    assert "job-1 | echo hello | state=exited(0)" in listed.output

    killed = _invoke(runner, "kill", "job-1")
    assert killed.exit_code == 0
    assert "Kill requested for job job-1" in killed.output
