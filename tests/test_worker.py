import time

import pytest

from job import Job
from models import EXITED, FAILED
from output_buffer import OutputBuffer
from process import ProcessHandle
from worker import DrainWorker


def _job(handle, job_id="job"):
    return Job(id=job_id, command="test", argv=("test",), process=handle, output=OutputBuffer())


def test_exit_is_recorded_with_output():
    job = _job(ProcessHandle.spawn(["sh", "-c", "echo done"]))
    DrainWorker(job).run()

    assert job.state.name == EXITED
    assert job.state.exit_code == 0
    assert job.output.read_from(0).data == b"done\n"
    assert job.is_done


def test_read_error_marks_job_failed():
    handle = ProcessHandle.spawn(["sleep", "30"])

    def broken_read(size=65536):
        raise OSError("pipe broke")

    handle.read_chunk = broken_read
    job = _job(handle)
    DrainWorker(job, kill_grace_seconds=1.0).run()

    assert job.state.name == FAILED
    assert "pipe broke" in job.state.reason
    assert handle.kill_requested
    assert job.output.is_final


def test_unexpected_error_still_finishes_job():
    handle = ProcessHandle.spawn(["sleep", "30"])

    def closed_read(size=65536):
        raise ValueError("I/O operation on closed file")

    handle.read_chunk = closed_read
    job = _job(handle)
    with pytest.raises(ValueError):
        DrainWorker(job, kill_grace_seconds=1.0).run()

    assert job.state.name == FAILED
    assert "closed file" in job.state.reason
    assert job.output.is_final
    assert job.is_done


def test_state_is_terminal_before_output_is_final():
    job = _job(ProcessHandle.spawn(["echo", "hi"]))
    states_at_finalize = []
    finalize = job.output.finalize

    def recording_finalize():
        states_at_finalize.append(job.state.name)
        finalize()

    job.output.finalize = recording_finalize
    DrainWorker(job).run()

    assert states_at_finalize == [EXITED]


def test_kill_after_natural_exit_keeps_exited_state():
    handle = ProcessHandle.spawn(["true"])
    while handle.read_chunk():
        pass
    time.sleep(0.2)  # exited, not yet reaped

    assert not handle.kill(grace_seconds=1.0)
    job = _job(handle)
    DrainWorker(job).run()

    assert job.state.name == EXITED
    assert job.state.exit_code == 0
