# api.py
import asyncio
import time
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Union

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from pydantic import BaseModel

import files
from engine import ExecutionEngine
from errors import (
    ExecError,
    InvalidPath,
    InvalidPayload,
    InvalidState,
    JobBusy,
    NotFound,
    OffsetOutOfRange,
    SpawnError,
)
from worker import log_error

ERROR_STATUS = {
    SpawnError: 400,
    InvalidPath: 400,
    InvalidPayload: 400,
    NotFound: 404,
    JobBusy: 409,
    OffsetOutOfRange: 416,
    InvalidState: 500,
}

POLL_INTERVAL = 0.05


class RunRequest(BaseModel):
    command: Union[str, List[str]]
    workdir: Optional[str] = None


class OfferFilesRequest(BaseModel):
    workdir: str
    hashes: Dict[str, str]


class FileInfo(BaseModel):
    data: str
    executable: bool = False


class SendFilesRequest(BaseModel):
    workdir: str
    files: Dict[str, FileInfo]


class GetFileRequest(BaseModel):
    workdir: str
    path: str


def output_headers(chunk):
    return {
        "X-Offset": str(chunk.offset),
        "X-Next-Offset": str(chunk.new_offset),
        "X-Final": "1" if chunk.is_final else "0",
    }


def create_app(engine=None, settings=None) -> FastAPI:
    """Build the HTTP API around one ExecutionEngine (created here unless given)."""
    engine = engine or ExecutionEngine(settings)

    @asynccontextmanager
    async def lifespan(app):
        yield
        if engine.settings.kill_on_shutdown:
            engine.shutdown(timeout=engine.settings.kill_grace_seconds + 1)

    app = FastAPI(title="remoterun", lifespan=lifespan)
    app.state.engine = engine

    @app.exception_handler(ExecError)
    async def exec_error_handler(request: Request, exc: ExecError):
        status = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
        if status == 500:
            log_error(f"{request.method} {request.url.path}: {type(exc).__name__}: {exc}")
        return JSONResponse({"error": str(exc), "type": type(exc).__name__}, status_code=status)

    # ---------- Liveness ----------
    @app.get("/ping", response_class=PlainTextResponse)
    def ping():
        return "pong"

    # ---------- Jobs ----------
    @app.post("/run")
    def run(request: RunRequest):
        return {"job_id": engine.submit(request.command, workdir=request.workdir)}

    @app.get("/jobs")
    def list_jobs():
        return [status.to_dict() for status in engine.list_jobs()]

    @app.get("/jobs/{job_id}")
    def job_status(job_id: str):
        return engine.status(job_id).to_dict()

    async def fetch_without_blocking(job_id, offset, wait=None, max_bytes=None):
        # Poll on the event loop; a blocking read would tie up a threadpool worker.
        wait = engine.wait_timeout(engine.settings.fetch_wait_seconds if wait is None else wait)
        deadline = time.monotonic() + wait
        while True:
            chunk = engine.fetch_output(job_id, offset, wait=0, max_bytes=max_bytes)
            remaining = deadline - time.monotonic()
            if chunk.data or chunk.is_final or remaining <= 0:
                return chunk
            await asyncio.sleep(min(POLL_INTERVAL, remaining))

    @app.get("/jobs/{job_id}/output")
    async def job_output(
        job_id: str,
        offset: int = Query(0, ge=0),
        wait: Optional[float] = Query(None, ge=0),
        max_bytes: Optional[int] = Query(None, gt=0),
    ):
        chunk = await fetch_without_blocking(job_id, offset, wait=wait, max_bytes=max_bytes)
        return Response(chunk.data, media_type="application/octet-stream", headers=output_headers(chunk))

    @app.get("/jobs/{job_id}/stream")
    async def job_stream(job_id: str, offset: int = Query(0, ge=0)):
        # Validate before the response starts so errors still map to a status code.
        first = engine.fetch_output(job_id, offset, wait=0)

        async def chunks():
            chunk = first
            while True:
                if chunk.data:
                    yield chunk.data
                if chunk.is_final:
                    return
                try:
                    chunk = await fetch_without_blocking(job_id, chunk.new_offset, wait=1.0)
                except NotFound:
                    return  # removed while streaming

        return StreamingResponse(chunks(), media_type="application/octet-stream", headers={"X-Offset": str(offset)})

    @app.get("/jobs/{job_id}/wait")
    async def job_wait(job_id: str, timeout: Optional[float] = Query(None, ge=0)):
        deadline = time.monotonic() + engine.wait_timeout(timeout)
        while not engine.is_done(job_id):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            await asyncio.sleep(min(POLL_INTERVAL, remaining))
        return engine.status(job_id).to_dict()

    @app.post("/jobs/{job_id}/kill")
    def job_kill(job_id: str):
        return engine.kill(job_id).to_dict()

    @app.delete("/jobs/{job_id}")
    def job_remove(job_id: str):
        return engine.remove(job_id).to_dict()

    # ---------- Files ----------
    @app.post("/offer-files")
    def offer_files(request: OfferFilesRequest):
        return files.offer_files(request.workdir, request.hashes)

    @app.post("/send-files")
    def send_files(request: SendFilesRequest):
        written = files.send_files(request.workdir, {name: info.model_dump() for name, info in request.files.items()})
        return {"written": written}

    @app.post("/get-file", response_class=PlainTextResponse)
    def get_file(request: GetFileRequest):
        return files.get_file(request.workdir, request.path)

    return app
