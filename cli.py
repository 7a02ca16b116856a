# cli.py
import sys
from pathlib import Path

import click

from client import ClientError, RemoteRunClient
from config import load_settings


def _fail(e):
    click.echo(f"❌ {e}", err=True)
    sys.exit(1)


def _exit_code(status):
    state = status["state"]
    if state["name"] == "exited":
        return state["exit_code"]
    if state["name"] == "killed" and state["signal"]:
        return 128 + state["signal"]
    return 1


def _describe(status):
    state = status["state"]
    name = state["name"]
    if name == "exited":
        name = f"exited({state['exit_code']})"
    elif name == "killed":
        name = f"killed(signal={state['signal']})" if state["signal"] else "killed"
    elif name == "failed":
        name = f"failed({state['reason']})"
    return name


@click.group()
@click.option("--url", envvar="REMOTERUN_URL", default=None, help="Server URL (default http://127.0.0.1:<REMOTERUN_PORT>)")
@click.pass_context
def cli(ctx, url):
    """remoterun - run commands on a remote host over HTTP"""
    ctx.ensure_object(dict)
    ctx.obj["url"] = url


def _client(ctx):
    url = ctx.obj.get("url")
    if not url:
        url = f"http://127.0.0.1:{load_settings().port}"
    return RemoteRunClient(url)


def _write_output(chunks):
    out = click.get_binary_stream("stdout")
    for data in chunks:
        out.write(data)
        out.flush()


# ---------------- Server ----------------
@cli.command()
@click.option("--host", default=None, help="Interface to bind (REMOTERUN_HOST, default 127.0.0.1)")
@click.option("--port", "-p", default=None, type=int, help="Port to listen on (REMOTERUN_PORT, default 7000)")
@click.option("--kill-grace-seconds", default=None, type=float, help="SIGTERM to SIGKILL grace period")
def serve(host, port, kill_grace_seconds):
    """Start the HTTP server"""
    import uvicorn
    from api import create_app

    settings = load_settings(host=host, port=port, kill_grace_seconds=kill_grace_seconds)
    click.echo(f"🚀 Serving on {settings.host}:{settings.port} (kill grace={settings.kill_grace_seconds}s)")
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port)


# ---------------- Jobs ----------------
@cli.command()
@click.pass_context
def ping(ctx):
    """Check that the server is alive"""
    try:
        click.echo(_client(ctx).ping())
    except (ClientError, OSError) as e:
        _fail(e)


@cli.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.option("--workdir", "-w", default=None, help="Absolute working directory on the server")
@click.option("--follow", "-f", is_flag=True, help="Stream output and exit with the job's exit code")
@click.pass_context
def run(ctx, command, workdir, follow):
    """Start COMMAND on the server"""
    client = _client(ctx)
    try:
        job_id = client.run(list(command), workdir=workdir)
        if not follow:
            click.echo(job_id)
            return
        click.echo(f"✅ Job {job_id} started.", err=True)
        _write_output(client.follow(job_id))
        status = client.wait(job_id)
    except (ClientError, OSError) as e:
        _fail(e)
    click.echo(f"Job {job_id} {_describe(status)}", err=True)
    sys.exit(_exit_code(status))


@cli.command(name="list")
@click.pass_context
def list_jobs(ctx):
    """List jobs known to the server"""
    try:
        jobs = _client(ctx).jobs()
    except (ClientError, OSError) as e:
        _fail(e)
    if not jobs:
        click.echo("No jobs found.")
        return
    for job in sorted(jobs, key=lambda j: j["started_at"]):
        click.echo(f"{job['id']} | {job['command']} | state={_describe(job)} | output={job['output_length']}B | elapsed={job['elapsed_seconds']:.3f}s")


@cli.command()
@click.argument("job_id")
@click.pass_context
def status(ctx, job_id):
    """Show details of a single job"""
    try:
        job = _client(ctx).status(job_id)
    except (ClientError, OSError) as e:
        _fail(e)
    click.echo(f"🔎 Job {job['id']}")
    click.echo(f"  Command: {job['command']}")
    click.echo(f"  Workdir: {job['workdir'] or '-'}")
    click.echo(f"  PID: {job['pid']}")
    click.echo(f"  State: {_describe(job)}")
    click.echo(f"  Started: {job['started_at']}")
    click.echo(f"  Ended: {job['ended_at'] or '-'}")
    click.echo(f"  Elapsed: {job['elapsed_seconds']:.3f}s")
    click.echo(f"  Output: {job['output_length']} bytes{' (final)' if job['is_final'] else ''}")


@cli.command()
@click.argument("job_id")
@click.option("--offset", default=0, type=int, help="Byte offset to start reading from")
@click.option("--follow", "-f", is_flag=True, help="Keep reading until the job finishes")
@click.pass_context
def logs(ctx, job_id, offset, follow):
    """Print a job's output"""
    client = _client(ctx)
    try:
        if follow:
            _write_output(client.follow(job_id, offset))
        else:
            data, _, _ = client.fetch_output(job_id, offset, wait=0)
            _write_output([data])
    except (ClientError, OSError) as e:
        _fail(e)


@cli.command()
@click.argument("job_id")
@click.pass_context
def kill(ctx, job_id):
    """Terminate a running job"""
    try:
        job = _client(ctx).kill(job_id)
    except (ClientError, OSError) as e:
        _fail(e)
    click.echo(f"🛑 Kill requested for job {job_id} (state={_describe(job)}).")


@cli.command()
@click.argument("job_id")
@click.option("--timeout", default=None, type=float, help="Seconds to wait (default: until the job finishes)")
@click.pass_context
def wait(ctx, job_id, timeout):
    """Wait for a job to finish and exit with its exit code"""
    try:
        job = _client(ctx).wait(job_id, timeout)
    except (ClientError, OSError) as e:
        _fail(e)
    click.echo(f"Job {job_id} {_describe(job)}")
    if job["state"]["name"] == "running":
        sys.exit(124)
    sys.exit(_exit_code(job))


@cli.command()
@click.argument("job_id")
@click.pass_context
def rm(ctx, job_id):
    """Forget a finished job"""
    try:
        _client(ctx).remove(job_id)
    except (ClientError, OSError) as e:
        _fail(e)
    click.echo(f"♻️ Job {job_id} removed.")


# ---------------- Files ----------------
@cli.command()
@click.argument("workdir")
@click.argument("paths", nargs=-1, required=True)
@click.pass_context
def push(ctx, workdir, paths):
    """Upload changed files (relative to the current directory) into WORKDIR"""
    try:
        sent = _client(ctx).push(workdir, paths)
    except (ClientError, OSError, ValueError) as e:
        _fail(e)
    click.echo(f"📤 {len(sent)} of {len(paths)} file(s) sent.")


@cli.command()
@click.argument("workdir")
@click.argument("path")
@click.option("--output", "-o", default=None, help="Local destination (default: same relative path)")
@click.pass_context
def pull(ctx, workdir, path, output):
    """Download PATH from WORKDIR"""
    try:
        data = _client(ctx).pull(workdir, path)
    except (ClientError, OSError) as e:
        _fail(e)
    dest = Path(output or path)
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(data)
    click.echo(f"📥 {path} -> {dest} ({len(data)} bytes)")


# ---------------- Entrypoint ----------------
if __name__ == "__main__":
    cli()
