# files.py
import base64
import binascii
import hashlib
from pathlib import Path

from errors import InvalidPath, InvalidPayload, NotFound


def _workdir(workdir) -> Path:
    if "~" in workdir or not workdir.startswith("/"):
        raise InvalidPath(f"Path must be absolute, got {workdir!r}")
    return Path(workdir)


def _inside(root: Path, name) -> Path:
    path = (root / name).resolve()
    if path != root.resolve() and root.resolve() not in path.parents:
        raise InvalidPath(f"{name!r} escapes {str(root)!r}")
    return path


def md5_hex(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def offer_files(workdir, hashes):
    """Return the names from `hashes` that are missing in workdir or differ from the offered md5."""
    root = _workdir(workdir)
    wanted = []
    for name, digest in hashes.items():
        path = _inside(root, name)
        if path.is_file() and md5_hex(path.read_bytes()) == digest.lower():
            continue
        wanted.append(name)
    return wanted


def send_files(workdir, files) -> int:
    """
    Write base64-encoded files into workdir.

    `files` maps a relative name to {"data": <base64>, "executable": bool}.
    Executable files are made world-executable (0o777).
    """
    root = _workdir(workdir)
    decoded = {}
    for name, info in files.items():
        try:
            decoded[name] = (_inside(root, name), base64.b64decode(info["data"], validate=True), bool(info.get("executable")))
        except (binascii.Error, ValueError) as e:
            raise InvalidPayload(f"{name!r}: invalid base64 data ({e})") from e

    for name, (path, data, executable) in decoded.items():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        if executable:
            path.chmod(0o777)
    return len(decoded)


def get_file(workdir, name) -> str:
    path = _inside(_workdir(workdir), name)
    if not path.is_file():
        raise NotFound(f"File {name!r} not found in {workdir!r}")
    return base64.b64encode(path.read_bytes()).decode("ascii")
