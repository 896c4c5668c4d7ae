from __future__ import annotations

import hashlib
import json
import logging
import os
import subprocess
from pathlib import Path
from typing import Mapping, Sequence

logger = logging.getLogger(__name__)


class CommandError(RuntimeError):
    """Raised when a subprocess exits with a non-zero status code."""

    def __init__(self, command: Sequence[str], returncode: int, stdout: str, stderr: str) -> None:
        self.command = list(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"Command {' '.join(command)} failed with exit code {returncode}\nSTDOUT:{stdout}\nSTDERR:{stderr}"
        )


def run_command(
    command: Sequence[str],
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Execute a subprocess command and return the completed process."""

    process_env = os.environ.copy()
    if env:
        process_env.update(env)

    logger.debug("+ %s (cwd=%s)", " ".join(command), cwd or ".")
    try:
        result = subprocess.run(
            list(command),
            cwd=str(cwd) if cwd else None,
            env=process_env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise CommandError(command, 127, "", str(exc)) from exc
    if check and result.returncode != 0:
        raise CommandError(command, result.returncode, result.stdout, result.stderr)
    return result


def prepend_path(directories: Sequence[str | Path], env: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return an environment overlay whose PATH starts with ``directories``."""

    base = dict(env) if env is not None else {}
    current = base.get("PATH", os.environ.get("PATH", ""))
    entries = [str(directory) for directory in directories]
    if current:
        entries.append(current)
    base["PATH"] = os.pathsep.join(entries)
    return base


def ensure_directory(path: str | Path) -> Path:
    """Return ``path`` as a Path, creating it and any missing parents."""

    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def sha256_file(path: str | Path, chunk_size: int = 1 << 16) -> str:
    """Hex SHA-256 digest of a file, read in ``chunk_size`` blocks."""

    digest = hashlib.sha256()
    with Path(path).open("rb") as stream:
        while True:
            chunk = stream.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def dump_json(path: str | Path, payload: Mapping[str, object], *, indent: int = 2) -> Path:
    """Write ``payload`` as sorted JSON, replacing ``path`` only once fully written."""

    target = Path(path)
    ensure_directory(target.parent)
    partial = target.with_name(f".{target.name}.partial")
    partial.write_text(json.dumps(payload, indent=indent, sort_keys=True) + "\n")
    os.replace(partial, target)
    return target
