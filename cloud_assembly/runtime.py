from __future__ import annotations

import asyncio
import os
import subprocess
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path


OUTPUT_DESTINATIONS = ("stdio", "ignore")


class ShellCommandError(Exception):
    def __init__(self, *, cmd: list[str], exit_code: int, stderr: str) -> None:
        self.cmd = cmd
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip() or "no output"
        super().__init__(f"{' '.join(cmd)} exited with error code {exit_code}: {detail}")


def atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            delete=False,
            prefix=f".{path.name}.",
            suffix=".tmp",
        ) as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
            tmp_path = Path(handle.name)
        os.replace(tmp_path, path)
    finally:
        if tmp_path and tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass


@dataclass
class CommandResult:
    cmd: list[str]
    cwd: str
    exit_code: int
    stdout: str
    stderr: str


def run_command(cmd: list[str], cwd: Path, timeout_sec: int | None = None) -> CommandResult:
    completed = subprocess.run(
        cmd,
        cwd=str(cwd),
        capture_output=True,
        text=True,
        timeout=timeout_sec,
        check=False,
    )
    return CommandResult(
        cmd=cmd,
        cwd=str(cwd),
        exit_code=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
    )


async def shell(
    cmd: list[str],
    *,
    cwd: Path | str,
    output_destination: str = "stdio",
    emit: Callable[[str], None] | None = None,
) -> str:
    """Run ``cmd`` and return its standard output.

    With ``output_destination="stdio"`` every stderr line is forwarded to
    ``emit`` once the process has finished; ``"ignore"`` only returns the
    captured stdout.
    """
    if output_destination not in OUTPUT_DESTINATIONS:
        raise ValueError(f"Unknown output destination: {output_destination}")

    proc = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=str(cwd),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout_b, stderr_b = await proc.communicate()
    stdout = stdout_b.decode("utf-8", errors="ignore")
    stderr = stderr_b.decode("utf-8", errors="ignore")

    if output_destination == "stdio" and emit is not None:
        for line in stderr.splitlines():
            if line.strip():
                emit(line)

    if proc.returncode != 0:
        raise ShellCommandError(cmd=list(cmd), exit_code=proc.returncode, stderr=stderr)
    return stdout
