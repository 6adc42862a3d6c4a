from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

from cloud_assembly.runtime import ShellCommandError, atomic_write_text, shell


def test_shell_returns_stdout_and_forwards_stderr(tmp_path: Path) -> None:
    lines: list[str] = []
    script = "import sys; print('sha256:abc'); print('building', file=sys.stderr)"

    out = asyncio.run(shell([sys.executable, "-c", script], cwd=tmp_path, emit=lines.append))

    assert out.strip() == "sha256:abc"
    assert lines == ["building"]


def test_shell_ignore_drops_stderr(tmp_path: Path) -> None:
    lines: list[str] = []
    script = "import sys; print('noise', file=sys.stderr)"

    asyncio.run(shell([sys.executable, "-c", script], cwd=tmp_path, output_destination="ignore", emit=lines.append))

    assert lines == []


def test_shell_runs_in_cwd(tmp_path: Path) -> None:
    out = asyncio.run(shell([sys.executable, "-c", "import os; print(os.getcwd())"], cwd=tmp_path))

    assert Path(out.strip()).resolve() == tmp_path.resolve()


def test_shell_nonzero_exit_raises(tmp_path: Path) -> None:
    script = "import sys; print('bad input', file=sys.stderr); sys.exit(3)"

    with pytest.raises(ShellCommandError) as exc_info:
        asyncio.run(shell([sys.executable, "-c", script], cwd=tmp_path))

    assert exc_info.value.exit_code == 3
    assert "bad input" in exc_info.value.stderr
    assert "exited with error code 3" in str(exc_info.value)


def test_atomic_write_replaces_content(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "out.json"
    atomic_write_text(path, "one")
    atomic_write_text(path, "two")

    assert path.read_text(encoding="utf-8") == "two"
    assert [item.name for item in path.parent.iterdir()] == ["out.json"]
