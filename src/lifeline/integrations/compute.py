"""Local subprocess compute provider."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

from loguru import logger

from lifeline.types import ExecResult

TIMEOUT_EXIT_CODE = 124


class LocalCompute:
    """Runs commands with bash in a workspace directory on this machine."""

    def __init__(self, workspace: Path) -> None:
        self.workspace = workspace

    def _resolve(self, raw: str) -> Path:
        path = Path(raw).expanduser()
        if path.is_absolute():
            return path
        return self.workspace / path

    def execute(self, command: str, timeout_ms: int = 30_000) -> ExecResult:
        bash_executable = shutil.which("bash") or "bash"
        try:
            completed = subprocess.run(  # noqa: S603
                [bash_executable, "-lc", command],
                cwd=str(self.workspace),
                capture_output=True,
                text=True,
                timeout=timeout_ms / 1000,
            )
        except subprocess.TimeoutExpired:
            logger.warning("compute.exec.timeout timeout_ms={} command={}", timeout_ms, command[:80])
            return ExecResult(stdout="", stderr=f"timed out after {timeout_ms}ms", exit_code=TIMEOUT_EXIT_CODE)
        except (OSError, subprocess.SubprocessError) as exc:
            return ExecResult(stdout="", stderr=f"{exc!s}", exit_code=1)
        return ExecResult(
            stdout=(completed.stdout or "").strip(),
            stderr=(completed.stderr or "").strip(),
            exit_code=completed.returncode,
        )

    def write_file(self, path: str, content: str) -> None:
        file_path = self._resolve(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")

    def read_file(self, path: str) -> str:
        return self._resolve(path).read_text(encoding="utf-8")
