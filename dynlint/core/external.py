from __future__ import annotations

import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence

from .logging import get_logger

logger = get_logger("external")


@dataclass(frozen=True)
class ExternalRunResult:
    cmd: list[str]
    returncode: int
    stdout: str
    stderr: str
    elapsed_s: float

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return self.stdout + self.stderr


class CommandRunner:
    """Runs external tools. Tests substitute a subclass that records calls."""

    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
        name: str = "external",
        capture: bool = True,
        merge_stderr: bool = False,
    ) -> ExternalRunResult:
        """Run ``cmd``; with ``merge_stderr`` both streams land in ``stdout`` as interleaved."""
        run_cmd = list(cmd)
        logger.info("Running %s: %s", name, " ".join(run_cmd))
        streams = {}
        if capture:
            streams = {
                "stdout": subprocess.PIPE,
                "stderr": subprocess.STDOUT if merge_stderr else subprocess.PIPE,
            }
        start = time.time()
        try:
            proc = subprocess.run(
                run_cmd,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                check=False,
                text=True,
                **streams,
            )
        except FileNotFoundError as exc:
            return ExternalRunResult(
                cmd=run_cmd,
                returncode=127,
                stdout="",
                stderr=f"{run_cmd[0]}: command not found ({exc})\n",
                elapsed_s=time.time() - start,
            )
        elapsed = time.time() - start
        logger.debug("%s exited with %s after %.2fs", name, proc.returncode, elapsed)
        return ExternalRunResult(
            cmd=run_cmd,
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            elapsed_s=elapsed,
        )
