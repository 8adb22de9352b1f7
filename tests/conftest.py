from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, List, NamedTuple, Optional, Set, Tuple

import pytest

from dynlint.core import env as env_vars
from dynlint.core.config import load_config_file
from dynlint.core.context import Context
from dynlint.core.external import CommandRunner, ExternalRunResult
from dynlint.core.filename import library_filename, plain_library_filename
from dynlint.core.options import Options
from dynlint.core.package import library_name


class Call(NamedTuple):
    cmd: List[str]
    cwd: Optional[Path]
    env: Dict[str, str]
    capture: bool
    merge_stderr: bool = False


GitHandler = Callable[[List[str], Optional[Path]], Tuple[int, str]]


class RecordingRunner(CommandRunner):
    """Stands in for cargo and git, producing the files a real build would."""

    def __init__(self) -> None:
        self.calls: List[Call] = []
        self.fail_builds = False
        self.skip_build_output = False
        self.fail_drivers: Set[str] = set()
        self.check_returncodes: Dict[str, int] = {}
        self.git_handler: Optional[GitHandler] = None

    def run(
        self, cmd, *, cwd=None, env=None, name="external", capture=True, merge_stderr=False
    ):
        cmd = list(cmd)
        env = dict(env or {})
        cwd = Path(cwd) if cwd is not None else None
        self.calls.append(Call(cmd, cwd, env, capture, merge_stderr))
        result = self._respond(cmd, cwd, env)
        if merge_stderr:
            return replace(result, stdout=result.stdout + result.stderr, stderr="")
        return result

    def _respond(self, cmd, cwd, env):
        if cmd[0] == env_vars.GIT:
            if self.git_handler is None:
                return _result(cmd, 128, "", "fatal: no git in tests\n")
            returncode, stdout = self.git_handler(cmd, cwd)
            return _result(cmd, returncode, stdout, "" if returncode == 0 else "fatal: failed\n")
        if cmd[:2] == [env_vars.CARGO, "build"]:
            if "--release" in cmd:
                return self._library_build(cmd, Path(cwd))
            return self._driver_build(cmd, Path(cwd), env)
        if cmd[:2] in ([env_vars.CARGO, "check"], [env_vars.CARGO, "fix"]):
            toolchain = env.get(env_vars.RUSTUP_TOOLCHAIN, "")
            return _result(cmd, self.check_returncodes.get(toolchain, 0), "", "")
        return _result(cmd, 127, "", f"{cmd[0]}: unexpected command\n")

    def _library_build(self, cmd: List[str], root: Path) -> ExternalRunResult:
        if self.fail_builds:
            return _result(cmd, 101, "", "error: could not compile `lint`\n")
        if not self.skip_build_output:
            target_dir = Path(cmd[cmd.index("--target-dir") + 1])
            name = library_name(load_config_file(root / "Cargo.toml"), root)
            output = target_dir / "release"
            output.mkdir(parents=True, exist_ok=True)
            (output / plain_library_filename(name)).write_bytes(b"\x7fELF library")
        return _result(cmd, 0, "", "    Finished release\n")

    def _driver_build(self, cmd: List[str], root: Path, env: Dict[str, str]) -> ExternalRunResult:
        toolchain = env[env_vars.RUSTUP_TOOLCHAIN]
        if toolchain in self.fail_drivers:
            return _result(cmd, 101, "", "error: toolchain not installed\n")
        binary = root / "target" / "debug" / f"dynlint_driver-{toolchain}"
        if os.name == "nt":
            binary = binary.with_name(binary.name + ".exe")
        binary.parent.mkdir(parents=True, exist_ok=True)
        binary.write_bytes(b"#!driver")
        return _result(cmd, 0, "", "    Finished dev\n")

    def commands(self, *prefix: str) -> List[List[str]]:
        return [call.cmd for call in self.calls if call.cmd[: len(prefix)] == list(prefix)]

    def library_builds(self) -> List[Call]:
        return [call for call in self._builds() if "--release" in call.cmd]

    def driver_builds(self) -> List[Call]:
        return [call for call in self._builds() if "--release" not in call.cmd]

    def _builds(self) -> List[Call]:
        return [call for call in self.calls if call.cmd[:2] == [env_vars.CARGO, "build"]]


def _result(cmd: List[str], returncode: int, stdout: str, stderr: str) -> ExternalRunResult:
    return ExternalRunResult(
        cmd=cmd, returncode=returncode, stdout=stdout, stderr=stderr, elapsed_s=0.0
    )


def touch_library(directory: Path, name: str, toolchain: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / library_filename(name, toolchain)
    path.write_bytes(b"\x7fELF")
    return path


def make_package(root: Path, name: str, toolchain: str) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    (root / "Cargo.toml").write_text(
        f'[package]\nname = "{name}"\nversion = "0.1.0"\n\n[lib]\ncrate-type = ["cdylib"]\n',
        encoding="utf-8",
    )
    (root / "rust-toolchain.toml").write_text(
        f'[toolchain]\nchannel = "{toolchain}"\n', encoding="utf-8"
    )
    return root


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def environ(tmp_path: Path) -> Dict[str, str]:
    home = tmp_path / "home"
    home.mkdir()
    return {"HOME": str(home), "PATH": os.environ.get("PATH", "")}


@pytest.fixture
def make_context(project: Path, environ: Dict[str, str], runner: RecordingRunner):
    def factory(options: Optional[Options] = None, **extra_env: str) -> Context:
        return Context(options, environ={**environ, **extra_env}, cwd=project, runner=runner)

    return factory
