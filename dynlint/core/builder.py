from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping

from . import env as env_vars
from .errors import BuildError
from .external import CommandRunner
from .filename import plain_library_filename
from .fsutil import atomic_install, directory_lock
from .locator import SearchRoot, locate
from .logging import NullEventLogger, get_logger
from .package import SourcePackage

logger = get_logger("builder")


class ArtifactBuilder:
    """Builds library packages, at most once per package root per invocation."""

    def __init__(
        self,
        runner: CommandRunner,
        environ: Mapping[str, str],
        *,
        no_build: bool = False,
        events: Any = None,
    ) -> None:
        self.runner = runner
        self.environ = environ
        self.no_build = no_build
        self.events = events or NullEventLogger()
        self._built: Dict[Path, Path] = {}

    def build(self, package: SourcePackage) -> Path:
        key = package.root.resolve()
        if key in self._built:
            return self._built[key]

        if self.no_build:
            path = package.library_path()
            logger.debug("Not building %s; expecting %s", package.name, path)
            self._built[key] = path
            return path

        self.events.record(
            {"event": "build.start", "package": package.name, "toolchain": package.toolchain}
        )
        try:
            with directory_lock(package.target_dir):
                self._run_build(package)
                self._install(package)
            path = self._rediscover(package)
        except OSError as exc:
            raise BuildError(
                f"Could not install library `{package.name}` from `{package.root}`",
                location=str(package.root),
            ) from exc
        self.events.record(
            {"event": "build.finish", "package": package.name, "path": str(path)}
        )
        self._built[key] = path
        return path

    def _run_build(self, package: SourcePackage) -> None:
        env = env_vars.sanitized(self.environ, **{env_vars.RUSTUP_TOOLCHAIN: package.toolchain})
        env.pop(env_vars.RUSTFLAGS, None)
        result = self.runner.run(
            [
                env_vars.CARGO,
                "build",
                "--release",
                "--target-dir",
                str(package.target_dir),
            ],
            cwd=package.root,
            env=env,
            name=f"build of `{package.name}`",
            merge_stderr=True,
        )
        if not result.ok:
            raise BuildError(
                f"Could not build library `{package.name}` at `{package.root}`",
                output=result.output,
                location=str(package.root),
            )

    def _install(self, package: SourcePackage) -> None:
        produced = package.output_dir() / plain_library_filename(package.name)
        if not produced.is_file():
            raise BuildError(f"Could not find `{produced}` despite successful build")
        atomic_install(produced, package.library_path())

    def _rediscover(self, package: SourcePackage) -> Path:
        matches = [
            artifact.location
            for artifact in locate([SearchRoot(package.output_dir(), required=True)])
            if artifact.name == package.name and artifact.toolchain == package.toolchain
        ]
        if len(matches) != 1:
            raise BuildError(
                f"Expected one library `{package.name}` for toolchain `{package.toolchain}` "
                f"in `{package.output_dir()}`, found {len(matches)}"
            )
        return matches[0]
