from __future__ import annotations

import os
from pathlib import Path
from typing import Any, List, Mapping, Optional

from . import env as env_vars
from .builder import ArtifactBuilder
from .cache import DriverCache
from .config import load_declared_libraries
from .driver import HostEngineBuilder
from .external import CommandRunner
from .fetch import GitCheckouts
from .index import NameToolchainIndex
from .logging import get_event_logger
from .options import Options
from .sources import ArtifactSpec, spec_from_declaration


class Context:
    """Everything one invocation shares: options, environment, index, and builders.

    Constructed once per invocation and passed to the resolver and dispatcher.
    """

    def __init__(
        self,
        options: Optional[Options] = None,
        *,
        environ: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
        runner: Optional[CommandRunner] = None,
        events: Any = None,
    ) -> None:
        self.options = (options or Options()).validate()
        self.environ = dict(os.environ if environ is None else environ)
        self.cwd = (cwd or Path.cwd()).resolve()
        self.runner = runner or CommandRunner()
        self.events = events if events is not None else get_event_logger(self.environ)
        self.project_root = self._project_root()
        self.index = NameToolchainIndex(self)
        self.checkouts = GitCheckouts(self.dynlint_dir / "checkouts", self.runner, self.environ)
        self.builder = ArtifactBuilder(
            self.runner, self.environ, no_build=self.options.no_build, events=self.events
        )
        self._drivers: Optional[HostEngineBuilder] = None

    @property
    def drivers(self) -> HostEngineBuilder:
        # The cache root is only validated when a driver is needed.
        if self._drivers is None:
            self._drivers = HostEngineBuilder(
                DriverCache.from_environ(self.environ),
                self.runner,
                self.environ,
                events=self.events,
            )
        return self._drivers

    @property
    def target_dir(self) -> Path:
        override = self.environ.get(env_vars.CARGO_TARGET_DIR)
        if override:
            path = Path(override)
            return path if path.is_absolute() else self.project_root / path
        return self.project_root / "target"

    @property
    def dynlint_dir(self) -> Path:
        return self.target_dir / "dynlint"

    @property
    def libraries_dir(self) -> Path:
        return self.dynlint_dir / "libraries"

    def check_target_dir(self, toolchain: str) -> Path:
        return self.dynlint_dir / "target" / toolchain

    def declared_specs(self) -> List[ArtifactSpec]:
        _, libraries = load_declared_libraries(self.project_root)
        return [spec_from_declaration(decl, self.project_root) for decl in libraries]

    def _project_root(self) -> Path:
        manifest_path = self.options.manifest_path
        if manifest_path:
            path = Path(manifest_path)
            if not path.is_absolute():
                path = self.cwd / path
            return path.resolve().parent
        return self.cwd
