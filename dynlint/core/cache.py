from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Mapping, Optional

from . import env as env_vars
from .errors import ConfigurationError
from .fsutil import atomic_install

DRIVER_NAME = "dynlint-driver" + (".exe" if os.name == "nt" else "")
DEFAULT_DIRNAME = ".dynlint_drivers"

README_TXT = """
This directory contains analysis drivers used by dynlint, one
subdirectory per toolchain.

Deleting this directory will cause dynlint to rebuild the drivers
the next time it needs them, but will have no ill effects.
"""

_TOOLCHAIN_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._+-]*$")


def validate_toolchain(toolchain: str) -> str:
    if not _TOOLCHAIN_PATTERN.fullmatch(toolchain):
        raise ConfigurationError(f"`{toolchain}` is not a valid toolchain identifier")
    return toolchain


def default_cache_root(environ: Mapping[str, str]) -> Path:
    override = environ.get(env_vars.PLUGIN_HOST_ENGINE_CACHE)
    if override:
        root = Path(override)
        if not root.is_dir():
            raise ConfigurationError(
                f"{env_vars.PLUGIN_HOST_ENGINE_CACHE} is `{override}`, which is not a directory"
            )
        return root
    home = environ.get("HOME") or str(Path.home())
    return Path(home) / DEFAULT_DIRNAME


class DriverCache:
    """One subdirectory per toolchain, each holding a single driver binary."""

    def __init__(self, root: Path) -> None:
        self.root = root

    @classmethod
    def from_environ(cls, environ: Mapping[str, str]) -> "DriverCache":
        return cls(default_cache_root(environ))

    def ensure_root(self) -> Path:
        if not self.root.is_dir():
            self.root.mkdir(parents=True, exist_ok=True)
            (self.root / "README.txt").write_text(README_TXT, encoding="utf-8")
        return self.root

    def entry_dir(self, toolchain: str) -> Path:
        return self.root / validate_toolchain(toolchain)

    def driver_path(self, toolchain: str) -> Path:
        return self.entry_dir(toolchain) / DRIVER_NAME

    def lookup(self, toolchain: str) -> Optional[Path]:
        path = self.driver_path(toolchain)
        return path if path.is_file() else None

    def install(self, toolchain: str, binary: Path) -> Path:
        mode = binary.stat().st_mode | 0o111
        return atomic_install(binary, self.driver_path(toolchain), mode=mode)
