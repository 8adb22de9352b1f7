"""Builds and caches the toolchain-matched analysis driver."""

from __future__ import annotations

import os
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from . import env as env_vars
from .cache import DriverCache, validate_toolchain
from .errors import DriverUnavailableError
from .external import CommandRunner
from .fsutil import directory_lock
from .logging import NullEventLogger, get_logger
from .version import __version__

logger = get_logger("driver")

DRIVER_CRATE = "dynlint_driver"


def cargo_toml(toolchain: str, driver_spec: str) -> str:
    return f"""
[package]
name = "{_package_name(toolchain)}"
version = "0.1.0"
edition = "2021"

[dependencies]
anyhow = "1.0"
env_logger = "0.11"
{DRIVER_CRATE} = {{ {driver_spec} }}
"""


def rust_toolchain(toolchain: str) -> str:
    return f"""
[toolchain]
channel = "{toolchain}"
components = ["llvm-tools-preview", "rustc-dev"]
"""


MAIN_RS = """
use anyhow::Result;
use std::env;
use std::ffi::OsString;

pub fn main() -> Result<()> {
    env_logger::init();

    let args: Vec<_> = env::args().map(OsString::from).collect();

    dynlint_driver::dynlint_driver(&args)
}
"""


def _package_name(toolchain: str) -> str:
    return f"dynlint_driver-{toolchain}"


class HostEngineBuilder:
    def __init__(
        self,
        cache: DriverCache,
        runner: CommandRunner,
        environ: Mapping[str, str],
        *,
        driver_spec: Optional[str] = None,
        events: Any = None,
    ) -> None:
        self.cache = cache
        self.runner = runner
        self.environ = environ
        self.driver_spec = driver_spec or f'version = "={__version__}"'
        self.events = events or NullEventLogger()
        self._resolved: Dict[str, Path] = {}
        self._mutex = threading.Lock()

    def get(self, toolchain: str) -> Path:
        validate_toolchain(toolchain)
        with self._mutex:
            if toolchain in self._resolved:
                return self._resolved[toolchain]

        driver = self.cache.lookup(toolchain)
        if driver is not None:
            logger.debug("Driver cache hit for %s: %s", toolchain, driver)
            self.events.record({"event": "driver.cache_hit", "toolchain": toolchain})
        else:
            try:
                driver = self._lookup_or_build(toolchain)
            except OSError as exc:
                raise DriverUnavailableError(
                    toolchain, f"Could not install driver for toolchain `{toolchain}`"
                ) from exc

        with self._mutex:
            return self._resolved.setdefault(toolchain, driver)

    def provision(self, toolchains: Iterable[str]) -> Dict[str, Path]:
        """Build drivers for several toolchains at once, one worker per toolchain."""
        ordered: List[str] = sorted(set(toolchains))
        for toolchain in ordered:
            validate_toolchain(toolchain)
        if not ordered:
            return {}
        with ThreadPoolExecutor(max_workers=len(ordered)) as pool:
            futures = [(toolchain, pool.submit(self.get, toolchain)) for toolchain in ordered]
        drivers: Dict[str, Path] = {}
        first_error: Optional[BaseException] = None
        for toolchain, future in futures:
            error = future.exception()
            if error is not None:
                if first_error is None:
                    first_error = error
                continue
            drivers[toolchain] = future.result()
        if first_error is not None:
            raise first_error
        return drivers

    def _lookup_or_build(self, toolchain: str) -> Path:
        self.cache.ensure_root()
        with directory_lock(self.cache.entry_dir(toolchain)):
            driver = self.cache.lookup(toolchain)
            if driver is None:
                driver = self._build(toolchain)
        return driver

    def _build(self, toolchain: str) -> Path:
        logger.info("Building driver for toolchain `%s`", toolchain)
        self.events.record({"event": "driver.build", "toolchain": toolchain})
        with tempfile.TemporaryDirectory(prefix="dynlint-driver-") as tempdir:
            package = Path(tempdir)
            (package / "Cargo.toml").write_text(
                cargo_toml(toolchain, self.driver_spec), encoding="utf-8"
            )
            (package / "rust-toolchain").write_text(rust_toolchain(toolchain), encoding="utf-8")
            src = package / "src"
            src.mkdir()
            (src / "main.rs").write_text(MAIN_RS, encoding="utf-8")

            env = env_vars.sanitized(
                self.environ,
                **{
                    env_vars.RUSTFLAGS: "-C rpath=yes",
                    env_vars.RUSTUP_TOOLCHAIN: toolchain,
                },
            )
            env.pop(env_vars.CARGO_TARGET_DIR, None)
            result = self.runner.run(
                [env_vars.CARGO, "build"],
                cwd=package,
                env=env,
                name=f"driver build for {toolchain}",
                merge_stderr=True,
            )
            if not result.ok:
                raise DriverUnavailableError(
                    toolchain,
                    f"Could not build driver for toolchain `{toolchain}`",
                    output=result.output,
                )

            binary = package / "target" / "debug" / _package_name(toolchain)
            if os.name == "nt":
                binary = binary.with_name(binary.name + ".exe")
            if not binary.is_file():
                raise DriverUnavailableError(
                    toolchain,
                    f"Could not find `{binary.name}` despite successful build",
                    output=result.output,
                )
            return self.cache.install(toolchain, binary)
