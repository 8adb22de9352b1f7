"""Environment variable names and external tool commands."""

from __future__ import annotations

from typing import Dict, Mapping

PLUGIN_LIBRARY_PATH = "PLUGIN_LIBRARY_PATH"
PLUGIN_HOST_ENGINE_CACHE = "PLUGIN_HOST_ENGINE_CACHE"
DYNLINT_EVENT_LOG = "DYNLINT_EVENT_LOG"

# Channels read by the driver.
DYNLINT_LIBS = "DYNLINT_LIBS"
DYNLINT_NO_DEPS = "DYNLINT_NO_DEPS"

CARGO = "cargo"
GIT = "git"
CARGO_TARGET_DIR = "CARGO_TARGET_DIR"
RUSTFLAGS = "RUSTFLAGS"
RUSTUP_TOOLCHAIN = "RUSTUP_TOOLCHAIN"
RUSTC_WORKSPACE_WRAPPER = "RUSTC_WORKSPACE_WRAPPER"

# Set by an outer cargo/rustup and would leak into nested invocations.
_INHERITED_TOOL_VARS = (
    "CARGO",
    "CARGO_MANIFEST_DIR",
    "CARGO_PKG_NAME",
    "CARGO_PRIMARY_PACKAGE",
    "RUSTC",
    "RUSTC_WRAPPER",
    "RUSTUP_TOOLCHAIN",
    "RUSTC_WORKSPACE_WRAPPER",
)


def sanitized(env: Mapping[str, str], **overrides: str) -> Dict[str, str]:
    clean = {key: value for key, value in env.items() if key not in _INHERITED_TOOL_VARS}
    clean.update(overrides)
    return clean
