from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .config import MANIFEST_FILENAME, load_config_file
from .errors import ConfigurationError
from .filename import library_filename

TOOLCHAIN_FILES = ("rust-toolchain.toml", "rust-toolchain")


@dataclass(frozen=True, order=True)
class SourcePackage:
    root: Path
    name: str
    toolchain: str
    target_dir: Path

    def output_dir(self) -> Path:
        return self.target_dir / "release"

    def library_path(self) -> Path:
        return self.output_dir() / library_filename(self.name, self.toolchain)


def is_package_root(path: Path) -> bool:
    return (path / MANIFEST_FILENAME).is_file()


def read_package(root: Path, libraries_dir: Path) -> SourcePackage:
    root = root.resolve()
    manifest = load_config_file(root / MANIFEST_FILENAME)
    if not isinstance(manifest, dict) or not isinstance(manifest.get("package"), dict):
        raise ConfigurationError(f"`{root / MANIFEST_FILENAME}` does not describe a package")
    name = library_name(manifest, root)
    toolchain = package_toolchain(root)
    return SourcePackage(
        root=root,
        name=name,
        toolchain=toolchain,
        target_dir=libraries_dir / toolchain,
    )


def library_name(manifest: Dict[str, Any], root: Path) -> str:
    lib = manifest.get("lib") or {}
    crate_types = lib.get("crate-type")
    if crate_types is not None and "cdylib" not in crate_types:
        raise ConfigurationError(f"Could not find `cdylib` target for package at `{root}`")
    name = lib.get("name") or manifest["package"].get("name")
    if not name:
        raise ConfigurationError(f"Package at `{root}` has no name")
    return str(name).replace("-", "_")


def package_toolchain(root: Path) -> str:
    toolchain = _read_toolchain_file(root)
    if not toolchain:
        raise ConfigurationError(
            f"Could not determine the toolchain of `{root}`",
            hints=[f"Add a {TOOLCHAIN_FILES[0]} with a `[toolchain] channel`."],
        )
    return toolchain


def _read_toolchain_file(root: Path) -> Optional[str]:
    toml_path = root / TOOLCHAIN_FILES[0]
    if toml_path.is_file():
        return _channel(load_config_file(toml_path))
    plain_path = root / TOOLCHAIN_FILES[1]
    if plain_path.is_file():
        text = plain_path.read_text(encoding="utf-8").strip()
        if text.startswith("["):
            # legacy file name, toml contents
            try:
                import tomllib
            except ImportError:  # pragma: no cover - python <3.11
                import tomli as tomllib  # type: ignore
            try:
                return _channel(tomllib.loads(text))
            except ValueError as exc:
                raise ConfigurationError(f"Could not parse `{plain_path}`") from exc
        return text or None
    return None


def _channel(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    toolchain = data.get("toolchain")
    if not isinstance(toolchain, dict):
        return None
    channel = toolchain.get("channel")
    return str(channel) if channel else None
