"""Artifact specs and the candidates they expand to."""

from __future__ import annotations

import glob
import os
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterator, List, NamedTuple, Optional, Sequence, Tuple, Union

from .config import LibraryDecl
from .errors import ConfigurationError
from .fetch import GitCheckouts, Revision
from .filename import REQUIRED_FORM, parse_path_filename
from .locator import SearchRoot, locate
from .logging import get_logger
from .package import SourcePackage, is_package_root, read_package

logger = get_logger("sources")


@dataclass(frozen=True)
class Prebuilt:
    path: Path


@dataclass(frozen=True)
class LocalSource:
    dir: Path
    patterns: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RemoteSource:
    location: str
    revision: Revision = field(default_factory=Revision)
    patterns: Tuple[str, ...] = ()


@dataclass(frozen=True)
class NamePattern:
    pattern: str

    def matches(self, name: str) -> bool:
        return fnmatchcase(name, self.pattern)


ArtifactSpec = Union[Prebuilt, LocalSource, RemoteSource, NamePattern]


@dataclass(frozen=True)
class PrebuiltLibrary:
    path: Path

    def location(self) -> Path:
        return self.path

    def resolve(self, builder) -> Path:
        return self.path

    def sort_key(self) -> Tuple[str, str]:
        return ("prebuilt", str(self.path))


@dataclass(frozen=True)
class BuildableLibrary:
    package: SourcePackage

    def location(self) -> Path:
        return self.package.library_path()

    def resolve(self, builder) -> Path:
        return builder.build(self.package)

    def sort_key(self) -> Tuple[str, str]:
        return ("source", str(self.package.root))


MaybeLibrary = Union[PrebuiltLibrary, BuildableLibrary]


class Candidate(NamedTuple):
    name: str
    toolchain: str
    library: MaybeLibrary


def spec_from_declaration(decl: LibraryDecl, project_root: Path) -> ArtifactSpec:
    patterns = tuple(decl.patterns())
    if decl.git is not None:
        revision = Revision.from_refs(decl.branch, decl.tag, decl.rev)
        return RemoteSource(decl.git, revision, patterns)
    path = Path(decl.path or "")
    if not path.is_absolute():
        path = project_root / path
    return LocalSource(path, patterns)


def spec_from_path(value: str, patterns: Sequence[str] = ()) -> ArtifactSpec:
    path = Path(value)
    if path.is_file():
        return Prebuilt(path)
    if path.exists() or glob.has_magic(value):
        return LocalSource(path, tuple(patterns))
    raise ConfigurationError(f"Could not find `--path {value}`")


def expand_spec(
    spec: ArtifactSpec,
    *,
    checkouts: Optional[GitCheckouts],
    libraries_dir: Path,
) -> Iterator[Candidate]:
    if isinstance(spec, Prebuilt):
        yield _prebuilt_candidate(spec.path)
    elif isinstance(spec, LocalSource):
        yield from _expand_local(spec.dir, spec.patterns, libraries_dir)
    elif isinstance(spec, RemoteSource):
        if checkouts is None:
            raise ConfigurationError(f"Cannot fetch `{spec.location}` without a checkout cache")
        root = checkouts.checkout(spec.location, spec.revision)
        yield from _expand_local(root, spec.patterns, libraries_dir)
    elif isinstance(spec, NamePattern):
        raise ConfigurationError(f"`{spec.pattern}` is a name pattern, not a library location")
    else:
        raise TypeError(f"Unknown artifact spec: {spec!r}")


def _prebuilt_candidate(path: Path) -> Candidate:
    path = path.resolve()
    parsed = parse_path_filename(path)
    if parsed is None:
        raise ConfigurationError(
            f"`{path}` is a file, but its name does not have the required form: {REQUIRED_FORM}"
        )
    name, toolchain = parsed
    return Candidate(name, toolchain, PrebuiltLibrary(path))


def _expand_local(
    root: Path, patterns: Sequence[str], libraries_dir: Path
) -> Iterator[Candidate]:
    if patterns:
        for path in _match_patterns(root, patterns):
            if not path.is_dir():
                continue
            if not is_package_root(path):
                logger.warning("Skipping `%s`, which does not contain a package", path)
                continue
            yield _buildable_candidate(path, libraries_dir)
        return

    expanded = glob.has_magic(str(root))
    for path in _match_root(root):
        if is_package_root(path):
            yield _buildable_candidate(path, libraries_dir)
        elif path.is_dir():
            for artifact in locate([SearchRoot(path, required=True)]):
                yield Candidate(
                    artifact.name, artifact.toolchain, PrebuiltLibrary(artifact.location.resolve())
                )
        elif expanded and parse_path_filename(path) is None:
            logger.warning("Skipping `%s`, which is neither a package nor a library", path)
        else:
            yield _prebuilt_candidate(path)


def _buildable_candidate(path: Path, libraries_dir: Path) -> Candidate:
    package = read_package(path, libraries_dir)
    return Candidate(package.name, package.toolchain, BuildableLibrary(package))


def _match_root(root: Path) -> List[Path]:
    text = str(root)
    if not glob.has_magic(text):
        if not root.exists():
            raise ConfigurationError(f"No library packages found in `{root}`")
        return [root]
    matches = sorted(Path(match) for match in glob.glob(text))
    if not matches:
        raise ConfigurationError(f"No library packages found in `{root}`")
    return matches


def _match_patterns(root: Path, patterns: Sequence[str]) -> List[Path]:
    base = Path(os.path.normpath(os.path.abspath(root)))
    paths: List[Path] = []
    for pattern in patterns:
        matches = sorted(glob.glob(str(base / pattern)))
        if not matches:
            raise ConfigurationError(f"No paths matched `{pattern}`")
        for match in matches:
            path = Path(os.path.normpath(match))
            if path != base and base not in path.parents:
                raise ConfigurationError(
                    f"Pattern `{pattern}` could refer to `{path}`, which is outside of `{base}`"
                )
            paths.append(path)
    return paths
