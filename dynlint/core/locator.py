from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Mapping, NamedTuple

from . import env as env_vars
from .errors import ConfigurationError, DiscoveryError
from .filename import parse_filename
from .logging import get_logger

logger = get_logger("locator")


class DiscoveredArtifact(NamedTuple):
    name: str
    toolchain: str
    location: Path


@dataclass(frozen=True)
class SearchRoot:
    path: Path
    required: bool = False


def library_path_roots(environ: Mapping[str, str]) -> List[SearchRoot]:
    value = environ.get(env_vars.PLUGIN_LIBRARY_PATH)
    if not value:
        return []
    roots: List[SearchRoot] = []
    for entry in value.split(os.pathsep):
        if not entry:
            continue
        path = Path(entry)
        if not path.is_absolute():
            raise ConfigurationError(
                f"{env_vars.PLUGIN_LIBRARY_PATH} contains `{entry}`, which is not absolute"
            )
        if not path.is_dir():
            raise ConfigurationError(
                f"{env_vars.PLUGIN_LIBRARY_PATH} contains `{entry}`, which is not a directory"
            )
        roots.append(SearchRoot(path, required=True))
    return roots


def locate(roots: Iterable[SearchRoot]) -> Iterator[DiscoveredArtifact]:
    for root in roots:
        if not root.path.is_dir():
            if root.required:
                raise DiscoveryError(f"Library directory `{root.path}` does not exist")
            logger.debug("Skipping missing search root %s", root.path)
            continue
        yield from _scan(root.path)


def _scan(directory: Path) -> Iterator[DiscoveredArtifact]:
    try:
        entries = list(os.scandir(directory))
    except OSError as exc:
        raise DiscoveryError(f"Could not read directory `{directory}`") from exc
    for entry in entries:
        parsed = parse_filename(entry.name)
        if parsed is None:
            continue
        if entry.is_dir():
            continue
        name, toolchain = parsed
        yield DiscoveredArtifact(name, toolchain, Path(entry.path))
