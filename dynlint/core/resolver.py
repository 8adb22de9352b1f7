from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Set, Tuple

from .errors import AmbiguousSelectionError, EmptySelectionWarning
from .index import NameToolchainMap, build_name_toolchain_map, flatten
from .logging import get_logger
from .sources import BuildableLibrary, Candidate, RemoteSource, expand_spec, spec_from_path

logger = get_logger("resolver")

NOTHING_TO_DO = "Nothing to do. Did you forget `--all`?"


class Selection:
    """``toolchain -> locations``; partitions iterate in sorted order."""

    def __init__(self) -> None:
        self._partitions: Dict[str, Set[Path]] = {}

    def add(self, toolchain: str, location: Path) -> None:
        self._partitions.setdefault(toolchain, set()).add(location)

    def partitions(self) -> Iterator[Tuple[str, List[Path]]]:
        for toolchain in sorted(self._partitions):
            yield toolchain, sorted(self._partitions[toolchain])

    def toolchains(self) -> List[str]:
        return sorted(self._partitions)

    def is_empty(self) -> bool:
        return not self._partitions

    def to_dict(self) -> Dict[str, List[str]]:
        return {toolchain: [str(path) for path in paths] for toolchain, paths in self.partitions()}

    def __repr__(self) -> str:
        return f"Selection({self.to_dict()!r})"


@dataclass
class Resolution:
    selection: Selection = field(default_factory=Selection)
    unbuilt: List[Candidate] = field(default_factory=list)
    entries: List[Candidate] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.entries


def resolve(context) -> Resolution:
    options = context.options
    if options.git_or_path():
        name_map = build_name_toolchain_map(_location_candidates(context))
        if options.libs:
            selected = _select_names(name_map, options.libs, allow_many=options.all)
        else:
            selected = _select_all(name_map)
        empty_message = "No libraries were found at the given location."
    else:
        if not options.all and not options.libs:
            warn_empty(context, NOTHING_TO_DO)
            return Resolution()
        name_map = context.index.get()
        if options.libs:
            selected = _select_names(name_map, options.libs, allow_many=options.all)
            empty_message = "No libraries matched the selection."
        else:
            selected = _select_all(name_map)
            empty_message = "No libraries were found."

    resolution = Resolution()
    seen_sources: Set[Path] = set()
    for candidate in selected:
        if candidate in resolution.entries:
            continue
        resolution.entries.append(candidate)
        library = candidate.library
        if isinstance(library, BuildableLibrary):
            if library.package.root in seen_sources:
                continue
            seen_sources.add(library.package.root)
            resolution.unbuilt.append(candidate)
        else:
            resolution.selection.add(candidate.toolchain, library.location())

    if resolution.is_empty():
        warn_empty(context, empty_message)
    return resolution


def complete(resolution: Resolution, builder) -> Selection:
    """Build every unbuilt candidate and add the result to the selection."""
    selection = resolution.selection
    for candidate in sorted(resolution.unbuilt, key=lambda c: c.library.sort_key()):
        path = candidate.library.resolve(builder)
        selection.add(candidate.toolchain, path)
    return selection


def _location_candidates(context) -> Iterator[Candidate]:
    options = context.options
    patterns = (options.pattern,) if options.pattern else ()
    if options.git is not None:
        specs = [RemoteSource(options.git, options.revision(), patterns)]
    else:
        specs = [spec_from_path(str(context.cwd / path), patterns) for path in options.paths]
    for spec in specs:
        yield from expand_spec(
            spec, checkouts=context.checkouts, libraries_dir=context.libraries_dir
        )


def _select_all(name_map: NameToolchainMap) -> List[Candidate]:
    return [
        Candidate(name, toolchain, library)
        for name, toolchain_map in name_map.items()
        for toolchain, library in flatten(toolchain_map)
    ]


def _select_names(
    name_map: NameToolchainMap, names: List[str], *, allow_many: bool
) -> List[Candidate]:
    selected: List[Candidate] = []
    for name in names:
        matches = flatten(name_map.get(name, {}))
        if not matches:
            logger.info("No library named `%s` was found", name)
            continue
        if len(matches) > 1 and not allow_many:
            raise AmbiguousSelectionError(
                name,
                [(toolchain, str(library.location())) for toolchain, library in matches],
            )
        selected.extend(Candidate(name, toolchain, library) for toolchain, library in matches)
    return selected


def warn_empty(context, message: str) -> None:
    logger.debug(message)
    if not context.options.quiet:
        warnings.warn(message, EmptySelectionWarning, stacklevel=3)
