from __future__ import annotations

import threading
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .locator import library_path_roots, locate
from .logging import get_logger
from .sources import Candidate, MaybeLibrary, PrebuiltLibrary, expand_spec

logger = get_logger("index")

ToolchainMap = Dict[str, Tuple[MaybeLibrary, ...]]
NameToolchainMap = Dict[str, ToolchainMap]


def build_name_toolchain_map(candidates: Iterable[Candidate]) -> NameToolchainMap:
    """Fold candidates into ``name -> toolchain -> libraries``, both axes sorted."""
    folded: Dict[str, Dict[str, Set[MaybeLibrary]]] = {}
    for name, toolchain, library in candidates:
        folded.setdefault(name, {}).setdefault(toolchain, set()).add(library)
    return {
        name: {
            toolchain: tuple(sorted(folded[name][toolchain], key=lambda lib: lib.sort_key()))
            for toolchain in sorted(folded[name])
        }
        for name in sorted(folded)
    }


def flatten(toolchain_map: ToolchainMap) -> List[Tuple[str, MaybeLibrary]]:
    return [
        (toolchain, library)
        for toolchain, libraries in toolchain_map.items()
        for library in libraries
    ]


class NameToolchainIndex:
    """Lazily built, memoized index of every library known to one invocation.

    Changes on disk after the first query are not observed.
    """

    def __init__(self, context) -> None:
        self._context = context
        self._map: Optional[NameToolchainMap] = None
        self._lock = threading.Lock()

    def get(self) -> NameToolchainMap:
        with self._lock:
            if self._map is None:
                self._map = build_name_toolchain_map(self._candidates())
                logger.debug("Indexed %d library names", len(self._map))
            return self._map

    def lookup(self, name: str) -> ToolchainMap:
        return self.get().get(name, {})

    def is_empty(self) -> bool:
        return not self.get()

    def _candidates(self) -> Iterator[Candidate]:
        context = self._context
        if not context.options.no_metadata:
            for spec in context.declared_specs():
                yield from expand_spec(
                    spec,
                    checkouts=context.checkouts,
                    libraries_dir=context.libraries_dir,
                )
        for artifact in locate(library_path_roots(context.environ)):
            library = PrebuiltLibrary(artifact.location.resolve())
            yield Candidate(artifact.name, artifact.toolchain, library)
