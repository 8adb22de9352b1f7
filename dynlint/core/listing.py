from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from .index import NameToolchainMap
from .resolver import Resolution
from .sources import NamePattern

UNBUILT = "<unbuilt>"


def display_location(path: Path, cwd: Path) -> str:
    if not path.exists():
        return UNBUILT
    parent = path.resolve().parent
    try:
        return str(parent.relative_to(cwd))
    except ValueError:
        return str(parent)


def list_libraries(
    name_map: NameToolchainMap, cwd: Path, pattern: Optional[NamePattern] = None
) -> List[str]:
    rows = [
        (name, toolchain, display_location(library.location(), cwd))
        for name, toolchain_map in name_map.items()
        if pattern is None or pattern.matches(name)
        for toolchain, libraries in toolchain_map.items()
        for library in libraries
    ]
    if not rows:
        return []
    name_width = max(len(name) for name, _, _ in rows)
    toolchain_width = max(len(toolchain) for _, toolchain, _ in rows)
    return [
        f"{name:<{name_width}}  {toolchain:<{toolchain_width}}  {location}"
        for name, toolchain, location in rows
    ]


def list_resolution(resolution: Resolution, cwd: Path) -> List[str]:
    by_toolchain = {}
    for candidate in resolution.entries:
        by_toolchain.setdefault(candidate.toolchain, []).append(candidate)
    lines: List[str] = []
    for toolchain in sorted(by_toolchain):
        entries = sorted(by_toolchain[toolchain], key=lambda c: (c.name, c.library.sort_key()))
        for candidate in entries:
            line = candidate.name
            if len(by_toolchain) >= 2:
                line += f"@{toolchain}"
            if len(entries) >= 2:
                line += f" ({display_location(candidate.library.location(), cwd)})"
            lines.append(line)
    return lines
