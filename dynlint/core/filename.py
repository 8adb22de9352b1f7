from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional, Tuple


def _platform_affixes(platform: str) -> Tuple[str, str]:
    if platform.startswith("win") or platform == "cygwin":
        return "", ".dll"
    if platform == "darwin":
        return "lib", ".dylib"
    return "lib", ".so"


DLL_PREFIX, DLL_SUFFIX = _platform_affixes(sys.platform)

REQUIRED_FORM = f'"{DLL_PREFIX}" LIBRARY_NAME "@" TOOLCHAIN "{DLL_SUFFIX}"'


def is_native_lib(value: str | Path) -> bool:
    name = Path(value).name
    return name.startswith(DLL_PREFIX) and name.endswith(DLL_SUFFIX)


def plain_library_filename(name: str) -> str:
    """File name the build tool gives a library before it is tagged with a toolchain."""
    return f"{DLL_PREFIX}{name}{DLL_SUFFIX}"


def library_filename(name: str, toolchain: str) -> str:
    escaped = name.replace("@", "\\@")
    return f"{DLL_PREFIX}{escaped}@{toolchain}{DLL_SUFFIX}"


def parse_filename(filename: str) -> Optional[Tuple[str, str]]:
    if not filename.endswith(DLL_SUFFIX) or not filename.startswith(DLL_PREFIX):
        return None
    target = filename[len(DLL_PREFIX) : len(filename) - len(DLL_SUFFIX)]
    return _split_target_name(target)


def parse_path_filename(path: Path) -> Optional[Tuple[str, str]]:
    return parse_filename(path.name)


def _split_target_name(target: str) -> Optional[Tuple[str, str]]:
    index = 0
    while True:
        index = target.find("@", index)
        if index < 0:
            return None
        if index > 0 and target[index - 1] == "\\":
            index += 1
            continue
        break
    name = target[:index].replace("\\@", "@")
    toolchain = target[index + 1 :]
    if not name or not toolchain:
        return None
    return name, toolchain
