from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

from .core.context import Context
from .core.dispatcher import DispatchReport, dispatch
from .core.external import CommandRunner
from .core.listing import list_libraries as _list_libraries
from .core.listing import list_resolution
from .core.options import Options
from .core.resolver import Selection, complete, resolve, warn_empty
from .core.sources import NamePattern


@dataclass(frozen=True)
class CheckResult:
    selection: Selection
    report: Optional[DispatchReport]


def check(
    options: Options,
    *,
    context: Optional[Context] = None,
    environ: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
    runner: Optional[CommandRunner] = None,
) -> CheckResult:
    ctx = context or Context(options, environ=environ, cwd=cwd, runner=runner)
    resolution = resolve(ctx)
    selection = complete(resolution, ctx.builder)
    if selection.is_empty():
        return CheckResult(selection=selection, report=None)
    drivers = {toolchain: ctx.drivers.get(toolchain) for toolchain in selection.toolchains()}
    report = dispatch(ctx, selection, drivers)
    return CheckResult(selection=selection, report=report)


def list_libraries(
    options: Options,
    *,
    context: Optional[Context] = None,
    environ: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
    runner: Optional[CommandRunner] = None,
) -> List[str]:
    ctx = context or Context(options, environ=environ, cwd=cwd, runner=runner)
    if not ctx.options.has_criteria():
        name_map = ctx.index.get()
        if not name_map:
            warn_empty(ctx, "No libraries were found.")
            return []
        pattern = NamePattern(ctx.options.pattern) if ctx.options.pattern else None
        return _list_libraries(name_map, ctx.cwd, pattern)
    return list_resolution(resolve(ctx), ctx.cwd)


def provision(
    toolchains: Iterable[str],
    *,
    environ: Optional[Mapping[str, str]] = None,
    runner: Optional[CommandRunner] = None,
) -> Dict[str, Path]:
    ctx = Context(Options(), environ=environ, runner=runner)
    return ctx.drivers.provision(toolchains)
