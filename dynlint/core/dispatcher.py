from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping

from . import env as env_vars
from .errors import ExecutionError
from .logging import get_logger

logger = get_logger("dispatcher")


@dataclass(frozen=True)
class PartitionOutcome:
    toolchain: str
    returncode: int
    locations: List[Path]

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass
class DispatchReport:
    outcomes: List[PartitionOutcome] = field(default_factory=list)

    def failed(self) -> List[str]:
        return [outcome.toolchain for outcome in self.outcomes if not outcome.ok]


def check_command(context, toolchain: str) -> List[str]:
    options = context.options
    cmd = [
        env_vars.CARGO,
        "fix" if options.fix else "check",
        "--target-dir",
        str(context.check_target_dir(toolchain)),
    ]
    if options.manifest_path:
        cmd.extend(["--manifest-path", options.manifest_path])
    for package in options.packages:
        cmd.extend(["-p", package])
    if options.workspace:
        cmd.append("--workspace")
    cmd.extend(options.args)
    return cmd


def partition_env(
    context, toolchain: str, locations: List[Path], driver: Path
) -> Dict[str, str]:
    return env_vars.sanitized(
        context.environ,
        **{
            env_vars.DYNLINT_LIBS: json.dumps([str(path) for path in locations]),
            env_vars.DYNLINT_NO_DEPS: "1" if context.options.no_deps else "0",
            env_vars.RUSTC_WORKSPACE_WRAPPER: str(driver),
            env_vars.RUSTUP_TOOLCHAIN: toolchain,
        },
    )


def dispatch(context, selection, drivers: Mapping[str, Path]) -> DispatchReport:
    """Run one check per toolchain partition, in sorted toolchain order."""
    report = DispatchReport()
    keep_going = context.options.keep_going
    for toolchain, locations in selection.partitions():
        driver = drivers[toolchain]
        logger.info("Checking with toolchain `%s` (%d libraries)", toolchain, len(locations))
        result = context.runner.run(
            check_command(context, toolchain),
            cwd=context.project_root,
            env=partition_env(context, toolchain, locations, driver),
            name=f"check with toolchain `{toolchain}`",
            capture=False,
        )
        outcome = PartitionOutcome(toolchain, result.returncode, locations)
        report.outcomes.append(outcome)
        context.events.record(
            {
                "event": "dispatch.partition",
                "toolchain": toolchain,
                "returncode": result.returncode,
                "libraries": [str(path) for path in locations],
            }
        )
        if not outcome.ok and not keep_going:
            raise ExecutionError(
                f"Compilation failed with toolchain `{toolchain}`", toolchains=[toolchain]
            )

    failed = report.failed()
    if failed:
        raise ExecutionError(
            "Compilation failed with the following toolchains: "
            + ", ".join(f"`{toolchain}`" for toolchain in failed),
            toolchains=failed,
        )
    return report
