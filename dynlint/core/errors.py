from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Tuple


@dataclass
class Diagnostic:
    code: str
    message: str
    severity: str = "ERROR"
    location: Optional[str] = None
    hints: List[str] = field(default_factory=list)
    data: Optional[dict] = None

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "location": self.location,
            "hints": self.hints,
            "data": self.data,
        }


class DynlintError(Exception):
    code = "E-DYNLINT"

    def __init__(
        self,
        message: str,
        *,
        location: Optional[str] = None,
        hints: Optional[List[str]] = None,
        data: Optional[dict] = None,
    ) -> None:
        super().__init__(message)
        self.diagnostic = Diagnostic(
            code=self.code,
            message=message,
            location=location,
            hints=list(hints or []),
            data=data,
        )


class ConfigurationError(DynlintError):
    code = "E-CONFIG"


class DiscoveryError(ConfigurationError):
    code = "E-DISCOVERY"


class AmbiguousSelectionError(DynlintError):
    code = "E-AMBIGUOUS"

    def __init__(self, name: str, candidates: Sequence[Tuple[str, str]]) -> None:
        listed = "".join(f"\n    {toolchain}  {location}" for toolchain, location in candidates)
        super().__init__(
            f"Found multiple libraries matching `{name}`:{listed}",
            hints=["Use `--path` to pick one location, or `--all` to select every match."],
            data={"name": name, "candidates": [list(item) for item in candidates]},
        )
        self.name = name
        self.candidates = list(candidates)


class BuildError(DynlintError):
    code = "E-BUILD"

    def __init__(self, message: str, *, output: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.output = output


class DriverUnavailableError(BuildError):
    code = "E-DRIVER"

    def __init__(self, toolchain: str, message: str, *, output: str = "") -> None:
        super().__init__(message, output=output, data={"toolchain": toolchain})
        self.toolchain = toolchain


class ExecutionError(DynlintError):
    code = "E-EXEC"

    def __init__(self, message: str, *, toolchains: Iterable[str]) -> None:
        toolchains = list(toolchains)
        super().__init__(message, data={"toolchains": toolchains})
        self.toolchains = toolchains


class DynlintWarning(UserWarning):
    """Base class of warnings shown to the user but never affecting the exit code."""


class EmptySelectionWarning(DynlintWarning):
    """Nothing was selected; the run still succeeds."""


class Diagnostics:
    def __init__(self) -> None:
        self.items: List[Diagnostic] = []

    def add(self, diagnostic: Diagnostic) -> None:
        self.items.append(diagnostic)

    def extend(self, diagnostics: Iterable[Diagnostic] | "Diagnostics") -> None:
        if isinstance(diagnostics, Diagnostics):
            self.items.extend(diagnostics.items)
        else:
            self.items.extend(diagnostics)

    def has_errors(self) -> bool:
        return any(d.severity == "ERROR" for d in self.items)

    def raise_for_errors(self) -> None:
        if self.has_errors():
            first = next(d for d in self.items if d.severity == "ERROR")
            message = first.message
            if first.location:
                message = f"{first.location}: {message}"
            raise ConfigurationError(message, location=first.location, data=first.data)

    def to_list(self) -> List[dict]:
        return [d.to_dict() for d in self.items]


def format_error_chain(exc: BaseException) -> str:
    parts = [str(exc)]
    cause = exc.__cause__
    while cause is not None:
        text = str(cause)
        if text and text not in parts:
            parts.append(text)
        cause = cause.__cause__
    return ": ".join(parts)
