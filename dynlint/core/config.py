from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import jsonschema
from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from .errors import ConfigurationError, Diagnostic, Diagnostics

MANIFEST_FILENAME = "Cargo.toml"
CONFIG_FILENAMES = ("dynlint.toml", "dynlint.yaml", "dynlint.yml")
METADATA_PATH = ("workspace", "metadata", "dynlint")

LIBRARIES_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "libraries": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "path": {"type": "string"},
                    "git": {"type": "string"},
                    "branch": {"type": "string"},
                    "tag": {"type": "string"},
                    "rev": {"type": "string"},
                    "pattern": {
                        "oneOf": [
                            {"type": "string"},
                            {"type": "array", "items": {"type": "string"}},
                        ]
                    },
                },
            },
        }
    },
}


class LibraryDecl(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: Optional[str] = None
    git: Optional[str] = None
    branch: Optional[str] = None
    tag: Optional[str] = None
    rev: Optional[str] = None
    pattern: Optional[Union[str, List[str]]] = None

    @model_validator(mode="after")
    def _check_source(self) -> "LibraryDecl":
        if (self.path is None) == (self.git is None):
            raise ValueError("exactly one of `path` or `git` is required")
        refs = [ref for ref in (self.branch, self.tag, self.rev) if ref is not None]
        if len(refs) > 1:
            raise ValueError("at most one of `branch`, `tag`, or `rev` may be given")
        if refs and self.git is None:
            raise ValueError("`branch`, `tag`, and `rev` require `git`")
        return self

    def patterns(self) -> List[str]:
        if self.pattern is None:
            return []
        if isinstance(self.pattern, str):
            return [self.pattern]
        return list(self.pattern)


def load_declared_libraries(project_root: Path) -> Tuple[Optional[Path], List[LibraryDecl]]:
    """Return the config file declaring libraries (if any) and its parsed entries."""
    found: List[Tuple[Path, Dict[str, Any]]] = []
    candidates = [project_root / MANIFEST_FILENAME] + [
        project_root / name for name in CONFIG_FILENAMES
    ]
    for path in candidates:
        if not path.is_file():
            continue
        section = _metadata_section(load_config_file(path), path)
        if section is not None and "libraries" in section:
            found.append((path, section))

    if not found:
        return None, []
    if len(found) > 1:
        names = " and ".join(path.name for path, _ in found)
        raise ConfigurationError(
            f"`{'.'.join(METADATA_PATH)}.libraries` cannot appear in both {names}"
        )

    path, section = found[0]
    diagnostics = validate_libraries_section(section, path)
    diagnostics.raise_for_errors()
    libraries: List[LibraryDecl] = []
    for index, entry in enumerate(section["libraries"]):
        try:
            libraries.append(LibraryDecl.model_validate(entry))
        except ValidationError as exc:
            raise ConfigurationError(
                f"{path.name}: invalid library entry #{index}: {_first_error(exc)}",
                location=f"{path}:libraries/{index}",
            ) from exc
    return path, libraries


def validate_libraries_section(section: Dict[str, Any], path: Path) -> Diagnostics:
    diagnostics = Diagnostics()
    for key in sorted(section):
        if key != "libraries":
            diagnostics.add(
                Diagnostic(code="E-CONFIG-KEY", message=f"Unknown key `{key}`", location=path.name)
            )
    validator = jsonschema.Draft202012Validator(LIBRARIES_SCHEMA)
    for error in sorted(validator.iter_errors(section), key=str):
        diagnostics.add(
            Diagnostic(
                code="E-CONFIG-SCHEMA",
                message=error.message,
                location=f"{path.name}:" + "/".join(str(x) for x in error.path),
            )
        )
    return diagnostics


def _metadata_section(data: Any, path: Path) -> Optional[Dict[str, Any]]:
    cursor = data
    for key in METADATA_PATH:
        if not isinstance(cursor, dict) or key not in cursor:
            return None
        cursor = cursor[key]
    if not isinstance(cursor, dict):
        raise ConfigurationError(f"{path.name}: `dynlint` value must be a table")
    return cursor


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "")
    return f"{location}: {message}" if location else message


def load_config_file(path: Path) -> Any:
    try:
        return _load_data(path)
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Could not parse `{path}`") from exc


def _load_data(path: Path) -> Any:
    if path.suffix in {".yaml", ".yml"}:
        import yaml  # type: ignore

        with path.open("r", encoding="utf-8") as handle:
            try:
                return yaml.safe_load(handle)
            except yaml.YAMLError as exc:
                raise ValueError(str(exc)) from exc
    if path.suffix == ".toml":
        try:
            import tomllib
        except ImportError:  # pragma: no cover - python <3.11
            import tomli as tomllib  # type: ignore

        with path.open("rb") as handle:
            return tomllib.load(handle)
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)
