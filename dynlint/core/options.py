from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .errors import ConfigurationError
from .fetch import Revision


@dataclass
class Options:
    all: bool = False
    libs: List[str] = field(default_factory=list)
    paths: List[str] = field(default_factory=list)
    git: Optional[str] = None
    branch: Optional[str] = None
    tag: Optional[str] = None
    rev: Optional[str] = None
    pattern: Optional[str] = None
    fix: bool = False
    keep_going: bool = False
    no_build: bool = False
    no_deps: bool = False
    no_metadata: bool = False
    quiet: bool = False
    manifest_path: Optional[str] = None
    packages: List[str] = field(default_factory=list)
    workspace: bool = False
    args: List[str] = field(default_factory=list)

    def git_or_path(self) -> bool:
        return self.git is not None or bool(self.paths)

    def has_criteria(self) -> bool:
        return self.all or bool(self.libs) or self.git_or_path()

    def revision(self) -> Revision:
        return Revision.from_refs(self.branch, self.tag, self.rev)

    def validate(self) -> "Options":
        if (self.branch or self.tag or self.rev) and self.git is None:
            raise ConfigurationError(
                "`--branch`, `--tag`, and `--rev` can be used only with `--git`"
            )
        self.revision()
        if self.git is not None and self.paths:
            raise ConfigurationError("`--git` and `--path` cannot be used together")
        for name in self.libs:
            if not name or "/" in name or "\\" in name:
                raise ConfigurationError(f"`{name}` is not a valid library name")
        return self
