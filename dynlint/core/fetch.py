"""Git checkouts of remote library sources, cached by resolved commit."""

from __future__ import annotations

import hashlib
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from . import env as env_vars
from .errors import BuildError, ConfigurationError
from .external import CommandRunner
from .fsutil import atomic_move_dir, directory_lock
from .logging import get_logger

logger = get_logger("fetch")

COMMIT_PATTERN = re.compile(r"^[0-9a-f]{40}$")
_SLUG_PATTERN = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass(frozen=True, order=True)
class Revision:
    kind: Optional[str] = None
    value: Optional[str] = None

    @classmethod
    def from_refs(
        cls, branch: Optional[str] = None, tag: Optional[str] = None, rev: Optional[str] = None
    ) -> "Revision":
        given = [
            (kind, value)
            for kind, value in (("branch", branch), ("tag", tag), ("rev", rev))
            if value
        ]
        if len(given) > 1:
            raise ConfigurationError("At most one of `--branch`, `--tag`, or `--rev` may be used")
        if not given:
            return cls()
        kind, value = given[0]
        return cls(kind, value)

    def describe(self) -> str:
        if self.kind is None:
            return "HEAD"
        return f"{self.kind} `{self.value}`"


class GitCheckouts:
    def __init__(self, root: Path, runner: CommandRunner, environ: Mapping[str, str]) -> None:
        self.root = root
        self.runner = runner
        self.environ = environ
        self._resolved: Dict[tuple, Path] = {}

    def checkout(self, url: str, revision: Revision = Revision()) -> Path:
        key = (url, revision)
        if key in self._resolved:
            return self._resolved[key]
        commit = self._resolve_commit(url, revision)
        repo_dir = self.root / _repo_dirname(url)
        path = repo_dir / commit if commit else None
        if path is not None and path.is_dir():
            logger.debug("Using cached checkout %s", path)
            self._resolved[key] = path
            return path

        try:
            path = self._clone(url, revision, repo_dir, commit)
        except OSError as exc:
            raise BuildError(f"Could not check out `{url}` under `{repo_dir}`") from exc
        self._resolved[key] = path
        return path

    def _clone(
        self, url: str, revision: Revision, repo_dir: Path, commit: Optional[str]
    ) -> Path:
        with directory_lock(repo_dir):
            if commit is not None and (repo_dir / commit).is_dir():
                return repo_dir / commit
            temp_root = Path(tempfile.mkdtemp(prefix=".checkout-", dir=str(repo_dir)))
            try:
                self._git(["clone", "--quiet", url, str(temp_root)], url=url)
                target = commit or revision.value
                if target:
                    self._git(["checkout", "--quiet", target], url=url, cwd=temp_root)
                commit = self._git(["rev-parse", "HEAD"], url=url, cwd=temp_root).strip()
                path = repo_dir / commit
                if not path.is_dir():
                    atomic_move_dir(temp_root, path)
            finally:
                if temp_root.exists():
                    shutil.rmtree(temp_root, ignore_errors=True)
        logger.info("Checked out %s at %s", url, commit)
        return path

    def _resolve_commit(self, url: str, revision: Revision) -> Optional[str]:
        if revision.kind == "rev":
            if revision.value and COMMIT_PATTERN.fullmatch(revision.value):
                return revision.value
            # abbreviated revisions are resolved after cloning
            return None
        if revision.kind == "branch":
            pattern = f"refs/heads/{revision.value}"
            refs = [pattern]
        elif revision.kind == "tag":
            pattern = f"refs/tags/{revision.value}"
            # annotated tags are listed twice; the peeled entry names the commit
            refs = [f"{pattern}^{{}}", pattern]
        else:
            pattern = "HEAD"
            refs = [pattern]
        output = self._git(["ls-remote", url, pattern], url=url)
        found = _parse_ls_remote(output)
        for ref in refs:
            if ref in found:
                return found[ref]
        raise BuildError(f"Could not resolve {revision.describe()} in `{url}`", output=output)

    def _git(self, argv: List[str], *, url: str, cwd: Optional[Path] = None) -> str:
        result = self.runner.run(
            [env_vars.GIT, *argv],
            cwd=cwd,
            env=dict(self.environ),
            name=f"git {argv[0]}",
        )
        if not result.ok:
            raise BuildError(f"Could not fetch `{url}`: git {argv[0]} failed", output=result.output)
        return result.stdout


def _parse_ls_remote(output: str) -> Dict[str, str]:
    refs: Dict[str, str] = {}
    for line in output.splitlines():
        parts = line.split()
        if len(parts) == 2:
            refs[parts[1]] = parts[0]
    return refs


def _repo_dirname(url: str) -> str:
    stem = url.rstrip("/").rsplit("/", 1)[-1]
    if stem.endswith(".git"):
        stem = stem[: -len(".git")]
    slug = _SLUG_PATTERN.sub("_", stem) or "repo"
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]
    return f"{slug}-{digest}"
