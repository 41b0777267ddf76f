"""git operations on external pack checkouts."""
from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from packsync.core.exceptions import PackFetchError
from packsync.core.state.lockfile import is_commit_sha
from packsync.core.utils.io import ensure_directory
from packsync.core.utils.subprocess import ShellRunner

logger = logging.getLogger(__name__)

GIT_COMMAND = "git"


@dataclass(frozen=True)
class FetchResult:
    path: Path
    commit: str
    ref: Optional[str] = None


class PackFetcher:
    """Clone, update and pin pack repositories under ``packs_dir``."""

    def __init__(self, shell: ShellRunner, packs_dir: Path) -> None:
        self.shell = shell
        self.packs_dir = Path(packs_dir)

    def _git(self, args: List[str], *, cwd: Optional[Path] = None):
        return self.shell.run([GIT_COMMAND, *args], cwd=cwd)

    def _ensure_git(self) -> None:
        if not self.shell.which(GIT_COMMAND):
            raise PackFetchError("git is not installed; it is required to manage external packs")

    def checkout_path(self, identifier: str) -> Path:
        path = (self.packs_dir / identifier).resolve()
        if self.packs_dir.resolve() not in path.parents:
            raise PackFetchError(f"Pack identifier '{identifier}' escapes the packs directory")
        return path

    def fetch(self, url: str, identifier: str, ref: Optional[str] = None) -> FetchResult:
        """Shallow-clone ``url`` into a clean ``packs_dir/<identifier>``."""
        self._ensure_git()
        ensure_directory(self.packs_dir)
        path = self.checkout_path(identifier)
        if path.exists():
            shutil.rmtree(path)

        args = ["clone", "--depth", "1"]
        if ref:
            args += ["--branch", ref]
        args += [url, str(path)]
        result = self._git(args)
        if not result.succeeded:
            raise PackFetchError(f"Failed to clone '{url}': {result.summary()}", path=str(path))
        commit = self.current_commit(path)
        logger.info("Cloned %s into %s at %s", url, path, commit[:7])
        return FetchResult(path=path, commit=commit, ref=ref)

    def update(self, path: Path, ref: Optional[str] = None) -> Optional[FetchResult]:
        """Bring a checkout to the latest remote commit; ``None`` when already current."""
        self._ensure_git()
        before = self.current_commit(path)
        result = self._git(["fetch", "--depth", "1", "origin"], cwd=path)
        if not result.succeeded:
            raise PackFetchError(f"Failed to fetch updates for {path}: {result.summary()}", path=str(path))

        if ref:
            if not self._git(["checkout", ref], cwd=path).succeeded:
                tag = self._git(["fetch", "--depth", "1", "origin", "tag", ref], cwd=path)
                retry = self._git(["checkout", ref], cwd=path) if tag.succeeded else tag
                if not retry.succeeded:
                    raise PackFetchError(f"Ref '{ref}' not found: {retry.summary()}", path=str(path))
        else:
            reset = self._git(["reset", "--hard", "origin/HEAD"], cwd=path)
            if not reset.succeeded:
                raise PackFetchError(f"Failed to update {path}: {reset.summary()}", path=str(path))

        after = self.current_commit(path)
        if after == before:
            return None
        logger.info("Updated %s: %s -> %s", path, before[:7], after[:7])
        return FetchResult(path=Path(path), commit=after, ref=ref)

    def checkout(self, path: Path, commit: str) -> None:
        """Check out a pinned commit, shallow-fetching once if it is not present."""
        if not is_commit_sha(commit):
            raise PackFetchError(f"Invalid commit SHA '{commit}'", path=str(path))
        if not Path(path).is_dir():
            raise PackFetchError(f"Pack checkout not found: {path}", path=str(path))
        if self._git(["checkout", commit], cwd=path).succeeded:
            return
        self._git(["fetch", "--depth", "1", "origin"], cwd=path)
        retry = self._git(["checkout", commit], cwd=path)
        if not retry.succeeded:
            raise PackFetchError(
                f"Failed to check out {commit[:7]} in {path}: {retry.summary()}", path=str(path)
            )

    def current_commit(self, path: Path) -> str:
        result = self._git(["rev-parse", "HEAD"], cwd=path)
        commit = result.stdout.strip()
        if not result.succeeded or not commit:
            raise PackFetchError(f"Failed to resolve commit at {path}: {result.summary()}", path=str(path))
        return commit

    def remove(self, path: Path) -> None:
        path = Path(path)
        if path.exists():
            shutil.rmtree(path)
            logger.info("Removed pack checkout %s", path)


__all__ = ["FetchResult", "PackFetcher"]
