"""Subprocess helpers with config-driven timeouts.

External tools (``claude``, ``brew``, ``git``, pack shell actions) are all
reached through :class:`ShellRunner` so the sync engine can be exercised with
a fake runner in tests.
"""
from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from time import perf_counter
from typing import Any, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShellResult:
    """Outcome of one external command."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0

    def summary(self) -> str:
        text = (self.stderr or self.stdout).strip()
        return text.splitlines()[-1] if text else f"exit status {self.returncode}"


def _flatten_cmd(cmd: Any) -> list[str]:
    if isinstance(cmd, (list, tuple)):
        return [str(p) for p in cmd]
    return shlex.split(str(cmd))


class ShellRunner:
    """Run commands without ``shell=True`` (except explicit ``run_shell``)."""

    def __init__(self, *, timeout: float = 120.0, env: Optional[Mapping[str, str]] = None) -> None:
        self.timeout = timeout
        self.env = dict(env) if env is not None else None

    def which(self, program: str) -> Optional[str]:
        return shutil.which(program)

    def run(
        self,
        cmd: Sequence[str] | str,
        *,
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> ShellResult:
        argv = _flatten_cmd(cmd)
        return self._execute(argv, cwd=cwd, env=env, shell=False)

    def run_shell(
        self,
        command: str,
        *,
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> ShellResult:
        """Run a pack-authored shell command line through ``/bin/sh``."""
        return self._execute(command, cwd=cwd, env=env, shell=True)

    def _execute(
        self,
        cmd: Any,
        *,
        cwd: Optional[Path],
        env: Optional[Mapping[str, str]],
        shell: bool,
    ) -> ShellResult:
        merged_env = None
        if self.env is not None or env is not None:
            merged_env = dict(os.environ)
            merged_env.update(self.env or {})
            merged_env.update(env or {})

        started = perf_counter()
        try:
            proc = subprocess.run(
                cmd,
                cwd=str(cwd) if cwd else None,
                env=merged_env,
                shell=shell,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            logger.info("Command not found: %s", cmd)
            return ShellResult(returncode=127, stderr=str(exc))
        except subprocess.TimeoutExpired:
            logger.warning("Command timed out after %.0fs: %s", self.timeout, cmd)
            return ShellResult(returncode=124, stderr=f"timed out after {self.timeout:.0f}s")

        logger.debug(
            "Ran %s -> %s in %.2fs", cmd, proc.returncode, perf_counter() - started
        )
        return ShellResult(returncode=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or "")


__all__ = ["ShellResult", "ShellRunner"]
