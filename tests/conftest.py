import os
import sys
from pathlib import Path

import pytest

# Keep the repository free of Python bytecode and __pycache__ artifacts during tests.
sys.dont_write_bytecode = True

TESTS_ROOT = Path(__file__).resolve().parent
REPO_ROOT = TESTS_ROOT.parent
SRC_ROOT = REPO_ROOT / "src"

# Make src/ importable as 'packsync' and tests/ importable for 'helpers'
for p in (SRC_ROOT, TESTS_ROOT):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))


from packsync.core.config import SyncConfig
from packsync.core.sync import SyncScope
from packsync.core.utils.stdlib_logging import reset_stdlib_logging_for_tests

from helpers.fakes import FakeShell


@pytest.fixture(autouse=True)
def isolated_home(tmp_path_factory, monkeypatch):
    """Every test gets its own HOME so ~/.packsync and ~/.claude never leak.

    PACKSYNC_* overrides from a developer shell are cleared for determinism.
    """
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    for key in list(os.environ):
        if key.startswith("PACKSYNC_"):
            monkeypatch.delenv(key, raising=False)
    reset_stdlib_logging_for_tests()
    yield home
    reset_stdlib_logging_for_tests()


@pytest.fixture
def config(isolated_home) -> SyncConfig:
    return SyncConfig(isolated_home)


@pytest.fixture
def project_dir(tmp_path, monkeypatch) -> Path:
    """A git-marked project directory that is also the current directory."""
    project = tmp_path / "work" / "demo-app"
    project.mkdir(parents=True)
    (project / ".git").mkdir()
    monkeypatch.chdir(project)
    return project


@pytest.fixture
def project_scope(project_dir, config) -> SyncScope:
    return SyncScope.project(project_dir, config)


@pytest.fixture
def global_scope(config) -> SyncScope:
    return SyncScope.global_(config)


@pytest.fixture
def shell() -> FakeShell:
    return FakeShell()
