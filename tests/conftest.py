from __future__ import annotations

import shutil
from pathlib import Path
from typing import Iterable, Sequence

import pytest

from tools.gitopsctl import (
    argocd_lab,
    basics_lab,
    cluster,
    demo_envs,
    doctor,
    gitops_tools,
    kube,
    kustomize_lab,
    portforward,
    promote,
    repo_setup,
    status,
    verify,
    walkthrough,
)
from tools.gitopsctl.kube import CommandResult

REPO_ROOT = Path(__file__).resolve().parents[1]

PATCHED_MODULES = (
    argocd_lab,
    basics_lab,
    cluster,
    demo_envs,
    doctor,
    gitops_tools,
    kube,
    kustomize_lab,
    portforward,
    promote,
    repo_setup,
    status,
    verify,
    walkthrough,
)


class FakeRunner:
    """Answers external commands by argv prefix; unknown commands succeed silently."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.inputs: list[str | None] = []
        self.interactive: list[list[str]] = []
        self._responses: list[tuple[tuple[str, ...], CommandResult]] = []

    def on(self, *prefix: str, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        # Later registrations win over earlier ones.
        self._responses.insert(0, (prefix, CommandResult(returncode, stdout, stderr)))

    def _lookup(self, command: Sequence[str]) -> CommandResult:
        for prefix, result in self._responses:
            if tuple(command[: len(prefix)]) == prefix:
                return result
        return CommandResult(0, "", "")

    def __call__(self, command: Sequence[str], input: str | None = None, env=None) -> CommandResult:
        self.calls.append(list(command))
        self.inputs.append(input)
        return self._lookup(command)

    def run_interactive(self, command: Sequence[str], env=None) -> int:
        self.interactive.append(list(command))
        return self._lookup(command).returncode

    def called(self, *prefix: str) -> bool:
        return any(tuple(c[: len(prefix)]) == prefix for c in self.calls)

    def input_for(self, *prefix: str) -> str | None:
        for command, stdin in zip(self.calls, self.inputs):
            if tuple(command[: len(prefix)]) == prefix:
                return stdin
        return None


def _patch_everywhere(monkeypatch: pytest.MonkeyPatch, name: str, value: object) -> None:
    for module in PATCHED_MODULES:
        if hasattr(module, name):
            monkeypatch.setattr(module, name, value)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # activate_kubeconfig writes os.environ; setenv makes monkeypatch restore it.
    monkeypatch.setenv("KUBECONFIG", "/nonexistent/kubeconfig")
    for name in ("GITOPS_LAB_CLUSTER", "GITOPS_LAB_KUBECONFIG", "GITOPS_LAB_ROOT", "GITOPS_LAB_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_runner(monkeypatch: pytest.MonkeyPatch) -> FakeRunner:
    runner = FakeRunner()
    _patch_everywhere(monkeypatch, "run_command", runner)
    _patch_everywhere(monkeypatch, "run_interactive", runner.run_interactive)
    return runner


@pytest.fixture
def installed_tools(monkeypatch: pytest.MonkeyPatch):
    """Call with the names that ``command_exists`` should report as installed."""

    def _set(names: Iterable[str]) -> None:
        present = set(names)
        _patch_everywhere(monkeypatch, "command_exists", lambda name: name in present)

    _set(())
    return _set


@pytest.fixture
def lab_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A writable copy of the Kustomize examples with GITOPS_LAB_ROOT pointing at it."""
    src = REPO_ROOT / "02-core-tools" / "06-kustomize"
    shutil.copytree(src, tmp_path / "02-core-tools" / "06-kustomize")
    monkeypatch.setenv("GITOPS_LAB_ROOT", str(tmp_path))
    return tmp_path
