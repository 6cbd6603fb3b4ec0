from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandError(RuntimeError):
    def __init__(self, command: Sequence[str], result: CommandResult) -> None:
        self.command = list(command)
        self.result = result
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        cmd = " ".join(self.command)
        details = self.result.stderr.strip() or self.result.stdout.strip() or "unknown error"
        return f"Command failed: {cmd}\n{details}"


def _merged_env(env: Mapping[str, str] | None) -> dict[str, str] | None:
    if env is None:
        return None
    merged = dict(os.environ)
    merged.update(env)
    return merged


def run_command(
    command: Sequence[str],
    input: str | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    logger.debug("run: %s", " ".join(command))
    try:
        proc = subprocess.run(
            list(command),
            check=False,
            text=True,
            capture_output=True,
            input=input,
            env=_merged_env(env),
        )
    except FileNotFoundError:
        # Same shape as a shell reporting "command not found".
        return CommandResult(returncode=127, stdout="", stderr=f"{command[0]}: command not found")
    logger.debug("exit %d: %s", proc.returncode, command[0])
    return CommandResult(
        returncode=proc.returncode,
        stdout=proc.stdout or "",
        stderr=proc.stderr or "",
    )


def run_or_raise(
    command: Sequence[str],
    input: str | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    result = run_command(command, input=input, env=env)
    if result.returncode != 0:
        raise CommandError(command, result)
    return result


def run_interactive(command: Sequence[str], env: Mapping[str, str] | None = None) -> int:
    """Run a command attached to the terminal and return its exit code."""
    logger.debug("run (interactive): %s", " ".join(command))
    try:
        proc = subprocess.run(list(command), check=False, env=_merged_env(env))
    except FileNotFoundError:
        print(f"{command[0]}: command not found")
        return 127
    return proc.returncode


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None


def kubectl(*args: str) -> list[str]:
    return ["kubectl", *args]


def cluster_reachable() -> bool:
    return run_command(kubectl("cluster-info")).ok


def current_context() -> str:
    result = run_command(kubectl("config", "current-context"))
    return result.stdout.strip() if result.ok else ""


def namespace_exists(name: str) -> bool:
    return run_command(kubectl("get", "namespace", name)).ok


def apply_namespace(name: str) -> None:
    """Create a namespace if missing (``create --dry-run=client | apply``)."""
    rendered = run_or_raise(kubectl("create", "namespace", name, "--dry-run=client", "-o", "yaml"))
    run_or_raise(kubectl("apply", "-f", "-"), input=rendered.stdout)


def delete_namespace(name: str) -> None:
    run_command(kubectl("delete", "namespace", name, "--ignore-not-found=true"))


def activate_kubeconfig(path: Path) -> bool:
    """Point child processes at ``path`` when it exists."""
    if not path.is_file():
        return False
    os.environ["KUBECONFIG"] = str(path)
    logger.debug("KUBECONFIG=%s", path)
    return True
