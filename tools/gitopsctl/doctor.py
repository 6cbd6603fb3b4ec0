from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .config import LabConfig, argocd_dir, flux_dir, kind_cluster_config_path, kustomize_dir, repo_root
from .kube import command_exists, current_context, kubectl, run_command

INSTALL_HINTS = {
    "kubectl": "brew install kubectl",
    "git": "brew install git",
    "curl": "should be pre-installed on macOS",
}

CLUSTER_OPTIONS = (
    "Docker Desktop (with Kubernetes enabled): https://www.docker.com/products/docker-desktop",
    "Minikube: brew install minikube",
    "Kind: brew install kind",
)


class Status(str, Enum):
    OK = "OK"
    WARN = "WRN"
    ERR = "ERR"
    INFO = "INF"


@dataclass(frozen=True)
class CheckResult:
    name: str
    status: Status
    message: str


def _first_line(text: str) -> str:
    for line in text.splitlines():
        line = line.strip()
        if line:
            return line
    return ""


def _cmd_version(cmd: str, args: list[str]) -> str:
    proc = run_command([cmd, *args])
    out = proc.stdout + ("\n" + proc.stderr if proc.stderr else "")
    line = _first_line(out) if proc.ok else ""
    return line if line else "version check failed"


def _check_command(
    cmd: str,
    version_args: list[str] | None = None,
    missing: Status = Status.ERR,
    hint: str | None = None,
) -> CheckResult:
    if not command_exists(cmd):
        message = f"not found - install with: {hint}" if hint else "not found"
        return CheckResult(name=cmd, status=missing, message=message)

    if version_args is None:
        return CheckResult(name=cmd, status=Status.OK, message="installed")

    return CheckResult(name=cmd, status=Status.OK, message=_cmd_version(cmd, version_args))


# ------------------------------------------------------------
# Cluster option probes
# ------------------------------------------------------------


def docker_daemon_running() -> bool:
    return command_exists("docker") and run_command(["docker", "info"]).ok


def docker_desktop_kubernetes() -> bool:
    if not docker_daemon_running():
        return False
    return "Kubernetes" in run_command(["docker", "system", "info"]).stdout


def minikube_running() -> bool:
    return command_exists("minikube") and run_command(["minikube", "status"]).ok


def kind_cluster_exists(cluster_name: str) -> bool:
    if not command_exists("kind"):
        return False
    result = run_command(["kind", "get", "clusters"])
    return result.ok and cluster_name in result.stdout.split()


def node_count() -> int:
    result = run_command(kubectl("get", "nodes", "--no-headers"))
    if not result.ok:
        return 0
    return len([line for line in result.stdout.splitlines() if line.strip()])


# ------------------------------------------------------------
# Prerequisites (lab-startup)
# ------------------------------------------------------------


def check_prerequisites() -> list[CheckResult]:
    results = [_check_command(tool, hint=INSTALL_HINTS[tool]) for tool in ("kubectl", "git", "curl")]

    options: list[CheckResult] = []
    if docker_desktop_kubernetes():
        options.append(CheckResult("docker-desktop", Status.INFO, "Docker Desktop with Kubernetes detected"))
    if command_exists("minikube"):
        options.append(CheckResult("minikube", Status.INFO, "Minikube detected"))
    if command_exists("kind"):
        options.append(CheckResult("kind", Status.INFO, "Kind detected"))

    if options:
        results.extend(options)
    else:
        results.append(
            CheckResult(
                name="kubernetes",
                status=Status.WARN,
                message="No Kubernetes cluster detected! Install one of: " + "; ".join(CLUSTER_OPTIONS),
            )
        )
    return results


def has_cluster_option(results: Iterable[CheckResult]) -> bool:
    return any(r.status == Status.INFO for r in results)


# ------------------------------------------------------------
# Troubleshooting report
# ------------------------------------------------------------


def _check_docker() -> list[CheckResult]:
    if not command_exists("docker"):
        return [CheckResult("docker", Status.WARN, "not installed")]

    results = [CheckResult("docker", Status.OK, _cmd_version("docker", ["--version"]))]
    if not run_command(["docker", "info"]).ok:
        results.append(CheckResult("docker daemon", Status.ERR, "not running"))
        return results

    results.append(CheckResult("docker daemon", Status.OK, "running"))
    if "Kubernetes" in run_command(["docker", "system", "info"]).stdout:
        results.append(CheckResult("docker-desktop kubernetes", Status.OK, "enabled"))
    else:
        results.append(
            CheckResult("docker-desktop kubernetes", Status.WARN, "disabled - enable in settings")
        )
    return results


def _check_minikube() -> list[CheckResult]:
    if not command_exists("minikube"):
        return [CheckResult("minikube", Status.INFO, "not installed")]

    results = [CheckResult("minikube", Status.OK, _cmd_version("minikube", ["version", "--short"]))]
    if run_command(["minikube", "status"]).ok:
        results.append(CheckResult("minikube cluster", Status.OK, "running"))
    else:
        results.append(CheckResult("minikube cluster", Status.INFO, "not running"))
    return results


def _check_kind(cluster_name: str) -> list[CheckResult]:
    if not command_exists("kind"):
        return [CheckResult("kind", Status.INFO, "not installed")]

    results = [CheckResult("kind", Status.OK, _cmd_version("kind", ["version"]))]
    if kind_cluster_exists(cluster_name):
        results.append(CheckResult("kind cluster", Status.OK, f"{cluster_name} cluster exists"))
    else:
        results.append(CheckResult("kind cluster", Status.INFO, f"{cluster_name} cluster not found"))
    return results


def _check_connectivity() -> CheckResult:
    if not run_command(kubectl("cluster-info")).ok:
        return CheckResult("kubernetes", Status.ERR, "Cannot connect to Kubernetes cluster")
    return CheckResult(
        "kubernetes",
        Status.OK,
        f"connected | context: {current_context() or '<none>'} | nodes: {node_count()}",
    )


def _check_kustomize() -> CheckResult:
    if not command_exists("kubectl"):
        return CheckResult("kubectl kustomize", Status.ERR, "kubectl not installed")

    if run_command(kubectl("kustomize", "--help")).ok:
        return CheckResult("kubectl kustomize", Status.OK, "available")

    if command_exists("kustomize"):
        return CheckResult("kustomize", Status.OK, _cmd_version("kustomize", ["version"]))

    return CheckResult(
        "kustomize",
        Status.WARN,
        "not detected (kubectl kustomize unavailable and kustomize binary not found)",
    )


def _check_lab_files() -> list[CheckResult]:
    root = repo_root()
    expected = {
        "lab README": root / "README.md",
        "kind config": kind_cluster_config_path(),
        "kustomize overlays": kustomize_dir() / "overlays",
        "argocd manifests": argocd_dir(),
        "flux manifests": flux_dir(),
    }
    return [
        CheckResult(name, Status.OK, "found") if path.exists() else CheckResult(name, Status.ERR, f"{path} not found")
        for name, path in expected.items()
    ]


def run_doctor(config: LabConfig) -> list[CheckResult]:
    checks: list[CheckResult] = [
        _check_command("kubectl", ["version", "--client"], hint=INSTALL_HINTS["kubectl"]),
        _check_command("git", ["--version"], hint=INSTALL_HINTS["git"]),
    ]
    checks.extend(_check_docker())
    checks.extend(_check_minikube())
    checks.extend(_check_kind(config.cluster_name))
    checks.append(_check_connectivity())
    checks.append(_check_kustomize())
    checks.extend(_check_lab_files())
    return checks


def recommendations(results: Iterable[CheckResult], cluster_name: str) -> list[str]:
    by_name = {r.name: r for r in results}

    def _ok(name: str) -> bool:
        r = by_name.get(name)
        return r is not None and r.status == Status.OK

    advice: list[str] = []
    if _ok("docker daemon"):
        if _ok("docker-desktop kubernetes"):
            advice.append("Use Docker Desktop (already configured)")
        else:
            advice.append("Enable Kubernetes in Docker Desktop settings")
    if _ok("minikube cluster"):
        advice.append("Use Minikube (already running)")
    if _ok("kind cluster"):
        advice.append(f"Use Kind ({cluster_name} cluster exists)")

    has_kube = any(_ok(n) for n in ("docker-desktop kubernetes", "minikube cluster", "kind cluster"))
    if not has_kube:
        advice.extend(
            [
                "Install a Kubernetes option:",
                "   - Docker Desktop: brew install --cask docker (then enable Kubernetes)",
                "   - Minikube: brew install minikube && minikube start",
                f"   - Kind: brew install kind && kind create cluster --name {cluster_name}",
            ]
        )
        advice.extend(["Next: gitopsctl setup", "Then: gitopsctl tools"])
    else:
        advice.extend(["Next: gitopsctl setup", "Then: gitopsctl tools", "Check: gitopsctl status"])
    return advice


def exit_code(results: Iterable[CheckResult]) -> int:
    for r in results:
        if r.status == Status.ERR:
            return 1
    return 0
