from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .cluster import ClusterProvider, detect_provider
from .config import LabConfig
from .console import fail, heading, log_step, ok, warn
from .doctor import node_count
from .kube import activate_kubeconfig, cluster_reachable, kubectl, namespace_exists, run_command


class ToolState(str, Enum):
    INSTALLED = "installed"
    PARTIAL = "partial"
    MISSING = "missing"


@dataclass(frozen=True)
class StatusReport:
    connected: bool
    nodes: int = 0
    provider: ClusterProvider | None = None
    argocd: ToolState = ToolState.MISSING
    flux: ToolState = ToolState.MISSING


def _argocd_state() -> ToolState:
    if not namespace_exists("argocd"):
        return ToolState.MISSING
    if run_command(kubectl("get", "deployment", "argocd-server", "-n", "argocd")).ok:
        return ToolState.INSTALLED
    return ToolState.PARTIAL


def collect_status(config: LabConfig) -> StatusReport:
    activate_kubeconfig(config.kubeconfig)

    if not cluster_reachable():
        return StatusReport(connected=False)

    return StatusReport(
        connected=True,
        nodes=node_count(),
        provider=detect_provider(),
        argocd=_argocd_state(),
        flux=ToolState.INSTALLED if namespace_exists("flux-system") else ToolState.MISSING,
    )


def render_status(report: StatusReport, cluster_name: str) -> None:
    log_step("Checking lab status...")
    heading("Kubernetes Status:")

    if not report.connected:
        fail("Cannot connect to Kubernetes cluster")
        print()
        print("To fix this, try:")
        print("  - Enable Kubernetes in Docker Desktop")
        print("  - Start Minikube: minikube start")
        print(f"  - Create Kind cluster: kind create cluster --name {cluster_name}")
        return

    ok("Kubernetes cluster is accessible")
    ok(f"Nodes: {report.nodes}")
    provider = report.provider or ClusterProvider.EXTERNAL
    ok(f"Using {provider.label}")

    if report.argocd == ToolState.INSTALLED:
        ok("ArgoCD is installed")
    elif report.argocd == ToolState.PARTIAL:
        warn("ArgoCD namespace exists but deployment not found")
    else:
        warn("ArgoCD is not installed")

    if report.flux == ToolState.INSTALLED:
        ok("Flux is installed")
    else:
        warn("Flux is not installed")
