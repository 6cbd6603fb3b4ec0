from __future__ import annotations

import time
from dataclasses import dataclass

from .cluster import ClusterError, ClusterProvider, detect_provider
from .console import heading, log_info, log_success, log_warning
from .doctor import node_count
from .kube import (
    command_exists,
    current_context,
    delete_namespace,
    kubectl,
    namespace_exists,
    run_command,
    run_interactive,
)

TEST_NAMESPACE = "kubernetes-basics-test"
TEST_POD = "test-pod"


@dataclass(frozen=True)
class VerifyReport:
    nodes: int
    context: str
    cluster_type: str
    system_pods_ready: int
    system_pods_total: int
    test_pod_phase: str

    @property
    def system_pods_healthy(self) -> bool:
        return self.system_pods_ready == self.system_pods_total


def _system_pod_counts() -> tuple[int, int]:
    result = run_command(kubectl("get", "pods", "-n", "kube-system", "--no-headers"))
    lines = [line for line in result.stdout.splitlines() if line.strip()] if result.ok else []
    ready = sum(1 for line in lines if "Running" in line or "Completed" in line)
    return ready, len(lines)


def _test_pod_phase(settle_seconds: float) -> str:
    if not namespace_exists(TEST_NAMESPACE):
        run_command(kubectl("create", "namespace", TEST_NAMESPACE))
        log_success(f"Created test namespace: {TEST_NAMESPACE}")
    else:
        log_info("Test namespace already exists")

    log_info("Testing pod creation...")
    run_command(kubectl("run", TEST_POD, "--image=nginx:alpine", "--restart=Never", "-n", TEST_NAMESPACE))
    time.sleep(settle_seconds)

    result = run_command(
        kubectl("get", "pod", TEST_POD, "-n", TEST_NAMESPACE, "-o", "jsonpath={.status.phase}")
    )
    return result.stdout.strip() if result.ok and result.stdout.strip() else "NotFound"


def verify_setup(settle_seconds: float = 3.0) -> VerifyReport:
    heading("Kubernetes Basics - Setup Verification")
    print("======================================")

    if not command_exists("kubectl"):
        raise ClusterError("kubectl is not installed or not in PATH (brew install kubectl)")
    log_success("kubectl is available")

    log_info("Checking cluster connectivity...")
    if run_interactive(kubectl("cluster-info")) != 0:
        raise ClusterError("Cannot connect to Kubernetes cluster. Please ensure your cluster is running.")
    log_success("Cluster is accessible")

    nodes = node_count()
    log_info(f"Nodes: {nodes}")
    run_interactive(kubectl("get", "nodes"))

    context = current_context()
    provider = detect_provider(context)
    cluster_type = "Custom/External" if provider == ClusterProvider.EXTERNAL else provider.label
    log_info(f"Current context: {context}")
    log_info(f"Cluster type: {cluster_type}")

    log_info("Checking system pods...")
    ready, total = _system_pod_counts()
    if ready == total:
        log_success(f"All system pods are ready ({ready}/{total})")
    else:
        log_warning(f"Some system pods are not ready ({ready}/{total})")
        run_interactive(kubectl("get", "pods", "-n", "kube-system"))

    log_info("Available storage classes:")
    run_interactive(kubectl("get", "storageclass"))

    log_info("Testing basic operations...")
    try:
        phase = _test_pod_phase(settle_seconds)
    finally:
        delete_namespace(TEST_NAMESPACE)

    if phase == "Running":
        log_success("Test pod is running")
    elif phase == "Pending":
        log_warning("Test pod is pending (may need more time)")
    else:
        log_warning(f"Test pod status: {phase}")

    log_success("Setup verification complete!")
    return VerifyReport(
        nodes=nodes,
        context=context,
        cluster_type=cluster_type,
        system_pods_ready=ready,
        system_pods_total=total,
        test_pod_phase=phase,
    )
