from __future__ import annotations

import base64
import binascii
import json
import logging

from .cluster import ClusterError
from .config import LabConfig
from .console import log_info, log_step, log_success
from .kube import (
    CommandError,
    activate_kubeconfig,
    apply_namespace,
    cluster_reachable,
    command_exists,
    kubectl,
    namespace_exists,
    run_command,
    run_or_raise,
)
from .wait import Waiter, WaitSpec, deployment_is_available

logger = logging.getLogger(__name__)

ARGOCD_NAMESPACE = "argocd"
FLUX_NAMESPACE = "flux-system"


class ToolInstallError(Exception):
    pass


def argocd_admin_password() -> str | None:
    result = run_command(
        kubectl(
            "-n",
            ARGOCD_NAMESPACE,
            "get",
            "secret",
            "argocd-initial-admin-secret",
            "-o",
            "jsonpath={.data.password}",
        )
    )
    if not result.ok or not result.stdout.strip():
        return None
    try:
        return base64.b64decode(result.stdout.strip()).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        logger.warning("argocd-initial-admin-secret password is not valid base64")
        return None


class GitOpsToolsInstaller:
    def __init__(self, config: LabConfig, wait: WaitSpec | None = None):
        self.config = config
        self.waiter = Waiter(wait or WaitSpec(timeout_seconds=300.0))

    def install_all(self) -> None:
        log_step("Installing GitOps tools...")
        activate_kubeconfig(self.config.kubeconfig)

        if not cluster_reachable():
            raise ClusterError("Cannot connect to Kubernetes cluster. Run setup first.")

        self.create_namespaces()
        self.install_argocd()
        self.install_flux()
        log_success("All GitOps tools installed!")

    def create_namespaces(self) -> None:
        log_info(f"Creating lab namespaces: {', '.join(self.config.default_namespaces)}")
        try:
            for namespace in self.config.default_namespaces:
                apply_namespace(namespace)
        except CommandError as e:
            raise ToolInstallError(f"Failed to create namespace: {e}") from e

    # ------------------------------------------------------------
    # ArgoCD
    # ------------------------------------------------------------

    def install_argocd(self) -> None:
        log_step("Installing ArgoCD...")
        try:
            apply_namespace(ARGOCD_NAMESPACE)
            run_or_raise(kubectl("apply", "-n", ARGOCD_NAMESPACE, "-f", self.config.argocd_install_url))
        except CommandError as e:
            raise ToolInstallError(f"Failed to install ArgoCD: {e}") from e

        log_info("Waiting for ArgoCD to be ready...")
        self.waiter.wait("Waiting for deployment/argocd-server to become Available", self._argocd_server_available)

        log_success("ArgoCD installed successfully!")
        log_info(f"ArgoCD admin password: {argocd_admin_password() or '<not available>'}")
        port = self.config.service_ports.get("argocd-server", "8080:443")
        log_info(f"Access ArgoCD UI: kubectl port-forward svc/argocd-server -n {ARGOCD_NAMESPACE} {port}")

    def _argocd_server_available(self) -> tuple[bool, str]:
        result = run_command(kubectl("-n", ARGOCD_NAMESPACE, "get", "deployment", "argocd-server", "-o", "json"))
        if not result.ok:
            return False, "argocd-server not created yet"
        dep = json.loads(result.stdout)
        status = dep.get("status", {}) or {}
        return (
            deployment_is_available(dep),
            f"Replicas: desired={status.get('replicas', 0) or 0} available={status.get('availableReplicas', 0) or 0}",
        )

    # ------------------------------------------------------------
    # Flux
    # ------------------------------------------------------------

    def install_flux(self) -> None:
        log_step("Installing Flux...")

        if not command_exists("flux"):
            log_info("Installing Flux CLI...")
            try:
                script = run_or_raise(["curl", "-s", self.config.flux_install_url]).stdout
                run_or_raise(["sudo", "bash"], input=script)
            except CommandError as e:
                raise ToolInstallError(f"Failed to install Flux CLI: {e}") from e

        if namespace_exists(FLUX_NAMESPACE):
            log_success("Flux is already installed")
            return

        try:
            run_or_raise(["flux", "install"])
        except CommandError as e:
            raise ToolInstallError(f"Failed to install Flux: {e}") from e

        log_success("Flux installed successfully!")
