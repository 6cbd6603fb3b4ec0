from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path

import yaml

from .config import LabConfig, kind_cluster_config_path
from .console import log_info, log_step, log_success, log_warning
from .doctor import docker_daemon_running, docker_desktop_kubernetes, kind_cluster_exists, minikube_running
from .kube import (
    CommandError,
    activate_kubeconfig,
    cluster_reachable,
    command_exists,
    current_context,
    kubectl,
    run_command,
    run_interactive,
    run_or_raise,
)
from .wait import Waiter, WaitSpec, node_is_ready, pod_is_ready, terminal_pod_failure
from .walkthrough import ConfirmFn, Walkthrough

logger = logging.getLogger(__name__)


class ClusterError(Exception):
    pass


class ClusterProvider(str, Enum):
    DOCKER_DESKTOP = "docker-desktop"
    MINIKUBE = "minikube"
    KIND = "kind"
    EXTERNAL = "external"

    @property
    def label(self) -> str:
        return {
            ClusterProvider.DOCKER_DESKTOP: "Docker Desktop",
            ClusterProvider.MINIKUBE: "Minikube",
            ClusterProvider.KIND: "Kind",
            ClusterProvider.EXTERNAL: "custom cluster",
        }[self]


MINIKUBE_ADDONS = ("ingress", "dashboard", "metrics-server")

PROVIDER_MENU: tuple[tuple[str, ClusterProvider, str], ...] = (
    ("1", ClusterProvider.DOCKER_DESKTOP, "Docker Desktop (recommended for macOS)"),
    ("2", ClusterProvider.MINIKUBE, "Minikube (lightweight, good for learning)"),
    ("3", ClusterProvider.KIND, "Kind (Kubernetes in Docker, good for CI/CD)"),
    ("4", ClusterProvider.EXTERNAL, "Skip (use existing cluster)"),
)
MENU_EXIT = "5"


def provider_from_choice(choice: str) -> ClusterProvider | None:
    """Map a setup menu answer to a provider. ``None`` means the user chose to exit."""
    choice = choice.strip()
    if choice == MENU_EXIT:
        return None
    for key, provider, _ in PROVIDER_MENU:
        if choice == key:
            return provider
    raise ClusterError(f"Invalid choice '{choice}'. Please run again and select 1-{MENU_EXIT}.")


def provider_menu_lines() -> list[str]:
    lines = [f"{key}) {label}" for key, _, label in PROVIDER_MENU]
    lines.append(f"{MENU_EXIT}) Exit")
    return lines


def detect_provider(context: str | None = None) -> ClusterProvider:
    ctx = current_context() if context is None else context
    if "docker-desktop" in ctx:
        return ClusterProvider.DOCKER_DESKTOP
    if "minikube" in ctx:
        return ClusterProvider.MINIKUBE
    if "kind" in ctx:
        return ClusterProvider.KIND
    return ClusterProvider.EXTERNAL


def inline_kind_config() -> dict:
    """Single-node cluster with the ingress-ready label and ports 80/443 mapped."""
    return {
        "kind": "Cluster",
        "apiVersion": "kind.x-k8s.io/v1alpha4",
        "nodes": [
            {
                "role": "control-plane",
                "kubeadmConfigPatches": [
                    "kind: InitConfiguration\n"
                    "nodeRegistration:\n"
                    "  kubeletExtraArgs:\n"
                    '    node-labels: "ingress-ready=true"\n'
                ],
                "extraPortMappings": [
                    {"containerPort": 80, "hostPort": 80, "protocol": "TCP"},
                    {"containerPort": 443, "hostPort": 443, "protocol": "TCP"},
                ],
            }
        ],
    }


class ClusterService:
    def __init__(self, config: LabConfig, wait: WaitSpec | None = None, confirm: ConfirmFn | None = None):
        self.config = config
        self.waiter = Waiter(wait or WaitSpec())
        self.prompts = Walkthrough(confirm=confirm)

    # ------------------------------------------------------------
    # Start / stop
    # ------------------------------------------------------------

    def start(self, ingress: bool = False, provider: ClusterProvider | None = None) -> ClusterProvider:
        log_step("Setting up Kubernetes cluster...")

        if provider is not None:
            return self._start_provider(provider, ingress)

        if cluster_reachable():
            log_success("Kubernetes cluster is already accessible")
            self.setup_kubeconfig()
            return detect_provider()

        if docker_daemon_running():
            if not docker_desktop_kubernetes():
                raise ClusterError(
                    "Docker Desktop detected but Kubernetes is not enabled. "
                    "Enable it in Docker Desktop settings, or pass --provider minikube / --provider kind"
                )
            return self._use_docker_desktop()

        if command_exists("minikube"):
            return self._start_minikube()

        if command_exists("kind"):
            return self._start_kind(ingress)

        raise ClusterError("No Kubernetes cluster available. Please install Docker Desktop, Minikube, or Kind.")

    def _start_provider(self, provider: ClusterProvider, ingress: bool) -> ClusterProvider:
        if provider == ClusterProvider.DOCKER_DESKTOP:
            if not docker_desktop_kubernetes():
                raise ClusterError("Kubernetes is not enabled in Docker Desktop. Enable it in Settings > Kubernetes")
            return self._use_docker_desktop()

        if provider == ClusterProvider.EXTERNAL:
            if not cluster_reachable():
                raise ClusterError("No existing cluster found. Please set up a cluster first.")
            log_success("Using existing cluster")
            self.setup_kubeconfig()
            return detect_provider()

        if not command_exists(provider.value):
            raise ClusterError(f"{provider.value} is not installed")
        if provider == ClusterProvider.MINIKUBE:
            return self._start_minikube()
        return self._start_kind(ingress)

    def _use_docker_desktop(self) -> ClusterProvider:
        log_info("Using Docker Desktop Kubernetes")
        run_command(kubectl("config", "use-context", "docker-desktop"))
        self.setup_kubeconfig(ClusterProvider.DOCKER_DESKTOP)
        return ClusterProvider.DOCKER_DESKTOP

    def _start_minikube(self) -> ClusterProvider:
        if minikube_running():
            log_success("Minikube cluster is already running")
        else:
            driver = "docker" if docker_daemon_running() else "hyperkit"
            log_info(f"Starting Minikube cluster with the {driver} driver...")
            code = run_interactive(["minikube", "start", f"--driver={driver}", "--memory=4096", "--cpus=2"])
            if code != 0:
                raise ClusterError(f"minikube start failed (exit {code})")
        self.enable_minikube_addons()
        self.setup_kubeconfig(ClusterProvider.MINIKUBE)
        return ClusterProvider.MINIKUBE

    def enable_minikube_addons(self) -> list[str]:
        """Enable the lab's Minikube addons; returns the ones that failed."""
        failed: list[str] = []
        for addon in MINIKUBE_ADDONS:
            result = run_command(["minikube", "addons", "enable", addon])
            if result.ok:
                log_success(f"Minikube addon {addon} enabled")
            else:
                log_warning(f"Could not enable Minikube addon {addon}: {result.stderr.strip()}")
                failed.append(addon)
        return failed

    def _start_kind(self, ingress: bool) -> ClusterProvider:
        name = self.config.cluster_name
        if kind_cluster_exists(name):
            if not self.prompts.confirm(f"Kind cluster '{name}' already exists. Delete and recreate?"):
                log_info(f"Using existing Kind cluster '{name}'")
                run_command(kubectl("config", "use-context", self.config.kind_context))
                self.setup_kubeconfig(ClusterProvider.KIND)
                return ClusterProvider.KIND
            try:
                run_or_raise(["kind", "delete", "cluster", "--name", name])
            except CommandError as e:
                raise ClusterError(f"Failed to delete cluster: {e}") from e

        self._create_kind_cluster()
        self.setup_kubeconfig(ClusterProvider.KIND)
        if ingress:
            self.wait_for_nodes_ready()
            self.install_ingress_nginx()
        return ClusterProvider.KIND

    def _create_kind_cluster(self) -> None:
        name = self.config.cluster_name
        config_path = kind_cluster_config_path()
        log_info(f"Creating Kind cluster '{name}'...")

        try:
            if config_path.is_file():
                run_or_raise(["kind", "create", "cluster", "--name", name, "--config", str(config_path)])
            else:
                logger.info("%s not found, using built-in single-node config", config_path)
                manifest = yaml.safe_dump(inline_kind_config(), sort_keys=False)
                run_or_raise(["kind", "create", "cluster", "--name", name, "--config", "-"], input=manifest)
        except CommandError as e:
            raise ClusterError(f"Failed to create cluster: {e}") from e

        log_success("Kind cluster created!")

    def stop(self) -> ClusterProvider | None:
        log_step("Stopping Kubernetes cluster...")

        try:
            if minikube_running():
                run_or_raise(["minikube", "stop"])
                log_success("Minikube cluster stopped")
                return ClusterProvider.MINIKUBE

            if kind_cluster_exists(self.config.cluster_name):
                run_or_raise(["kind", "delete", "cluster", "--name", self.config.cluster_name])
                log_success("Kind cluster deleted")
                return ClusterProvider.KIND
        except CommandError as e:
            raise ClusterError(f"Failed to stop cluster: {e}") from e

        log_info("Using Docker Desktop or external cluster - no action needed")
        return None

    def verify(self) -> None:
        log_step("Verifying Kubernetes setup...")
        if not cluster_reachable():
            raise ClusterError("Cannot connect to Kubernetes cluster. Please start your cluster first.")
        log_success("Kubernetes cluster is accessible")
        self.setup_kubeconfig()

    # ------------------------------------------------------------
    # Kubeconfig
    # ------------------------------------------------------------

    def _kubeconfig_source(self) -> ClusterProvider:
        if kind_cluster_exists(self.config.cluster_name):
            return ClusterProvider.KIND
        if minikube_running():
            return ClusterProvider.MINIKUBE
        if "docker-desktop" in current_context():
            return ClusterProvider.DOCKER_DESKTOP
        return ClusterProvider.EXTERNAL

    def setup_kubeconfig(self, provider: ClusterProvider | None = None) -> Path:
        """Copy the provider's kubeconfig to the lab path. Detects the provider when not given."""
        log_step("Setting up kubeconfig...")
        target = self.config.kubeconfig
        target.parent.mkdir(parents=True, exist_ok=True)
        source = provider or self._kubeconfig_source()

        try:
            if source == ClusterProvider.KIND:
                log_info("Using Kind cluster kubeconfig")
                content = run_or_raise(["kind", "get", "kubeconfig", "--name", self.config.cluster_name]).stdout
            elif source == ClusterProvider.MINIKUBE:
                log_info("Using Minikube kubeconfig")
                content = run_or_raise(["minikube", "kubectl", "--", "config", "view", "--raw"]).stdout
            elif source == ClusterProvider.DOCKER_DESKTOP:
                log_info("Using Docker Desktop kubeconfig")
                content = run_or_raise(kubectl("config", "view", "--raw")).stdout
            else:
                log_info("Using existing kubeconfig")
                default = Path.home() / ".kube" / "config"
                if not default.is_file():
                    raise ClusterError("No kubeconfig found")
                content = default.read_text(encoding="utf-8")
        except CommandError as e:
            raise ClusterError(f"Failed to read kubeconfig: {e}") from e

        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)
        activate_kubeconfig(target)

        log_success("Kubeconfig setup complete!")
        log_info(f"To use this config in new shells, run: export KUBECONFIG={target}")
        return target

    # ------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------

    def expected_node_count(self) -> int | None:
        config_path = kind_cluster_config_path()
        if detect_provider() != ClusterProvider.KIND or not config_path.is_file():
            return None
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return len(data.get("nodes", [])) or None

    def wait_for_nodes_ready(self) -> None:
        expected = self.expected_node_count()

        def check() -> tuple[bool, str]:
            result = run_command(kubectl("get", "nodes", "-o", "json"))
            if not result.ok:
                return False, "Nodes not reachable yet"
            items = json.loads(result.stdout).get("items", [])
            ready = sum(1 for n in items if node_is_ready(n))
            total = expected or len(items)
            return bool(items) and len(items) == total and ready == total, f"Nodes Ready: {ready}/{total}"

        self.waiter.wait("Waiting for nodes to become Ready", check)

    def install_ingress_nginx(self) -> None:
        namespace = "ingress-nginx"
        selector = "app.kubernetes.io/component=controller"

        log_info("Installing NGINX Ingress Controller...")
        try:
            run_or_raise(kubectl("apply", "-f", self.config.ingress_nginx_url))
        except CommandError as e:
            raise ClusterError(f"Failed to install ingress-nginx: {e}") from e

        def pods() -> list[dict]:
            result = run_command(kubectl("-n", namespace, "get", "pods", "-l", selector, "-o", "json"))
            if not result.ok:
                return []
            return json.loads(result.stdout).get("items", [])

        def check() -> tuple[bool, str]:
            items = pods()
            if not items:
                return False, "No ingress controller pods yet..."
            ready = sum(1 for p in items if pod_is_ready(p))
            return ready == len(items), f"Pods Ready: {ready}/{len(items)}"

        def fail_fast() -> str | None:
            failure = terminal_pod_failure(pods())
            return f"Ingress pod failure: {failure}" if failure else None

        self.waiter.wait("Waiting for ingress-nginx controller Pods to be Ready", check, fail_fast)
