from __future__ import annotations

import logging
import time
from typing import Any

import yaml

from .config import Environment, LabConfig, kustomize_dir, repo_root
from .gitops_tools import ARGOCD_NAMESPACE, GitOpsToolsInstaller, argocd_admin_password
from .kube import (
    CommandError,
    apply_namespace,
    cluster_reachable,
    command_exists,
    delete_namespace,
    kubectl,
    namespace_exists,
    run_command,
    run_or_raise,
)
from .portforward import PortForward
from .walkthrough import Walkthrough

logger = logging.getLogger(__name__)

APP_NAME = "sample-app"
IN_CLUSTER_SERVER = "https://kubernetes.default.svc"


class ArgoCDLabError(Exception):
    pass


def application_name(env: Environment) -> str:
    return f"{APP_NAME}-{env.overlay}"


def application_manifest(env: Environment, repo_url: str, revision: str = "HEAD") -> dict[str, Any]:
    """ArgoCD Application for one environment.

    dev syncs automatically with prune and self-heal, staging self-heals
    without pruning, production is synced by hand.
    """
    overlay_path = (kustomize_dir() / "overlays" / env.overlay).relative_to(repo_root())
    spec: dict[str, Any] = {
        "project": "default",
        "source": {
            "repoURL": repo_url,
            "targetRevision": revision,
            "path": overlay_path.as_posix(),
        },
        "destination": {"server": IN_CLUSTER_SERVER, "namespace": env.namespace},
        "syncPolicy": {"syncOptions": ["CreateNamespace=true"]},
    }
    if env.name == "dev":
        spec["syncPolicy"]["automated"] = {"prune": True, "selfHeal": True}
    elif env.name == "staging":
        spec["syncPolicy"]["automated"] = {"selfHeal": True}

    return {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "Application",
        "metadata": {"name": application_name(env), "namespace": ARGOCD_NAMESPACE},
        "spec": spec,
    }


def argocd_port_forward(config: LabConfig) -> PortForward:
    local, _, remote = config.service_ports.get("argocd-server", "8080:443").partition(":")
    return PortForward("svc/argocd-server", ARGOCD_NAMESPACE, int(local), int(remote or local))


def argocd_running() -> bool:
    if not namespace_exists(ARGOCD_NAMESPACE):
        print("❌ ArgoCD not installed")
        return False
    print("✅ ArgoCD namespace exists")
    pods = run_command(kubectl("get", "pods", "-n", ARGOCD_NAMESPACE))
    if pods.ok and "Running" in pods.stdout:
        print("✅ ArgoCD is running")
        return True
    print("⚠️  ArgoCD pods are not ready")
    return False


class ArgoCDLab:
    def __init__(
        self,
        config: LabConfig,
        walkthrough: Walkthrough | None = None,
        sync_wait_seconds: float = 10.0,
        port_forward: PortForward | None = None,
    ):
        self.config = config
        self.steps = walkthrough or Walkthrough()
        self.sync_wait_seconds = sync_wait_seconds
        self.port_forward = port_forward or argocd_port_forward(config)

    def run(self) -> None:
        print("🚀 ArgoCD GitOps Lab")
        print("===================")

        self.check_prerequisites()
        self.setup_port_forward()
        completed = False
        try:
            self.create_application(self.config.environment("dev"))
            print("Waiting for applications to sync...")
            time.sleep(self.sync_wait_seconds)
            self.demo_gitops_workflow()
            self.demo_cli()
            self.demo_environment_promotion()
            self.summary()
            self.cleanup()
            completed = True
        finally:
            # declined cleanup keeps the UI port-forward
            if not completed:
                self.port_forward.stop()

    def check_prerequisites(self) -> None:
        self.steps.step("Prerequisites Check")
        if not cluster_reachable():
            raise ArgoCDLabError("No Kubernetes cluster found. Please ensure your cluster is running.")
        print("✅ Kubernetes cluster accessible")

        if argocd_running():
            return
        if not self.steps.confirm("🤔 Would you like to install ArgoCD now?"):
            raise ArgoCDLabError("Please install ArgoCD first and run this lab again.")
        GitOpsToolsInstaller(self.config).install_argocd()

    def setup_port_forward(self) -> None:
        self.steps.step("Setting up ArgoCD UI Access")
        print(f"ArgoCD UI will be available at: http://localhost:{self.port_forward.local_port}")
        print("Username: admin")
        print(f"Password: {argocd_admin_password() or 'Unable to get password'}")
        print()
        print("Starting port-forward in background...")
        self.port_forward.start()
        print()
        print(f"🌐 Open your browser and go to: http://localhost:{self.port_forward.local_port}")
        print("⚠️  You may see a security warning - click 'Advanced' and 'Proceed'")
        self.steps.wait_for_enter("Press Enter when you're ready to continue...")

    def create_application(self, env: Environment) -> None:
        manifest = yaml.safe_dump(application_manifest(env, self.config.repo_url), sort_keys=False)
        try:
            apply_namespace(env.namespace)
            run_or_raise(kubectl("apply", "-f", "-"), input=manifest)
        except CommandError as e:
            raise ArgoCDLabError(f"Failed to create application {application_name(env)}: {e}") from e
        print(f"✅ Application {application_name(env)} created")

    def application_status(self, env: Environment) -> tuple[str, str]:
        def field(expr: str) -> str:
            result = run_command(
                kubectl("get", "application", application_name(env), "-n", ARGOCD_NAMESPACE, "-o", f"jsonpath={expr}")
            )
            return result.stdout.strip() if result.ok and result.stdout.strip() else "Unknown"

        return field("{.status.sync.status}"), field("{.status.health.status}")

    def demo_gitops_workflow(self) -> None:
        self.steps.step("GitOps Workflow Demonstration")
        dev = self.config.environment("dev")
        print("🔍 Checking application status...")
        self.steps.run(kubectl("get", "applications", "-n", ARGOCD_NAMESPACE))
        print()
        print("🔍 Checking deployed resources...")
        self.steps.run(kubectl("get", "all", "-n", dev.namespace))

        sync, health = self.application_status(dev)
        print()
        print("📊 ArgoCD Application Details:")
        print(f"Sync Status: {sync}")
        print(f"Health Status: {health}")
        print()
        print("🎯 This demonstrates the GitOps workflow:")
        print("1. Application configuration is stored in Git")
        print("2. ArgoCD monitors the Git repository")
        print("3. Changes are automatically deployed to Kubernetes")
        print("4. Actual state is reconciled with desired state")

    def demo_cli(self) -> None:
        self.steps.step("ArgoCD CLI Demonstration")
        app = application_name(self.config.environment("dev"))

        if not command_exists("argocd"):
            print("ArgoCD CLI not installed. Showing kubectl alternatives...")
            self.steps.run(kubectl("get", "applications", "-n", ARGOCD_NAMESPACE))
            self.steps.run(kubectl("get", "application", app, "-n", ARGOCD_NAMESPACE, "-o", "yaml"))
            print()
            print("🔄 To install ArgoCD CLI:")
            print("  macOS: brew install argocd")
            print(
                "  Linux: curl -sSL -o argocd "
                "https://github.com/argoproj/argo-cd/releases/latest/download/argocd-linux-amd64"
            )
            return

        print("ArgoCD CLI found! Demonstrating CLI commands...")
        if not run_command(["argocd", "account", "get"]).ok:
            print()
            print("🔑 First, login to ArgoCD CLI:")
            print(f"argocd login localhost:{self.port_forward.local_port}")
            print("Username: admin")
            print(f"Password: {argocd_admin_password() or 'Unable to get password'}")
            self.steps.wait_for_enter("Run the login command manually, then press Enter to continue...")

        self.steps.run(["argocd", "app", "list"])
        self.steps.run(["argocd", "app", "get", app])
        self.steps.run(["argocd", "app", "sync", app])

    def demo_environment_promotion(self) -> None:
        self.steps.step("Environment Promotion Demo")
        print("Creating applications for all environments...")
        for env in self.config.environments:
            if env.name != "dev":
                self.create_application(env)
        print("✅ Applications created for all environments!")

        print()
        print("📊 Environment Comparison:")
        self.steps.run(kubectl("get", "deployments", "-A", "-l", f"app={APP_NAME}"))
        print()
        print("🎯 Notice the different sync policies:")
        print("• Dev: Fully automated (auto-sync + auto-prune)")
        print("• Staging: Semi-automated (auto-sync, manual prune)")
        print("• Production: Manual sync only")

    def summary(self) -> None:
        print()
        print("🎉 ArgoCD Lab Completed!")
        print()
        print(f"🌐 ArgoCD UI: http://localhost:{self.port_forward.local_port}")
        print("👤 Username: admin")
        print(f"🔑 Password: {argocd_admin_password() or 'Unable to get password'}")

    def cleanup(self) -> bool:
        self.steps.step("Cleanup (Optional)")
        if not self.steps.confirm("🧹 Would you like to clean up the demo resources?"):
            return False

        print("Cleaning up ArgoCD applications...")
        for env in self.config.environments:
            run_command(
                kubectl(
                    "delete", "application", application_name(env), "-n", ARGOCD_NAMESPACE, "--ignore-not-found=true"
                )
            )
        print("Cleaning up application resources...")
        for env in self.config.environments:
            delete_namespace(env.namespace)

        print("Stopping port-forward...")
        self.port_forward.stop(kill_others=True)

        print("✅ Cleanup completed")
        print()
        print("Note: ArgoCD itself is still running. To remove ArgoCD completely:")
        print(f"kubectl delete namespace {ARGOCD_NAMESPACE}")
        return True
