from __future__ import annotations

import difflib
import json
import logging
from pathlib import Path

import yaml

from .config import Environment, LabConfig, kustomize_dir, overlay_dir
from .kube import (
    CommandError,
    apply_namespace,
    cluster_reachable,
    command_exists,
    delete_namespace,
    kubectl,
    run_command,
    run_or_raise,
)
from .walkthrough import Walkthrough

logger = logging.getLogger(__name__)

APP_NAME = "sample-app"
BASE_IMAGE = "nginx:1.21"

ENV_ICONS = {"dev": "🧪", "staging": "🎭", "production": "🏭"}


class KustomizeLabError(Exception):
    pass


def read_kustomization(directory: Path) -> dict:
    path = directory / "kustomization.yaml"
    if not path.is_file():
        raise KustomizeLabError(f"No kustomization.yaml in {directory}")
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def deployment_name(env: Environment, app: str = APP_NAME) -> str:
    prefix = read_kustomization(overlay_dir(env)).get("namePrefix", "") or ""
    return f"{prefix}{app}"


def render(directory: Path) -> str:
    try:
        return run_or_raise(kubectl("kustomize", str(directory))).stdout
    except CommandError as e:
        raise KustomizeLabError(f"kubectl kustomize {directory} failed: {e}") from e


def render_overlay(env: Environment) -> str:
    return render(overlay_dir(env))


def diff_overlays(left: Environment, right: Environment) -> list[str]:
    a = render_overlay(left).splitlines(keepends=True)
    b = render_overlay(right).splitlines(keepends=True)
    return list(difflib.unified_diff(a, b, fromfile=f"kustomize-{left.overlay}.yaml", tofile=f"kustomize-{right.overlay}.yaml"))


def _jsonpath(namespace: str, name: str, expr: str) -> str:
    result = run_command(kubectl("get", "deployment", name, "-n", namespace, "-o", f"jsonpath={expr}"))
    return result.stdout.strip() if result.ok else "<not found>"


class KustomizeLab:
    def __init__(self, config: LabConfig, walkthrough: Walkthrough | None = None):
        self.config = config
        self.steps = walkthrough or Walkthrough()

    def run(self) -> None:
        print("🔧 Kustomize Configuration Management Lab")
        print("==========================================")

        self.check_prerequisites()
        self.show_structure()
        self.show_base()
        self.show_overlays()
        self.compare_environments()
        self.deploy()
        self.verify()
        self.show_transformations()
        self.cleanup()
        self.summary()

    def check_prerequisites(self) -> None:
        self.steps.step("Checking prerequisites")
        if not command_exists("kubectl"):
            raise KustomizeLabError("kubectl not found. Please install kubectl first.")
        if not cluster_reachable():
            raise KustomizeLabError("No Kubernetes cluster found. Please ensure your cluster is running.")
        print("✅ kubectl found")
        print("✅ Kubernetes cluster accessible")

    def show_structure(self) -> None:
        self.steps.step("Lab Structure Overview")
        print("📁 Kustomize Lab Structure:")
        root = kustomize_dir()
        files = sorted(p for p in root.rglob("*") if p.is_file())
        for path in files[:20]:
            print(f"  {path.relative_to(root)}")

    def show_base(self) -> None:
        self.steps.step("Part 1: Understanding Base Configuration")
        print("Base configuration contains common resources that all environments share.")
        self.steps.run(kubectl("kustomize", str(kustomize_dir() / "base")))

    def show_overlays(self) -> None:
        self.steps.step("Part 2: Environment-specific Overlays")
        for env in self.config.environments:
            print()
            print(f"{ENV_ICONS.get(env.name, '📦')} {env.name.capitalize()} Environment ({env.overlay}):")
            self.steps.run(kubectl("kustomize", str(overlay_dir(env))))

    def compare_environments(self) -> None:
        self.steps.step("Part 3: Comparing Environments")
        envs = self.config.environments
        for left, right in zip(envs, envs[1:]):
            print()
            print(f"📊 Comparing {left.overlay} vs {right.overlay}:")
            print("Key differences:")
            for line in diff_overlays(left, right):
                print(line, end="")

    def deploy(self) -> None:
        self.steps.step("Part 4: Hands-on Deployment")
        print()
        print("📦 Creating namespaces...")
        try:
            for env in self.config.environments:
                apply_namespace(env.namespace)
        except CommandError as e:
            raise KustomizeLabError(f"Failed to create namespaces: {e}") from e

        for env in self.config.environments:
            print()
            print(f"{ENV_ICONS.get(env.name, '📦')} Deploying to {env.name}:")
            self.steps.run(kubectl("apply", "-k", str(overlay_dir(env))))

    def verify(self) -> None:
        self.steps.step("Part 5: Verification")
        print()
        print("🔍 Checking deployments across environments:")
        for env in self.config.environments:
            self.steps.run(kubectl("get", "deployments", "-n", env.namespace, "-o", "wide"))

        print()
        print("📊 Resource differences:")
        for env in self.config.environments:
            replicas = _jsonpath(env.namespace, deployment_name(env), "{.spec.replicas}")
            print(f"{env.name.capitalize()} replicas: {replicas}")

    def show_transformations(self) -> None:
        self.steps.step("Part 6: Advanced Features Demo")
        print()
        print("Image transformations:")
        print(f"Base image: {BASE_IMAGE}")
        for env in self.config.environments:
            image = _jsonpath(env.namespace, deployment_name(env), "{.spec.template.spec.containers[0].image}")
            print(f"{env.name.capitalize()} image: {image}")

        print()
        print("Environment labels:")
        for env in self.config.environments:
            raw = _jsonpath(env.namespace, deployment_name(env), "{.metadata.labels}")
            print(f"{env.name.capitalize()} labels:")
            try:
                print(json.dumps(json.loads(raw), indent=2, sort_keys=True))
            except json.JSONDecodeError:
                print(raw)

    def cleanup(self) -> bool:
        self.steps.step("Cleanup (Optional)")
        if not self.steps.confirm("🧹 Would you like to clean up the deployed resources?"):
            return False

        print("Cleaning up...")
        for env in self.config.environments:
            # Resources may already be gone.
            run_command(kubectl("delete", "-k", str(overlay_dir(env))))
        for env in self.config.environments:
            delete_namespace(env.namespace)
        print("✅ Cleanup completed")
        return True

    def summary(self) -> None:
        print()
        print("🎉 Kustomize Lab Completed!")
        print()
        print("📚 What you learned:")
        print("• Base and overlay structure")
        print("• Environment-specific configurations")
        print("• Image and replica transformations")
        print("• Strategic merge patches")
        print("• Label and namespace management")
