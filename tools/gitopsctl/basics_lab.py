"""Kubernetes basics walkthrough.

Creates one of each core object (Pod, Deployment, Service, ConfigMap,
Secret, PersistentVolumeClaim) in a scratch namespace, deploys a small test
application, checks it answers through a port-forward, scales a deployment
and offers to delete everything.
"""

from __future__ import annotations

import time
from typing import Any

import yaml

from .console import heading, log_info, log_step, log_success, log_warning
from .kube import (
    CommandError,
    apply_namespace,
    cluster_reachable,
    delete_namespace,
    kubectl,
    run_command,
    run_interactive,
    run_or_raise,
)
from .portforward import PortForward, http_responds
from .walkthrough import Walkthrough

NAMESPACE = "kubernetes-basics-demo"
NGINX_IMAGE = "nginx:alpine"
TEST_APP_IMAGE = "nginxdemos/hello:latest"


class BasicsLabError(Exception):
    pass


def _container(name: str, image: str) -> dict[str, Any]:
    return {"name": name, "image": image, "ports": [{"containerPort": 80}]}


def pod_manifest(name: str = "nginx-pod") -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": name, "labels": {"app": name}},
        "spec": {"containers": [_container("nginx", NGINX_IMAGE)]},
    }


def deployment_manifest(name: str, app: str, image: str, replicas: int) -> dict[str, Any]:
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name},
        "spec": {
            "replicas": replicas,
            "selector": {"matchLabels": {"app": app}},
            "template": {
                "metadata": {"labels": {"app": app}},
                "spec": {"containers": [_container(app, image)]},
            },
        },
    }


def service_manifest(name: str, app: str, port: int = 80) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": name},
        "spec": {
            "selector": {"app": app},
            "ports": [{"port": port, "targetPort": port}],
            "type": "ClusterIP",
        },
    }


def pvc_manifest(name: str = "demo-pvc", size: str = "1Gi") -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": {"name": name},
        "spec": {"accessModes": ["ReadWriteOnce"], "resources": {"requests": {"storage": size}}},
    }


class KubernetesBasicsLab:
    def __init__(
        self,
        steps: Walkthrough,
        namespace: str = NAMESPACE,
        port_forward: PortForward | None = None,
        pvc_settle_seconds: float = 5.0,
    ):
        self.steps = steps
        self.namespace = namespace
        self.port_forward = port_forward or PortForward("service/test-app-service", namespace, 8080, 80)
        self.pvc_settle_seconds = pvc_settle_seconds

    def run(self) -> bool:
        heading("Kubernetes Basics - Running Examples")
        print("====================================")

        self.prepare_namespace()
        self.create_pod()
        self.create_deployment()
        self.create_service()
        self.create_config_map()
        self.create_secret()
        self.create_volume_claim()
        self.deploy_test_app()
        responding = self.test_application()
        self.show_resources()
        self.scale_deployment()
        self.summary()
        self.cleanup()
        return responding

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    def _apply(self, *manifests: dict[str, Any]) -> None:
        rendered = yaml.safe_dump_all(manifests, sort_keys=False)
        try:
            run_or_raise(kubectl("apply", "-n", self.namespace, "-f", "-"), input=rendered)
        except CommandError as e:
            names = ", ".join(m["metadata"]["name"] for m in manifests)
            raise BasicsLabError(f"Failed to apply {names}: {e}") from e

    def _create_literal(self, *args: str) -> None:
        try:
            rendered = run_or_raise(kubectl("create", *args, "-n", self.namespace, "--dry-run=client", "-o", "yaml"))
            run_or_raise(kubectl("apply", "-f", "-"), input=rendered.stdout)
        except CommandError as e:
            raise BasicsLabError(f"Failed to create {' '.join(args[:2])}: {e}") from e

    def _wait(self, condition: str, resource: str, timeout: str) -> None:
        try:
            run_or_raise(
                kubectl("wait", f"--for=condition={condition}", resource, "-n", self.namespace, f"--timeout={timeout}")
            )
        except CommandError as e:
            raise BasicsLabError(f"{resource} did not become {condition} within {timeout}: {e}") from e

    def _show(self, *args: str) -> None:
        run_interactive(kubectl(*args, "-n", self.namespace))

    # ------------------------------------------------------------
    # Examples
    # ------------------------------------------------------------

    def prepare_namespace(self) -> None:
        if not cluster_reachable():
            raise BasicsLabError("Cannot connect to Kubernetes cluster. Run 'gitopsctl verify' first")
        try:
            apply_namespace(self.namespace)
        except CommandError as e:
            raise BasicsLabError(f"Failed to create namespace {self.namespace}: {e}") from e
        log_success(f"Namespace '{self.namespace}' ready")

    def create_pod(self) -> None:
        log_step("Example 1: Creating a simple pod...")
        self._apply(pod_manifest())
        log_info("Waiting for pod to be ready...")
        self._wait("Ready", "pod/nginx-pod", "60s")
        log_success("Pod created and ready")
        self._show("get", "pod", "nginx-pod")

    def create_deployment(self) -> None:
        log_step("Example 2: Creating a deployment...")
        self._apply(deployment_manifest("nginx-deployment", "nginx", NGINX_IMAGE, replicas=3))
        log_info("Waiting for deployment to be ready...")
        self._wait("Available", "deployment/nginx-deployment", "120s")
        log_success("Deployment created and ready")
        self._show("get", "deployment", "nginx-deployment")
        self._show("get", "pods", "-l", "app=nginx")

    def create_service(self) -> None:
        log_step("Example 3: Creating a service...")
        self._apply(service_manifest("nginx-service", "nginx"))
        log_success("Service created")
        self._show("get", "service", "nginx-service")

    def create_config_map(self) -> None:
        log_step("Example 4: Creating a ConfigMap...")
        self._create_literal(
            "configmap",
            "app-config",
            "--from-literal=database_url=postgresql://localhost:5432/mydb",
            "--from-literal=debug=true",
        )
        log_success("ConfigMap created")
        self._show("get", "configmap", "app-config")

    def create_secret(self) -> None:
        log_step("Example 5: Creating a Secret...")
        self._create_literal(
            "secret",
            "generic",
            "app-secret",
            "--from-literal=username=admin",
            "--from-literal=password=secret123",
        )
        log_success("Secret created")
        self._show("get", "secret", "app-secret")

    def create_volume_claim(self) -> str:
        log_step("Example 6: Creating a PersistentVolumeClaim...")
        self._apply(pvc_manifest())
        log_info("Waiting for PVC to be bound...")
        time.sleep(self.pvc_settle_seconds)

        phase = run_command(
            kubectl("get", "pvc", "demo-pvc", "-n", self.namespace, "-o", "jsonpath={.status.phase}")
        ).stdout.strip()
        if phase == "Bound":
            log_success("PVC created and bound")
        else:
            log_warning(f"PVC status: {phase or 'Unknown'} (may need more time)")
        self._show("get", "pvc", "demo-pvc")
        return phase

    def deploy_test_app(self) -> None:
        log_step("Example 7: Deploying complete test application...")
        self._apply(
            deployment_manifest("test-app", "test-app", TEST_APP_IMAGE, replicas=2),
            service_manifest("test-app-service", "test-app"),
        )
        log_info("Waiting for test application to be ready...")
        self._wait("Available", "deployment/test-app", "120s")
        log_success("Test application deployed and ready")
        self._show("get", "all", "-l", "app=test-app")

    def test_application(self) -> bool:
        log_step("Testing the application...")
        print("Starting port-forward to test the application...")
        with self.port_forward as forward:
            responding = http_responds(forward.url)
        if responding:
            log_success(f"Application is responding on {self.port_forward.url}")
            print(f"You can test it with: curl {self.port_forward.url}")
        else:
            log_warning("Could not reach application (port-forward may need more time)")
        return responding

    def show_resources(self) -> None:
        log_step("Summary of created resources:")
        self._show("get", "all")

    def scale_deployment(self, replicas: int = 5) -> None:
        log_step(f"Scaling nginx-deployment to {replicas} replicas...")
        try:
            run_or_raise(
                kubectl("scale", "deployment", "nginx-deployment", f"--replicas={replicas}", "-n", self.namespace)
            )
        except CommandError as e:
            raise BasicsLabError(f"Failed to scale nginx-deployment: {e}") from e
        self._wait("Available", "deployment/nginx-deployment", "60s")
        self._show("get", "deployment", "nginx-deployment")

    def summary(self) -> None:
        print()
        heading("Examples completed successfully!")
        print()
        print(f"Resources created in namespace '{self.namespace}':")
        for line in (
            "nginx-pod (single pod)",
            "nginx-deployment (5 replicas)",
            "nginx-service (ClusterIP service)",
            "test-app deployment and service",
            "app-config (ConfigMap)",
            "app-secret (Secret)",
            "demo-pvc (PersistentVolumeClaim)",
        ):
            print(f"- {line}")

    def cleanup(self) -> bool:
        print()
        if not self.steps.confirm("Do you want to clean up all demo resources?"):
            print(f"To clean up later, run: kubectl delete namespace {self.namespace}")
            return False
        log_info("Cleaning up demo resources...")
        delete_namespace(self.namespace)
        log_success("Cleanup complete")
        print("Next: Continue to Part 3 - GitOps Introduction")
        return True
