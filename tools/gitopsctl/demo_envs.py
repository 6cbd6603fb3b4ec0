from __future__ import annotations

from dataclasses import dataclass

import typer

from .config import Environment, LabConfig, overlay_dir
from .console import heading
from .kube import CommandError, apply_namespace, kubectl, run_interactive, run_or_raise
from .kustomize_lab import deployment_name, read_kustomization
from .portforward import PortForward, http_responds


class DemoError(Exception):
    pass


@dataclass(frozen=True)
class ProbeResult:
    environment: str
    url: str
    responding: bool


def overlay_replicas(env: Environment) -> str:
    kustomization = read_kustomization(overlay_dir(env))
    for entry in kustomization.get("replicas", []) or []:
        if entry.get("name") == "sample-app":
            return str(entry.get("count"))
    for patch in kustomization.get("patches", []) or []:
        body = patch.get("patch", "") or ""
        if "/spec/replicas" in body:
            for line in body.splitlines():
                if line.strip().startswith("value:"):
                    return line.split(":", 1)[1].strip()
    return "base"


def summary_table(environments: tuple[Environment, ...]) -> list[str]:
    rows = [(env.name, overlay_replicas(env), env.namespace, f"ENVIRONMENT={env.name}") for env in environments]
    widths = [max(len(h), *(len(r[i]) for r in rows)) for i, h in enumerate(("Environment", "Replicas", "Namespace", "Config"))]

    def line(cells: tuple[str, ...]) -> str:
        return "│ " + " │ ".join(c.ljust(w) for c, w in zip(cells, widths)) + " │"

    border = "─┬─".join("─" * w for w in widths)
    middle = "─┼─".join("─" * w for w in widths)
    bottom = "─┴─".join("─" * w for w in widths)
    out = [f"┌─{border}─┐", line(("Environment", "Replicas", "Namespace", "Config")), f"├─{middle}─┤"]
    out.extend(line(r) for r in rows)
    out.append(f"└─{bottom}─┘")
    return out


class MultiEnvironmentDemo:
    def __init__(self, config: LabConfig, settle_seconds: float = 2.0, wait_timeout: str = "120s"):
        self.config = config
        self.settle_seconds = settle_seconds
        self.wait_timeout = wait_timeout

    def run(self) -> list[ProbeResult]:
        heading("🚀 GitOps Multi-Environment Deployment Demo")
        print("================================================")
        self.deploy()
        self.wait_available()
        self.show_status()
        results = self.probe()
        self.show_cleanup_hint()
        return results

    def deploy(self) -> None:
        typer.secho("📋 Creating namespaces...", fg=typer.colors.BLUE)
        try:
            for env in self.config.environments:
                apply_namespace(env.namespace)

            for env in self.config.environments:
                typer.secho(f"📦 Deploying to {env.name.upper()} environment...", fg=typer.colors.YELLOW)
                run_or_raise(kubectl("apply", "-k", str(overlay_dir(env))))
                typer.secho(f"✅ {env.name.capitalize()} deployment complete", fg=typer.colors.GREEN)
        except CommandError as e:
            raise DemoError(f"Deployment failed: {e}") from e

    def wait_available(self) -> None:
        typer.secho("⏳ Waiting for all deployments to be ready...", fg=typer.colors.BLUE)
        try:
            for env in self.config.environments:
                run_or_raise(
                    kubectl(
                        "wait",
                        "--for=condition=Available",
                        f"deployment/{deployment_name(env)}",
                        "-n",
                        env.namespace,
                        f"--timeout={self.wait_timeout}",
                    )
                )
        except CommandError as e:
            raise DemoError(f"Deployments did not become Available: {e}") from e

    def show_status(self) -> None:
        heading("🔍 Deployment Status:")
        run_interactive(kubectl("get", "deployments", "-l", "app=sample-app", "--all-namespaces"))
        heading("🔍 Pod Status:")
        run_interactive(kubectl("get", "pods", "-l", "app=sample-app", "--all-namespaces"))
        heading("🎯 Environment Configuration Summary:")
        for row in summary_table(self.config.environments):
            print(row)

    def probe(self) -> list[ProbeResult]:
        heading("🧪 Testing Applications:")
        results: list[ProbeResult] = []
        for env in self.config.environments:
            typer.secho(f"Testing {env.name.upper()} environment...", fg=typer.colors.YELLOW)
            forward = PortForward(
                f"deployment/{deployment_name(env)}",
                env.namespace,
                env.local_port,
                80,
                settle_seconds=self.settle_seconds,
            )
            with forward:
                responding = http_responds(forward.url)
            if responding:
                typer.secho(f"✅ {env.name} application responding on {forward.url}", fg=typer.colors.GREEN)
            else:
                typer.secho(f"❌ {env.name} application not responding", fg=typer.colors.RED)
            results.append(ProbeResult(environment=env.name, url=forward.url, responding=responding))
        return results

    def show_cleanup_hint(self) -> None:
        print()
        heading("Cleanup:")
        for env in self.config.environments:
            print(f"kubectl delete -k {overlay_dir(env)}")
