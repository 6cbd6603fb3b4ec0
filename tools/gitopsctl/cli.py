from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import typer

from tools.gitopsctl import __version__
from tools.gitopsctl.argocd_lab import ArgoCDLab, ArgoCDLabError
from tools.gitopsctl.cleanup import cleanup_lab
from tools.gitopsctl.basics_lab import BasicsLabError, KubernetesBasicsLab
from tools.gitopsctl.cluster import (
    ClusterError,
    ClusterProvider,
    ClusterService,
    provider_from_choice,
    provider_menu_lines,
)
from tools.gitopsctl.config import ConfigError, lab_config, repo_root
from tools.gitopsctl.console import heading, log_error, log_info, log_success, log_warning, show_banner
from tools.gitopsctl.demo_envs import DemoError, MultiEnvironmentDemo
from tools.gitopsctl.doctor import (
    CLUSTER_OPTIONS,
    Status,
    check_prerequisites,
    exit_code,
    has_cluster_option,
    recommendations,
    run_doctor,
)
from tools.gitopsctl.gitops_tools import GitOpsToolsInstaller, ToolInstallError
from tools.gitopsctl.kube import CommandError
from tools.gitopsctl.kustomize_lab import KustomizeLab, KustomizeLabError
from tools.gitopsctl.logging_config import setup_logging
from tools.gitopsctl.navigation import NavigationError, part_path, show_lab_structure
from tools.gitopsctl.promote import PromotionError, PromotionRequest, Promoter
from tools.gitopsctl.repo_setup import RepoSetupError, create_environment_branches, github_url, retarget_repo_urls
from tools.gitopsctl.shell import install_snippet, shell_snippet
from tools.gitopsctl.status import collect_status, render_status
from tools.gitopsctl.verify import verify_setup
from tools.gitopsctl.wait import WaitFailed
from tools.gitopsctl.walkthrough import Walkthrough

LAB_ERRORS = (
    ArgoCDLabError,
    BasicsLabError,
    ClusterError,
    CommandError,
    ConfigError,
    DemoError,
    KustomizeLabError,
    NavigationError,
    PromotionError,
    RepoSetupError,
    ToolInstallError,
    WaitFailed,
)

app = typer.Typer(no_args_is_help=True, help="GitOps Lab - hands-on ArgoCD, Flux, Kustomize and Helm.")


def _show_version(value: bool) -> None:
    if value:
        typer.echo(f"gitopsctl {__version__}")
        raise typer.Exit()


def _fail(e: Exception) -> None:
    print(f"ERROR: {e}")
    raise typer.Exit(code=1)


def _print_checks(results: list) -> None:
    for r in results:
        print(f"{r.status.value} {r.name}: {r.message}")


def _resolve_provider(provider: Optional[ClusterProvider], choose: bool) -> Optional[ClusterProvider]:
    if provider is not None or not choose:
        return provider
    heading("Choose your Kubernetes setup:")
    for line in provider_menu_lines():
        print(f"  {line}")
    chosen = provider_from_choice(typer.prompt("Enter your choice (1-5)"))
    if chosen is None:
        log_info("Exiting...")
        raise typer.Exit()
    return chosen


def _require_prerequisites() -> None:
    results = check_prerequisites()
    _print_checks(results)
    if any(r.status == Status.ERR for r in results):
        log_error("Missing required tools")
        raise typer.Exit(code=1)
    if not has_cluster_option(results):
        log_warning("No Kubernetes cluster detected!")
        for option in CLUSTER_OPTIONS:
            print(f"  - {option}")
        print("Or use an existing cluster by setting KUBECONFIG")
        raise typer.Exit(code=1)
    log_success("All prerequisites met!")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress details."),
    debug: bool = typer.Option(False, "--debug", help="Log every external command."),
    version: bool = typer.Option(
        False, "--version", callback=_show_version, is_eager=True, help="Show the version and exit."
    ),
) -> None:
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    else:
        level = os.environ.get("GITOPS_LAB_LOG_LEVEL", "WARNING")
    setup_logging(level)


@app.command()
def doctor() -> None:
    """Diagnose tools, cluster options and connectivity."""
    try:
        cfg = lab_config()
    except ConfigError as e:
        _fail(e)
    results = run_doctor(cfg)
    _print_checks(results)
    print()
    heading("💡 Recommendations:")
    for line in recommendations(results, cfg.cluster_name):
        print(f"  {line}")
    raise typer.Exit(code=exit_code(results))


app.command("troubleshoot", hidden=True)(doctor)


PROVIDER_OPTION = typer.Option(
    None, "--provider", case_sensitive=False, help="Cluster provider to use instead of auto-detection."
)
CHOOSE_OPTION = typer.Option(False, "--choose", help="Pick the cluster provider from a menu.")


@app.command()
def setup(
    provider: Optional[ClusterProvider] = PROVIDER_OPTION,
    choose: bool = CHOOSE_OPTION,
) -> None:
    """Quick setup: prerequisites, cluster and kubeconfig."""
    show_banner()
    try:
        cfg = lab_config()
        selected = _resolve_provider(provider, choose)
        _require_prerequisites()
        service = ClusterService(cfg)
        service.start(provider=selected)
        service.verify()
    except LAB_ERRORS as e:
        _fail(e)
    log_success("Quick setup complete!")
    log_info("Run 'gitopsctl tools' to install GitOps tools")


@app.command("tools")
def install_tools() -> None:
    """Install ArgoCD and Flux into the lab cluster."""
    show_banner()
    try:
        GitOpsToolsInstaller(lab_config()).install_all()
    except LAB_ERRORS as e:
        _fail(e)


@app.command()
def start(
    ingress: bool = typer.Option(False, "--ingress", help="Install ingress-nginx after creating a Kind cluster."),
    provider: Optional[ClusterProvider] = PROVIDER_OPTION,
    choose: bool = CHOOSE_OPTION,
) -> None:
    """Start (or reuse) a Kubernetes cluster."""
    show_banner()
    try:
        cfg = lab_config()
        selected = _resolve_provider(provider, choose)
        _require_prerequisites()
        ClusterService(cfg).start(ingress=ingress, provider=selected)
    except LAB_ERRORS as e:
        _fail(e)


@app.command()
def stop() -> None:
    """Stop Minikube or delete the Kind lab cluster."""
    show_banner()
    try:
        ClusterService(lab_config()).stop()
    except LAB_ERRORS as e:
        _fail(e)


@app.command()
def status() -> None:
    """Show cluster, ArgoCD and Flux status."""
    show_banner()
    try:
        cfg = lab_config()
    except ConfigError as e:
        _fail(e)
    render_status(collect_status(cfg), cfg.cluster_name)


@app.command()
def lab() -> None:
    """Show the lab structure."""
    show_lab_structure()


@app.command()
def go(part: int = typer.Argument(..., help="Lab part number (1-12).")) -> None:
    """Print the directory of a lab part: cd "$(gitopsctl go 4)"."""
    try:
        path = part_path(part)
    except NavigationError as e:
        log_error(str(e))
        raise typer.Exit(code=1)
    if not path.is_dir():
        # stderr only: stdout must stay a bare path for cd "$(gitopsctl go N)"
        typer.secho(f"Warning: {path} is not part of this checkout yet", fg=typer.colors.YELLOW, err=True)
    typer.echo(str(path))


@app.command()
def cleanup(yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes to every prompt.")) -> None:
    """Remove the lab kubeconfig and optionally stop the cluster."""
    show_banner()
    try:
        cleanup_lab(lab_config(), assume_yes=yes)
    except LAB_ERRORS as e:
        _fail(e)


@app.command()
def verify() -> None:
    """Verify the cluster is ready for the Kubernetes basics lab."""
    try:
        verify_setup()
    except LAB_ERRORS as e:
        _fail(e)


@app.command("basics-lab")
def basics_lab(yes: bool = typer.Option(False, "--yes", "-y", help="Delete the demo namespace without asking.")) -> None:
    """Run the Kubernetes basics examples (pod, deployment, service, config, storage)."""
    try:
        responding = KubernetesBasicsLab(Walkthrough(assume_yes=yes)).run()
    except LAB_ERRORS as e:
        _fail(e)
    if not responding:
        raise typer.Exit(code=1)


@app.command("kustomize-lab")
def kustomize_lab(yes: bool = typer.Option(False, "--yes", "-y", help="Run every step without pausing.")) -> None:
    """Interactive Kustomize base/overlay walkthrough."""
    try:
        KustomizeLab(lab_config(), Walkthrough(assume_yes=yes)).run()
    except LAB_ERRORS as e:
        _fail(e)


@app.command("argocd-lab")
def argocd_lab(yes: bool = typer.Option(False, "--yes", "-y", help="Run every step without pausing.")) -> None:
    """Interactive ArgoCD GitOps walkthrough."""
    try:
        ArgoCDLab(lab_config(), Walkthrough(assume_yes=yes)).run()
    except LAB_ERRORS as e:
        _fail(e)


@app.command("demo-envs")
def demo_envs() -> None:
    """Deploy the sample app to every environment and probe it."""
    try:
        results = MultiEnvironmentDemo(lab_config()).run()
    except LAB_ERRORS as e:
        _fail(e)
    if not all(r.responding for r in results):
        raise typer.Exit(code=1)


@app.command()
def promote(
    source: str = typer.Argument(..., help="Environment to promote from (dev, staging)."),
    target: str = typer.Argument(..., help="Environment to promote to (staging, production)."),
    tag: Optional[str] = typer.Option(None, "--tag", help="Image tag to promote (default: source overlay's tag)."),
    image: str = typer.Option("nginx", "--image", help="Image name in the overlay's images list."),
    app_name: str = typer.Option("sample-app", "--app", help="Application name used in branch and PR title."),
    base: str = typer.Option("main", "--base", help="Pull request base branch."),
    push: bool = typer.Option(True, "--push/--no-push", help="Push the promotion branch."),
    pr: bool = typer.Option(True, "--pr/--no-pr", help="Open a pull request with gh."),
    validate: bool = typer.Option(True, "--validate/--no-validate", help="Validate with kubeval."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the change without writing it."),
) -> None:
    """Promote an image tag from one overlay to another and open a PR."""
    request = PromotionRequest(
        source=source,
        target=target,
        tag=tag,
        image=image,
        app=app_name,
        base_branch=base,
        push=push,
        open_pr=pr and push,
        validate=validate,
        dry_run=dry_run,
    )
    try:
        result = Promoter(lab_config()).promote(request)
    except LAB_ERRORS as e:
        _fail(e)
    if result.changed:
        log_success(f"{result.kustomization.parent.name}: {result.old_tag or '<unset>'} -> {result.new_tag}")


@app.command("repo-init")
def repo_init(
    username: str = typer.Option(..., "--username", prompt="Enter your GitHub username"),
    repo_name: str = typer.Option("gitops-lab", "--repo-name"),
    branches: bool = typer.Option(True, "--branches/--no-branches", help="Create environment branches."),
    push: bool = typer.Option(True, "--push/--no-push"),
) -> None:
    """Point the lab manifests at your own GitHub repository."""
    try:
        url = github_url(username, repo_name)
        log_info(f"Repository URL will be: {url}")
        root = repo_root()
        retarget_repo_urls(root, url)
        if branches:
            create_environment_branches(root, push=push)
    except LAB_ERRORS as e:
        _fail(e)


@app.command("shell-init")
def shell_init(
    install: Optional[Path] = typer.Option(None, "--install", help="Append the snippet to this rc file."),
) -> None:
    """Print (or install) lab shell aliases and helper functions."""
    try:
        cfg = lab_config()
    except ConfigError as e:
        _fail(e)
    if install is None:
        typer.echo(shell_snippet(cfg.kubeconfig))
        return
    if install_snippet(install.expanduser(), cfg.kubeconfig):
        log_success(f"Added lab functions to {install}")
        log_info(f"Reload your shell: source {install}")
    else:
        log_info(f"Lab functions already present in {install}")


if __name__ == "__main__":
    app()
