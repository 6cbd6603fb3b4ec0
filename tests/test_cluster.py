from __future__ import annotations

import json
import os
import stat
from pathlib import Path

import pytest

from tools.gitopsctl.cluster import (
    MINIKUBE_ADDONS,
    ClusterError,
    ClusterProvider,
    ClusterService,
    detect_provider,
    inline_kind_config,
    provider_from_choice,
    provider_menu_lines,
)
from tools.gitopsctl.config import LabConfig, kind_cluster_config_path
from tools.gitopsctl.wait import WaitSpec

FAST = WaitSpec(poll_seconds=0, timeout_seconds=5)


@pytest.fixture
def service(tmp_path: Path) -> ClusterService:
    return ClusterService(
        LabConfig(kubeconfig=tmp_path / "kube" / "config-gitops-lab"), wait=FAST, confirm=lambda q: True
    )


@pytest.mark.parametrize(
    "context, provider",
    [
        ("docker-desktop", ClusterProvider.DOCKER_DESKTOP),
        ("minikube", ClusterProvider.MINIKUBE),
        ("kind-gitops-lab", ClusterProvider.KIND),
        ("arn:aws:eks:eu-west-1:123:cluster/prod", ClusterProvider.EXTERNAL),
        ("", ClusterProvider.EXTERNAL),
    ],
)
def test_detect_provider(context: str, provider: ClusterProvider) -> None:
    assert detect_provider(context) == provider


def test_inline_kind_config_is_ingress_ready() -> None:
    node = inline_kind_config()["nodes"][0]
    assert node["role"] == "control-plane"
    assert 'node-labels: "ingress-ready=true"' in node["kubeadmConfigPatches"][0]
    assert {m["hostPort"] for m in node["extraPortMappings"]} == {80, 443}


def test_start_reuses_reachable_cluster(service, fake_runner, installed_tools) -> None:
    fake_runner.on("kubectl", "config", "current-context", stdout="docker-desktop\n")
    fake_runner.on("kubectl", "config", "view", "--raw", stdout="apiVersion: v1\nkind: Config\n")

    provider = service.start()

    assert provider == ClusterProvider.DOCKER_DESKTOP
    kubeconfig = service.config.kubeconfig
    assert kubeconfig.read_text(encoding="utf-8") == "apiVersion: v1\nkind: Config\n"
    assert stat.S_IMODE(kubeconfig.stat().st_mode) == 0o600
    assert os.environ["KUBECONFIG"] == str(kubeconfig)
    assert not fake_runner.called("kind", "create")


def test_start_without_any_option_fails(service, fake_runner, installed_tools) -> None:
    fake_runner.on("kubectl", "cluster-info", returncode=1)
    with pytest.raises(ClusterError, match="No Kubernetes cluster available"):
        service.start()


def test_start_stops_when_docker_desktop_kubernetes_is_disabled(service, fake_runner, installed_tools) -> None:
    installed_tools(["docker", "minikube", "kind"])
    fake_runner.on("kubectl", "cluster-info", returncode=1)
    fake_runner.on("docker", "system", "info", stdout="Server: Docker Desktop\n")

    with pytest.raises(ClusterError, match="Kubernetes is not enabled"):
        service.start()

    assert fake_runner.interactive == []
    assert not fake_runner.called("kind", "create")


def test_explicit_provider_skips_docker_desktop(service, fake_runner, installed_tools) -> None:
    installed_tools(["docker", "minikube"])
    fake_runner.on("kubectl", "cluster-info", returncode=1)
    fake_runner.on("minikube", "status", returncode=7)
    fake_runner.on("docker", "system", "info", stdout="Server: Docker Desktop\n")
    fake_runner.on("minikube", "kubectl", stdout="apiVersion: v1\n")

    assert service.start(provider=ClusterProvider.MINIKUBE) == ClusterProvider.MINIKUBE

    assert ["minikube", "start", "--driver=docker", "--memory=4096", "--cpus=2"] in fake_runner.interactive
    for addon in MINIKUBE_ADDONS:
        assert fake_runner.called("minikube", "addons", "enable", addon)


def test_minikube_without_docker_uses_hyperkit(service, fake_runner, installed_tools) -> None:
    installed_tools(["minikube"])
    fake_runner.on("kubectl", "cluster-info", returncode=1)
    fake_runner.on("minikube", "status", returncode=7)

    assert service.start() == ClusterProvider.MINIKUBE
    assert ["minikube", "start", "--driver=hyperkit", "--memory=4096", "--cpus=2"] in fake_runner.interactive


def test_running_minikube_is_reused(service, fake_runner, installed_tools) -> None:
    installed_tools(["minikube"])

    assert service.start(provider=ClusterProvider.MINIKUBE) == ClusterProvider.MINIKUBE
    assert fake_runner.interactive == []
    assert fake_runner.called("minikube", "addons", "enable", "metrics-server")


def test_failed_addon_is_reported_not_fatal(service, fake_runner, installed_tools) -> None:
    installed_tools(["minikube"])
    fake_runner.on("minikube", "addons", "enable", "dashboard", returncode=1, stderr="boom")

    assert service.enable_minikube_addons() == ["dashboard"]


def test_explicit_provider_must_be_installed(service, fake_runner, installed_tools) -> None:
    with pytest.raises(ClusterError, match="kind is not installed"):
        service.start(provider=ClusterProvider.KIND)


def test_explicit_docker_desktop_requires_kubernetes(service, fake_runner, installed_tools) -> None:
    installed_tools(["docker"])
    fake_runner.on("docker", "system", "info", stdout="Server: Docker Desktop\n")
    with pytest.raises(ClusterError, match="not enabled"):
        service.start(provider=ClusterProvider.DOCKER_DESKTOP)


def test_existing_provider_requires_reachable_cluster(service, fake_runner, installed_tools) -> None:
    fake_runner.on("kubectl", "cluster-info", returncode=1)
    with pytest.raises(ClusterError, match="No existing cluster"):
        service.start(provider=ClusterProvider.EXTERNAL)


def test_existing_kind_cluster_is_reused_when_declined(tmp_path: Path, fake_runner, installed_tools) -> None:
    questions: list[str] = []

    def decline(question: str) -> bool:
        questions.append(question)
        return False

    service = ClusterService(LabConfig(kubeconfig=tmp_path / "config"), wait=FAST, confirm=decline)
    installed_tools(["kind"])
    fake_runner.on("kubectl", "cluster-info", returncode=1)
    fake_runner.on("kind", "get", "clusters", stdout="gitops-lab\n")

    assert service.start() == ClusterProvider.KIND

    assert questions == ["Kind cluster 'gitops-lab' already exists. Delete and recreate?"]
    assert fake_runner.called("kubectl", "config", "use-context", "kind-gitops-lab")
    assert not fake_runner.called("kind", "delete")
    assert not fake_runner.called("kind", "create")


def test_existing_kind_cluster_is_recreated_when_confirmed(service, fake_runner, installed_tools) -> None:
    installed_tools(["kind"])
    fake_runner.on("kubectl", "cluster-info", returncode=1)
    fake_runner.on("kind", "get", "clusters", stdout="gitops-lab\n")

    service.start()

    delete = fake_runner.calls.index(["kind", "delete", "cluster", "--name", "gitops-lab"])
    create = next(i for i, c in enumerate(fake_runner.calls) if c[:3] == ["kind", "create", "cluster"])
    assert delete < create


@pytest.mark.parametrize(
    "choice, provider",
    [
        ("1", ClusterProvider.DOCKER_DESKTOP),
        ("2", ClusterProvider.MINIKUBE),
        (" 3 ", ClusterProvider.KIND),
        ("4", ClusterProvider.EXTERNAL),
        ("5", None),
    ],
)
def test_provider_from_choice(choice: str, provider: ClusterProvider | None) -> None:
    assert provider_from_choice(choice) == provider


def test_provider_from_invalid_choice() -> None:
    with pytest.raises(ClusterError, match="Invalid choice"):
        provider_from_choice("9")


def test_provider_menu_lists_exit_last() -> None:
    lines = provider_menu_lines()
    assert len(lines) == 5
    assert lines[-1] == "5) Exit"


def test_start_minikube_failure(service, fake_runner, installed_tools) -> None:
    installed_tools(["minikube"])
    fake_runner.on("kubectl", "cluster-info", returncode=1)
    fake_runner.on("minikube", "status", returncode=7)
    fake_runner.on("minikube", "start", returncode=80)

    with pytest.raises(ClusterError, match="exit 80"):
        service.start()


def test_start_creates_kind_cluster_from_repo_config(service, fake_runner, installed_tools) -> None:
    installed_tools(["kind"])
    fake_runner.on("kubectl", "cluster-info", returncode=1)
    fake_runner.on("kind", "get", "clusters", stdout="gitops-lab\n")
    fake_runner.on("kind", "get", "kubeconfig", stdout="kind-kubeconfig\n")

    assert service.start() == ClusterProvider.KIND

    assert fake_runner.called(
        "kind", "create", "cluster", "--name", "gitops-lab", "--config", str(kind_cluster_config_path())
    )
    assert service.config.kubeconfig.read_text(encoding="utf-8") == "kind-kubeconfig\n"


def test_start_kind_uses_inline_config_when_file_missing(
    service, fake_runner, installed_tools, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("GITOPS_LAB_ROOT", str(tmp_path))
    installed_tools(["kind"])
    fake_runner.on("kubectl", "cluster-info", returncode=1)
    fake_runner.on("kind", "get", "clusters", stdout="gitops-lab\n")

    service.start()

    manifest = fake_runner.input_for("kind", "create", "cluster", "--name", "gitops-lab", "--config", "-")
    assert manifest is not None
    assert "ingress-ready=true" in manifest


def test_kind_create_failure_is_cluster_error(service, fake_runner, installed_tools) -> None:
    installed_tools(["kind"])
    fake_runner.on("kubectl", "cluster-info", returncode=1)
    fake_runner.on("kind", "create", returncode=1, stderr="node(s) already exist")

    with pytest.raises(ClusterError, match="already exist"):
        service.start()


def test_stop_minikube(service, fake_runner, installed_tools) -> None:
    installed_tools(["minikube"])
    assert service.stop() == ClusterProvider.MINIKUBE
    assert fake_runner.called("minikube", "stop")


def test_stop_kind(service, fake_runner, installed_tools) -> None:
    installed_tools(["kind"])
    fake_runner.on("kind", "get", "clusters", stdout="gitops-lab\n")
    assert service.stop() == ClusterProvider.KIND
    assert fake_runner.called("kind", "delete", "cluster", "--name", "gitops-lab")


def test_stop_external_is_noop(service, fake_runner, installed_tools) -> None:
    assert service.stop() is None
    assert fake_runner.calls == []


def test_verify_requires_connectivity(service, fake_runner, installed_tools) -> None:
    fake_runner.on("kubectl", "cluster-info", returncode=1)
    with pytest.raises(ClusterError, match="Cannot connect"):
        service.verify()


def test_setup_kubeconfig_without_any_source(service, fake_runner, installed_tools, monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path / "empty-home"))
    fake_runner.on("kubectl", "config", "current-context", stdout="some-cloud\n")
    with pytest.raises(ClusterError, match="No kubeconfig found"):
        service.setup_kubeconfig()


def test_wait_for_nodes_ready(service, fake_runner) -> None:
    nodes = {
        "items": [
            {"status": {"conditions": [{"type": "Ready", "status": "True"}]}},
            {"status": {"conditions": [{"type": "Ready", "status": "True"}]}},
        ]
    }
    fake_runner.on("kubectl", "config", "current-context", stdout="minikube\n")
    fake_runner.on("kubectl", "get", "nodes", "-o", "json", stdout=json.dumps(nodes))

    service.wait_for_nodes_ready()


def test_expected_node_count_from_kind_config(service, fake_runner) -> None:
    fake_runner.on("kubectl", "config", "current-context", stdout="kind-gitops-lab\n")
    assert service.expected_node_count() == 3
