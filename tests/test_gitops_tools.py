from __future__ import annotations

import json
from pathlib import Path

import pytest

from tools.gitopsctl.cluster import ClusterError
from tools.gitopsctl.config import ARGOCD_INSTALL_URL, LabConfig
from tools.gitopsctl.gitops_tools import GitOpsToolsInstaller, ToolInstallError, argocd_admin_password
from tools.gitopsctl.wait import WaitSpec


@pytest.fixture
def installer(tmp_path: Path) -> GitOpsToolsInstaller:
    config = LabConfig(kubeconfig=tmp_path / "config-gitops-lab")
    return GitOpsToolsInstaller(config, wait=WaitSpec(poll_seconds=0, timeout_seconds=5))


def test_admin_password_is_decoded(fake_runner) -> None:
    fake_runner.on("kubectl", "-n", "argocd", "get", "secret", stdout="czNjcjN0\n")
    assert argocd_admin_password() == "s3cr3t"


def test_admin_password_missing_secret(fake_runner) -> None:
    fake_runner.on("kubectl", "-n", "argocd", "get", "secret", returncode=1, stderr="NotFound")
    assert argocd_admin_password() is None


def test_install_all_requires_cluster(installer, fake_runner, installed_tools) -> None:
    fake_runner.on("kubectl", "cluster-info", returncode=1)
    with pytest.raises(ClusterError, match="Run setup first"):
        installer.install_all()


def test_install_argocd_waits_for_server(installer, fake_runner) -> None:
    available = {"status": {"replicas": 1, "availableReplicas": 1}}
    fake_runner.on("kubectl", "-n", "argocd", "get", "deployment", "argocd-server", stdout=json.dumps(available))

    installer.install_argocd()

    assert fake_runner.called("kubectl", "apply", "-n", "argocd", "-f", ARGOCD_INSTALL_URL)
    assert fake_runner.called("kubectl", "create", "namespace", "argocd")


def test_install_argocd_apply_failure(installer, fake_runner) -> None:
    fake_runner.on("kubectl", "apply", "-n", "argocd", returncode=1, stderr="connection refused")
    with pytest.raises(ToolInstallError, match="connection refused"):
        installer.install_argocd()


def test_flux_skipped_when_namespace_exists(installer, fake_runner, installed_tools) -> None:
    installed_tools(["flux"])
    installer.install_flux()
    assert fake_runner.called("kubectl", "get", "namespace", "flux-system")
    assert not fake_runner.called("flux", "install")


def test_flux_installed_when_namespace_missing(installer, fake_runner, installed_tools) -> None:
    installed_tools(["flux"])
    fake_runner.on("kubectl", "get", "namespace", "flux-system", returncode=1)
    installer.install_flux()
    assert fake_runner.called("flux", "install")
    assert not fake_runner.called("curl")


def test_flux_cli_installed_from_script(installer, fake_runner, installed_tools) -> None:
    fake_runner.on("curl", "-s", stdout="#!/bin/bash\necho flux\n")
    installer.install_flux()
    assert fake_runner.input_for("sudo", "bash") == "#!/bin/bash\necho flux\n"


def test_flux_install_failure(installer, fake_runner, installed_tools) -> None:
    installed_tools(["flux"])
    fake_runner.on("kubectl", "get", "namespace", "flux-system", returncode=1)
    fake_runner.on("flux", "install", returncode=1, stderr="install failed")
    with pytest.raises(ToolInstallError, match="install failed"):
        installer.install_flux()


def test_create_namespaces_from_config(tmp_path: Path, fake_runner) -> None:
    config = LabConfig(kubeconfig=tmp_path / "kc", default_namespaces=("gitops-lab", "team-a"))

    GitOpsToolsInstaller(config).create_namespaces()

    created = [c[3] for c in fake_runner.calls if c[:3] == ["kubectl", "create", "namespace"]]
    assert created == ["gitops-lab", "team-a"]


def test_create_namespaces_failure(installer, fake_runner) -> None:
    fake_runner.on("kubectl", "create", "namespace", returncode=1, stderr="forbidden")
    with pytest.raises(ToolInstallError, match="forbidden"):
        installer.create_namespaces()
