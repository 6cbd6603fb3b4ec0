from __future__ import annotations

from pathlib import Path

import pytest

from tools.gitopsctl.config import (
    ConfigError,
    LabConfig,
    kind_cluster_config_path,
    lab_config,
    load_config_file,
    overlay_dir,
    repo_root,
)


def test_defaults() -> None:
    cfg = LabConfig()
    assert cfg.cluster_name == "gitops-lab"
    assert cfg.kubeconfig.name == "config-gitops-lab"
    assert cfg.kind_context == "kind-gitops-lab"
    assert cfg.service_ports["argocd-server"] == "8080:443"
    assert [e.name for e in cfg.environments] == ["dev", "staging", "production"]


def test_environment_lookup_accepts_name_or_overlay() -> None:
    cfg = LabConfig()
    assert cfg.environment("production").overlay == "prod"
    assert cfg.environment("prod").name == "production"
    with pytest.raises(ConfigError, match="Unknown environment 'qa'"):
        cfg.environment("qa")


def test_repo_root_points_at_checkout() -> None:
    assert (repo_root() / "tools" / "gitopsctl").is_dir()
    assert kind_cluster_config_path().is_file()
    assert (overlay_dir(LabConfig().environment("production")) / "kustomization.yaml").is_file()


def test_lab_yaml_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITOPS_LAB_ROOT", str(tmp_path))
    (tmp_path / "lab.yaml").write_text(
        "cluster_name: my-lab\n"
        "kubeconfig: /tmp/my-kubeconfig\n"
        "environments:\n"
        "  - name: qa\n"
        "    local_port: 9000\n",
        encoding="utf-8",
    )

    cfg = lab_config()

    assert cfg.cluster_name == "my-lab"
    assert cfg.kubeconfig == Path("/tmp/my-kubeconfig")
    qa = cfg.environment("qa")
    assert (qa.namespace, qa.overlay, qa.local_port) == ("qa", "qa", 9000)


def test_environment_variables_win(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITOPS_LAB_ROOT", str(tmp_path))
    (tmp_path / "lab.yaml").write_text("cluster_name: from-file\n", encoding="utf-8")
    monkeypatch.setenv("GITOPS_LAB_CLUSTER", "from-env")
    monkeypatch.setenv("GITOPS_LAB_KUBECONFIG", str(tmp_path / "kc"))

    cfg = lab_config()

    assert cfg.cluster_name == "from-env"
    assert cfg.kubeconfig == tmp_path / "kc"


def test_missing_lab_yaml_gives_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITOPS_LAB_ROOT", str(tmp_path))
    assert lab_config() == LabConfig()


@pytest.mark.parametrize(
    "content, message",
    [
        ("- just\n- a list\n", "Expected a YAML mapping"),
        ("cluster_name: [unclosed\n", "Invalid YAML"),
        ("clustername: typo\n", "Unknown keys"),
        ("service_ports: 8080\n", "must be a mapping"),
        ("environments:\n  - namespace: nameless\n", "Invalid environments"),
    ],
)
def test_bad_config_files(tmp_path: Path, content: str, message: str) -> None:
    path = tmp_path / "lab.yaml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError, match=message):
        load_config_file(path)


def test_empty_config_file(tmp_path: Path) -> None:
    path = tmp_path / "lab.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config_file(path) == {}


@pytest.mark.parametrize(
    "content, message",
    [
        ("cluster_name: 2024\n", "cluster_name .* must be a non-empty string"),
        ("repo_url: ''\n", "repo_url .* must be a non-empty string"),
        ("kubeconfig: [a, b]\n", "kubeconfig .* must be a non-empty string"),
        ("service_ports:\n  argocd-server: abc\n", "service_ports.argocd-server .* LOCAL:REMOTE"),
        ("service_ports:\n  argocd-server: 8080\n", "service_ports.argocd-server"),
        ("default_namespaces: argocd\n", "default_namespaces .* list of names"),
    ],
)
def test_mistyped_values_are_config_errors(tmp_path: Path, content: str, message: str) -> None:
    path = tmp_path / "lab.yaml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError, match=message):
        load_config_file(path)


def test_valid_service_ports_and_namespaces(tmp_path: Path) -> None:
    path = tmp_path / "lab.yaml"
    path.write_text(
        "service_ports:\n  argocd-server: '9443:443'\ndefault_namespaces: [gitops-lab, argocd]\n", encoding="utf-8"
    )
    values = load_config_file(path)
    assert values["service_ports"] == {"argocd-server": "9443:443"}
    assert values["default_namespaces"] == ("gitops-lab", "argocd")
