from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

LAB_CONFIG_FILE = "lab.yaml"

ARGOCD_INSTALL_URL = "https://raw.githubusercontent.com/argoproj/argo-cd/stable/manifests/install.yaml"
FLUX_INSTALL_URL = "https://fluxcd.io/install.sh"
INGRESS_NGINX_KIND_URL = (
    "https://raw.githubusercontent.com/kubernetes/ingress-nginx/main/deploy/static/provider/kind/deploy.yaml"
)
DEFAULT_REPO_URL = "https://github.com/issarapong/gitops-lab"


class ConfigError(Exception):
    """Raised when lab.yaml is unreadable or malformed."""


@dataclass(frozen=True)
class Environment:
    name: str
    namespace: str
    overlay: str
    local_port: int


def _default_environments() -> tuple[Environment, ...]:
    return (
        Environment(name="dev", namespace="dev", overlay="dev", local_port=8080),
        Environment(name="staging", namespace="staging", overlay="staging", local_port=8081),
        Environment(name="production", namespace="production", overlay="prod", local_port=8082),
    )


@dataclass(frozen=True)
class LabConfig:
    cluster_name: str = "gitops-lab"
    kubeconfig: Path = field(default_factory=lambda: Path.home() / ".kube" / "config-gitops-lab")
    repo_url: str = DEFAULT_REPO_URL
    argocd_install_url: str = ARGOCD_INSTALL_URL
    flux_install_url: str = FLUX_INSTALL_URL
    ingress_nginx_url: str = INGRESS_NGINX_KIND_URL
    default_namespaces: tuple[str, ...] = ("gitops-lab", "argocd", "flux-system", "external-secrets", "keptn")
    service_ports: dict[str, str] = field(default_factory=lambda: {"argocd-server": "8080:443"})
    environments: tuple[Environment, ...] = field(default_factory=_default_environments)

    @property
    def kind_context(self) -> str:
        return f"kind-{self.cluster_name}"

    def environment(self, name: str) -> Environment:
        for env in self.environments:
            if name in (env.name, env.overlay):
                return env
        known = ", ".join(e.name for e in self.environments)
        raise ConfigError(f"Unknown environment '{name}' (expected one of: {known})")


def repo_root() -> Path:
    override = os.environ.get("GITOPS_LAB_ROOT")
    if override:
        return Path(override).expanduser().resolve()
    return Path(__file__).resolve().parents[2]


def kind_cluster_config_path() -> Path:
    return repo_root() / "01-foundation" / "01-kubernetes-setup" / "kind-config.yaml"


def kustomize_dir() -> Path:
    return repo_root() / "02-core-tools" / "06-kustomize" / "examples"


def overlay_dir(env: Environment) -> Path:
    return kustomize_dir() / "overlays" / env.overlay


def argocd_dir() -> Path:
    return repo_root() / "02-core-tools" / "04-argocd"


def flux_dir() -> Path:
    return repo_root() / "02-core-tools" / "05-flux"


_STRING_FIELDS = ("cluster_name", "kubeconfig", "repo_url", "argocd_install_url", "flux_install_url", "ingress_nginx_url")
_PORT_PAIR = re.compile(r"^\d{1,5}:\d{1,5}$")


def _coerce(data: dict[str, Any], path: Path) -> dict[str, Any]:
    known = {f.name for f in fields(LabConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown keys in {path}: {', '.join(unknown)}")

    values: dict[str, Any] = dict(data)
    for key in _STRING_FIELDS:
        if key in values and (not isinstance(values[key], str) or not values[key].strip()):
            raise ConfigError(f"{key} in {path} must be a non-empty string, got {values[key]!r}")
    if "kubeconfig" in values:
        values["kubeconfig"] = Path(values["kubeconfig"]).expanduser()
    if "default_namespaces" in values:
        namespaces = values["default_namespaces"] or []
        if not isinstance(namespaces, list) or not all(isinstance(n, str) for n in namespaces):
            raise ConfigError(f"default_namespaces in {path} must be a list of names")
        values["default_namespaces"] = tuple(namespaces)
    if "service_ports" in values:
        if not isinstance(values["service_ports"], dict):
            raise ConfigError(f"service_ports in {path} must be a mapping")
        ports = {str(k): str(v) for k, v in values["service_ports"].items()}
        for service, pair in ports.items():
            if not _PORT_PAIR.match(pair):
                raise ConfigError(f"service_ports.{service} in {path} must look like LOCAL:REMOTE, got {pair!r}")
        values["service_ports"] = ports
    if "environments" in values:
        try:
            values["environments"] = tuple(
                Environment(
                    name=str(e["name"]),
                    namespace=str(e.get("namespace", e["name"])),
                    overlay=str(e.get("overlay", e["name"])),
                    local_port=int(e.get("local_port", 8080 + i)),
                )
                for i, e in enumerate(values["environments"] or [])
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ConfigError(f"Invalid environments in {path}: {e}") from e
    return values


def load_config_file(path: Path) -> dict[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return _coerce(data, path)


def lab_config(path: Path | None = None) -> LabConfig:
    cfg = LabConfig()

    config_path = path or repo_root() / LAB_CONFIG_FILE
    if config_path.is_file():
        logger.debug("Loading lab config from %s", config_path)
        cfg = replace(cfg, **load_config_file(config_path))

    cluster = os.environ.get("GITOPS_LAB_CLUSTER")
    if cluster:
        cfg = replace(cfg, cluster_name=cluster)
    kubeconfig = os.environ.get("GITOPS_LAB_KUBECONFIG")
    if kubeconfig:
        cfg = replace(cfg, kubeconfig=Path(kubeconfig).expanduser())

    return cfg
