from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .config import repo_root
from .console import heading


class NavigationError(Exception):
    pass


@dataclass(frozen=True)
class LabPart:
    number: int
    path: str
    title: str

    @property
    def section(self) -> str:
        return self.path.split("/", 1)[0]

    @property
    def name(self) -> str:
        return self.path.split("/", 1)[1]


LAB_PARTS: tuple[LabPart, ...] = (
    LabPart(1, "01-foundation/01-kubernetes-setup", "Native Kubernetes setup (Docker/Minikube/Kind)"),
    LabPart(2, "01-foundation/02-kubernetes-basics", "Kubernetes fundamentals"),
    LabPart(3, "01-foundation/03-gitops-intro", "GitOps principles"),
    LabPart(4, "02-core-tools/04-argocd", "ArgoCD GitOps CD"),
    LabPart(5, "02-core-tools/05-flux", "Flux GitOps toolkit"),
    LabPart(6, "02-core-tools/06-kustomize", "Configuration management"),
    LabPart(7, "02-core-tools/07-helm", "Package management"),
    LabPart(8, "03-advanced/08-external-secrets", "Secret management"),
    LabPart(9, "03-advanced/09-keptn", "Application lifecycle"),
    LabPart(10, "03-advanced/10-jenkins-x", "Cloud-native CI/CD"),
    LabPart(11, "03-advanced/11-overlays", "Advanced patterns"),
    LabPart(12, "04-scenarios/12-multi-env", "Multi-environment deployment"),
)

SECTION_ICONS = {
    "01-foundation": "📚",
    "02-core-tools": "🔧",
    "03-advanced": "🚀",
    "04-scenarios": "🌍",
}


def lab_part(number: int) -> LabPart:
    for part in LAB_PARTS:
        if part.number == number:
            return part
    raise NavigationError(f"Invalid part number. Use 1-{len(LAB_PARTS)}")


def part_path(number: int, root: Path | None = None) -> Path:
    part = lab_part(number)
    return (root or repo_root()) / part.path


def structure_lines() -> list[str]:
    lines: list[str] = []
    sections: dict[str, list[LabPart]] = {}
    for part in LAB_PARTS:
        sections.setdefault(part.section, []).append(part)

    for section, parts in sections.items():
        lines.append(f"{SECTION_ICONS.get(section, '•')} {section}/")
        for i, part in enumerate(parts):
            branch = "└──" if i == len(parts) - 1 else "├──"
            lines.append(f"   {branch} {part.name + '/':<24}- {part.title}")
        lines.append("")
    return lines


def show_lab_structure() -> None:
    heading("GitOps Lab Structure:")
    print()
    for line in structure_lines():
        print(line)
