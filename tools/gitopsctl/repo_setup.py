from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable

from .console import log_info, log_success
from .kube import CommandError, run_or_raise

logger = logging.getLogger(__name__)

ENVIRONMENT_BRANCHES = ("development", "staging", "production")
SKIP_DIRS = {".git", ".venv", "node_modules", "__pycache__"}

_YAML_PATTERNS = (
    re.compile(r"^(?P<prefix>\s*(?:-\s*)?repoURL:\s*)['\"]?https://github\.com/[^\s'\"]+['\"]?", re.MULTILINE),
    re.compile(r"^(?P<prefix>\s*(?:-\s*)?url:\s*)['\"]?https://github\.com/[^\s'\"]+['\"]?", re.MULTILINE),
    re.compile(r"^(?P<prefix>\s*-\s*)'https://github\.com/[^\s'\"]+'", re.MULTILINE),
)
_MARKDOWN_PATTERNS = (
    re.compile(r"https://github\.com/your-org/gitops-[\w.-]+"),
    re.compile(r"https://github\.com/YOUR_USERNAME/gitops-lab"),
)


class RepoSetupError(Exception):
    pass


def github_url(username: str, repo_name: str = "gitops-lab") -> str:
    if not re.fullmatch(r"[A-Za-z0-9-]+", username):
        raise RepoSetupError(f"Invalid GitHub username: {username!r}")
    return f"https://github.com/{username}/{repo_name}"


def _iter_files(root: Path, suffixes: Iterable[str]) -> Iterable[Path]:
    wanted = tuple(suffixes)
    for path in sorted(root.rglob("*")):
        if any(part in SKIP_DIRS for part in path.relative_to(root).parts):
            continue
        if path.is_file() and path.suffix in wanted:
            yield path


def retarget_text(text: str, url: str, markdown: bool = False) -> str:
    if markdown:
        for pattern in _MARKDOWN_PATTERNS:
            text = pattern.sub(url, text)
        return text
    for pattern in _YAML_PATTERNS:
        text = pattern.sub(lambda m: f"{m.group('prefix')}{url}", text)
    return text


def retarget_repo_urls(root: Path, url: str) -> list[Path]:
    """Point every GitHub source reference under ``root`` at ``url``."""
    changed: list[Path] = []
    for path in _iter_files(root, (".yaml", ".yml", ".md")):
        original = path.read_text(encoding="utf-8")
        updated = retarget_text(original, url, markdown=path.suffix == ".md")
        if updated != original:
            path.write_text(updated, encoding="utf-8")
            changed.append(path)
            logger.info("retargeted %s", path)

    log_success(f"Updated repository URLs in {len(changed)} file(s)")
    return changed


def create_environment_branches(
    root: Path,
    branches: Iterable[str] = ENVIRONMENT_BRANCHES,
    base: str = "main",
    push: bool = True,
) -> list[str]:
    created: list[str] = []
    try:
        for branch in branches:
            log_info(f"Creating branch {branch}...")
            run_or_raise(["git", "-C", str(root), "checkout", "-B", branch, base])
            if push:
                run_or_raise(["git", "-C", str(root), "push", "origin", branch])
            created.append(branch)
        run_or_raise(["git", "-C", str(root), "checkout", base])
    except CommandError as e:
        raise RepoSetupError(f"Failed to create environment branches: {e}") from e

    log_success(f"Branches: {base}, {', '.join(created)}")
    return created
