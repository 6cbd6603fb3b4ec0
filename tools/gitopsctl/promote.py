"""
Image promotion between Kustomize overlays.

Copies an image tag from one environment's overlay to the next, validates the
rendered target, and hands the change to Git: a ``promote/...`` branch, one
commit, a push, and a pull request through ``gh``.
"""

from __future__ import annotations

import difflib
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .config import ConfigError, LabConfig, overlay_dir, repo_root
from .console import log_info, log_step, log_success, log_warning
from .kube import CommandError, command_exists, kubectl, run_command, run_or_raise

logger = logging.getLogger(__name__)


class PromotionError(Exception):
    pass


@dataclass(frozen=True)
class PromotionRequest:
    source: str
    target: str
    tag: str | None = None
    image: str = "nginx"
    app: str = "sample-app"
    base_branch: str = "main"
    push: bool = True
    open_pr: bool = True
    validate: bool = True
    dry_run: bool = False


@dataclass(frozen=True)
class PromotionResult:
    kustomization: Path
    old_tag: str | None
    new_tag: str
    changed: bool
    branch: str | None = None
    pr_url: str | None = None


# ------------------------------------------------------------
# kustomization.yaml editing
# ------------------------------------------------------------

_TOP_LEVEL_KEY = re.compile(r"^[^\s#-][^:]*:")
_ENTRY_START = re.compile(r"^(?P<indent>[ ]*)-[ ]+")
_NAME = re.compile(r"^\s*(?:-\s+)?name:\s*['\"]?(?P<name>[^'\"\s#]+)")
_NEW_TAG = re.compile(r"^(?P<lead>\s*(?:-\s+)?newTag:[ \t]*)(?P<quote>['\"]?)(?P<value>[^'\"\s#]*)(?P=quote)(?P<rest>.*)$")


def load_kustomization(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise PromotionError(f"Cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise PromotionError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise PromotionError(f"Expected a YAML mapping in {path}")
    return data


def image_tag(kustomization: dict[str, Any], image: str) -> str | None:
    for entry in kustomization.get("images", []) or []:
        if entry.get("name") == image:
            tag = entry.get("newTag")
            return None if tag is None else str(tag)
    return None


def _scalar(tag: str, quote: str = "") -> str:
    # 1.21 must stay a string once written back.
    if not quote and not isinstance(yaml.safe_load(tag), str):
        quote = '"'
    return f"{quote}{tag}{quote}"


def _entries(lines: list[str], start: int, end: int) -> list[tuple[int, int]]:
    """Line ranges ``(first, stop)`` of the list items between ``start`` and ``end``."""
    firsts: list[int] = []
    indent: int | None = None
    for i in range(start, end):
        m = _ENTRY_START.match(lines[i])
        if m and (indent is None or len(m.group("indent")) == indent):
            indent = len(m.group("indent"))
            firsts.append(i)
    return [(first, firsts[n + 1] if n + 1 < len(firsts) else end) for n, first in enumerate(firsts)]


def _name_line(lines: list[str], first: int, stop: int, image: str) -> int | None:
    for i in range(first, stop):
        m = _NAME.match(lines[i])
        if m:
            return i if m.group("name") == image else None
    return None


def _images_block(lines: list[str]) -> tuple[int, int] | None:
    for start, line in enumerate(lines):
        if not line.startswith("images:"):
            continue
        if line.split("#", 1)[0].strip() != "images:":
            raise PromotionError("Only block-style images lists can be edited")
        end = start + 1
        while end < len(lines) and not _TOP_LEVEL_KEY.match(lines[end]):
            end += 1
        return start, end
    return None


def set_image_tag(text: str, image: str, tag: str) -> str:
    """Return ``text`` with ``newTag`` of ``image`` set to ``tag``.

    Edits the one ``newTag`` line in place (or adds the lines that are
    missing); blank lines, comments and quoting elsewhere are left alone.
    """
    lines = text.splitlines(keepends=True)
    missing_eol = bool(lines) and not lines[-1].endswith("\n")
    if missing_eol:
        lines[-1] += "\n"

    block = _images_block(lines)
    if block is None:
        if lines and lines[-1].strip():
            lines.append("\n")
        lines.extend(["images:\n", f"- name: {image}\n", f"  newTag: {_scalar(tag)}\n"])
        return "".join(lines)

    start, end = block
    entries = _entries(lines, start + 1, end)
    for first, stop in entries:
        name_at = _name_line(lines, first, stop, image)
        if name_at is None:
            continue
        for i in range(first, stop):
            body = lines[i].rstrip("\r\n")
            m = _NEW_TAG.match(body)
            if m:
                lines[i] = f"{m.group('lead')}{_scalar(tag, m.group('quote'))}{m.group('rest')}{lines[i][len(body):]}"
                break
        else:
            key_column = _ENTRY_START.match(lines[first]).end()
            lines.insert(name_at + 1, f"{' ' * key_column}newTag: {_scalar(tag)}\n")
        break
    else:
        insert_at = end
        while insert_at > start + 1 and not lines[insert_at - 1].strip():
            insert_at -= 1
        indent = len(_ENTRY_START.match(lines[entries[0][0]]).group("indent")) if entries else 0
        lines[insert_at:insert_at] = [
            f"{' ' * indent}- name: {image}\n",
            f"{' ' * (indent + 2)}newTag: {_scalar(tag)}\n",
        ]

    updated = "".join(lines)
    return updated[:-1] if missing_eol and updated.endswith("\n") else updated


def branch_name(app: str, target: str, tag: str) -> str:
    raw = f"promote/{app}-{target}-{tag}"
    return re.sub(r"[^A-Za-z0-9._/-]+", "-", raw)


# ------------------------------------------------------------
# Validation
# ------------------------------------------------------------


def validate_overlay(directory: Path) -> bool:
    """``kubectl kustomize <dir> | kubeval --strict``. Returns False when skipped."""
    if not command_exists("kubeval"):
        log_warning("kubeval not installed, skipping manifest validation")
        return False

    try:
        rendered = run_or_raise(kubectl("kustomize", str(directory))).stdout
        run_or_raise(["kubeval", "--strict"], input=rendered)
    except CommandError as e:
        raise PromotionError(f"Validation failed for {directory}: {e}") from e
    log_success(f"Manifests in {directory.name} are valid")
    return True


# ------------------------------------------------------------
# Promotion
# ------------------------------------------------------------


class Promoter:
    def __init__(self, config: LabConfig):
        self.config = config
        self.root = repo_root()

    def _git(self, *args: str) -> str:
        try:
            return run_or_raise(["git", "-C", str(self.root), *args]).stdout
        except CommandError as e:
            raise PromotionError(str(e)) from e

    def _preflight(self, request: PromotionRequest, kustomization: Path) -> None:
        if request.open_pr and not request.push:
            raise PromotionError("Opening a pull request requires pushing the branch")
        if request.open_pr and not command_exists("gh"):
            raise PromotionError("gh CLI not found (brew install gh), or pass --no-pr")
        dirty = run_command(["git", "-C", str(self.root), "status", "--porcelain", "--", str(kustomization)])
        if not dirty.ok:
            raise PromotionError(f"{self.root} is not a git repository")
        if dirty.stdout.strip():
            raise PromotionError(f"{kustomization} has uncommitted changes")

    def promote(self, request: PromotionRequest) -> PromotionResult:
        try:
            source = self.config.environment(request.source)
            target = self.config.environment(request.target)
        except ConfigError as e:
            raise PromotionError(str(e)) from e
        if source == target:
            raise PromotionError("Source and target environments must differ")

        source_file = overlay_dir(source) / "kustomization.yaml"
        target_file = overlay_dir(target) / "kustomization.yaml"
        for path in (source_file, target_file):
            if not path.is_file():
                raise PromotionError(f"Overlay not found: {path}")

        log_step(f"Promoting {request.app} from {source.name} to {target.name}...")

        target_data = load_kustomization(target_file)
        tag = request.tag or image_tag(load_kustomization(source_file), request.image)
        if not tag:
            raise PromotionError(f"Image '{request.image}' has no newTag in {source_file}")

        old_tag = image_tag(target_data, request.image)
        if old_tag == tag:
            log_info(f"{target.name} already runs {request.image}:{tag}, nothing to promote")
            return PromotionResult(kustomization=target_file, old_tag=old_tag, new_tag=tag, changed=False)

        original = target_file.read_text(encoding="utf-8")
        updated = set_image_tag(original, request.image, tag)
        if image_tag(yaml.safe_load(updated) or {}, request.image) != tag:
            raise PromotionError(f"Could not set {request.image} newTag in {target_file}")

        if request.dry_run:
            log_info("Dry run, planned change:")
            for line in difflib.unified_diff(
                original.splitlines(keepends=True),
                updated.splitlines(keepends=True),
                fromfile=f"a/{target_file.name}",
                tofile=f"b/{target_file.name}",
            ):
                print(line, end="")
            return PromotionResult(kustomization=target_file, old_tag=old_tag, new_tag=tag, changed=False)

        self._preflight(request, target_file)

        branch = branch_name(request.app, target.name, tag)
        title = f"Promote {request.app} {request.image}:{tag} to {target.name}"
        target_file.write_text(updated, encoding="utf-8")
        log_info(f"{target_file}: {request.image} {old_tag or '<unset>'} -> {tag}")

        try:
            if request.validate:
                validate_overlay(target_file.parent)
            self._git("checkout", "-b", branch)
            self._git("add", str(target_file))
            self._git("commit", "-m", title)
        except PromotionError:
            target_file.write_text(original, encoding="utf-8")
            log_warning(f"Restored {target_file}")
            raise
        log_success(f"Committed on branch {branch}")

        pr_url: str | None = None
        if request.push:
            self._git("push", "-u", "origin", branch)
            log_success(f"Pushed {branch}")

        if request.open_pr:
            body = (
                f"Promotes `{request.image}` from `{old_tag or 'unset'}` to `{tag}` in `{target.name}`.\n\n"
                f"Source environment: `{source.name}`."
            )
            try:
                pr_url = run_or_raise(
                    [
                        "gh",
                        "pr",
                        "create",
                        "--base",
                        request.base_branch,
                        "--head",
                        branch,
                        "--title",
                        title,
                        "--body",
                        body,
                    ]
                ).stdout.strip()
            except CommandError as e:
                raise PromotionError(f"Failed to open pull request: {e}") from e
            log_success(f"Pull request: {pr_url}")

        return PromotionResult(
            kustomization=target_file,
            old_tag=old_tag,
            new_tag=tag,
            changed=True,
            branch=branch,
            pr_url=pr_url,
        )
