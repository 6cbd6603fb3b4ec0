from __future__ import annotations

from pathlib import Path

import pytest

from tools.gitopsctl.repo_setup import (
    RepoSetupError,
    create_environment_branches,
    github_url,
    retarget_repo_urls,
    retarget_text,
)

URL = "https://github.com/alice/gitops-lab"


def test_github_url() -> None:
    assert github_url("alice") == URL
    with pytest.raises(RepoSetupError, match="Invalid GitHub username"):
        github_url("alice; rm -rf /")


def test_retarget_yaml_sources() -> None:
    text = (
        "spec:\n"
        "  source:\n"
        "    repoURL: https://github.com/your-org/gitops-apps\n"
        "  sourceRepos:\n"
        "  - 'https://github.com/your-org/gitops-config'\n"
        "  url: \"https://github.com/issarapong/gitops-lab\"\n"
        "  image: ghcr.io/your-org/app\n"
    )
    out = retarget_text(text, URL)
    assert f"repoURL: {URL}\n" in out
    assert f"  - {URL}\n" in out
    assert f"  url: {URL}\n" in out
    assert "ghcr.io/your-org/app" in out


def test_retarget_markdown_placeholders() -> None:
    text = "git clone https://github.com/YOUR_USERNAME/gitops-lab\nsee https://github.com/your-org/gitops-apps\n"
    assert retarget_text(text, URL, markdown=True) == f"git clone {URL}\nsee {URL}\n"


def test_retarget_repo_urls_skips_git_dir(tmp_path: Path) -> None:
    app = tmp_path / "apps" / "app.yaml"
    app.parent.mkdir()
    app.write_text("repoURL: https://github.com/your-org/gitops-apps\n", encoding="utf-8")
    untouched = tmp_path / "apps" / "plain.yaml"
    untouched.write_text("kind: ConfigMap\n", encoding="utf-8")
    hidden = tmp_path / ".git" / "config.yaml"
    hidden.parent.mkdir()
    hidden.write_text("url: https://github.com/your-org/gitops-apps\n", encoding="utf-8")

    changed = retarget_repo_urls(tmp_path, URL)

    assert changed == [app]
    assert app.read_text(encoding="utf-8") == f"repoURL: {URL}\n"
    assert "your-org" in hidden.read_text(encoding="utf-8")


def test_create_environment_branches(tmp_path: Path, fake_runner) -> None:
    created = create_environment_branches(tmp_path)

    assert created == ["development", "staging", "production"]
    root = str(tmp_path)
    assert fake_runner.calls[0] == ["git", "-C", root, "checkout", "-B", "development", "main"]
    assert ["git", "-C", root, "push", "origin", "production"] in fake_runner.calls
    assert fake_runner.calls[-1] == ["git", "-C", root, "checkout", "main"]


def test_branch_failure(tmp_path: Path, fake_runner) -> None:
    fake_runner.on("git", "-C", str(tmp_path), "push", returncode=128, stderr="no remote 'origin'")
    with pytest.raises(RepoSetupError, match="no remote"):
        create_environment_branches(tmp_path)
