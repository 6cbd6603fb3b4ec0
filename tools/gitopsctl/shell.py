from __future__ import annotations

from pathlib import Path

MARKER = "# GitOps Lab Functions"


def shell_snippet(kubeconfig: Path) -> str:
    return f"""{MARKER}
alias lab='gitopsctl'
alias lab-status='gitopsctl status'
alias lab-kubectl='KUBECONFIG={kubeconfig} kubectl'

# Navigate to a lab part
lab-go() {{
    cd "$(gitopsctl go "$1")"
}}

# Use the GitOps lab kubeconfig in this shell
lab-env() {{
    export KUBECONFIG="{kubeconfig}"
    echo "✓ GitOps lab environment active"
    echo "  KUBECONFIG: $KUBECONFIG"
}}
"""


def install_snippet(rc_file: Path, kubeconfig: Path) -> bool:
    """Append the snippet to ``rc_file`` once. Returns False if already present."""
    existing = rc_file.read_text(encoding="utf-8") if rc_file.is_file() else ""
    if MARKER in existing:
        return False

    rc_file.parent.mkdir(parents=True, exist_ok=True)
    with open(rc_file, "a", encoding="utf-8") as f:
        if existing and not existing.endswith("\n"):
            f.write("\n")
        f.write("\n" + shell_snippet(kubeconfig))
    return True
