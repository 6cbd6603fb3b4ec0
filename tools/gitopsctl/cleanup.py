from __future__ import annotations

from .cluster import ClusterService
from .config import LabConfig
from .console import log_info, log_step, log_success
from .walkthrough import ConfirmFn, Walkthrough


def cleanup_lab(config: LabConfig, assume_yes: bool = False, confirm: ConfirmFn | None = None) -> bool:
    """Remove the lab kubeconfig and optionally stop the cluster. Returns False if cancelled."""
    log_step("Cleaning up lab environment...")
    prompts = Walkthrough(assume_yes=assume_yes, confirm=confirm)

    if not prompts.confirm("This will clean up resources and optionally stop the cluster. Continue?"):
        log_info("Cleanup cancelled")
        return False

    if config.kubeconfig.is_file():
        config.kubeconfig.unlink()
        log_success("Removed kubeconfig")

    if prompts.confirm("Do you want to stop/delete the Kubernetes cluster?"):
        ClusterService(config).stop()

    log_success("Lab cleanup complete!")
    return True
