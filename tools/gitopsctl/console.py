from __future__ import annotations

import typer

BANNER = r"""
   ______ _ _    ____            _               _
  / _____(_) |  / __ \          | |             | |
 | |  __ _| |_| |  | |_ __  ___ | |     __ _  __| |__
 | | |_ | | __| |  | | '_ \/ __|| |    / _` |/ _` |  _ \
 | |__| | | |_| |__| | |_) \__ \| |___| (_| | (_| | |_) |
  \_____| |\__|\____/| .__/|___/|______\__,_|\__,_|____/
       _/ |          | |
      |__/           |_|
"""


def _tagged(tag: str, color: str, message: str) -> None:
    typer.secho(f"[{tag}]", fg=color, nl=False)
    typer.echo(f" {message}")


def log_info(message: str) -> None:
    _tagged("INFO", typer.colors.BLUE, message)


def log_success(message: str) -> None:
    _tagged("SUCCESS", typer.colors.GREEN, message)


def log_warning(message: str) -> None:
    _tagged("WARNING", typer.colors.YELLOW, message)


def log_error(message: str) -> None:
    _tagged("ERROR", typer.colors.RED, message)


def log_step(message: str) -> None:
    _tagged("STEP", typer.colors.MAGENTA, message)


def ok(message: str) -> None:
    typer.secho(f"  ✓ {message}", fg=typer.colors.GREEN)


def warn(message: str) -> None:
    typer.secho(f"  ⚠ {message}", fg=typer.colors.YELLOW)


def fail(message: str) -> None:
    typer.secho(f"  ✗ {message}", fg=typer.colors.RED)


def heading(message: str) -> None:
    typer.secho(message, fg=typer.colors.CYAN)


def show_banner() -> None:
    typer.secho(BANNER, fg=typer.colors.CYAN)
    heading("GitOps Lab - Comprehensive Learning Environment")
    heading("Docker Desktop • Minikube • Kind • ArgoCD • Flux • Helm")
    typer.echo()
