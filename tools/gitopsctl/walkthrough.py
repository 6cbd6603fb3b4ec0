"""Interactive step runner shared by the hands-on labs.

Each command is echoed before it runs and, unless ``assume_yes`` is set,
waits for Enter so the reader can follow along.
"""

from __future__ import annotations

import shlex
from typing import Callable, Sequence

import typer

from .kube import run_interactive

ConfirmFn = Callable[[str], bool]
PauseFn = Callable[[str], object]


def _pause(prompt: str) -> object:
    return typer.prompt(prompt, default="", show_default=False, prompt_suffix="")


class Walkthrough:
    def __init__(
        self,
        assume_yes: bool = False,
        confirm: ConfirmFn | None = None,
        pause: PauseFn | None = None,
    ):
        self.assume_yes = assume_yes
        self._confirm = confirm or (lambda q: typer.confirm(q, default=False))
        self._pause = pause or _pause
        self.history: list[list[str]] = []

    def step(self, title: str) -> None:
        print()
        print(f"🎯 {title}")
        print("----------------------------------------")

    def run(self, command: Sequence[str], check: bool = False) -> int:
        print()
        print(f"💻 Command: {shlex.join(command)}")
        if not self.assume_yes:
            self._pause("Press Enter to run...")
        self.history.append(list(command))
        code = run_interactive(command)
        if check and code != 0:
            raise typer.Exit(code=code)
        return code

    def wait_for_enter(self, message: str) -> None:
        if not self.assume_yes:
            self._pause(message)

    def confirm(self, question: str) -> bool:
        if self.assume_yes:
            return True
        return self._confirm(question)
