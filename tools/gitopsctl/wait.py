from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

TERMINAL_WAIT_REASONS = ("ImagePullBackOff", "ErrImagePull", "CrashLoopBackOff")


@dataclass(frozen=True)
class WaitSpec:
    poll_seconds: float = 2.0
    timeout_seconds: float | None = 300.0


CheckFn = Callable[[], tuple[bool, str]]
FailFastFn = Callable[[], Optional[str]]


class WaitFailed(RuntimeError):
    pass


class WaitTimeout(WaitFailed):
    pass


class Waiter:
    def __init__(self, spec: WaitSpec | None = None):
        self.spec = spec or WaitSpec()

    def wait(self, title: str, check: CheckFn, fail_fast: FailFastFn | None = None) -> None:
        print(f"  → {title}...")
        started = time.monotonic()

        while True:
            if fail_fast is not None:
                err = fail_fast()
                if err:
                    print()
                    raise WaitFailed(err)

            done, msg = check()

            if msg:
                print(f"     {msg}", end="\r")

            if done:
                if msg:
                    print(f"     {msg} (OK)            ")
                else:
                    print("     OK")
                return

            timeout = self.spec.timeout_seconds
            if timeout is not None and time.monotonic() - started >= timeout:
                print()
                raise WaitTimeout(f"Timed out after {timeout:g}s: {title}")

            time.sleep(self.spec.poll_seconds)


# ------------------------------------------------------------
# Readiness predicates over `kubectl get ... -o json` objects
# ------------------------------------------------------------


def has_condition(obj: dict[str, Any], condition: str) -> bool:
    conditions = obj.get("status", {}).get("conditions", []) or []
    return any(c.get("type") == condition and c.get("status") == "True" for c in conditions)


def node_is_ready(node: dict[str, Any]) -> bool:
    return has_condition(node, "Ready")


def pod_is_ready(pod: dict[str, Any]) -> bool:
    return has_condition(pod, "Ready")


def deployment_is_available(dep: dict[str, Any]) -> bool:
    status = dep.get("status", {}) or {}
    desired = status.get("replicas", 0) or 0
    available = status.get("availableReplicas", 0) or 0
    return desired > 0 and available == desired


def terminal_pod_failure(pods: Iterable[dict[str, Any]]) -> str | None:
    """Describe the first pod stuck in a state that will not heal by itself."""
    for pod in pods:
        pod_name = pod.get("metadata", {}).get("name", "<unknown>")
        phase = pod.get("status", {}).get("phase", "<unknown>")

        for cs in pod.get("status", {}).get("containerStatuses", []) or []:
            waiting = (cs.get("state", {}) or {}).get("waiting")
            if not waiting:
                continue

            reason = waiting.get("reason")
            if reason in TERMINAL_WAIT_REASONS:
                message = waiting.get("message", "")
                return f"{pod_name} phase={phase} reason={reason} {message}".strip()
    return None
