from __future__ import annotations

import logging
import socket
import subprocess
import time
import urllib.error
import urllib.request

from .kube import kubectl, run_command

logger = logging.getLogger(__name__)


def port_in_use(port: int, host: str = "127.0.0.1") -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(0.5)
        return sock.connect_ex((host, port)) == 0


def http_responds(url: str, timeout: float = 2.0) -> bool:
    try:
        with urllib.request.urlopen(urllib.request.Request(url, method="GET"), timeout=timeout) as resp:
            return 200 <= resp.status < 400
    except (urllib.error.URLError, TimeoutError, ConnectionError):
        return False


class PortForward:
    """Background ``kubectl port-forward`` with a fixed settle delay."""

    def __init__(
        self,
        resource: str,
        namespace: str,
        local_port: int,
        remote_port: int,
        settle_seconds: float = 3.0,
    ):
        self.resource = resource
        self.namespace = namespace
        self.local_port = local_port
        self.remote_port = remote_port
        self.settle_seconds = settle_seconds
        self.process: subprocess.Popen | None = None

    @property
    def kill_pattern(self) -> str:
        return f"kubectl.*port-forward.*{self.resource.split('/')[-1]}"

    @property
    def url(self) -> str:
        return f"http://localhost:{self.local_port}"

    def command(self) -> list[str]:
        return kubectl("port-forward", self.resource, "-n", self.namespace, f"{self.local_port}:{self.remote_port}")

    def start(self) -> int:
        if port_in_use(self.local_port):
            print(f"⚠️  Port {self.local_port} is already in use. Killing existing processes...")
            run_command(["pkill", "-f", self.kill_pattern])
            time.sleep(2)

        cmd = self.command()
        logger.debug("run (background): %s", " ".join(cmd))
        self.process = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        print(f"Port-forward PID: {self.process.pid}")
        time.sleep(self.settle_seconds)
        return self.process.pid

    def stop(self, kill_others: bool = False) -> None:
        if self.process is not None and self.process.poll() is None:
            self.process.terminate()
            try:
                self.process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self.process.kill()
        self.process = None
        if kill_others:
            run_command(["pkill", "-f", self.kill_pattern])

    def __enter__(self) -> "PortForward":
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()
