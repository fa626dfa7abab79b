"""Docker runtime services for graphqltiers."""

import subprocess
import time
from pathlib import Path
from typing import Callable, List, Optional

from graphqltiers.constants import WAIT_INTERVAL_SECONDS, WAIT_MAX_ATTEMPTS
from graphqltiers.errors import ExternalToolError, MissingResourceError
from graphqltiers.errors_catalog import actionable_error

RUNNING = "running"
STOPPED = "stopped"
NOT_EXISTS = "not_exists"


class DockerRuntimeService:
    """Manages docker-compose detection and container lifecycle helpers."""

    def __init__(self, logger, console, subprocess_module=subprocess):
        self.logger = logger
        self.console = console
        self.subprocess = subprocess_module

    def get_docker_compose_cmd(self) -> List[str]:
        try:
            self.subprocess.run(["docker", "compose", "version"], check=True, capture_output=True)
            return ["docker", "compose"]
        except (self.subprocess.CalledProcessError, FileNotFoundError):
            try:
                self.subprocess.run(["docker-compose", "--version"], check=True, capture_output=True)
                return ["docker-compose"]
            except (self.subprocess.CalledProcessError, FileNotFoundError):
                raise ExternalToolError(
                    "Docker Compose is not available. Install Docker Compose v2 (`docker compose`) "
                    "or v1 (`docker-compose`) and try again."
                )

    def ensure_docker_running(self, run_cmd: Callable):
        result = run_cmd(["docker", "info"], check=False, capture_output=True)
        if result.returncode != 0:
            raise ExternalToolError("Docker is not running. Start the Docker daemon and try again.")

    def compose(self, compose_cmd: List[str], compose_file: Path, args: List[str], run_cmd: Callable, check=True):
        if not Path(compose_file).is_file():
            raise MissingResourceError(actionable_error("missing_compose_file", path=str(compose_file)))
        return run_cmd(
            compose_cmd + ["-f", str(compose_file)] + args,
            check=check,
            capture_output=True,
        )

    def container_status(self, container: str, run_cmd: Callable) -> str:
        result = run_cmd(
            ["docker", "ps", "-a", "--filter", f"name=^{container}$", "--format", "{{.State}}"],
            check=False,
            capture_output=True,
        )
        if result.returncode != 0:
            raise ExternalToolError(f"Could not query container status for {container}.")

        state = (result.stdout or "").strip().splitlines()
        if not state:
            return NOT_EXISTS
        return RUNNING if state[0].strip() == "running" else STOPPED

    def container_health(self, container: str, run_cmd: Callable) -> str:
        result = run_cmd(
            ["docker", "ps", "--filter", f"name=^{container}$", "--format", "{{.Status}}"],
            check=False,
            capture_output=True,
        )
        return (result.stdout or "").strip()

    def start_container(self, container: str, compose_cmd, compose_file, run_cmd: Callable):
        status = self.container_status(container, run_cmd)
        self.logger.debug("Current container status: %s", status)

        if status == RUNNING:
            self.console.print(f"[yellow]Container '{container}' is already running.[/yellow]")
            return status

        if status == STOPPED:
            result = run_cmd(["docker", "start", container], check=False, capture_output=True)
            if result.returncode == 0:
                self.console.print(f"[green]Container '{container}' started.[/green]")
                return status
            self.logger.warning("docker start failed, trying compose up...")

        self.compose(compose_cmd, compose_file, ["up", "-d"], run_cmd)
        self.console.print(f"[green]Container '{container}' created and started.[/green]")
        return status

    def wait_for_graphql(
        self,
        client,
        max_retries: int = WAIT_MAX_ATTEMPTS,
        interval: float = WAIT_INTERVAL_SECONDS,
    ):
        self.console.print("[yellow]Waiting for GraphQL service to be ready...[/yellow]")

        for attempt in range(1, max_retries + 1):
            if client.is_healthy():
                self.console.print("[green]GraphQL service is ready.[/green]")
                return
            self.logger.debug("Attempt %s/%s - waiting for service...", attempt, max_retries)
            time.sleep(interval)

        raise ExternalToolError(
            f"GraphQL service failed to start after {max_retries} attempts. Check container logs."
        )

    def describe_container(self, container: str, run_cmd: Callable) -> dict:
        details = {}
        port = run_cmd(["docker", "port", container, "8080"], check=False, capture_output=True)
        if port.returncode == 0 and port.stdout.strip():
            details["port"] = port.stdout.strip()
        for key, template in (("created", "{{.Created}}"), ("image", "{{.Config.Image}}")):
            result = run_cmd(
                ["docker", "inspect", container, f"--format={template}"],
                check=False,
                capture_output=True,
            )
            if result.returncode == 0 and result.stdout.strip():
                details[key] = result.stdout.strip()
        return details

    def container_stats(self, container: str, run_cmd: Callable) -> Optional[str]:
        result = run_cmd(
            [
                "docker",
                "stats",
                container,
                "--no-stream",
                "--format",
                "table {{.Name}}\t{{.CPUPerc}}\t{{.MemUsage}}\t{{.NetIO}}",
            ],
            check=False,
            capture_output=True,
        )
        return result.stdout.strip() if result.returncode == 0 else None

    def remove_container(self, container: str, volume: str, run_cmd: Callable):
        self.console.print("[dim]Removing leftover container and volume...[/dim]")
        run_cmd(["docker", "rm", "-f", container], check=False, capture_output=True)
        run_cmd(["docker", "volume", "rm", volume], check=False, capture_output=True)

    def prune_volumes(self, run_cmd: Callable):
        run_cmd(["docker", "volume", "prune", "-f"], check=False, capture_output=True)
