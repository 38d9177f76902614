"""ComposeDriver — start, stop and run commands against the compose project.

All container runtime access goes through a single subprocess runner so
tests can substitute a fake. The driver keeps track of which services have
reported healthy during this invocation and refuses to start a service
whose dependencies are not in that set.

Nothing here is transactional: a failure mid-way leaves the services that
already started running. There is no rollback.
"""

from __future__ import annotations

import logging
import subprocess
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, TypeAlias

from fedideploy.infrastructure.readiness import Backoff, ReadinessTimeout, wait_until

if TYPE_CHECKING:
    from fedideploy.domain.topology import ServiceSpec, Topology

logger = logging.getLogger(__name__)

Runner: TypeAlias = Callable[..., subprocess.CompletedProcess[str]]

# Health when the image defines a healthcheck, plain state otherwise.
_HEALTH_FORMAT = "{{if .State.Health}}{{.State.Health.Status}}{{else}}{{.State.Status}}{{end}}"

HEALTHY = "healthy"


@dataclass(frozen=True)
class CommandResult:
    """Exit status and captured output of one command."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """stdout followed by stderr."""
        if self.stdout and self.stderr:
            return f"{self.stdout.rstrip()}\n{self.stderr}"
        return self.stdout or self.stderr


class ComposeError(RuntimeError):
    """A compose command exited non-zero or could not be launched."""

    def __init__(self, args: Sequence[str], result: CommandResult) -> None:
        super().__init__(
            f"`{' '.join(args[:3])}` exited with status {result.exit_code}: "
            f"{result.output.strip()[-500:]}"
        )
        self.command = list(args)
        self.result = result


class DependencyNotReady(RuntimeError):
    """A service was asked to start before its dependencies were healthy."""

    def __init__(self, service: str, missing: list[str]) -> None:
        super().__init__(f"Refusing to start {service!r}: dependencies not healthy: {missing}")
        self.service = service
        self.missing = missing


class HealthCheckTimeout(RuntimeError):
    """A service did not report healthy within the timeout."""

    def __init__(self, service: str, last_status: str, timeout: float) -> None:
        super().__init__(
            f"Service {service!r} not healthy after {timeout:.0f}s (last status: {last_status})"
        )
        self.service = service
        self.last_status = last_status
        self.timeout = timeout


class ComposeDriver:
    """Drive ``docker compose`` for one project directory."""

    def __init__(
        self,
        project_dir: Path,
        *,
        command: Sequence[str] = ("docker", "compose"),
        sudo: bool = False,
        project_name: str | None = None,
        health_timeout: float = 300.0,
        backoff: Backoff | None = None,
        runner: Runner = subprocess.run,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._project_dir = project_dir
        self._command = list(command)
        self._sudo = sudo
        self._project_name = project_name
        self._health_timeout = health_timeout
        self._backoff = backoff or Backoff()
        self._runner = runner
        self._sleep = sleep
        self._clock = clock
        self._healthy: set[str] = set()

    @property
    def healthy(self) -> frozenset[str]:
        """Services that reported healthy since the last ``down``."""
        return frozenset(self._healthy)

    # ------------------------------------------------------------------
    # Subprocess helpers
    # ------------------------------------------------------------------

    def _prefix(self) -> list[str]:
        return ["sudo"] if self._sudo else []

    def _exec(self, args: list[str], *, check: bool) -> CommandResult:
        logger.debug("Running %s", " ".join(args[:4]))
        try:
            proc = self._runner(
                args,
                cwd=self._project_dir,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            result = CommandResult(exit_code=127, stderr=str(exc))
            raise ComposeError(args, result) from exc
        result = CommandResult(
            exit_code=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )
        if check and not result.ok:
            raise ComposeError(args, result)
        return result

    def _compose(self, *args: str, check: bool = True) -> CommandResult:
        full = [*self._prefix(), *self._command]
        if self._project_name:
            full += ["-p", self._project_name]
        return self._exec([*full, *args], check=check)

    def _docker(self, *args: str, check: bool = True) -> CommandResult:
        return self._exec([*self._prefix(), "docker", *args], check=check)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health_status(self, service: str) -> str:
        """Current health of *service*: ``healthy``, ``starting``, ``running``, ``missing``..."""
        ps = self._compose("ps", "-q", service, check=False)
        ids = ps.stdout.split() if ps.ok else []
        if not ids:
            return "missing"
        inspect = self._docker("inspect", "--format", _HEALTH_FORMAT, ids[0], check=False)
        if not inspect.ok:
            return "unknown"
        return inspect.stdout.strip() or "unknown"

    def wait_healthy(self, service: str, *, timeout: float | None = None) -> None:
        """Block until *service* reports healthy.

        Raises:
            HealthCheckTimeout: The timeout elapsed first.
        """
        limit = self._health_timeout if timeout is None else timeout
        last = "unknown"

        def is_healthy() -> bool:
            nonlocal last
            last = self.health_status(service)
            return last == HEALTHY

        try:
            wait_until(
                is_healthy,
                description=f"service {service}",
                timeout=limit,
                backoff=self._backoff,
                sleep=self._sleep,
                clock=self._clock,
            )
        except ReadinessTimeout as exc:
            raise HealthCheckTimeout(service, last, limit) from exc
        self._healthy.add(service)
        logger.info("Service %s is healthy", service)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_service(self, spec: ServiceSpec) -> None:
        """Start one service after checking its dependencies are healthy.

        Raises:
            DependencyNotReady: A dependency has not reported healthy.
            ComposeError: ``compose up`` failed.
            HealthCheckTimeout: The service never became healthy.
        """
        missing = [dep for dep in spec.depends_on if dep not in self._healthy]
        if missing:
            raise DependencyNotReady(spec.name, missing)
        logger.info("Starting %s", spec.name)
        self._compose("up", "-d", "--no-deps", spec.name)
        if spec.health_check is not None:
            self.wait_healthy(spec.name)

    def up(self, topology: Topology) -> list[str]:
        """Start every service in dependency order; returns the names started."""
        started: list[str] = []
        for spec in topology.startup_order():
            self.start_service(spec)
            started.append(spec.name)
        return started

    def down(self) -> None:
        """Stop and remove the project's containers."""
        logger.info("Stopping all services")
        self._compose("down")
        self._healthy.clear()

    def restart(self, topology: Topology) -> list[str]:
        """Stop the whole project, then bring it back up in order."""
        self.down()
        return self.up(topology)

    def status(self, topology: Topology) -> dict[str, str]:
        """Health of every declared service."""
        return {name: self.health_status(name) for name in topology.names}

    def set_owner(
        self,
        owned: Sequence[Path],
        writable: Sequence[Path],
        *,
        uid: int,
        gid: int,
    ) -> None:
        """``chown -R`` *owned* and ``chmod 775`` *writable* with the driver's privileges.

        Raises:
            ComposeError: Either command exited non-zero.
        """
        if owned:
            self._exec(
                [*self._prefix(), "chown", "-R", f"{uid}:{gid}", *map(str, owned)], check=True
            )
        if writable:
            self._exec([*self._prefix(), "chmod", "775", *map(str, writable)], check=True)

    def run_once(
        self,
        service: str,
        command: Sequence[str],
        *,
        fresh: bool = True,
    ) -> CommandResult:
        """Run *command* in a throwaway (``fresh``) or the running container.

        Never raises on a non-zero exit; the caller decides what failure means.
        """
        if fresh:
            args = ["run", "--rm", "-T", service, *command]
        else:
            args = ["exec", "-T", service, *command]
        return self._compose(*args, check=False)
