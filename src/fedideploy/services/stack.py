"""StackService — bring the compose project up, down, or report its health."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fedideploy.infrastructure.compose import (
    ComposeDriver,
    ComposeError,
    DependencyNotReady,
    HealthCheckTimeout,
)
from fedideploy.services.base import BaseService
from fedideploy.services.result import ServiceResult, failure

if TYPE_CHECKING:
    from fedideploy.config.settings import FediSettings
    from fedideploy.infrastructure.workspace import Workspace

logger = logging.getLogger(__name__)

_NOT_RENDERED = "No rendered configuration found. Run `fedideploy render` first."


class StackService(BaseService):
    """Operator-facing wrappers around :class:`ComposeDriver`."""

    def __init__(
        self,
        workspace: Workspace,
        settings: FediSettings,
        *,
        driver: ComposeDriver | None = None,
    ) -> None:
        super().__init__(workspace, settings)
        self._driver = driver or self._build_driver()

    def _orchestrate(self, op: str, action: str) -> ServiceResult:
        if not self._workspace.is_rendered():
            return failure(op, "NOT_RENDERED", _NOT_RENDERED)
        topology = self._topology(self._load_deployment())
        try:
            if action == "up":
                started = self._driver.up(topology)
            elif action == "restart":
                started = self._driver.restart(topology)
            else:
                self._driver.down()
                started = []
        except HealthCheckTimeout as exc:
            return failure(
                op,
                "ORCHESTRATION_FAILED",
                f"{exc}. Services already started were left running.",
                service=exc.service,
                last_status=exc.last_status,
                healthy=sorted(self._driver.healthy),
            )
        except DependencyNotReady as exc:
            return failure(op, "ORCHESTRATION_FAILED", str(exc), service=exc.service)
        except ComposeError as exc:
            return failure(op, "ORCHESTRATION_FAILED", str(exc), exit_code=exc.result.exit_code)
        return ServiceResult(
            ok=True,
            op=op,
            data={"services": started, "healthy": sorted(self._driver.healthy)},
        )

    def up(self) -> ServiceResult:
        return self._orchestrate("stack_up", "up")

    def down(self) -> ServiceResult:
        return self._orchestrate("stack_down", "down")

    def restart(self) -> ServiceResult:
        return self._orchestrate("stack_restart", "restart")

    def status(self) -> ServiceResult:
        op = "stack_status"
        if not self._workspace.is_rendered():
            return failure(op, "NOT_RENDERED", _NOT_RENDERED)
        topology = self._topology(self._load_deployment())
        try:
            health = self._driver.status(topology)
        except ComposeError as exc:
            return failure(op, "ORCHESTRATION_FAILED", str(exc))
        items = [{"service": name, "status": status} for name, status in health.items()]
        return ServiceResult(ok=True, op=op, data={"items": items})
