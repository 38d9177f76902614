"""DeployService — the whole provisioning run in one call.

Pipeline: PREFLIGHT → RENDER → BOOTSTRAP → FOLLOW

Stops at the first failing step. Nothing touches the disk or the container
runtime before preflight passes. A rerun on a rendered workspace keeps the
existing secrets and resumes bootstrap where it stopped.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING

from fedideploy.domain.deployment import load_required_environment
from fedideploy.services.base import BaseService
from fedideploy.services.bootstrap import BootstrapService
from fedideploy.services.federation import ClientFactory, FollowService
from fedideploy.services.preflight import PreflightService, Which
from fedideploy.services.render import RenderService
from fedideploy.services.result import ServiceResult

if TYPE_CHECKING:
    from fedideploy.config.settings import FediSettings
    from fedideploy.infrastructure.compose import ComposeDriver
    from fedideploy.infrastructure.workspace import Workspace

logger = logging.getLogger(__name__)


class DeployService(BaseService):
    """Chain preflight, render, bootstrap and follow."""

    def __init__(
        self,
        workspace: Workspace,
        settings: FediSettings,
        *,
        driver: ComposeDriver | None = None,
        client_factory: ClientFactory | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(workspace, settings)
        self._driver = driver
        self._client_factory = client_factory
        self._sleep = sleep
        self._clock = clock

    @staticmethod
    def _failed(step: str, result: ServiceResult, warnings: list[str]) -> ServiceResult:
        logger.error("Deploy stopped at %s", step)
        return result.model_copy(
            update={
                "op": "deploy",
                "data": {**result.data, "failed_step": step},
                "warnings": [*warnings, *result.warnings],
            }
        )

    def deploy(
        self,
        domain: str,
        ip: str,
        *,
        force: bool = False,
        skip_follow: bool = False,
        handles: Sequence[str] | None = None,
        environ: Mapping[str, str] | None = None,
        which: Which | None = None,
    ) -> ServiceResult:
        op = "deploy"
        warnings: list[str] = []
        steps: list[str] = []
        env = os.environ if environ is None else environ

        preflight = PreflightService(self._workspace, self._settings).check(
            environ=env, which=which
        )
        if not preflight.ok:
            return self._failed("preflight", preflight, warnings)
        steps.append("preflight")

        if self._workspace.is_rendered() and not force:
            warnings.append(
                f"Reusing the configuration already rendered in {self._workspace.root}; "
                "pass --force to regenerate it"
            )
            steps.append("render (reused)")
        else:
            values, _missing = load_required_environment(env)
            assert values is not None
            rendered = RenderService(self._workspace, self._settings).render_new(
                domain, ip, values, force=force
            )
            if not rendered.ok:
                return self._failed("render", rendered, warnings)
            warnings.extend(rendered.warnings)
            steps.append("render")

        bootstrap = BootstrapService(
            self._workspace,
            self._settings,
            driver=self._driver,
            sleep=self._sleep,
            clock=self._clock,
        ).run()
        if not bootstrap.ok:
            return self._failed("bootstrap", bootstrap, warnings)
        warnings.extend(bootstrap.warnings)
        steps.append("bootstrap")

        follow_data: dict[str, object] = {}
        if skip_follow:
            steps.append("follow (skipped)")
        else:
            follow = FollowService(
                self._workspace,
                self._settings,
                client_factory=self._client_factory,
                sleep=self._sleep,
                clock=self._clock,
            ).run(handles=handles)
            if not follow.ok:
                return self._failed("follow", follow, warnings)
            warnings.extend(follow.warnings)
            steps.append("follow")
            follow_data = {
                "followed": follow.data["followed"],
                "skipped": follow.data["skipped"],
                "failed": follow.data["failed"],
            }

        config = self._load_deployment()
        logger.info("Deployment of %s complete", config.domain)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "domain": config.domain,
                "instance_url": config.instance_url,
                "kafka_endpoint": config.kafka_endpoint,
                "admin_username": bootstrap.data["admin_username"],
                "admin_email": bootstrap.data["admin_email"],
                "admin_password": bootstrap.data["admin_password"],
                "steps": steps,
                **follow_data,
            },
            warnings=warnings,
        )
