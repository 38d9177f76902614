"""BaseService — shared foundation for all fedideploy services.

Every service receives the :class:`Workspace` it operates on and the
resolved settings. Collaborators that touch the outside world (the compose
driver, the HTTP client, sleeps) are built here from settings unless a
caller injects them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fedideploy.domain.topology import Topology, build_topology
from fedideploy.infrastructure.compose import ComposeDriver
from fedideploy.infrastructure.readiness import Backoff

if TYPE_CHECKING:
    from fedideploy.config.settings import FediSettings
    from fedideploy.domain.deployment import DeploymentConfig
    from fedideploy.infrastructure.workspace import Workspace

logger = logging.getLogger(__name__)


class BaseService:
    """Base for service-layer classes.

    Usage::

        class StackService(BaseService):
            def up(self) -> ServiceResult:
                config = self._load_deployment()
                ...
    """

    def __init__(self, workspace: Workspace, settings: FediSettings) -> None:
        self._workspace = workspace
        self._settings = settings

    def _backoff(self) -> Backoff:
        return Backoff(
            initial_delay=self._settings.readiness.initial_delay,
            max_delay=self._settings.readiness.max_delay,
        )

    def _build_driver(self) -> ComposeDriver:
        compose = self._settings.compose
        return ComposeDriver(
            self._workspace.root,
            command=compose.command,
            sudo=compose.sudo,
            project_name=compose.project_name,
            health_timeout=self._settings.readiness.health_timeout,
            backoff=self._backoff(),
        )

    def _load_deployment(self) -> DeploymentConfig:
        """Deployment as recorded in the rendered env file."""
        return self._workspace.load_deployment(mastodon_version=self._settings.mastodon.version)

    def _topology(self, config: DeploymentConfig) -> Topology:
        return build_topology(config, image=self._settings.mastodon.image)
