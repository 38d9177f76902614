"""FollowService — seed the admin account's home timeline.

Pipeline: CREDENTIALS → WAIT FOR WEB → REGISTER APP → TOKEN → FOLLOW EACH

Per-handle problems never stop the batch: they are recorded as ``skipped``
or ``failed`` outcomes and the loop moves on.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, TypeAlias

import httpx

from fedideploy.domain.federation import (
    DEFAULT_FOLLOW_HANDLES,
    FollowOutcome,
    FollowStatus,
    FollowTarget,
)
from fedideploy.infrastructure.federation import FederationClient, FederationError
from fedideploy.infrastructure.readiness import ReadinessTimeout, wait_until
from fedideploy.services.base import BaseService
from fedideploy.services.result import ServiceResult, failure

if TYPE_CHECKING:
    from fedideploy.config.settings import FediSettings
    from fedideploy.infrastructure.workspace import Workspace

logger = logging.getLogger(__name__)

ClientFactory: TypeAlias = Callable[[str], FederationClient]


class FollowService(BaseService):
    """Authenticate as the admin and follow a list of remote accounts."""

    def __init__(
        self,
        workspace: Workspace,
        settings: FediSettings,
        *,
        client_factory: ClientFactory | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(workspace, settings)
        self._client_factory = client_factory or self._default_client
        self._sleep = sleep
        self._clock = clock

    def _default_client(self, instance_url: str) -> FederationClient:
        fed = self._settings.federation
        return FederationClient(
            instance_url, timeout=fed.request_timeout, verify=fed.verify_tls
        )

    def _handles(self, handles: Sequence[str] | None) -> list[str]:
        if handles:
            return list(handles)
        if self._settings.federation.handles:
            return list(self._settings.federation.handles)
        return list(DEFAULT_FOLLOW_HANDLES)

    def run(
        self,
        *,
        handles: Sequence[str] | None = None,
        username: str | None = None,
        password: str | None = None,
    ) -> ServiceResult:
        """Follow *handles* (or the configured/default list) as the admin.

        *username* and *password* default to the operator email and the
        password captured during bootstrap.
        """
        op = "follow"
        ws = self._workspace
        if not ws.is_rendered():
            return failure(
                op,
                "NOT_RENDERED",
                "No rendered configuration found. Run `fedideploy render` first.",
            )
        config = self._load_deployment()

        if password is None:
            state = ws.load_state()
            password = state.admin.password if state is not None else None
        if not password:
            return failure(
                op,
                "MISSING_FIELD",
                "No admin password recorded. Run `fedideploy bootstrap` first.",
                missing=["admin_password"],
            )
        username = username or config.operator_email

        targets: list[FollowTarget] = []
        invalid: list[str] = []
        for handle in self._handles(handles):
            try:
                targets.append(FollowTarget.parse(handle))
            except ValueError:
                invalid.append(handle)
        if invalid:
            return failure(
                op,
                "INVALID_FIELD",
                f"Invalid account handle(s): {', '.join(invalid)} (expected user@domain)",
                field="handles",
                invalid=invalid,
            )

        fed = self._settings.federation
        with self._client_factory(config.instance_url) as client:
            try:
                wait_until(
                    client.is_ready,
                    description="web server",
                    timeout=fed.web_ready_timeout,
                    backoff=self._backoff(),
                    sleep=self._sleep,
                    clock=self._clock,
                )
            except ReadinessTimeout as exc:
                return failure(op, "NOT_READY", str(exc), instance_url=config.instance_url)

            try:
                credentials = client.register_app(fed.client_name, fed.redirect_uri, fed.scopes)
            except (FederationError, httpx.HTTPError) as exc:
                return failure(
                    op,
                    "APP_REGISTRATION_FAILED",
                    str(exc),
                    response=getattr(exc, "response_text", ""),
                )
            logger.info("Registered application %s", fed.client_name)

            try:
                client.get_token(credentials, username, password, fed.scopes)
            except (FederationError, httpx.HTTPError) as exc:
                return failure(
                    op,
                    "TOKEN_FAILED",
                    str(exc),
                    response=getattr(exc, "response_text", ""),
                )

            outcomes: list[FollowOutcome] = []
            for idx, target in enumerate(targets):
                if idx:
                    self._sleep(fed.follow_delay)
                outcomes.append(client.follow(target))

        counts = {status.value: 0 for status in FollowStatus}
        for outcome in outcomes:
            counts[outcome.status.value] += 1
        warnings = [
            f"Failed to follow {o.handle}: {o.detail}"
            for o in outcomes
            if o.status is FollowStatus.FAILED
        ]
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "instance_url": config.instance_url,
                "total": len(outcomes),
                **counts,
                "items": [o.model_dump(mode="json") for o in outcomes],
            },
            warnings=warnings,
        )
