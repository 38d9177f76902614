"""RenderService — materialize the env file, Caddyfile and compose file.

Pipeline: VALIDATE → GENERATE SECRETS → RENDER → WRITE → HAND OVER DATA DIRS → RECORD STATE

Rendering itself is pure: the same :class:`DeploymentConfig` always yields
byte-identical files. Freshness comes only from the secret generator.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

from jinja2 import TemplateError

from fedideploy.domain.bootstrap import AdminAccount, BootstrapState
from fedideploy.domain.deployment import DeploymentConfig, RequiredEnvironment, validate_ip
from fedideploy.domain.topology import CONTAINER_UID, CONTAINER_USER
from fedideploy.infrastructure.compose import ComposeDriver, ComposeError
from fedideploy.infrastructure.compose_file import render_compose_file
from fedideploy.infrastructure.secrets import SecretGenerationError, generate_secret_bundle
from fedideploy.infrastructure.templates import build_template_environment
from fedideploy.infrastructure.workspace import CONTAINER_OWNED_DIRS, SetOwner, chown_tree
from fedideploy.services.base import BaseService
from fedideploy.services.result import ServiceResult, failure

if TYPE_CHECKING:
    from fedideploy.config.settings import FediSettings

logger = logging.getLogger(__name__)

ACME_CA_URL = "https://acme-v02.api.letsencrypt.org/directory"

IMMUTABLE_CACHE_PATHS: tuple[str, ...] = (
    "/emoji*",
    "/packs*",
    "/system/accounts/avatars*",
    "/system/media_attachments/files*",
)

_ROTATION_WARNING = (
    "Secrets were regenerated: existing sessions, 2FA enrolments and push "
    "subscriptions bound to the old secrets are invalidated"
)

_OWNERSHIP_WARNING = (
    f"Data directories were not handed to uid {CONTAINER_UID} (not root and [compose] sudo is "
    f"off). Run `sudo chown -R {CONTAINER_USER} {' '.join(CONTAINER_OWNED_DIRS)}` in the "
    "deployment directory before starting the stack"
)


def render_env_file(config: DeploymentConfig, *, workdir: Path | None = None) -> str:
    """Render ``.env.production`` for *config*."""
    env = build_template_environment("config", workdir=workdir)
    return env.get_template("env.production.j2").render(config=config)


def render_caddyfile(
    config: DeploymentConfig,
    *,
    workdir: Path | None = None,
    acme_ca: str = ACME_CA_URL,
) -> str:
    """Render the Caddy routing file for *config*."""
    env = build_template_environment("config", workdir=workdir)
    return env.get_template("Caddyfile.j2").render(
        config=config,
        acme_ca=acme_ca,
        immutable_paths=IMMUTABLE_CACHE_PATHS,
    )


def select_owner_setter(
    settings: FediSettings,
    *,
    euid: int,
    build_driver: Callable[[], ComposeDriver],
) -> SetOwner | None:
    """Pick how the data directories reach the container user, or None if we cannot.

    Root changes ownership directly; otherwise ``sudo`` through the compose
    driver when the deployment is configured to use it.
    """
    if euid == 0:
        return chown_tree
    if settings.compose.sudo:
        return partial(build_driver().set_owner, uid=CONTAINER_UID, gid=CONTAINER_UID)
    return None


class RenderService(BaseService):
    """Produce the deployment's config files in the workspace."""

    def render_new(
        self,
        domain: str,
        ip: str,
        environment: RequiredEnvironment,
        *,
        force: bool = False,
    ) -> ServiceResult:
        """Generate fresh secrets and render a new deployment."""
        op = "render_config"
        if self._workspace.env_file.exists() and not force:
            return failure(
                op,
                "WORKSPACE_EXISTS",
                f"{self._workspace.env_file} already exists. Re-run with --force to "
                "regenerate it (this rotates every secret).",
                path=str(self._workspace.env_file),
            )
        config = DeploymentConfig(
            domain=domain.strip(),
            ip=ip.strip(),
            operator_email=environment.operator_email.strip(),
            db_password=environment.db_password,
            cache_password=environment.cache_password,
            mastodon_version=self._settings.mastodon.version,
        )
        # Validate before spending entropy on secrets.
        invalid = self._validate(config)
        if invalid is not None:
            return invalid

        try:
            secrets = generate_secret_bundle()
        except SecretGenerationError as exc:
            return failure(op, "SECRET_GENERATION_FAILED", str(exc))

        return self.render(config.model_copy(update={"secrets": secrets}), force=force)

    def _owner_setter(self) -> SetOwner | None:
        return select_owner_setter(
            self._settings, euid=os.geteuid(), build_driver=self._build_driver
        )

    def _validate(self, config: DeploymentConfig) -> ServiceResult | None:
        op = "render_config"
        missing = config.missing_fields()
        if missing:
            return failure(
                op,
                "MISSING_FIELD",
                f"Cannot render configuration, missing required field(s): {', '.join(missing)}",
                missing=missing,
            )
        ip_error = validate_ip(config.ip)
        if ip_error is not None:
            return failure(op, "INVALID_FIELD", ip_error, field="ip")
        return None

    def render(self, config: DeploymentConfig, *, force: bool = False) -> ServiceResult:
        """Render and write every file for *config*.

        Refuses to overwrite an existing env file unless *force*.
        """
        op = "render_config"
        warnings: list[str] = []

        invalid = self._validate(config)
        if invalid is not None:
            return invalid

        existed = self._workspace.env_file.exists()
        if existed and not force:
            return failure(
                op,
                "WORKSPACE_EXISTS",
                f"{self._workspace.env_file} already exists. Re-run with --force to regenerate it.",
                path=str(self._workspace.env_file),
            )

        workdir = self._workspace.root
        try:
            env_text = render_env_file(config, workdir=workdir)
            caddy_text = render_caddyfile(config, workdir=workdir)
            topology = self._topology(config)
            compose_text = render_compose_file(
                topology, project_name=self._settings.compose.project_name
            )
        except (TemplateError, ValueError) as exc:
            return failure(op, "RENDER_FAILED", f"Rendering failed: {exc}")

        ws = self._workspace
        try:
            ws.write_file(ws.env_file, env_text, mode=0o600)
            ws.write_file(ws.caddyfile, caddy_text)
            ws.write_file(ws.compose_file, compose_text)
            dirs_created = ws.ensure_layout()
        except OSError as exc:
            return failure(op, "RENDER_FAILED", f"Could not write configuration: {exc}")

        owned: list[str] = []
        set_owner = self._owner_setter()
        if set_owner is None:
            warnings.append(_OWNERSHIP_WARNING)
        else:
            try:
                owned = ws.assign_ownership(set_owner)
            except (OSError, ComposeError) as exc:
                return failure(
                    op,
                    "RENDER_FAILED",
                    f"Could not hand the data directories to uid {CONTAINER_UID}: {exc}",
                    directories=list(CONTAINER_OWNED_DIRS),
                )

        if existed:
            warnings.append(_ROTATION_WARNING)

        state = ws.load_state()
        if state is None:
            state = BootstrapState(
                admin=AdminAccount(
                    username=self._settings.admin.username,
                    email=config.operator_email,
                    role=self._settings.admin.role,
                )
            )
            ws.save_state(state)
        else:
            warnings.append(f"Existing bootstrap state kept at stage {state.stage.value!r}")

        logger.info("Rendered configuration for %s in %s", config.domain, workdir)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "workdir": str(workdir),
                "domain": config.domain,
                "instance_url": config.instance_url,
                "services": topology.names,
                "files_written": [
                    ws.env_file.name,
                    ws.caddyfile.name,
                    ws.compose_file.name,
                ],
                "directories_created": dirs_created,
                "directories_owned": owned,
                "stage": state.stage.value,
            },
            warnings=warnings,
        )
