"""BootstrapService — one-time post-start tasks, strictly in order.

Pipeline: SERVICES UP → DB READY → MIGRATE → SEED → RESTART → ADMIN CREATE
→ ROLE → DISABLE 2FA → APPROVE → RELAYS → DONE

Each stage is a separate privileged command run through the compose
driver. The state is saved after every stage, so a rerun resumes after the
last completed one. A failed stage stops the run and leaves earlier stages
in place; nothing is compensated.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from fedideploy.domain.bootstrap import (
    AdminAccount,
    BootstrapStage,
    BootstrapState,
    extract_password,
    next_stage,
)
from fedideploy.domain.relays import (
    DEFAULT_RELAYS,
    RelayEntry,
    build_insert_sql,
    build_verify_sql,
    relays_from_urls,
    schema_is_supported,
)
from fedideploy.infrastructure.compose import (
    CommandResult,
    ComposeDriver,
    ComposeError,
    DependencyNotReady,
    HealthCheckTimeout,
)
from fedideploy.infrastructure.readiness import ReadinessTimeout, wait_until
from fedideploy.services.base import BaseService
from fedideploy.services.result import ServiceResult, failure

if TYPE_CHECKING:
    from fedideploy.config.settings import FediSettings
    from fedideploy.domain.deployment import DeploymentConfig
    from fedideploy.domain.topology import Topology
    from fedideploy.infrastructure.workspace import Workspace

logger = logging.getLogger(__name__)

DB_USER = "mastodon"
DB_NAME = "mastodon"


class StageFailed(RuntimeError):
    """A bootstrap command exited non-zero or produced unusable output."""

    def __init__(self, message: str, *, output: str = "") -> None:
        super().__init__(message)
        self.output = output


def _sql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def role_guard_sql(db_password: str) -> str:
    """Ensure the ``postgres`` and ``mastodon`` roles exist and own the database."""
    password = _sql_literal(db_password)
    return f"""DO $$
BEGIN
    IF NOT EXISTS (SELECT 1 FROM pg_roles WHERE rolname = 'postgres') THEN
        CREATE ROLE postgres WITH SUPERUSER CREATEDB CREATEROLE LOGIN PASSWORD {password};
    END IF;
    IF NOT EXISTS (SELECT 1 FROM pg_roles WHERE rolname = '{DB_USER}') THEN
        CREATE ROLE {DB_USER} WITH LOGIN PASSWORD {password};
    END IF;
    GRANT ALL PRIVILEGES ON DATABASE {DB_NAME} TO {DB_USER};
END
$$;"""


class BootstrapService(BaseService):
    """Drive a rendered deployment from ``rendered`` to ``done``."""

    def __init__(
        self,
        workspace: Workspace,
        settings: FediSettings,
        *,
        driver: ComposeDriver | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(workspace, settings)
        self._driver = driver or self._build_driver()
        self._sleep = sleep
        self._clock = clock
        self._warnings: list[str] = []
        self._config: DeploymentConfig | None = None
        self._topology_cache: Topology | None = None
        self._steps: dict[BootstrapStage, Callable[[BootstrapState], BootstrapState]] = {
            BootstrapStage.SERVICES_UP: self._services_up,
            BootstrapStage.DB_READY: self._db_ready,
            BootstrapStage.MIGRATED: self._migrate,
            BootstrapStage.SEEDED: self._seed,
            BootstrapStage.RESTARTED: self._restart,
            BootstrapStage.ADMIN_CREATED: self._create_admin,
            BootstrapStage.ADMIN_ROLED: self._assign_role,
            BootstrapStage.ADMIN_2FA_DISABLED: self._disable_2fa,
            BootstrapStage.ADMIN_APPROVED: self._approve_admin,
            BootstrapStage.RELAYS_LOADED: self._load_relays,
            BootstrapStage.DONE: lambda state: state.advance(BootstrapStage.DONE),
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self) -> ServiceResult:
        """Run every pending stage; stop at the first failure."""
        op = "bootstrap"
        self._warnings = []
        ws = self._workspace
        if not ws.is_rendered():
            return failure(
                op,
                "NOT_RENDERED",
                "No rendered configuration found. Run `fedideploy render` first.",
            )

        self._config = self._load_deployment()
        self._topology_cache = self._topology(self._config)

        state = ws.load_state() or BootstrapState(
            admin=AdminAccount(
                username=self._settings.admin.username,
                email=self._config.operator_email,
                role=self._settings.admin.role,
            )
        )
        resumed_from = state.stage
        completed: list[str] = []

        while not state.is_done:
            target = next_stage(state.stage)
            assert target is not None
            logger.info("Bootstrap stage: %s", target.value)
            try:
                state = self._steps[target](state)
            except StageFailed as exc:
                return self._stage_failure(target, "STAGE_FAILED", str(exc), completed, exc.output)
            except (ComposeError, DependencyNotReady, HealthCheckTimeout) as exc:
                return self._stage_failure(target, "ORCHESTRATION_FAILED", str(exc), completed)
            except ReadinessTimeout as exc:
                return self._stage_failure(target, "STAGE_FAILED", str(exc), completed)
            ws.save_state(state)
            completed.append(target.value)

        admin = state.admin
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "stage": state.stage.value,
                "resumed_from": resumed_from.value,
                "completed_stages": completed,
                "instance_url": self._config.instance_url,
                "admin_username": admin.username,
                "admin_email": admin.email,
                "admin_role": admin.role,
                "admin_password": admin.password,
            },
            warnings=list(self._warnings),
        )

    def _stage_failure(
        self,
        stage: BootstrapStage,
        code: str,
        message: str,
        completed: list[str],
        output: str = "",
    ) -> ServiceResult:
        logger.error("Bootstrap failed at %s: %s", stage.value, message)
        detail: dict[str, object] = {"stage": stage.value, "completed_stages": completed}
        if output:
            detail["output"] = output.strip()[-2000:]
        return failure(
            "bootstrap",
            code,
            f"Bootstrap failed at stage {stage.value!r}: {message}",
            warnings=list(self._warnings),
            **detail,
        )

    # ------------------------------------------------------------------
    # Command helpers
    # ------------------------------------------------------------------

    @property
    def _deployment(self) -> DeploymentConfig:
        assert self._config is not None
        return self._config

    @property
    def _topo(self) -> Topology:
        assert self._topology_cache is not None
        return self._topology_cache

    def _run(
        self,
        service: str,
        command: Sequence[str],
        *,
        what: str,
        fresh: bool = False,
    ) -> CommandResult:
        result = self._driver.run_once(service, command, fresh=fresh)
        if not result.ok:
            msg = f"{what} exited with status {result.exit_code}"
            raise StageFailed(msg, output=result.output)
        return result

    def _psql(self, sql: str, *, what: str, tuples_only: bool = False) -> CommandResult:
        cmd = ["psql", "-U", DB_USER, "-d", DB_NAME, "-v", "ON_ERROR_STOP=1"]
        if tuples_only:
            cmd.append("-At")
        return self._run("db", [*cmd, "-c", sql], what=what)

    def _tootctl(self, *args: str, what: str) -> CommandResult:
        return self._run("web", ["tootctl", "accounts", *args], what=what)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _services_up(self, state: BootstrapState) -> BootstrapState:
        self._driver.up(self._topo)
        return state.advance(BootstrapStage.SERVICES_UP)

    def _db_ready(self, state: BootstrapState) -> BootstrapState:
        def accepting() -> bool:
            return self._driver.run_once(
                "db", ["pg_isready", "-U", DB_USER, "-d", DB_NAME], fresh=False
            ).ok

        wait_until(
            accepting,
            description="database",
            timeout=self._settings.readiness.db_timeout,
            backoff=self._backoff(),
            sleep=self._sleep,
            clock=self._clock,
        )
        self._psql(role_guard_sql(self._deployment.db_password), what="Database role setup")
        return state.advance(BootstrapStage.DB_READY)

    def _migrate(self, state: BootstrapState) -> BootstrapState:
        self._run(
            "web", ["bundle", "exec", "rails", "db:migrate"], what="Migration", fresh=True
        )
        return state.advance(BootstrapStage.MIGRATED)

    def _seed(self, state: BootstrapState) -> BootstrapState:
        self._run("web", ["bundle", "exec", "rails", "db:seed"], what="Seeding", fresh=True)
        return state.advance(BootstrapStage.SEEDED)

    def _restart(self, state: BootstrapState) -> BootstrapState:
        self._driver.restart(self._topo)
        return state.advance(BootstrapStage.RESTARTED)

    def _create_admin(self, state: BootstrapState) -> BootstrapState:
        admin = state.admin
        logger.info("Creating admin user %s <%s>", admin.username, admin.email)
        result = self._tootctl(
            "create", admin.username, "--email", admin.email, "--confirmed",
            what="Admin account creation",
        )
        password = extract_password(result.stdout) or extract_password(result.output)
        if not password:
            msg = "Failed to retrieve the password from the account creation output"
            raise StageFailed(msg, output=result.output)
        return state.advance(BootstrapStage.ADMIN_CREATED, password=password, confirmed=True)

    def _assign_role(self, state: BootstrapState) -> BootstrapState:
        admin = state.admin
        self._tootctl("modify", admin.username, "--role", admin.role, what="Role assignment")
        return state.advance(BootstrapStage.ADMIN_ROLED, role_assigned=True)

    def _disable_2fa(self, state: BootstrapState) -> BootstrapState:
        self._tootctl("modify", state.admin.username, "--disable-2fa", what="Disabling 2FA")
        return state.advance(BootstrapStage.ADMIN_2FA_DISABLED, two_factor_disabled=True)

    def _approve_admin(self, state: BootstrapState) -> BootstrapState:
        self._tootctl("approve", state.admin.username, what="Account approval")
        return state.advance(BootstrapStage.ADMIN_APPROVED, approved=True)

    def _relay_entries(self) -> tuple[RelayEntry, ...]:
        urls = self._settings.relays.inbox_urls
        return relays_from_urls(urls) if urls else DEFAULT_RELAYS

    def _load_relays(self, state: BootstrapState) -> BootstrapState:
        if not self._settings.relays.enabled:
            self._warnings.append("Relay subscriptions disabled; relays table left untouched")
            return state.advance(BootstrapStage.RELAYS_LOADED)

        version = self._deployment.mastodon_version
        if not schema_is_supported(version):
            self._warnings.append(
                f"Relays are written directly to the database; the SQL targets the "
                f"Mastodon 4.x schema and has not been tested against {version}"
            )

        entries = self._relay_entries()
        self._psql(build_insert_sql(entries), what="Relay insert")
        verify = self._psql(build_verify_sql(entries), what="Relay verification", tuples_only=True)
        try:
            present = int(verify.stdout.strip().splitlines()[-1])
        except (IndexError, ValueError) as exc:
            msg = "Could not read the relay verification count"
            raise StageFailed(msg, output=verify.output) from exc
        if present < len(entries):
            msg = f"Expected {len(entries)} relays in the database, found {present}"
            raise StageFailed(msg, output=verify.output)
        logger.info("%d relay subscriptions present", present)
        return state.advance(BootstrapStage.RELAYS_LOADED)
