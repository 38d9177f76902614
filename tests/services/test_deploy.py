"""Tests for DeployService — the end-to-end pipeline."""

from typing import Any

import pytest

from fedideploy.config.settings import FediSettings
from fedideploy.infrastructure.compose import ComposeDriver
from fedideploy.infrastructure.workspace import Workspace, parse_env_file
from fedideploy.services.deploy import DeployService
from fedideploy.services.result import ServiceResult
from tests.conftest import ADMIN_PASSWORD, REQUIRED_ENV, FakeClock, FakeRunner, MastodonStub


def _which_all(tool: str) -> str:
    return f"/usr/bin/{tool}"


@pytest.fixture
def service(
    workspace: Workspace,
    settings: FediSettings,
    driver: ComposeDriver,
    mastodon: MastodonStub,
    fake_clock: FakeClock,
) -> DeployService:
    return DeployService(
        workspace,
        settings,
        driver=driver,
        client_factory=mastodon.factory(),
        sleep=fake_clock.sleep,
        clock=fake_clock,
    )


def _deploy(service: DeployService, **kwargs: Any) -> ServiceResult:
    kwargs.setdefault("environ", REQUIRED_ENV)
    kwargs.setdefault("which", _which_all)
    return service.deploy("example.test", "203.0.113.5", **kwargs)


class TestEndToEnd:
    def test_reference_deployment(
        self,
        service: DeployService,
        workspace: Workspace,
        fake_runner: FakeRunner,
        mastodon: MastodonStub,
    ) -> None:
        mastodon.accounts["nasa@mastodon.social"] = "109"
        result = _deploy(service, handles=["nasa@mastodon.social"])
        assert result.ok, result.error
        assert result.op == "deploy"

        env = parse_env_file(workspace.env_file.read_text())
        assert env["LOCAL_DOMAIN"] == "example.test"
        assert env["REDIS_URL"] == "redis://:y@redis:6379/0"

        assert result.data["instance_url"] == "https://example.test"
        assert result.data["kafka_endpoint"] == "203.0.113.5:9092"
        assert result.data["admin_email"] == "admin@example.test"
        assert result.data["admin_password"] == ADMIN_PASSWORD
        assert result.data["steps"] == ["preflight", "render", "bootstrap", "follow"]
        assert result.data["followed"] == 1

        state = workspace.load_state()
        assert state is not None and state.is_done

        (insert,) = fake_runner.commands("INSERT INTO relays")
        assert insert[-1].count(", NULL, 2)") == 18
        assert len(set(fake_runner.started())) == 8

    def test_skip_follow(self, service: DeployService, mastodon: MastodonStub) -> None:
        result = _deploy(service, skip_follow=True)
        assert result.ok
        assert result.data["steps"][-1] == "follow (skipped)"
        assert mastodon.requests == []

    def test_rerun_reuses_rendered_configuration(
        self, service: DeployService, workspace: Workspace
    ) -> None:
        _deploy(service, skip_follow=True)
        before = workspace.env_file.read_text()
        result = _deploy(service, skip_follow=True)
        assert result.ok
        assert workspace.env_file.read_text() == before
        assert result.data["steps"][1] == "render (reused)"
        assert any("Reusing" in w for w in result.warnings)


class TestPipelineStops:
    def test_missing_env_has_no_side_effects(
        self, service: DeployService, workspace: Workspace, fake_runner: FakeRunner
    ) -> None:
        env = {k: v for k, v in REQUIRED_ENV.items() if k != "REDIS_PASSWORD"}
        result = _deploy(service, environ=env)
        assert not result.ok
        assert result.op == "deploy"
        assert result.error is not None
        assert result.error.code == "MISSING_ENV"
        assert result.data["failed_step"] == "preflight"
        assert list(workspace.root.iterdir()) == []
        assert fake_runner.calls == []

    def test_missing_tool(self, service: DeployService, fake_runner: FakeRunner) -> None:
        result = _deploy(service, which=lambda _t: None)
        assert result.error is not None
        assert result.error.code == "MISSING_TOOL"
        assert fake_runner.calls == []

    def test_render_failure(self, service: DeployService, workspace: Workspace) -> None:
        result = service.deploy("example.test", "nope", environ=REQUIRED_ENV, which=_which_all)
        assert result.error is not None
        assert result.error.code == "INVALID_FIELD"
        assert result.data["failed_step"] == "render"
        assert not workspace.env_file.exists()

    def test_bootstrap_failure(self, service: DeployService, fake_runner: FakeRunner) -> None:
        fake_runner.password_line = "nothing useful\n"
        result = _deploy(service)
        assert result.error is not None
        assert result.error.code == "STAGE_FAILED"
        assert result.data["failed_step"] == "bootstrap"

    def test_follow_failure(self, service: DeployService, mastodon: MastodonStub) -> None:
        mastodon.token = None
        result = _deploy(service, handles=["a@one.test"])
        assert result.error is not None
        assert result.error.code == "TOKEN_FAILED"
        assert result.data["failed_step"] == "follow"
