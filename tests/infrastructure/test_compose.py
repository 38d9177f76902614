"""Tests for ComposeDriver against a fake subprocess runner."""

import subprocess
from pathlib import Path

import pytest

from fedideploy.domain.deployment import DeploymentConfig
from fedideploy.domain.topology import build_topology
from fedideploy.infrastructure.compose import (
    ComposeDriver,
    ComposeError,
    DependencyNotReady,
    HealthCheckTimeout,
)
from tests.conftest import FakeClock, FakeRunner


class TestCommandLine:
    def test_project_name_and_cwd(self, tmp_path: Path) -> None:
        seen: dict[str, object] = {}

        def runner(args: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
            seen.update(kwargs, args=args)
            return FakeRunner._done(args, "")

        ComposeDriver(tmp_path, project_name="mastodon", runner=runner).down()
        assert seen["args"] == ["docker", "compose", "-p", "mastodon", "down"]
        assert seen["cwd"] == tmp_path
        assert seen["check"] is False

    def test_sudo_prefix(self, tmp_path: Path, fake_runner: FakeRunner) -> None:
        driver = ComposeDriver(tmp_path, sudo=True, runner=fake_runner)
        driver.down()
        assert fake_runner.calls[0][:3] == ["sudo", "docker", "compose"]

    def test_set_owner_runs_privileged_chown_and_chmod(
        self, tmp_path: Path, fake_runner: FakeRunner
    ) -> None:
        driver = ComposeDriver(tmp_path, sudo=True, runner=fake_runner)
        driver.set_owner(
            [tmp_path / "public/system", tmp_path / "kafka"],
            [tmp_path / "tmp"],
            uid=1001,
            gid=1001,
        )
        assert fake_runner.calls == [
            [
                "sudo",
                "chown",
                "-R",
                "1001:1001",
                str(tmp_path / "public/system"),
                str(tmp_path / "kafka"),
            ],
            ["sudo", "chmod", "775", str(tmp_path / "tmp")],
        ]

    def test_set_owner_failure(self, tmp_path: Path, fake_runner: FakeRunner) -> None:
        fake_runner.responses["chown -R"] = (1, "", "Operation not permitted")
        driver = ComposeDriver(tmp_path, sudo=True, runner=fake_runner)
        with pytest.raises(ComposeError, match="Operation not permitted"):
            driver.set_owner([tmp_path / "kafka"], [], uid=1001, gid=1001)

    def test_launch_failure_becomes_compose_error(self, tmp_path: Path) -> None:
        def runner(args: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
            raise FileNotFoundError("docker")

        with pytest.raises(ComposeError) as excinfo:
            ComposeDriver(tmp_path, runner=runner).down()
        assert excinfo.value.result.exit_code == 127


class TestHealth:
    def test_status(self, driver: ComposeDriver, fake_runner: FakeRunner) -> None:
        fake_runner.health["web"] = "starting"
        assert driver.health_status("web") == "starting"
        assert driver.health_status("db") == "healthy"

    def test_missing_container(self, driver: ComposeDriver, fake_runner: FakeRunner) -> None:
        fake_runner.responses["ps -q web"] = (0, "", "")
        assert driver.health_status("web") == "missing"

    def test_wait_healthy_times_out(
        self, driver: ComposeDriver, fake_runner: FakeRunner, fake_clock: FakeClock
    ) -> None:
        fake_runner.health["db"] = "unhealthy"
        with pytest.raises(HealthCheckTimeout) as excinfo:
            driver.wait_healthy("db", timeout=5)
        assert excinfo.value.last_status == "unhealthy"
        assert "db" not in driver.healthy
        assert fake_clock.now == 5


class TestLifecycle:
    def test_up_starts_in_dependency_order(
        self,
        driver: ComposeDriver,
        fake_runner: FakeRunner,
        deployment_config: DeploymentConfig,
    ) -> None:
        topology = build_topology(deployment_config)
        started = driver.up(topology)
        assert started == fake_runner.started()
        for spec in topology.services:
            for dep in spec.depends_on:
                assert started.index(dep) < started.index(spec.name)
        assert {"db", "redis", "web", "streaming", "kafka"} <= driver.healthy

    def test_refuses_dependent_before_dependency(
        self,
        driver: ComposeDriver,
        fake_runner: FakeRunner,
        deployment_config: DeploymentConfig,
    ) -> None:
        topology = build_topology(deployment_config)
        with pytest.raises(DependencyNotReady) as excinfo:
            driver.start_service(topology.get("web"))
        assert excinfo.value.missing == ["db", "redis"]
        assert fake_runner.started() == []

    def test_unhealthy_dependency_stops_startup(
        self,
        driver: ComposeDriver,
        fake_runner: FakeRunner,
        deployment_config: DeploymentConfig,
    ) -> None:
        fake_runner.health["redis"] = "unhealthy"
        with pytest.raises(HealthCheckTimeout):
            driver.up(build_topology(deployment_config))
        # db came up and stays up: nothing is rolled back.
        assert fake_runner.started() == ["db", "redis"]
        assert driver.healthy == {"db"}

    def test_down_clears_healthy(
        self, driver: ComposeDriver, deployment_config: DeploymentConfig
    ) -> None:
        driver.up(build_topology(deployment_config))
        driver.down()
        assert driver.healthy == frozenset()

    def test_restart(
        self,
        driver: ComposeDriver,
        fake_runner: FakeRunner,
        deployment_config: DeploymentConfig,
    ) -> None:
        driver.restart(build_topology(deployment_config))
        assert fake_runner.commands("compose -p mastodon down")
        assert len(fake_runner.started()) == 8

    def test_up_failure_raises(
        self,
        driver: ComposeDriver,
        fake_runner: FakeRunner,
        deployment_config: DeploymentConfig,
    ) -> None:
        fake_runner.responses["up -d --no-deps db"] = (1, "", "pull access denied")
        with pytest.raises(ComposeError, match="pull access denied"):
            driver.up(build_topology(deployment_config))


class TestRunOnce:
    def test_fresh_container(self, driver: ComposeDriver, fake_runner: FakeRunner) -> None:
        driver.run_once("web", ["bundle", "exec", "rails", "db:migrate"])
        assert fake_runner.calls[-1] == [
            "docker", "compose", "-p", "mastodon",
            "run", "--rm", "-T", "web", "bundle", "exec", "rails", "db:migrate",
        ]

    def test_exec_in_running_container(self, driver: ComposeDriver, fake_runner: FakeRunner) -> None:
        driver.run_once("db", ["pg_isready"], fresh=False)
        assert fake_runner.calls[-1][-4:] == ["exec", "-T", "db", "pg_isready"]

    def test_non_zero_exit_is_returned(self, driver: ComposeDriver, fake_runner: FakeRunner) -> None:
        fake_runner.responses["db:migrate"] = (1, "", "PG::ConnectionBad")
        result = driver.run_once("web", ["bundle", "exec", "rails", "db:migrate"])
        assert not result.ok
        assert result.output == "PG::ConnectionBad"
