"""Shared pytest fixtures and test helpers for fedideploy tests."""

from __future__ import annotations

import json
import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import httpx
import pytest
from click.testing import CliRunner

from fedideploy.config.settings import FediSettings
from fedideploy.domain.deployment import DeploymentConfig, SecretBundle
from fedideploy.infrastructure.compose import ComposeDriver
from fedideploy.infrastructure.federation import FederationClient
from fedideploy.infrastructure.workspace import Workspace

REQUIRED_ENV = {
    "POSTGRES_PASSWORD": "x",
    "REDIS_PASSWORD": "y",
    "LETS_ENCRYPT_EMAIL": "admin@example.test",
}

ADMIN_PASSWORD = "Zq3vXk9pL2mN"


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def secrets_bundle() -> SecretBundle:
    return SecretBundle(
        secret_key_base="k" * 128,
        otp_secret="o" * 128,
        vapid_private_key="vapid-private",
        vapid_public_key="vapid-public",
    )


@pytest.fixture
def deployment_config(secrets_bundle: SecretBundle) -> DeploymentConfig:
    """The reference deployment: example.test on a documentation address."""
    return DeploymentConfig(
        domain="example.test",
        ip="203.0.113.5",
        operator_email="admin@example.test",
        db_password="x",
        cache_password="y",
        secrets=secrets_bundle,
    )


@pytest.fixture
def settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FediSettings:
    monkeypatch.delenv("FEDIDEPLOY_CONFIG", raising=False)
    return FediSettings.from_cli(workdir=tmp_path)


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    return Workspace(tmp_path)


@pytest.fixture
def required_env(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Export the three required variables into the process environment."""
    for key, value in REQUIRED_ENV.items():
        monkeypatch.setenv(key, value)
    return dict(REQUIRED_ENV)


@pytest.fixture(autouse=True)
def _no_chown(monkeypatch: pytest.MonkeyPatch) -> list[tuple[list[Path], list[Path]]]:
    """Record data-directory handovers instead of changing ownership on the host."""
    from fedideploy.services.render import RenderService

    handovers: list[tuple[list[Path], list[Path]]] = []

    def record(owned: Sequence[Path], writable: Sequence[Path]) -> None:
        handovers.append((list(owned), list(writable)))

    monkeypatch.setattr(RenderService, "_owner_setter", lambda self: record)
    return handovers


@pytest.fixture
def _isolated_workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Change CWD to a temp deployment directory with no config file in reach.

    Use via ``@pytest.mark.usefixtures("_isolated_workdir")`` on command test
    classes.
    """
    monkeypatch.delenv("FEDIDEPLOY_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)


# ---------------------------------------------------------------------------
# Fake container runtime
# ---------------------------------------------------------------------------


class FakeRunner:
    """Stand-in for ``subprocess.run`` that answers compose and docker commands.

    Every service reports ``healthy`` unless overridden in :attr:`health`.
    Extra behaviour is keyed by a substring of the joined command line.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.health: dict[str, str] = {}
        self.responses: dict[str, tuple[int, str, str]] = {}
        self.password_line = f"OK\nNew password: {ADMIN_PASSWORD}\n"
        self.relay_count = 18

    def __call__(self, args: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        self.calls.append(list(args))
        line = " ".join(args)
        for needle, (code, out, err) in self.responses.items():
            if needle in line:
                return subprocess.CompletedProcess(args, code, out, err)
        if "ps" in args and "-q" in args:
            return self._done(args, f"cid-{args[-1]}\n")
        if "inspect" in args:
            service = args[-1].removeprefix("cid-")
            return self._done(args, self.health.get(service, "healthy") + "\n")
        if "tootctl" in args and "create" in args:
            return self._done(args, self.password_line)
        if "psql" in args and "-At" in args:
            return self._done(args, f"{self.relay_count}\n")
        return self._done(args, "")

    @staticmethod
    def _done(args: list[str], stdout: str) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(args, 0, stdout, "")

    def commands(self, needle: str) -> list[list[str]]:
        """Calls whose joined command line contains *needle*."""
        return [c for c in self.calls if needle in " ".join(c)]

    def started(self) -> list[str]:
        """Services passed to ``up -d --no-deps``, in call order."""
        return [c[-1] for c in self.calls if "up" in c and "--no-deps" in c]


class FakeClock:
    """Monotonic clock advanced only by :meth:`sleep`."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def driver(tmp_path: Path, fake_runner: FakeRunner, fake_clock: FakeClock) -> ComposeDriver:
    return ComposeDriver(
        tmp_path,
        project_name="mastodon",
        health_timeout=30,
        runner=fake_runner,
        sleep=fake_clock.sleep,
        clock=fake_clock,
    )


# ---------------------------------------------------------------------------
# Fake Mastodon instance
# ---------------------------------------------------------------------------


class MastodonStub:
    """Minimal Mastodon API served through :class:`httpx.MockTransport`.

    :attr:`accounts` maps a searched handle to the account id returned;
    handles not in it yield an empty search result.
    """

    def __init__(self) -> None:
        self.accounts: dict[str, str] = {}
        self.requests: list[httpx.Request] = []
        self.ready_after = 0
        self.token: str | None = "tok-123"
        self.app_response: dict[str, Any] = {"client_id": "cid", "client_secret": "csecret"}
        self.follow_errors: set[str] = set()
        self.search_status: int | None = None
        self._health_calls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/health":
            self._health_calls += 1
            ready = self._health_calls > self.ready_after
            return httpx.Response(200 if ready else 502, text="OK")
        if path == "/api/v1/apps":
            return httpx.Response(200, json=self.app_response)
        if path == "/oauth/token":
            if self.token is None:
                return httpx.Response(401, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": self.token, "token_type": "Bearer"})
        if path == "/api/v2/search":
            if self.search_status is not None:
                return httpx.Response(self.search_status, json={"error": "Too many requests"})
            q = request.url.params.get("q", "")
            found = [{"id": self.accounts[q], "acct": q}] if q in self.accounts else []
            return httpx.Response(200, json={"accounts": found, "statuses": [], "hashtags": []})
        if path.startswith("/api/v1/accounts/") and path.endswith("/follow"):
            account_id = path.split("/")[4]
            if account_id in self.follow_errors:
                return httpx.Response(422, json={"error": "Validation failed"})
            return httpx.Response(200, json={"id": account_id, "following": True})
        return httpx.Response(404, json={"error": "Record not found"})

    def client(self, instance_url: str = "https://example.test") -> FederationClient:
        return FederationClient(instance_url, transport=httpx.MockTransport(self.handler))

    def factory(self) -> Callable[[str], FederationClient]:
        return self.client

    def paths(self, method: str | None = None) -> list[str]:
        return [r.url.path for r in self.requests if method is None or r.method == method]

    def form(self, path: str) -> dict[str, str]:
        """Decoded form body of the last request to *path*."""
        for request in reversed(self.requests):
            if request.url.path == path:
                return dict(httpx.QueryParams(request.content.decode()))
        raise KeyError(path)


@pytest.fixture
def mastodon() -> MastodonStub:
    return MastodonStub()


def load_json(output: str) -> dict[str, Any]:
    """Parse the ``--json`` document from CLI output, skipping log lines before it."""
    start = 0 if output.startswith("{") else output.index("\n{") + 1
    return json.loads(output[start:])


@pytest.fixture
def rendered_workspace(
    workspace: Workspace, settings: FediSettings, deployment_config: DeploymentConfig
) -> Workspace:
    """Workspace with the reference deployment already rendered."""
    from fedideploy.services.render import RenderService

    result = RenderService(workspace, settings).render(deployment_config)
    assert result.ok, result.error
    return workspace
