"""Tests for FederationClient against a mocked Mastodon API."""

import httpx
import pytest

from fedideploy.domain.federation import FollowStatus, FollowTarget
from fedideploy.infrastructure.federation import AppCredentials, FederationClient, FederationError
from tests.conftest import MastodonStub

_CREDS = AppCredentials(client_id="cid", client_secret="csecret")


def _authed(mastodon: MastodonStub) -> FederationClient:
    client = mastodon.client()
    client.get_token(_CREDS, "admin@example.test", "pw", "read write follow")
    return client


class TestReadiness:
    def test_ready(self, mastodon: MastodonStub) -> None:
        assert mastodon.client().is_ready()

    def test_not_ready(self, mastodon: MastodonStub) -> None:
        mastodon.ready_after = 1
        assert not mastodon.client().is_ready()

    def test_transport_error_means_not_ready(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = FederationClient("https://example.test", transport=httpx.MockTransport(refuse))
        assert not client.is_ready()


class TestOAuth:
    def test_register_app(self, mastodon: MastodonStub) -> None:
        creds = mastodon.client().register_app(
            "FollowUsersApp", "urn:ietf:wg:oauth:2.0:oob", "read write follow admin:read"
        )
        assert creds == _CREDS
        form = mastodon.form("/api/v1/apps")
        assert form["client_name"] == "FollowUsersApp"
        assert form["redirect_uris"] == "urn:ietf:wg:oauth:2.0:oob"
        assert form["website"] == "https://example.test"

    def test_register_app_missing_secret(self, mastodon: MastodonStub) -> None:
        mastodon.app_response = {"client_id": "cid"}
        with pytest.raises(FederationError, match="register"):
            mastodon.client().register_app("x", "urn:ietf:wg:oauth:2.0:oob", "read")

    def test_password_grant(self, mastodon: MastodonStub) -> None:
        token = mastodon.client().get_token(_CREDS, "admin@example.test", "pw", "read")
        assert token == "tok-123"
        form = mastodon.form("/oauth/token")
        assert form["grant_type"] == "password"
        assert form["username"] == "admin@example.test"
        assert form["password"] == "pw"

    @pytest.mark.parametrize("token", [None, "null"])
    def test_absent_token_is_fatal(self, mastodon: MastodonStub, token: str | None) -> None:
        mastodon.token = token
        with pytest.raises(FederationError, match="access token"):
            mastodon.client().get_token(_CREDS, "admin@example.test", "pw", "read")

    def test_calls_before_token_fail(self, mastodon: MastodonStub) -> None:
        with pytest.raises(FederationError, match="get_token"):
            mastodon.client().search_account("a@b.org")


class TestAccounts:
    def test_search_sends_bearer_and_resolve(self, mastodon: MastodonStub) -> None:
        mastodon.accounts["nasa@mastodon.social"] = "109"
        assert _authed(mastodon).search_account("nasa@mastodon.social") == "109"
        request = mastodon.requests[-1]
        assert request.headers["Authorization"] == "Bearer tok-123"
        assert request.url.params["resolve"] == "true"

    def test_search_miss(self, mastodon: MastodonStub) -> None:
        assert _authed(mastodon).search_account("nobody@nowhere.test") is None

    def test_search_error_status_raises(self, mastodon: MastodonStub) -> None:
        mastodon.search_status = 503
        with pytest.raises(FederationError, match="503"):
            _authed(mastodon).search_account("nasa@mastodon.social")

    def test_follow_error_body(self, mastodon: MastodonStub) -> None:
        mastodon.follow_errors.add("7")
        with pytest.raises(FederationError, match="422"):
            _authed(mastodon).follow_account("7")


class TestFollow:
    def test_empty_search_is_skipped_without_follow(self, mastodon: MastodonStub) -> None:
        outcome = _authed(mastodon).follow(FollowTarget.parse("ghost@nowhere.test"))
        assert outcome.status is FollowStatus.SKIPPED
        assert not [p for p in mastodon.paths("POST") if p.endswith("/follow")]

    def test_one_account_one_follow(self, mastodon: MastodonStub) -> None:
        mastodon.accounts["nasa@mastodon.social"] = "109"
        outcome = _authed(mastodon).follow(FollowTarget.parse("nasa@mastodon.social"))
        assert outcome.status is FollowStatus.FOLLOWED
        assert outcome.account_id == "109"
        follows = [p for p in mastodon.paths("POST") if p.endswith("/follow")]
        assert follows == ["/api/v1/accounts/109/follow"]

    def test_rejected_follow_is_failed(self, mastodon: MastodonStub) -> None:
        mastodon.accounts["nasa@mastodon.social"] = "7"
        mastodon.follow_errors.add("7")
        outcome = _authed(mastodon).follow(FollowTarget.parse("nasa@mastodon.social"))
        assert outcome.status is FollowStatus.FAILED
        assert "422" in outcome.detail

    @pytest.mark.parametrize("status", [401, 429, 500])
    def test_refused_search_is_failed_not_skipped(
        self, mastodon: MastodonStub, status: int
    ) -> None:
        mastodon.accounts["nasa@mastodon.social"] = "109"
        mastodon.search_status = status
        outcome = _authed(mastodon).follow(FollowTarget.parse("nasa@mastodon.social"))
        assert outcome.status is FollowStatus.FAILED
        assert str(status) in outcome.detail
        assert not [p for p in mastodon.paths("POST") if p.endswith("/follow")]

    def test_transport_error_is_failed(self, mastodon: MastodonStub) -> None:
        def slow_search(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/v2/search":
                raise httpx.ReadTimeout("timed out", request=request)
            return mastodon.handler(request)

        client = FederationClient(
            "https://example.test", transport=httpx.MockTransport(slow_search)
        )
        client.get_token(_CREDS, "admin@example.test", "pw", "read")
        outcome = client.follow(FollowTarget.parse("nasa@mastodon.social"))
        assert outcome.status is FollowStatus.FAILED
        assert "ReadTimeout" in outcome.detail
