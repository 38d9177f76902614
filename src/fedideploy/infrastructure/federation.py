"""Minimal Mastodon client: OAuth app registration, password grant, search, follow.

Field names (``client_id``, ``client_secret``, ``access_token``,
``accounts[].id``) follow the Mastodon client API verbatim.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from fedideploy.domain.federation import FollowOutcome, FollowStatus, FollowTarget

logger = logging.getLogger(__name__)


class FederationError(RuntimeError):
    """The instance answered with something unusable."""

    def __init__(self, message: str, *, response_text: str = "") -> None:
        super().__init__(message)
        self.response_text = response_text


@dataclass(frozen=True)
class AppCredentials:
    """OAuth client registered with ``POST /api/v1/apps``."""

    client_id: str
    client_secret: str


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class FederationClient:
    """Thin wrapper over an :class:`httpx.Client` bound to one instance URL."""

    def __init__(
        self,
        instance_url: str,
        *,
        timeout: float = 30.0,
        verify: bool = True,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.instance_url = instance_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.instance_url,
            timeout=timeout,
            verify=verify,
            transport=transport,
        )
        self._token: str | None = None

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> FederationClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _auth_headers(self) -> dict[str, str]:
        if self._token is None:
            msg = "No access token: call get_token() first"
            raise FederationError(msg)
        return {"Authorization": f"Bearer {self._token}"}

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    def is_ready(self) -> bool:
        """True when ``GET /health`` answers 200. Transport errors mean not ready."""
        try:
            response = self._client.get("/health")
        except httpx.HTTPError as exc:
            logger.debug("Health check failed: %s", exc)
            return False
        return response.status_code == 200

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def register_app(
        self,
        name: str,
        redirect_uri: str,
        scopes: str,
        *,
        website: str | None = None,
    ) -> AppCredentials:
        """Register an OAuth application.

        Raises:
            FederationError: Either ``client_id`` or ``client_secret`` is missing.
        """
        form = {
            "client_name": name,
            "redirect_uris": redirect_uri,
            "scopes": scopes,
            "website": website or self.instance_url,
        }
        response = self._client.post("/api/v1/apps", data=form)
        data = _json_or_empty(response)
        client_id = data.get("client_id")
        client_secret = data.get("client_secret")
        if not client_id or not client_secret:
            msg = f"Failed to register the application (HTTP {response.status_code})"
            raise FederationError(msg, response_text=response.text)
        return AppCredentials(client_id=str(client_id), client_secret=str(client_secret))

    def get_token(
        self,
        credentials: AppCredentials,
        username: str,
        password: str,
        scopes: str,
    ) -> str:
        """Exchange admin credentials for an access token (password grant).

        Raises:
            FederationError: ``access_token`` is absent or literally ``null``.
        """
        form = {
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "grant_type": "password",
            "username": username,
            "password": password,
            "scope": scopes,
        }
        response = self._client.post("/oauth/token", data=form)
        token = _json_or_empty(response).get("access_token")
        if not token or token == "null":
            msg = f"Failed to get access token (HTTP {response.status_code})"
            raise FederationError(msg, response_text=response.text)
        self._token = str(token)
        return self._token

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def search_account(self, handle: str) -> str | None:
        """Resolve *handle* through federated search; id of the first account or None.

        Raises:
            FederationError: The instance answered the search with an error status.
        """
        response = self._client.get(
            "/api/v2/search",
            params={"q": handle, "resolve": "true"},
            headers=self._auth_headers(),
        )
        if response.is_error:
            msg = f"Search for {handle} failed (HTTP {response.status_code}): {response.text[:200]}"
            raise FederationError(msg, response_text=response.text)
        accounts = _json_or_empty(response).get("accounts") or []
        if not accounts or not isinstance(accounts[0], dict):
            return None
        account_id = accounts[0].get("id")
        if account_id in (None, "", "null"):
            return None
        return str(account_id)

    def follow_account(self, account_id: str) -> str:
        """Follow *account_id*; returns the raw response body.

        Raises:
            FederationError: The response carries an error indicator.
        """
        response = self._client.post(
            f"/api/v1/accounts/{account_id}/follow",
            headers=self._auth_headers(),
        )
        body = response.text
        if "error" in body or response.is_error:
            msg = f"Follow rejected (HTTP {response.status_code}): {body[:200]}"
            raise FederationError(msg, response_text=body)
        return body

    def follow(self, target: FollowTarget) -> FollowOutcome:
        """Search for *target* and follow the first match.

        Never raises for per-handle problems: an empty search result is ``skipped``;
        a refused search, a rejected follow or a transport error is ``failed``.
        """
        handle = target.handle
        try:
            account_id = self.search_account(handle)
            if account_id is None:
                logger.info("Account not found: %s", handle)
                return FollowOutcome(
                    handle=handle, status=FollowStatus.SKIPPED, detail="account not found"
                )
            self.follow_account(account_id)
        except FederationError as exc:
            logger.warning("Failed to follow %s: %s", handle, exc)
            return FollowOutcome(handle=handle, status=FollowStatus.FAILED, detail=str(exc))
        except httpx.HTTPError as exc:
            logger.warning("Failed to follow %s: %s", handle, exc)
            return FollowOutcome(
                handle=handle,
                status=FollowStatus.FAILED,
                account_id=None,
                detail=f"{type(exc).__name__}: {exc}",
            )
        logger.info("Followed %s", handle)
        return FollowOutcome(handle=handle, status=FollowStatus.FOLLOWED, account_id=account_id)
