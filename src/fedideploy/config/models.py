"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, fedideploy.toml only contains
overrides. A fresh deployment needs no config file at all.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from fedideploy.domain.deployment import DEFAULT_MASTODON_VERSION
from fedideploy.domain.topology import MASTODON_IMAGE

# --- fedideploy.toml sections ---


class MastodonConfig(BaseModel):
    """[mastodon] section."""

    model_config = {"frozen": True}

    version: str = DEFAULT_MASTODON_VERSION
    image: str = MASTODON_IMAGE


class ComposeConfig(BaseModel):
    """[compose] section."""

    model_config = {"frozen": True}

    command: list[str] = Field(default_factory=lambda: ["docker", "compose"])
    sudo: bool = False
    project_name: str = "mastodon"


class AdminConfig(BaseModel):
    """[admin] section."""

    model_config = {"frozen": True}

    username: str = "superadmin"
    role: str = "Admin"


class ReadinessConfig(BaseModel):
    """[readiness] section — polling bounds for health and readiness waits."""

    model_config = {"frozen": True}

    health_timeout: float = 300.0
    db_timeout: float = 120.0
    initial_delay: float = 1.0
    max_delay: float = 30.0


class FederationConfig(BaseModel):
    """[federation] section."""

    model_config = {"frozen": True}

    client_name: str = "FollowUsersApp"
    redirect_uri: str = "urn:ietf:wg:oauth:2.0:oob"
    scopes: str = "read write follow admin:read"
    follow_delay: float = 5.0
    web_ready_timeout: float = 600.0
    request_timeout: float = 30.0
    verify_tls: bool = True
    handles: list[str] = Field(default_factory=list)


class RelaysConfig(BaseModel):
    """[relays] section."""

    model_config = {"frozen": True}

    enabled: bool = True
    inbox_urls: list[str] = Field(default_factory=list)
