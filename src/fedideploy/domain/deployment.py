"""Deployment inputs — the immutable record every rendered file is built from.

A :class:`DeploymentConfig` is assembled once per render from operator
prompts, three required environment variables, and freshly generated
secrets. After rendering, the env file is the only persisted copy.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Mapping
from typing import NamedTuple

from pydantic import BaseModel, Field

DEFAULT_MASTODON_VERSION = "v4.2.10"

# Process environment variables the operator must export before deploying.
ENV_DB_PASSWORD = "POSTGRES_PASSWORD"
ENV_CACHE_PASSWORD = "REDIS_PASSWORD"
ENV_OPERATOR_EMAIL = "LETS_ENCRYPT_EMAIL"

REQUIRED_ENV_VARS: tuple[str, ...] = (ENV_DB_PASSWORD, ENV_CACHE_PASSWORD, ENV_OPERATOR_EMAIL)

_ENV_EXAMPLES: dict[str, str] = {
    ENV_DB_PASSWORD: "your_secure_db_password",
    ENV_CACHE_PASSWORD: "your_secure_redis_password",
    ENV_OPERATOR_EMAIL: "your_certificate_management_email",
}


class SecretBundle(BaseModel):
    """Application secrets written into the env file."""

    model_config = {"frozen": True}

    secret_key_base: str = ""
    otp_secret: str = ""
    vapid_private_key: str = ""
    vapid_public_key: str = ""


class DeploymentConfig(BaseModel):
    """Everything the renderers need, frozen after construction.

    Attributes:
        domain: Public DNS name of the instance (``LOCAL_DOMAIN``).
        ip: Public IP address, advertised by the Kafka listener.
        operator_email: ACME registration email, also the admin email.
        db_password: PostgreSQL password for the ``mastodon`` role.
        cache_password: Redis ``requirepass`` value.
        mastodon_version: Image tag for web, streaming and sidekiq.
        secrets: Generated application secrets.
    """

    model_config = {"frozen": True}

    domain: str
    ip: str
    operator_email: str
    db_password: str
    cache_password: str
    mastodon_version: str = DEFAULT_MASTODON_VERSION
    secrets: SecretBundle = Field(default_factory=SecretBundle)

    def missing_fields(self) -> list[str]:
        """Return the names of required inputs that are blank."""
        required = ("domain", "ip", "operator_email", "db_password", "cache_password")
        return [name for name in required if not str(getattr(self, name)).strip()]

    @property
    def instance_url(self) -> str:
        return f"https://{self.domain}"

    @property
    def redis_url(self) -> str:
        return f"redis://:{self.cache_password}@redis:6379/0"

    @property
    def kafka_endpoint(self) -> str:
        return f"{self.ip}:9092"


class RequiredEnvironment(NamedTuple):
    """The three secrets read from the process environment."""

    db_password: str
    cache_password: str
    operator_email: str


def load_required_environment(
    environ: Mapping[str, str],
) -> tuple[RequiredEnvironment | None, list[str]]:
    """Read the required variables from *environ*.

    Returns ``(values, [])`` when all are set, else ``(None, missing_names)``.
    Empty strings count as unset.
    """
    missing = [name for name in REQUIRED_ENV_VARS if not environ.get(name, "").strip()]
    if missing:
        return None, missing
    return (
        RequiredEnvironment(
            db_password=environ[ENV_DB_PASSWORD],
            cache_password=environ[ENV_CACHE_PASSWORD],
            operator_email=environ[ENV_OPERATOR_EMAIL],
        ),
        [],
    )


def missing_env_remediation(missing: list[str]) -> str:
    """Build the operator-facing message for unset environment variables."""
    lines = [
        f"{', '.join(missing)} must be set as environment variables.",
        "Set them before running again, for example:",
    ]
    lines.extend(f"  export {name}='{_ENV_EXAMPLES[name]}'" for name in REQUIRED_ENV_VARS)
    return "\n".join(lines)


def validate_ip(value: str) -> str | None:
    """Return an error message if *value* is not an IPv4/IPv6 address."""
    try:
        ipaddress.ip_address(value.strip())
    except ValueError:
        return f"Not a valid IP address: {value!r}"
    return None
