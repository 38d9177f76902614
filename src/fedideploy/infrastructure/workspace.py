"""Workspace — the deployment directory and everything persisted in it.

Layout::

    <workdir>/
        .env.production        rendered env file (the only copy of the secrets)
        Caddyfile              proxy routing
        docker-compose.yml     topology declaration
        public/system/...      bind-mounted Mastodon media
        .fedideploy/state.json bootstrap progress (mode 0600, holds the admin password)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, TypeAlias

from fedideploy.domain.bootstrap import BootstrapState
from fedideploy.domain.deployment import DeploymentConfig, SecretBundle
from fedideploy.domain.topology import CONTAINER_UID, ENV_FILE

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

logger = logging.getLogger(__name__)

CADDYFILE = "Caddyfile"
COMPOSE_FILE = "docker-compose.yml"
STATE_DIR = ".fedideploy"
STATE_FILE = "state.json"

DATA_DIRS: tuple[str, ...] = (
    "public/system",
    "public/system/cache",
    "public/assets",
    "public/packs",
    "tmp/pids",
    "tmp/sockets",
    "postgres14",
    "redis",
    "kafka",
    "caddy/config",
    "caddy/data",
    "logs",
)

# Bind mounts the containers write to as CONTAINER_UID.
CONTAINER_OWNED_DIRS: tuple[str, ...] = (
    "public/system",
    "tmp",
    "kafka",
)

GROUP_WRITABLE_DIRS: tuple[str, ...] = (
    "public/system/cache",
    "tmp",
)

SetOwner: TypeAlias = "Callable[[Sequence[Path], Sequence[Path]], None]"


def parse_env_file(text: str) -> dict[str, str]:
    """Parse ``KEY=value`` lines; comments and blank lines are skipped."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, _, value = stripped.partition("=")
        values[key.strip()] = value.strip()
    return values


def chown_tree(
    owned: Sequence[Path],
    writable: Sequence[Path],
    *,
    uid: int = CONTAINER_UID,
    gid: int = CONTAINER_UID,
) -> None:
    """Recursively hand *owned* to *uid*:*gid* and open *writable* to the group.

    Needs root. Equivalent to ``chown -R`` followed by ``chmod 775``.
    """
    for top in owned:
        os.chown(top, uid, gid)
        for dirpath, dirnames, filenames in os.walk(top):
            for name in (*dirnames, *filenames):
                os.chown(Path(dirpath, name), uid, gid, follow_symlinks=False)
    for path in writable:
        os.chmod(path, 0o775)


def deployment_from_env(values: Mapping[str, str], *, mastodon_version: str) -> DeploymentConfig:
    """Rebuild a :class:`DeploymentConfig` from parsed env-file values."""
    return DeploymentConfig(
        domain=values.get("LOCAL_DOMAIN", ""),
        ip=values.get("KAFKA_ADVERTISED_HOST", ""),
        operator_email=values.get("LETS_ENCRYPT_EMAIL", ""),
        db_password=values.get("DB_PASS", ""),
        cache_password=values.get("REDIS_PASSWORD", ""),
        mastodon_version=mastodon_version,
        secrets=SecretBundle(
            secret_key_base=values.get("SECRET_KEY_BASE", ""),
            otp_secret=values.get("OTP_SECRET", ""),
            vapid_private_key=values.get("VAPID_PRIVATE_KEY", ""),
            vapid_public_key=values.get("VAPID_PUBLIC_KEY", ""),
        ),
    )


class Workspace:
    """Filesystem access for one deployment directory."""

    def __init__(self, root: Path) -> None:
        self.root = root

    @property
    def env_file(self) -> Path:
        return self.root / ENV_FILE

    @property
    def caddyfile(self) -> Path:
        return self.root / CADDYFILE

    @property
    def compose_file(self) -> Path:
        return self.root / COMPOSE_FILE

    @property
    def state_file(self) -> Path:
        return self.root / STATE_DIR / STATE_FILE

    def is_rendered(self) -> bool:
        return self.env_file.is_file() and self.compose_file.is_file()

    def ensure_layout(self) -> list[str]:
        """Create the bind-mount directories; returns those newly created."""
        created: list[str] = []
        for rel in DATA_DIRS:
            path = self.root / rel
            if not path.is_dir():
                path.mkdir(parents=True, exist_ok=True)
                created.append(rel)
        return created

    def assign_ownership(self, set_owner: SetOwner) -> list[str]:
        """Give the container-written bind mounts to the container user.

        Returns the directories handed over. Errors from *set_owner* propagate.
        """
        owned = [self.root / rel for rel in CONTAINER_OWNED_DIRS]
        writable = [self.root / rel for rel in GROUP_WRITABLE_DIRS]
        set_owner(owned, writable)
        logger.debug("Handed %s to uid %d", ", ".join(CONTAINER_OWNED_DIRS), CONTAINER_UID)
        return list(CONTAINER_OWNED_DIRS)

    def write_file(self, path: Path, content: str, *, mode: int | None = None) -> None:
        """Write *content*, creating parents. *mode* is applied before any data lands."""
        path.parent.mkdir(parents=True, exist_ok=True)
        if mode is None:
            path.write_text(content, encoding="utf-8")
            return
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        os.chmod(path, mode)

    def load_deployment(self, *, mastodon_version: str) -> DeploymentConfig:
        """Read back the deployment from the rendered env file.

        Raises:
            FileNotFoundError: The workspace has not been rendered.
        """
        text = self.env_file.read_text(encoding="utf-8")
        return deployment_from_env(parse_env_file(text), mastodon_version=mastodon_version)

    # ------------------------------------------------------------------
    # Bootstrap state
    # ------------------------------------------------------------------

    def load_state(self) -> BootstrapState | None:
        """Return the persisted bootstrap state, or None if there is none."""
        if not self.state_file.is_file():
            return None
        return BootstrapState.model_validate_json(self.state_file.read_text(encoding="utf-8"))

    def save_state(self, state: BootstrapState) -> None:
        self.write_file(self.state_file, state.model_dump_json(indent=2) + "\n", mode=0o600)
        logger.debug("Saved bootstrap state at stage %s", state.stage.value)

    def clear_state(self) -> None:
        self.state_file.unlink(missing_ok=True)
