"""Bootstrap stages and the immutable state threaded through them.

The sequencer moves one stage at a time. Each transition returns a new
:class:`BootstrapState`; nothing is mutated in place, so the admin password
captured at ``admin_created`` reaches the follow step unchanged.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class BootstrapStage(StrEnum):
    """Deployment readiness, in the only order the sequencer allows."""

    RENDERED = "rendered"
    SERVICES_UP = "services_up"
    DB_READY = "db_ready"
    MIGRATED = "migrated"
    SEEDED = "seeded"
    RESTARTED = "restarted"
    ADMIN_CREATED = "admin_created"
    ADMIN_ROLED = "admin_roled"
    ADMIN_2FA_DISABLED = "admin_2fa_disabled"
    ADMIN_APPROVED = "admin_approved"
    RELAYS_LOADED = "relays_loaded"
    DONE = "done"


STAGE_ORDER: tuple[BootstrapStage, ...] = tuple(BootstrapStage)


def next_stage(stage: BootstrapStage) -> BootstrapStage | None:
    """Return the stage after *stage*, or None once ``done``."""
    idx = STAGE_ORDER.index(stage)
    if idx + 1 >= len(STAGE_ORDER):
        return None
    return STAGE_ORDER[idx + 1]


class AdminAccount(BaseModel):
    """The admin account as far as the sequencer has taken it."""

    model_config = {"frozen": True}

    username: str
    email: str
    role: str = "Admin"
    password: str | None = None
    confirmed: bool = False
    role_assigned: bool = False
    two_factor_disabled: bool = False
    approved: bool = False


class BootstrapState(BaseModel):
    """Snapshot of bootstrap progress, persisted after every transition."""

    model_config = {"frozen": True}

    stage: BootstrapStage = BootstrapStage.RENDERED
    admin: AdminAccount
    history: dict[str, str] = Field(default_factory=dict)

    @property
    def is_done(self) -> bool:
        return self.stage is BootstrapStage.DONE

    def advance(self, stage: BootstrapStage, **admin_updates: Any) -> BootstrapState:
        """Return a new state at *stage*.

        Raises:
            ValueError: *stage* is not the immediate successor of the current stage.
        """
        expected = next_stage(self.stage)
        if stage is not expected:
            msg = f"Cannot move from {self.stage.value!r} to {stage.value!r}"
            raise ValueError(msg)
        admin = self.admin.model_copy(update=admin_updates) if admin_updates else self.admin
        history = {**self.history, stage.value: datetime.now(UTC).isoformat()}
        return self.model_copy(update={"stage": stage, "admin": admin, "history": history})


# ``tootctl accounts create`` prints the generated password on this line.
_PASSWORD_RE = re.compile(r"New password:[ \t]*(\S+)")


def extract_password(output: str) -> str | None:
    """Pull the generated password out of ``tootctl accounts create`` output.

    Text scraping is the only source available: tootctl has no structured
    output for account creation. Returns None when the line is absent.
    """
    match = _PASSWORD_RE.search(output)
    if match is None:
        return None
    return match.group(1)
