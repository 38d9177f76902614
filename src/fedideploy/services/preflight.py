"""PreflightService — required tools and environment, checked before any side effect."""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable, Mapping
from typing import TypeAlias

from fedideploy.domain.deployment import (
    REQUIRED_ENV_VARS,
    load_required_environment,
    missing_env_remediation,
)
from fedideploy.services.base import BaseService
from fedideploy.services.result import ServiceResult, failure

logger = logging.getLogger(__name__)

Which: TypeAlias = Callable[[str], str | None]


class PreflightService(BaseService):
    """Verify the host can run a deployment. Writes nothing."""

    def required_tools(self) -> list[str]:
        tools = [self._settings.compose.command[0], "docker"]
        if self._settings.compose.sudo:
            tools.insert(0, "sudo")
        return list(dict.fromkeys(tools))

    def check_tools(self, *, which: Which | None = None) -> ServiceResult:
        op = "preflight"
        found: dict[str, str] = {}
        missing: list[str] = []
        for tool in self.required_tools():
            path = (which or shutil.which)(tool)
            if path is None:
                missing.append(tool)
            else:
                found[tool] = path
        if missing:
            return failure(
                op,
                "MISSING_TOOL",
                f"{', '.join(missing)} is not installed. "
                "Please install it and run this command again.",
                missing=missing,
            )
        return ServiceResult(ok=True, op=op, data={"tools": found})

    def check_environment(self, environ: Mapping[str, str] | None = None) -> ServiceResult:
        op = "preflight"
        _values, missing = load_required_environment(os.environ if environ is None else environ)
        if missing:
            return failure(op, "MISSING_ENV", missing_env_remediation(missing), missing=missing)
        return ServiceResult(ok=True, op=op, data={"environment": list(REQUIRED_ENV_VARS)})

    def check(
        self,
        *,
        environ: Mapping[str, str] | None = None,
        which: Which | None = None,
    ) -> ServiceResult:
        """Tools first, then environment; the first failure is returned."""
        tools = self.check_tools(which=which)
        if not tools.ok:
            return tools
        env = self.check_environment(environ)
        if not env.ok:
            return env
        logger.info("Preflight passed")
        return ServiceResult(ok=True, op="preflight", data={**tools.data, **env.data})
