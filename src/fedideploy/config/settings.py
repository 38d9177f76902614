"""Unified settings — CLI flags, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs  — CLI flags passed by Click
  2. Env vars     — ``FEDIDEPLOY_*`` prefix
  3. TOML file    — ``fedideploy.toml`` discovered via walk-up
  4. Code defaults — baked into the section models

The deployment secrets (``POSTGRES_PASSWORD`` and friends) are deliberately
not settings: they are read straight from the process environment by the
preflight check so they never end up in a config file.
"""

from __future__ import annotations

import threading
import tomllib
from pathlib import Path
from typing import Any

import click
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from fedideploy.config.discovery import find_config
from fedideploy.config.models import (
    AdminConfig,
    ComposeConfig,
    FederationConfig,
    MastodonConfig,
    ReadinessConfig,
    RelaysConfig,
)


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from a ``fedideploy.toml`` file."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            raw = toml_path.read_text(encoding="utf-8")
            try:
                self._data = tomllib.loads(raw)
            except tomllib.TOMLDecodeError as exc:
                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise click.ClickException(msg) from exc

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        return self._data


# Thread-local storage for TOML path during construction.
_tls = threading.local()


class FediSettings(BaseSettings):
    """Unified settings for the fedideploy CLI.

    Stored on the :class:`AppContext` at the CLI root level.

    Attributes:
        workdir: Deployment directory holding the rendered files and the
            bootstrap state (parent of ``fedideploy.toml``, or CWD).
        config_path: The TOML file in effect, if any.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "FEDIDEPLOY_",
        "env_nested_delimiter": "__",
    }

    workdir: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    # --- CLI flags ---
    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False
    no_interact: bool = False

    # --- TOML sections ---
    mastodon: MastodonConfig = Field(default_factory=MastodonConfig)
    compose: ComposeConfig = Field(default_factory=ComposeConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)
    readiness: ReadinessConfig = Field(default_factory=ReadinessConfig)
    federation: FederationConfig = Field(default_factory=FederationConfig)
    relays: RelaysConfig = Field(default_factory=RelaysConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        workdir: Path | None = None,
        **cli_flags: Any,
    ) -> FediSettings:
        """Construct settings from a CLI invocation.

        Discovers ``fedideploy.toml`` via walk-up from *workdir* (or uses
        the explicit *config_path*) and resolves the working directory from
        the config file's parent when none is given.
        """
        toml_path: Path | None = None
        if config_path:
            p = Path(config_path)
            if p.is_file():
                toml_path = p
        else:
            toml_path = find_config(workdir)

        resolved = workdir
        if resolved is None:
            resolved = toml_path.parent if toml_path else Path.cwd()

        _tls.toml_path = toml_path
        try:
            return cls(workdir=resolved, config_path=toml_path, **cli_flags)
        finally:
            _tls.toml_path = None
