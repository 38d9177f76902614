"""Tests for template loading and workspace overrides."""

from pathlib import Path

import pytest
from jinja2 import UndefinedError

from fedideploy.infrastructure.templates import build_template_environment


class TestTemplateEnvironment:
    def test_packaged_templates(self) -> None:
        env = build_template_environment("config")
        assert env.loader is not None
        source, _, _ = env.loader.get_source(env, "Caddyfile.j2")
        assert "reverse_proxy web:3000" in source
        source, _, _ = env.loader.get_source(env, "env.production.j2")
        assert "LOCAL_DOMAIN=" in source

    def test_workspace_override_wins(self, tmp_path: Path) -> None:
        override = tmp_path / ".fedideploy" / "templates" / "config"
        override.mkdir(parents=True)
        (override / "Caddyfile.j2").write_text("custom {{ config.domain }}\n")
        env = build_template_environment("config", workdir=tmp_path)
        rendered = env.get_template("Caddyfile.j2").render(config={"domain": "example.test"})
        assert rendered == "custom example.test\n"

    def test_undefined_variables_raise(self) -> None:
        env = build_template_environment("config")
        with pytest.raises(UndefinedError):
            env.get_template("env.production.j2").render()
