"""Render a :class:`Topology` as a ``docker-compose.yml`` document."""

from __future__ import annotations

from io import StringIO
from typing import TYPE_CHECKING, Any

from ruamel.yaml import YAML

from fedideploy.domain.topology import ENV_FILE

if TYPE_CHECKING:
    from fedideploy.domain.topology import ServiceSpec, Topology


def _literal(value: str) -> str:
    """Escape `$` so compose does not interpolate it as a variable."""
    return value.replace("$", "$$")


def _service_block(spec: ServiceSpec) -> dict[str, Any]:
    """Compose mapping for one service, keys in a fixed order."""
    block: dict[str, Any] = {"image": spec.image}
    if spec.container_name:
        block["container_name"] = spec.container_name
    if spec.restart:
        block["restart"] = spec.restart
    if spec.user:
        block["user"] = spec.user
    if spec.shm_size:
        block["shm_size"] = spec.shm_size
    if spec.env_file:
        block["env_file"] = [ENV_FILE]
    if spec.command is not None:
        if isinstance(spec.command, str):
            block["command"] = _literal(spec.command)
        else:
            block["command"] = [_literal(part) for part in spec.command]
    if spec.environment:
        block["environment"] = {k: _literal(v) for k, v in spec.environment.items()}
    if spec.health_check is not None:
        hc: dict[str, Any] = {
            "test": [_literal(part) for part in spec.health_check.test],
            "interval": spec.health_check.interval,
            "timeout": spec.health_check.timeout,
            "retries": spec.health_check.retries,
        }
        if spec.health_check.start_period:
            hc["start_period"] = spec.health_check.start_period
        block["healthcheck"] = hc
    if spec.ports:
        block["ports"] = list(spec.ports)
    if spec.volumes:
        block["volumes"] = list(spec.volumes)
    if spec.depends_on:
        block["depends_on"] = {dep: {"condition": "service_healthy"} for dep in spec.depends_on}
    return block


def render_compose_file(topology: Topology, *, project_name: str | None = None) -> str:
    """Serialize *topology* to compose YAML. Same topology, same bytes."""
    document: dict[str, Any] = {}
    if project_name:
        document["name"] = project_name
    document["services"] = {spec.name: _service_block(spec) for spec in topology.services}

    # Round-trip mode keeps insertion order; a wide line keeps commands unfolded.
    yaml = YAML()
    yaml.default_flow_style = False
    yaml.width = 4096
    buf = StringIO()
    yaml.dump(document, buf)
    return buf.getvalue()
